from http import HTTPStatus


class ImgServeError(Exception):
  status: int = HTTPStatus.INTERNAL_SERVER_ERROR


class NotFound(ImgServeError):
  status = HTTPStatus.NOT_FOUND


class StorageError(ImgServeError):
  pass


class CodecError(ImgServeError):
  pass


class DecodeError(CodecError):
  pass


class EncodeError(CodecError):
  pass


class UnknownFormat(CodecError):
  pass


class InvalidDimensions(ImgServeError):
  pass


class CacheError(ImgServeError):
  """Raised by the strict cache calls; the lenient ones only log it."""
