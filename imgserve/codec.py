import dataclasses
from enum import Enum
from typing import Any, Optional

import pyvips  # type: ignore

from imgserve.errors import DecodeError, EncodeError, UnknownFormat

DEFAULT_QUALITY = 80

PNG_COMPRESSION_FAST = 1
PNG_COMPRESSION_DEFAULT = 6
PNG_COMPRESSION_BEST = 9


class ImageFormat(Enum):
  PNG = 'png'
  JPEG = 'jpeg'
  GIF = 'gif'
  WEBP = 'webp'
  TIFF = 'tiff'
  BMP = 'bmp'
  ICO = 'ico'
  AVIF = 'avif'

  def content_type(self) -> str:
    match self:
      case ImageFormat.PNG:
        return 'image/png'
      case ImageFormat.JPEG:
        return 'image/jpeg'
      case ImageFormat.GIF:
        return 'image/gif'
      case ImageFormat.WEBP:
        return 'image/webp'
      case ImageFormat.TIFF:
        return 'image/tiff'
      case ImageFormat.BMP:
        return 'image/bmp'
      case ImageFormat.ICO:
        # https://stackoverflow.com/a/28300054
        return 'image/x-icon'
      case ImageFormat.AVIF:
        return 'image/avif'


class Format(Enum):
  """Formats an image can be encoded to."""

  PNG = 'png'
  JPEG = 'jpeg'
  WEBP = 'webp'
  AVIF = 'avif'

  @classmethod
  def from_param(cls, s: str) -> 'Format':
    name = s.strip().lower()
    if name == 'jpg':
      return cls.JPEG
    try:
      return cls(name)
    except ValueError:
      raise ValueError(f'unsupported format: {s}')

  @classmethod
  def maybe_from_image_format(cls, image_format: ImageFormat) -> Optional['Format']:
    match image_format:
      case ImageFormat.PNG:
        return cls.PNG
      case ImageFormat.JPEG:
        return cls.JPEG
      case ImageFormat.WEBP:
        return cls.WEBP
      case ImageFormat.AVIF:
        return cls.AVIF
      case _:
        return None

  def image_format(self) -> ImageFormat:
    return ImageFormat(self.value)

  def content_type(self) -> str:
    return self.image_format().content_type()

  def extension(self) -> str:
    match self:
      case Format.PNG:
        return '.png'
      case Format.JPEG:
        return '.jpg'
      case Format.WEBP:
        return '.webp'
      case Format.AVIF:
        return '.avif'


# Each signature is a list of (offset, bytes) pairs which must all match.
magic_bytes: list[tuple[list[tuple[int, bytes]], ImageFormat]] = [
    ([(0, b'\x89PNG\r\n\x1a\n')], ImageFormat.PNG),
    ([(0, b'\xff\xd8\xff')], ImageFormat.JPEG),
    ([(0, b'GIF87a')], ImageFormat.GIF),
    ([(0, b'GIF89a')], ImageFormat.GIF),
    ([(0, b'RIFF'), (8, b'WEBP')], ImageFormat.WEBP),
    ([(0, b'II*\x00')], ImageFormat.TIFF),
    ([(0, b'MM\x00*')], ImageFormat.TIFF),
    ([(0, b'BM')], ImageFormat.BMP),
    ([(0, b'\x00\x00\x01\x00')], ImageFormat.ICO),
    ([(4, b'ftypavif')], ImageFormat.AVIF),
    ([(4, b'ftypavis')], ImageFormat.AVIF),
]


def guess_format(data: bytes) -> ImageFormat:
  for signature, image_format in magic_bytes:
    if all(data[offset:offset + len(magic)] == magic for offset, magic in signature):
      return image_format

  raise UnknownFormat(f'unknown image format: {data[:12]!r}')


@dataclasses.dataclass(frozen=True)
class Raster:
  image: pyvips.Image
  format: ImageFormat

  @property
  def width(self) -> int:
    return self.image.get('width')

  @property
  def height(self) -> int:
    return self.image.get('height')


def decode(data: bytes) -> Raster:
  try:
    image_format = guess_format(data)
  except UnknownFormat as e:
    raise DecodeError(str(e)) from e

  try:
    # libvips loads lazily; force the pixels so broken data fails here.
    image = pyvips.Image.new_from_buffer(data, '').copy_memory()
  except pyvips.Error as e:
    raise DecodeError(f'failed to load {image_format.value} image: {e}') from e

  return Raster(image=image, format=image_format)


def png_compression(quality: Optional[int]) -> int:
  q = DEFAULT_QUALITY if quality is None else quality
  if q < 10:
    return PNG_COMPRESSION_FAST
  if q < 20:
    return PNG_COMPRESSION_DEFAULT
  return PNG_COMPRESSION_BEST


def encode(raster: Raster, fmt: Format | ImageFormat, quality: Optional[int] = None) -> bytes:
  target = fmt if isinstance(fmt, Format) else Format.maybe_from_image_format(fmt)
  if target is None:
    raise EncodeError(f'unsupported encode target: {fmt.value}')

  options: dict[str, Any]
  match target:
    case Format.JPEG | Format.WEBP:
      options = {'Q': DEFAULT_QUALITY if quality is None else quality}
    case Format.PNG:
      options = {'compression': png_compression(quality)}
    case Format.AVIF:
      options = {}

  try:
    return raster.image.write_to_buffer(target.extension(), **options)
  except pyvips.Error as e:
    raise EncodeError(f'failed to encode {target.value} image: {e}') from e
