import dataclasses
from typing import Optional

from imgserve import codec
from imgserve.codec import Format, ImageFormat, Raster
from imgserve.errors import InvalidDimensions

RESAMPLING_KERNEL = 'lanczos3'


@dataclasses.dataclass(eq=True, frozen=True)
class TransformRequest:
  width: Optional[int] = None
  height: Optional[int] = None
  quality: Optional[int] = None
  format: Optional[Format] = None

  def is_identity(self) -> bool:
    return (
        self.width is None and self.height is None and self.quality is None and
        self.format is None)


@dataclasses.dataclass(eq=True, frozen=True)
class Convert:
  format: Format


@dataclasses.dataclass(eq=True, frozen=True)
class Quality:
  level: int


@dataclasses.dataclass(eq=True, frozen=True)
class Resize:
  width: Optional[int]
  height: Optional[int]


Operation = Convert | Quality | Resize


def build_operations(request: TransformRequest) -> list[Operation]:
  # Quality must see the converted format and resize comes last, whatever the
  # order of the query string.
  operations: list[Operation] = []
  if request.format is not None:
    operations.append(Convert(request.format))
  if request.quality is not None:
    operations.append(Quality(request.quality))
  if request.width is not None or request.height is not None:
    operations.append(Resize(request.width, request.height))
  return operations


def resize(data: bytes, width: Optional[int], height: Optional[int]) -> bytes:
  if width is None and height is None:
    raise InvalidDimensions('no dimensions specified')

  raster = codec.decode(data)
  target_width = raster.width if width is None else width
  target_height = raster.height if height is None else height

  image = raster.image.resize(
      target_width / raster.width,
      vscale=target_height / raster.height,
      kernel=RESAMPLING_KERNEL)

  return codec.encode(Raster(image=image, format=raster.format), raster.format)


def apply(data: bytes, operation: Operation) -> bytes:
  match operation:
    case Convert(format=fmt):
      return codec.encode(codec.decode(data), fmt)
    case Quality(level=level):
      match codec.guess_format(data):
        case ImageFormat.JPEG:
          return codec.encode(codec.decode(data), Format.JPEG, level)
        case ImageFormat.WEBP:
          return codec.encode(codec.decode(data), Format.WEBP, level)
        case _:
          return data
    case Resize(width=width, height=height):
      return resize(data, width, height)
    case _:
      raise ValueError(f'unknown operation: {operation}')


def transform(data: bytes, operations: list[Operation]) -> bytes:
  if len(operations) == 0:
    return data

  codec.guess_format(data)

  for operation in operations:
    data = apply(data, operation)

  return data
