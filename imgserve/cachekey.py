from typing import Optional

from imgserve.codec import Format
from imgserve.transform import TransformRequest
from imgserve.typing import CacheKey, ImageId

ABSENT = 'none'


def encode_field(value: Optional[int | Format]) -> str:
  if value is None:
    return ABSENT
  if isinstance(value, Format):
    return value.value
  return str(value)


def derive(identifier: ImageId, request: TransformRequest) -> CacheKey:
  # The four trailing fields never contain ':', so identifiers containing ':'
  # cannot make two keys collide.
  return CacheKey(
      f'img:{identifier}'
      f':w{encode_field(request.width)}'
      f':h{encode_field(request.height)}'
      f':q{encode_field(request.quality)}'
      f':f{encode_field(request.format)}')
