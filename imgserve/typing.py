from typing import NewType

from typing_extensions import TypedDict

ImageId = NewType('ImageId', str)
S3Key = NewType('S3Key', str)
CacheKey = NewType('CacheKey', str)

ResponseHeaders = TypedDict(
    'ResponseHeaders', {
        'Content-Type': str,
        'Content-Length': str,
        'Cache-Control': str,
    })


class HealthReport(TypedDict):
  status: str
  cache: bool
