import asyncio
import dataclasses
import time
from logging import Logger
from typing import Any, Optional

import boto3

from imgserve import cachekey, codec, transform
from imgserve.cache import CacheStore
from imgserve.config import Settings
from imgserve.errors import UnknownFormat
from imgserve.inflight import InFlight
from imgserve.log import init_logging, log_context
from imgserve.origin import Origin
from imgserve.transform import TransformRequest
from imgserve.typing import CacheKey, ImageId, ResponseHeaders

FALLBACK_CONTENT_TYPE = 'application/octet-stream'

logger = init_logging()


@dataclasses.dataclass(frozen=True)
class ImageResponse:
  body: bytes
  content_type: str
  cache_control: str

  def headers(self) -> ResponseHeaders:
    return {
        'Content-Type': self.content_type,
        'Content-Length': str(len(self.body)),
        'Cache-Control': self.cache_control,
    }


@dataclasses.dataclass(frozen=True)
class Variant:
  body: bytes
  content_type: str
  vips_us: Optional[int]


class ImgServer:
  instances: dict[Settings, 'ImgServer'] = {}

  def __init__(
      self,
      log: Logger,
      origin: Origin,
      cache: CacheStore,
      cache_ttl: int,
      resp_max_age: int,
      single_flight: bool,
  ):
    self.log = log
    self.origin = origin
    self.cache = cache
    self.cache_ttl = cache_ttl
    self.resp_max_age = resp_max_age
    self.inflight: Optional[InFlight[Variant]] = InFlight() if single_flight else None
    # Every variant is immutable: any parameter change yields another key.
    self.cache_control = f'max-age={self.resp_max_age}'

  @classmethod
  def from_settings(cls, log: Logger, settings: Settings) -> 'ImgServer':
    if settings not in cls.instances:
      s3 = boto3.client(
          's3',
          endpoint_url=settings.minio_endpoint,
          region_name=settings.minio_region,
          aws_access_key_id=settings.minio_access_key,
          aws_secret_access_key=settings.minio_secret_key)
      cls.instances[settings] = cls(
          log=log,
          origin=Origin(log, s3, settings.minio_bucket_name),
          cache=CacheStore.from_url(log, settings.redis_url, settings.redis_pool_size),
          cache_ttl=settings.cache_ttl,
          resp_max_age=settings.resp_max_age,
          single_flight=settings.single_flight)

    return cls.instances[settings]

  def set_log_context(self, identifier: ImageId, request: TransformRequest) -> None:
    log_context.set({
        'identifier': str(identifier),
        'params': {
            'width': request.width,
            'height': request.height,
            'quality': request.quality,
            'format': None if request.format is None else request.format.value,
        },
    })

  def log_debug(self, message: str, dict: dict[str, Any]) -> None:
    self.log.debug({'message': message, **dict})

  def log_warning(self, message: str, dict: dict[str, Any]) -> None:
    self.log.warning({'message': message, **dict})

  def log_error(self, message: str, dict: dict[str, Any]) -> None:
    self.log.error({'message': message, **dict})

  def resolve_content_type(self, request: TransformRequest, body: bytes) -> str:
    # Depends on the body only, so a hit answers exactly like the miss that
    # filled the cache.
    if request.format is not None:
      return request.format.content_type()

    try:
      return codec.guess_format(body).content_type()
    except UnknownFormat:
      if not request.is_identity():
        # A transformed body is always produced by our own encoder.
        raise

    return FALLBACK_CONTENT_TYPE

  async def render(
      self,
      identifier: ImageId,
      request: TransformRequest,
      cache_key: CacheKey,
  ) -> Variant:
    key = await self.origin.locate(identifier)
    original = await self.origin.fetch(key)

    operations = transform.build_operations(request)
    if len(operations) == 0:
      body = original
      vips_us = None
    else:
      start_ns = time.time_ns()
      body = await asyncio.to_thread(transform.transform, original, operations)
      vips_us = (time.time_ns() - start_ns) // 1000

    content_type = self.resolve_content_type(request, body)

    cached = await self.cache.set(cache_key, body, self.cache_ttl)

    self.log_debug(
        'rendered', {
            'key': key,
            'operations': [str(op) for op in operations],
            'img_size': len(body),
            'vips_us': vips_us,
            'cached': cached,
        })

    return Variant(body=body, content_type=content_type, vips_us=vips_us)

  async def get_image(self, identifier: ImageId, request: TransformRequest) -> ImageResponse:
    self.set_log_context(identifier, request)
    cache_key = cachekey.derive(identifier, request)

    cached = await self.cache.get(cache_key)
    if cached is not None:
      content_type = self.resolve_content_type(request, cached)
      self.log_debug(
          'cache hit', {
              'cache_key': cache_key,
              'content_type': content_type,
              'img_size': len(cached),
          })
      return ImageResponse(
          body=cached, content_type=content_type, cache_control=self.cache_control)

    self.log_debug('cache miss', {'cache_key': cache_key})

    if self.inflight is None:
      variant = await self.render(identifier, request, cache_key)
    else:
      variant = await self.inflight.run(
          cache_key, lambda: self.render(identifier, request, cache_key))

    return ImageResponse(
        body=variant.body, content_type=variant.content_type, cache_control=self.cache_control)

  async def close(self) -> None:
    await self.cache.close()
