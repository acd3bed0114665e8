import io
import logging
from logging import Logger
from typing import Any, Optional

import pytest
import pyvips  # type: ignore
from botocore.exceptions import ClientError
from redis.exceptions import ConnectionError

from imgserve.cache import CacheStore
from imgserve.getimage.index import ImgServer
from imgserve.origin import Origin

BUCKET = 'images'
CACHE_TTL = 60 * 60
RESP_MAX_AGE = 365 * 24 * 60 * 60


def make_image(width: int, height: int, suffix: str = '.png') -> bytes:
  xyz = pyvips.Image.xyz(width, height)
  image = xyz[0].bandjoin([xyz[1], xyz[0] + xyz[1]]).cast('uchar')
  return image.write_to_buffer(suffix)


def image_size(data: bytes) -> tuple[int, int]:
  image = pyvips.Image.new_from_buffer(data, '')
  return (image.get('width'), image.get('height'))


class FakeS3:
  """Stand-in for the boto3 S3 client which counts calls."""

  def __init__(self, objects: Optional[dict[str, bytes]] = None):
    self.objects = {} if objects is None else objects
    self.list_calls = 0
    self.get_calls = 0

  def list_objects_v2(self, Bucket: str, Prefix: str) -> dict[str, Any]:
    self.list_calls += 1
    keys = sorted(k for k in self.objects if k.startswith(Prefix))
    if len(keys) == 0:
      return {'KeyCount': 0}
    return {'KeyCount': len(keys), 'Contents': [{'Key': k} for k in keys]}

  def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:
    self.get_calls += 1
    if Key not in self.objects:
      raise ClientError({'Error': {'Code': 'NoSuchKey', 'Message': 'not found'}}, 'GetObject')
    return {'Body': io.BytesIO(self.objects[Key])}


class FakeRedis:
  """In-memory stand-in for ``redis.asyncio.Redis``."""

  def __init__(self, fail_get: bool = False, fail_set: bool = False):
    self.fail_get = fail_get
    self.fail_set = fail_set
    self.data: dict[str, bytes] = {}
    self.ttls: dict[str, Optional[int]] = {}
    self.closed = False

  async def get(self, key: str) -> Optional[bytes]:
    if self.fail_get:
      raise ConnectionError('connection refused')
    return self.data.get(key)

  async def set(
      self, key: str, value: bytes, ex: Optional[int] = None, nx: bool = False) -> Optional[bool]:
    if self.fail_set:
      raise ConnectionError('connection refused')
    if nx and key in self.data:
      return None
    self.data[key] = value
    self.ttls[key] = ex
    return True

  async def ping(self) -> bool:
    if self.fail_get:
      raise ConnectionError('connection refused')
    return True

  async def aclose(self) -> None:
    self.closed = True


@pytest.fixture
def log() -> Logger:
  log = logging.getLogger('imgserve_test')
  log.setLevel(logging.DEBUG)
  return log


@pytest.fixture
def png_200x400() -> bytes:
  return make_image(200, 400, '.png')


@pytest.fixture
def jpeg_200x400() -> bytes:
  return make_image(200, 400, '.jpg')


@pytest.fixture
def s3(png_200x400: bytes) -> FakeS3:
  return FakeS3({
      'abc123.png': png_200x400,
      'notes.txt': b'plain text, not an image',
      'broken.png': b'\x89PNG\r\n\x1a\n' + b'\x00' * 32,
  })


@pytest.fixture
def redis() -> FakeRedis:
  return FakeRedis()


@pytest.fixture
def img_server(log: Logger, s3: FakeS3, redis: FakeRedis) -> ImgServer:
  return ImgServer(
      log=log,
      origin=Origin(log, s3, BUCKET),  # type: ignore
      cache=CacheStore(log, redis),  # type: ignore
      cache_ttl=CACHE_TTL,
      resp_max_age=RESP_MAX_AGE,
      single_flight=True)
