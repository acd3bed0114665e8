from logging import Logger
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from imgserve.errors import CacheError
from imgserve.typing import CacheKey


class CacheStore:
  """Variant cache on top of Redis.

  ``lookup`` and ``store`` raise ``CacheError``. ``get`` and ``set`` are the
  best-effort versions used on the request path: a broken cache is a miss and a
  failed write is only logged.
  """

  def __init__(self, log: Logger, redis: Redis):
    self.log = log
    self.redis = redis

  @classmethod
  def from_url(cls, log: Logger, url: str, pool_size: int) -> 'CacheStore':
    return cls(log, Redis.from_url(url, max_connections=pool_size))

  async def lookup(self, key: CacheKey) -> Optional[bytes]:
    try:
      return await self.redis.get(key)
    except RedisError as e:
      raise CacheError(f'failed to get {key}: {e}') from e

  async def store(self, key: CacheKey, data: bytes, ttl: int) -> bool:
    # NX: a variant written by another instance is never overwritten.
    try:
      return bool(await self.redis.set(key, data, ex=ttl, nx=True))
    except RedisError as e:
      raise CacheError(f'failed to set {key}: {e}') from e

  async def get(self, key: CacheKey) -> Optional[bytes]:
    self.log.debug({'message': 'looking up cache', 'cache_key': key})
    try:
      return await self.lookup(key)
    except CacheError as e:
      self.log.warning({'message': 'cache lookup failed', 'cache_key': key, 'reason': str(e)})
      return None

  async def set(self, key: CacheKey, data: bytes, ttl: int) -> bool:
    self.log.debug({'message': 'caching variant', 'cache_key': key, 'size': len(data)})
    try:
      return await self.store(key, data, ttl)
    except CacheError as e:
      self.log.error({'message': 'failed to cache variant', 'cache_key': key, 'reason': str(e)})
      return False

  async def ping(self) -> bool:
    try:
      return bool(await self.redis.ping())
    except RedisError as e:
      self.log.warning({'message': 'cache ping failed', 'reason': str(e)})
      return False

  async def close(self) -> None:
    await self.redis.aclose()
