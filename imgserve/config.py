from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
  """Service configuration loaded from environment variables or a .env file.

  Settings are frozen, so they are hashable and can key the per-configuration
  server instances.
  """

  model_config = SettingsConfigDict(
      env_file='.env',
      env_ignore_empty=True,
      case_sensitive=False,
      extra='ignore',
      frozen=True,
  )

  # HTTP
  address: str = Field('127.0.0.1', description='Address to listen on.')
  port: int = Field(8080, description='Port to listen on.')
  request_timeout: float = Field(10.0, gt=0, description='Per-request deadline in seconds.')

  # Object storage
  minio_endpoint: str = Field('http://localhost:9000')
  minio_access_key: str = Field('minioadmin')
  minio_secret_key: str = Field('minioadmin')
  minio_bucket_name: str = Field('images', description='Bucket holding the originals.')
  minio_region: str = Field('eu-central-1')

  # Cache
  redis_url: str = Field('redis://localhost:6379')
  redis_pool_size: int = Field(10, gt=0)
  cache_ttl: int = Field(60 * 60, gt=0, description='Lifetime of a cached variant in seconds.')
  resp_max_age: int = Field(
      365 * 24 * 60 * 60, ge=0, description='max-age sent in Cache-Control.')
  single_flight: bool = Field(
      True, description='Share one render between concurrent misses of a key.')
