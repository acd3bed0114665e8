import asyncio
from logging import Logger

from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_s3.client import S3Client

from imgserve.errors import NotFound, StorageError
from imgserve.typing import ImageId, S3Key


def is_not_found_client_error(exception: ClientError) -> bool:
  if 'Error' not in exception.response:
    return False
  if 'Code' not in exception.response['Error']:
    return False
  return exception.response['Error']['Code'] in ['404', 'NoSuchKey']


class Origin:
  """Read-only access to the bucket holding the uploaded originals.

  Objects are stored as ``{identifier}.{extension}``, so an identifier is
  resolved to its key by listing the bucket with the identifier as prefix.
  boto3 blocks, so every call runs in a worker thread.
  """

  def __init__(self, log: Logger, s3: S3Client, bucket: str):
    self.log = log
    self.s3 = s3
    self.bucket = bucket

  async def locate(self, identifier: ImageId) -> S3Key:
    try:
      res = await asyncio.to_thread(self.s3.list_objects_v2, Bucket=self.bucket, Prefix=identifier)
    except (BotoCoreError, ClientError) as e:
      raise StorageError(f'failed to list objects with prefix {identifier}: {e}') from e

    contents = res.get('Contents', [])
    self.log.debug({
        'message': 'listed objects',
        'prefix': identifier,
        'count': len(contents),
    })

    # Identifiers are unique per upload; with several matches the listing
    # order decides.
    if len(contents) == 0 or 'Key' not in contents[0]:
      raise NotFound(f'no object found with prefix {identifier}')

    return S3Key(contents[0]['Key'])

  def read_object(self, key: S3Key) -> bytes:
    res = self.s3.get_object(Bucket=self.bucket, Key=key)
    return res['Body'].read()

  async def fetch(self, key: S3Key) -> bytes:
    try:
      data = await asyncio.to_thread(self.read_object, key)
    except ClientError as e:
      if is_not_found_client_error(e):
        raise NotFound(f'object not found: {key}') from e
      raise StorageError(f'failed to get object {key}: {e}') from e
    except BotoCoreError as e:
      raise StorageError(f'failed to get object {key}: {e}') from e

    self.log.debug({'message': 'fetched object', 'key': key, 'size': len(data)})
    return data
