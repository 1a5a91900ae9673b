import dataclasses
from typing import Protocol

from botocore.client import BaseClient as S3Client
from botocore.exceptions import BotoCoreError, ClientError

from imgtransform.errors import FetchError, WriteError
from imgtransform.typing import S3Key

CACHE_CONTROL_METADATA = 'cache-control'
DEFAULT_CONTENT_TYPE = 'application/octet-stream'


@dataclasses.dataclass(frozen=True)
class OriginalImage:
  body: bytes
  content_type: str


@dataclasses.dataclass(frozen=True)
class TransformedImage:
  body: bytes
  content_type: str
  cache_control: str


class OriginalStore(Protocol):

  def fetch(self, key: S3Key) -> OriginalImage:
    ...


class TransformedStore(Protocol):
  """Write side of the variant cache.

  ``store`` raises ``WriteError`` on failure. Callers treat it as best-effort.
  """

  def store(self, key: S3Key, image: TransformedImage) -> None:
    ...


def is_not_found_client_error(exception: ClientError) -> bool:
  if 'Error' not in exception.response:
    return False
  if 'Code' not in exception.response['Error']:
    return False
  return exception.response['Error']['Code'] in ['404', 'NoSuchKey']


class S3OriginalStore:

  def __init__(self, s3: S3Client, bucket: str):
    self.s3 = s3
    self.bucket = bucket

  def fetch(self, key: S3Key) -> OriginalImage:
    if key == '':
      raise FetchError('empty key')

    try:
      res = self.s3.get_object(Bucket=self.bucket, Key=key)
      body = res['Body'].read()
    except ClientError as e:
      if is_not_found_client_error(e):
        raise FetchError(f'not found: s3://{self.bucket}/{key}') from e
      raise FetchError(f'get_object failed: {e}') from e
    except BotoCoreError as e:
      raise FetchError(f'get_object failed: {e}') from e

    return OriginalImage(body=body, content_type=res.get('ContentType', DEFAULT_CONTENT_TYPE))


class S3TransformedStore:

  def __init__(self, s3: S3Client, bucket: str):
    self.s3 = s3
    self.bucket = bucket

  def store(self, key: S3Key, image: TransformedImage) -> None:
    try:
      self.s3.put_object(
          Body=image.body,
          Bucket=self.bucket,
          Key=key,
          ContentType=image.content_type,
          CacheControl=image.cache_control,
          Metadata={
              CACHE_CONTROL_METADATA: image.cache_control,
          })
    except (ClientError, BotoCoreError) as e:
      raise WriteError(f'put_object failed: {e}') from e
