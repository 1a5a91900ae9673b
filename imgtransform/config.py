import dataclasses
from typing import Mapping, Optional

DEFAULT_CACHE_CONTROL = 'max-age=31622400'
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_REGION = 'us-east-1'


@dataclasses.dataclass(eq=True, frozen=True)
class Config:
  region: str
  original_bucket: str
  transformed_bucket: Optional[str]
  cache_control: str
  secret_key: str
  log_timing: bool
  write_timeout: float

  @classmethod
  def from_environ(cls, environ: Mapping[str, str]) -> 'Config':
    """Reads the Lambda environment.

    Raises ``KeyError`` when ``originalImageBucketName`` or ``secretKey`` is missing or
    empty. An empty ``transformedImageBucketName`` disables write-through.
    """
    original_bucket = environ.get('originalImageBucketName', '')
    if original_bucket == '':
      raise KeyError('originalImageBucketName')

    secret_key = environ.get('secretKey', '')
    if secret_key == '':
      raise KeyError('secretKey')

    return cls(
        region=environ.get('AWS_REGION', DEFAULT_REGION),
        original_bucket=original_bucket,
        transformed_bucket=environ.get('transformedImageBucketName') or None,
        cache_control=environ.get('transformedImageCacheTTL') or DEFAULT_CACHE_CONTROL,
        secret_key=secret_key,
        log_timing=environ.get('logTiming', 'false').lower() == 'true',
        write_timeout=float(
            environ.get('transformedImageWriteTimeout') or DEFAULT_WRITE_TIMEOUT))

  @property
  def write_through(self) -> bool:
    return self.transformed_bucket is not None
