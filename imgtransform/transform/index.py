import base64
import dataclasses
import datetime
import logging
import os
import secrets
import sys
import time
from concurrent.futures import Future, ThreadPoolExecutor
from http import HTTPStatus
from logging import Logger
from typing import Any, Mapping, Optional
from urllib import parse

import boto3
from pythonjsonlogger.json import JsonFormatter

import imgtransform
from imgtransform import engine
from imgtransform.config import Config
from imgtransform.errors import (
    AuthError,
    ImgTransformError,
    MethodError,
    WriteError
)
from imgtransform.operations import TransformSpec
from imgtransform.storage import (
    OriginalStore,
    S3OriginalStore,
    S3TransformedStore,
    TransformedImage,
    TransformedStore
)
from imgtransform.typing import (
    FunctionUrlEvent,
    FunctionUrlResponse,
    HttpPath,
    S3Key
)

SECRET_HEADER = 'x-origin-secret-header'
TEXT_MIME = 'text/plain'


class MyJsonFormatter(JsonFormatter):

  def __init__(self) -> None:
    super().__init__(json_ensure_ascii=False)

  def add_fields(self, log_record: Any, record: Any, message_dict: Any) -> None:
    log_record['_ts'] = datetime.datetime.fromtimestamp(
        record.created, datetime.UTC).strftime('%Y-%m-%dT%H:%M:%S.%fZ')
    log_record['level'] = record.levelname
    log_record['version'] = imgtransform.version

    super().add_fields(log_record, record, message_dict)


def init_logging(name: str) -> Logger:
  root = logging.getLogger()
  root.setLevel(logging.DEBUG)
  for h in list(root.handlers):
    root.removeHandler(h)

  logging.getLogger('botocore').setLevel(logging.WARNING)
  logging.getLogger('urllib3').setLevel(logging.INFO)

  log = logging.getLogger(name)
  if not any(isinstance(h.formatter, MyJsonFormatter) for h in log.handlers):
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(MyJsonFormatter())
    log.addHandler(handler)
    log.propagate = False

  return log


logger = init_logging(__name__)


@dataclasses.dataclass(eq=True, frozen=True)
class ImageRequest:
  original_path: S3Key
  operations_token: str

  @classmethod
  def from_path(cls, path: HttpPath) -> 'ImageRequest':
    # /images/rio/1.jpg/format=webp,width=200
    #  -> ('images/rio/1.jpg', 'format=webp,width=200')
    segments = [parse.unquote(s) for s in path.split('/')]
    token = segments.pop()
    return cls(S3Key('/'.join(segments[1:])), token)

  @property
  def cache_key(self) -> S3Key:
    return S3Key(f'{self.original_path}/{self.operations_token}')


def elapsed_us(start_ns: int) -> int:
  return (time.time_ns() - start_ns) // 1000


def image_response(image: TransformedImage) -> FunctionUrlResponse:
  return {
      'statusCode': int(HTTPStatus.OK),
      'headers': {
          'Content-Type': image.content_type,
          'Cache-Control': image.cache_control,
      },
      'body': base64.b64encode(image.body).decode(),
      'isBase64Encoded': True,
  }


def error_response(status: HTTPStatus, message: str) -> FunctionUrlResponse:
  return {
      'statusCode': int(status),
      'headers': {
          'Content-Type': TEXT_MIME,
      },
      'body': message,
      'isBase64Encoded': False,
  }


class ImgTransformer:
  instances: dict[Config, 'ImgTransformer'] = {}

  def __init__(
      self,
      log: Logger,
      config: Config,
      original_store: OriginalStore,
      transformed_store: Optional[TransformedStore],
  ):
    self.log = log
    self.config = config
    self.original_store = original_store
    self.transformed_store = transformed_store
    self.executor = (
        None if transformed_store is None else
        ThreadPoolExecutor(max_workers=1, thread_name_prefix='write-back'))

  @classmethod
  def from_env(cls, log: Logger, environ: Mapping[str, str]) -> Optional['ImgTransformer']:
    try:
      config = Config.from_environ(environ)
    except (KeyError, ValueError) as e:
      log.warning({
          'message': 'invalid environment variable',
          'key': str(e),
      })
      return None

    if config not in cls.instances:
      s3 = boto3.client('s3', region_name=config.region)
      cls.instances[config] = cls(
          log=log,
          config=config,
          original_store=S3OriginalStore(s3, config.original_bucket),
          transformed_store=(
              None if config.transformed_bucket is None else S3TransformedStore(
                  s3, config.transformed_bucket)))

    return cls.instances[config]

  def log_warning(self, message: str, dict: dict[str, Any]) -> None:
    self.log.warning({
        'message': message,
        **dict,
    })

  def log_debug(self, message: str, dict: dict[str, Any]) -> None:
    self.log.debug({
        'message': message,
        **dict,
    })

  def log_info(self, message: str, dict: dict[str, Any]) -> None:
    self.log.info({
        'message': message,
        **dict,
    })

  def log_error(self, message: str, dict: dict[str, Any], exc_info: bool = False) -> None:
    self.log.error({
        'message': message,
        **dict,
    }, exc_info=exc_info)

  def authenticate(self, headers: Mapping[str, str]) -> None:
    secret = headers.get(SECRET_HEADER)
    if secret is None:
      raise AuthError('secret header not found')
    if not secrets.compare_digest(secret.encode(), self.config.secret_key.encode()):
      raise AuthError('secret header mismatch')

  @staticmethod
  def check_method(method: Optional[str]) -> None:
    if method != 'GET':
      raise MethodError(f'method not allowed: {method}')

  def write_back(self, key: S3Key, image: TransformedImage) -> Optional[Future[None]]:
    if self.transformed_store is None or self.executor is None:
      return None
    return self.executor.submit(self.transformed_store.store, key, image)

  def wait_write_back(self, future: Future[None], log_context: dict[str, Any]) -> bool:
    """Waits for a write-back started by ``write_back``.

    Failures and timeouts are only logged. Returns whether the variant was stored.
    """
    try:
      future.result(timeout=self.config.write_timeout)
      return True
    except WriteError as e:
      self.log_warning('failed to store transformed image', {**log_context, 'reason': str(e)})
    except TimeoutError:
      self.log_warning(
          'timed out storing transformed image', {
              **log_context,
              'timeout': self.config.write_timeout,
          })
    except Exception as e:
      self.log_error(
          'error during write_back()', {
              **log_context,
              'reason': str(e),
              'error': type(e).__name__,
          },
          exc_info=True)
    return False

  def process(
      self,
      headers: Mapping[str, str],
      method: Optional[str],
      path: HttpPath,
      log_context: dict[str, Any],
  ) -> tuple[TransformedImage, ImageRequest, Optional[Future[None]], dict[str, int]]:
    timing: dict[str, int] = {}

    self.authenticate(headers)
    self.check_method(method)

    req = ImageRequest.from_path(path)
    log_context['key'] = req.original_path

    start_ns = time.time_ns()
    original = self.original_store.fetch(req.original_path)
    timing['fetch_us'] = elapsed_us(start_ns)

    spec = TransformSpec.from_token(req.operations_token)
    if spec.ignored:
      self.log_debug('ignored operations', {**log_context, 'spec': spec.to_log()})

    start_ns = time.time_ns()
    rendered = engine.transform(original, spec)
    timing['transform_us'] = elapsed_us(start_ns)

    image = TransformedImage(
        body=rendered.body,
        content_type=rendered.content_type,
        cache_control=self.config.cache_control)

    return image, req, self.write_back(req.cache_key, image), timing

  def handle(self, event: FunctionUrlEvent) -> FunctionUrlResponse:
    http = event.get('requestContext', {}).get('http', {})
    method = http.get('method')
    path = HttpPath(http.get('path', event.get('rawPath', '/')))
    headers = {k.lower(): v for k, v in event.get('headers', {}).items()}
    log_context: dict[str, Any] = {'path': str(path), 'method': method}

    try:
      image, req, future, timing = self.process(headers, method, path, log_context)
    except ImgTransformError as e:
      self.log_error(
          e.public_message, {
              **log_context,
              'status': int(e.status),
              'error': type(e).__name__,
              'reason': str(e),
          })
      return error_response(e.status, e.public_message)
    except Exception as e:
      self.log_error(
          'error during process()', {
              **log_context,
              'error': type(e).__name__,
              'reason': str(e),
          },
          exc_info=True)
      return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, ImgTransformError.public_message)

    res = image_response(image)

    stored = False
    if future is not None:
      start_ns = time.time_ns()
      stored = self.wait_write_back(future, {**log_context, 'cache_key': req.cache_key})
      timing['write_us'] = elapsed_us(start_ns)

    if self.config.log_timing:
      self.log_info('perf', {**log_context, **timing})

    self.log_debug(
        'responded', {
            **log_context,
            'cache_key': req.cache_key,
            'content_type': image.content_type,
            'img_size': len(image.body),
            'stored': stored,
        })

    return res


def lambda_main(
    event: FunctionUrlEvent,
    environ: Mapping[str, str] = os.environ,
) -> FunctionUrlResponse:
  server = ImgTransformer.from_env(logger, environ)
  if server is None:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, ImgTransformError.public_message)

  return server.handle(event)
