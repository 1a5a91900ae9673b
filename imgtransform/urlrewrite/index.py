from typing import Optional
from urllib import parse

from imgtransform.operations import ORIGINAL_TOKEN, parse_positive_int
from imgtransform.typing import HttpPath, Request, ViewerRequestEvent

SUPPORTED_FORMATS = ['auto', 'jpeg', 'webp', 'avif', 'png', 'svg', 'gif']
MAX_DIMENSION = 4000
MAX_QUALITY = 100

# Order of the operations in a canonical token.
CANONICAL_ORDER = ['format', 'quality', 'width', 'height']


def negotiate_format(accept: str) -> str:
  if 'avif' in accept:
    return 'avif'
  if 'webp' in accept:
    return 'webp'
  return 'jpeg'


def normalize_format(value: str, accept: str) -> Optional[str]:
  fmt = value.lower()
  if fmt not in SUPPORTED_FORMATS:
    return None
  return negotiate_format(accept) if fmt == 'auto' else fmt


def normalize_clamped(value: str, upper: int) -> Optional[str]:
  n = parse_positive_int(value)
  return None if n is None else str(min(n, upper))


def normalize_operations(querystring: str, accept: str) -> dict[str, str]:
  ops: dict[str, str] = {}
  seen: set[str] = set()

  for key, value in parse.parse_qsl(querystring):
    # Keys match case-insensitively and the first occurrence wins, valid or not.
    key = key.lower()
    if key in seen:
      continue
    seen.add(key)

    match key:
      case 'format':
        normalized = normalize_format(value, accept)
      case 'width' | 'height':
        normalized = normalize_clamped(value, MAX_DIMENSION)
      case 'quality':
        normalized = normalize_clamped(value, MAX_QUALITY)
      case _:
        continue

    if normalized is not None:
      ops[key] = normalized

  return ops


def rewrite_uri(uri: HttpPath, querystring: str, accept: str) -> HttpPath:
  """Moves image operations from the query string into the last path segment.

  ``/rio/1.jpg?width=200&format=auto`` with an Accept header listing ``image/webp``
  becomes ``/rio/1.jpg/format=webp,width=200``. A request without usable operations
  gets ``/original``. Equal inputs always give equal outputs, so the rewritten path can
  serve as the cache key.
  """
  ops = normalize_operations(querystring, accept)
  if len(ops) == 0:
    return HttpPath(f'{uri}/{ORIGINAL_TOKEN}')

  token = ','.join(f'{k}={ops[k]}' for k in CANONICAL_ORDER if k in ops)
  return HttpPath(f'{uri}/{token}')


def lambda_main(event: ViewerRequestEvent) -> Request:
  req = event['Records'][0]['cf']['request']
  accept = req['headers']['accept'][0]['value'] if 'accept' in req['headers'] else ''

  req['uri'] = rewrite_uri(req['uri'], req['querystring'], accept)
  req['querystring'] = ''

  return req
