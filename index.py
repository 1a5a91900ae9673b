from typing import Any

from imgtransform.transform import index as transform
from imgtransform.typing import (
    FunctionUrlEvent,
    FunctionUrlResponse,
    Request,
    ViewerRequestEvent
)
from imgtransform.urlrewrite import index as urlrewrite


def transform_lambda_handler(
    event: FunctionUrlEvent,
    _: Any,
) -> FunctionUrlResponse:
  return transform.lambda_main(event)


def url_rewrite_lambda_handler(
    event: ViewerRequestEvent,
    _: Any,
) -> Request:
  return urlrewrite.lambda_main(event)
