from typing import Literal, NewType

from typing_extensions import NotRequired, ReadOnly, TypedDict

HttpPath = NewType('HttpPath', str)
S3Key = NewType('S3Key', str)

HttpMethod = Literal['GET', 'HEAD', 'OPTIONS', 'TRACE', 'PUT', 'DELETE', 'POST', 'PATCH',
                     'CONNECT']

# Lambda Function URL (payload format 2.0)


class Http(TypedDict):
  method: ReadOnly[HttpMethod]
  path: HttpPath
  protocol: NotRequired[str]
  sourceIp: NotRequired[str]
  userAgent: NotRequired[str]


class RequestContext(TypedDict):
  http: Http
  requestId: NotRequired[str]
  domainName: NotRequired[str]


class FunctionUrlEvent(TypedDict):
  version: NotRequired[str]
  rawPath: NotRequired[str]
  rawQueryString: NotRequired[str]
  headers: dict[str, str]
  requestContext: RequestContext
  isBase64Encoded: NotRequired[bool]


class FunctionUrlResponse(TypedDict):
  statusCode: int
  headers: dict[str, str]
  body: str
  isBase64Encoded: bool


# Lambda@Edge viewer-request


class Header(TypedDict):
  key: NotRequired[ReadOnly[str]]
  value: str


class Request(TypedDict):
  method: ReadOnly[HttpMethod]
  uri: HttpPath
  querystring: str
  headers: dict[str, list[Header]]
  clientIp: ReadOnly[str]


class ViewerRequestConfig(TypedDict):
  distributionDomainName: ReadOnly[str]
  distributionId: ReadOnly[str]
  eventType: ReadOnly[Literal['viewer-request']]
  requestId: ReadOnly[str]


class ViewerRequestRecord(TypedDict):
  config: ReadOnly[ViewerRequestConfig]
  request: Request


class ViewerRequestRecordContainer(TypedDict):
  cf: ViewerRequestRecord


class ViewerRequestEvent(TypedDict):
  Records: list[ViewerRequestRecordContainer]
