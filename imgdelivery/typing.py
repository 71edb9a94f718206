from typing import Literal, NewType, NotRequired, TypedDict

HttpPath = NewType('HttpPath', str)
S3Key = NewType('S3Key', str)

HttpMethod = Literal['GET', 'HEAD', 'OPTIONS', 'TRACE', 'PUT', 'DELETE', 'POST', 'PATCH', 'CONNECT']


class Header(TypedDict):
  key: NotRequired[str]
  value: str


class Request(TypedDict):
  method: HttpMethod
  uri: HttpPath
  querystring: str
  headers: dict[str, list[Header]]
  clientIp: str


class ViewerRequestConfig(TypedDict):
  distributionDomainName: str
  distributionId: str
  eventType: Literal['viewer-request']
  requestId: str


class ViewerRequestRecord(TypedDict):
  config: ViewerRequestConfig
  request: Request


class ViewerRequestRecordContainer(TypedDict):
  cf: ViewerRequestRecord


class ViewerRequestEvent(TypedDict):
  Records: list[ViewerRequestRecordContainer]


class OriginResponseConfig(TypedDict):
  distributionDomainName: str
  distributionId: str
  eventType: Literal['origin-response']
  requestId: str


class Response(TypedDict):
  headers: dict[str, list[Header]]
  status: str
  statusDescription: str


class OriginResponseRecord(TypedDict):
  config: OriginResponseConfig
  request: Request
  response: Response


class OriginResponseRecordContainer(TypedDict):
  cf: OriginResponseRecord


class OriginResponseEvent(TypedDict):
  Records: list[OriginResponseRecordContainer]


class FunctionUrlHttp(TypedDict):
  method: HttpMethod
  path: str
  protocol: NotRequired[str]
  sourceIp: NotRequired[str]
  userAgent: NotRequired[str]


class FunctionUrlRequestContext(TypedDict):
  http: FunctionUrlHttp
  requestId: NotRequired[str]


class FunctionUrlEvent(TypedDict):
  rawPath: NotRequired[str]
  rawQueryString: NotRequired[str]
  headers: NotRequired[dict[str, str]]
  requestContext: FunctionUrlRequestContext


class FunctionUrlResponse(TypedDict):
  statusCode: int
  headers: NotRequired[dict[str, str]]
  body: NotRequired[str]
  isBase64Encoded: NotRequired[bool]
