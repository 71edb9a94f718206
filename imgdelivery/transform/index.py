import base64
import dataclasses
import logging
import os
import time
from http import HTTPStatus
from typing import Any, Mapping, Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_s3.client import S3Client

from imgdelivery.config import Config
from imgdelivery.errors import BadRequest, ConfigError, OriginUnavailable, TransformFailure
from imgdelivery.log import init_logging
from imgdelivery.operations import ORIGINAL, OperationSet
from imgdelivery.transform.codec import Codec, Decoded, Encoded
from imgdelivery.transform.origin import (
    AllowList,
    OriginResolver,
    PrimaryStoreOrigin,
    RemoteOrigin,
    SourceImage,
    key_from_source
)
from imgdelivery.typing import FunctionUrlEvent, FunctionUrlResponse, HttpPath, S3Key

CACHE_CONTROL_METADATA = 'cache-control'
NO_STORE = 'private,no-store'

TIMING_DOWNLOAD = 'img-download'
TIMING_TRANSFORM = 'img-transform'
TIMING_UPLOAD = 'img-upload'

logger = init_logging(__name__)

loaded_config: Optional[Config] = None


def elapsed_ms(start_ns: int) -> int:
  return (time.time_ns() - start_ns) // 1000000


class TimingTrace:
  """Named phase durations, rendered as a ``Server-Timing`` value."""

  def __init__(self) -> None:
    self.entries: list[tuple[str, int]] = []

  def add(self, name: str, start_ns: int) -> None:
    self.entries.append((name, elapsed_ms(start_ns)))

  def header(self) -> str:
    return ','.join(f'{name};dur={ms}' for name, ms in self.entries)


@dataclasses.dataclass(frozen=True)
class ImageRequest:
  path: HttpPath
  source: str
  suffix: str
  operations: OperationSet

  @classmethod
  def from_path(cls, method: str, path: HttpPath) -> 'ImageRequest':
    if method != 'GET':
      raise BadRequest(f'{method} HTTP method not allowed')

    parts = path.split('/')
    suffix = parts.pop()
    if len(parts) != 0 and parts[0] == '':
      parts.pop(0)
    source = '/'.join(parts)
    if source == '':
      raise BadRequest('empty source path')

    return cls(path=path, source=source, suffix=suffix, operations=OperationSet.parse(suffix))

  @property
  def require_referer(self) -> bool:
    return self.suffix != ORIGINAL

  @property
  def cache_key(self) -> S3Key:
    return S3Key(f'{key_from_source(self.source)}/{self.suffix}')

  def redirect_location(self) -> str:
    return f'/{self.source}?{self.suffix.replace(",", "&")}'


@dataclasses.dataclass(frozen=True)
class Failure:
  status: int
  message: str
  reason: str


@dataclasses.dataclass(frozen=True)
class InstantResponse:
  status: int
  b64_body: Optional[str] = None
  content_type: Optional[str] = None
  cache_control: Optional[str] = None
  location: Optional[str] = None
  server_timing: Optional[str] = None
  img_size: Optional[int] = None
  message: Optional[str] = None


class TransformServer:
  instances: dict[Config, 'TransformServer'] = {}

  def __init__(
      self,
      log: logging.Logger,
      config: Config,
      s3: S3Client,
      resolver: OriginResolver,
      codec: Codec,
  ):
    self.log = log
    self.config = config
    self.s3 = s3
    self.resolver = resolver
    self.codec = codec
    self.log_context: dict[str, Any] = {'path': '', 'referer': ''}

  @classmethod
  def create(cls, log: logging.Logger, config: Config, s3: S3Client, http: Any) -> 'TransformServer':
    resolver = OriginResolver([
        PrimaryStoreOrigin(log, s3, config.original_bucket),
        RemoteOrigin(
            log,
            http,
            AllowList(config.allowed_remote_patterns),
            AllowList(config.allowed_referer_patterns)),
    ])
    return cls(log=log, config=config, s3=s3, resolver=resolver, codec=Codec(log))

  @classmethod
  def from_config(cls, log: logging.Logger, config: Config) -> 'TransformServer':
    if config not in cls.instances:
      s3 = boto3.client('s3', region_name=config.region)
      cls.instances[config] = cls.create(log, config, s3, requests.Session())
    return cls.instances[config]

  def log_warning(self, message: str, dict: dict[str, Any]) -> None:
    self.log.warning({
        'message': message,
        **self.log_context,
        **dict,
    })

  def log_debug(self, message: str, dict: dict[str, Any]) -> None:
    self.log.debug({
        'message': message,
        **self.log_context,
        **dict,
    })

  def log_error(self, message: str, dict: dict[str, Any]) -> None:
    self.log.error({
        'message': message,
        **self.log_context,
        **dict,
    })

  def set_log_context(self, path: str, referer: Optional[str]) -> None:
    self.log_context = {'path': path, 'referer': referer or ''}

  def receive(self, method: str, path: HttpPath) -> ImageRequest | Failure:
    try:
      return ImageRequest.from_path(method, path)
    except BadRequest as e:
      return Failure(HTTPStatus.BAD_REQUEST, 'bad request', str(e))

  def resolve(self, req: ImageRequest, referer: Optional[str]) -> SourceImage | Failure:
    try:
      return self.resolver.resolve(req.source, referer, req.require_referer)
    except OriginUnavailable as e:
      return Failure(HTTPStatus.NOT_FOUND, 'error downloading original image', str(e))

  def decode(self, source: SourceImage) -> Decoded | Failure:
    try:
      return self.codec.decode(source.body)
    except TransformFailure as e:
      return Failure(HTTPStatus.INTERNAL_SERVER_ERROR, 'error transforming image', str(e))

  def transform(self, req: ImageRequest, source: SourceImage, decoded: Decoded) -> Encoded | Failure:
    try:
      return self.codec.transform(decoded, req.operations, source.content_type)
    except TransformFailure as e:
      return Failure(HTTPStatus.INTERNAL_SERVER_ERROR, 'error transforming image', str(e))

  def store(self, req: ImageRequest, encoded: Encoded) -> bool:
    if self.config.transformed_bucket is None:
      return False

    try:
      self.s3.put_object(
          Body=encoded.body,
          Bucket=self.config.transformed_bucket,
          Key=req.cache_key,
          ContentType=encoded.content_type,
          Metadata={CACHE_CONTROL_METADATA: self.config.cache_ttl},
      )
    except (ClientError, BotoCoreError) as e:
      self.log_error('could not upload transformed image', {'reason': str(e), 'key': req.cache_key})
      return False

    return True

  def fail(self, failure: Failure) -> InstantResponse:
    self.log_error(failure.message, {'status': int(failure.status), 'reason': failure.reason})
    return InstantResponse(status=failure.status, message=failure.message)

  def process(self, method: str, path: HttpPath, referer: Optional[str]) -> InstantResponse:
    trace = TimingTrace()

    match self.receive(method, path):
      case Failure() as failure:
        return self.fail(failure)
      case ImageRequest() as req:
        pass
      case _:
        raise Exception('system error')

    start_ns = time.time_ns()
    match self.resolve(req, referer):
      case Failure() as failure:
        return self.fail(failure)
      case SourceImage() as source:
        trace.add(TIMING_DOWNLOAD, start_ns)
        self.log_debug('original resolved', {'origin': source.origin, 'size': len(source.body)})
      case _:
        raise Exception('system error')

    start_ns = time.time_ns()
    match self.decode(source):
      case Failure() as failure:
        return self.fail(failure)
      case Decoded() as decoded:
        pass
      case _:
        raise Exception('system error')

    match self.transform(req, source, decoded):
      case Failure() as failure:
        return self.fail(failure)
      case Encoded() as encoded:
        trace.add(TIMING_TRANSFORM, start_ns)
      case _:
        raise Exception('system error')

    oversized = len(encoded.body) > self.config.max_image_size

    start_ns = time.time_ns()
    stored = self.store(req, encoded)
    if stored:
      trace.add(TIMING_UPLOAD, start_ns)

    if oversized and stored:
      self.log_debug('redirecting oversized image', {'img_size': len(encoded.body)})
      return InstantResponse(
          status=HTTPStatus.FOUND,
          cache_control=NO_STORE,
          location=req.redirect_location(),
          server_timing=trace.header(),
          img_size=len(encoded.body))

    if oversized:
      return self.fail(
          Failure(
              HTTPStatus.FORBIDDEN,
              'requested transformed image is too big',
              f'{len(encoded.body)} > {self.config.max_image_size}'))

    return InstantResponse(
        status=HTTPStatus.OK,
        b64_body=base64.b64encode(encoded.body).decode(),
        content_type=encoded.content_type,
        cache_control=self.config.cache_ttl,
        server_timing=trace.header(),
        img_size=len(encoded.body))


def load_config(log: logging.Logger, environ: Mapping[str, str] = os.environ) -> Config:
  """Reads the environment on the first successful call only."""
  global loaded_config
  if loaded_config is None:
    try:
      loaded_config = Config.from_env(environ)
    except ConfigError as e:
      log.error({'message': 'invalid configuration', 'reason': str(e)})
      raise
  return loaded_config


def to_response(result: InstantResponse) -> FunctionUrlResponse:
  headers: dict[str, str] = {}
  if result.content_type is not None:
    headers['Content-Type'] = result.content_type
  if result.cache_control is not None:
    headers['Cache-Control'] = result.cache_control
  if result.location is not None:
    headers['Location'] = result.location
  if result.server_timing is not None:
    headers['Server-Timing'] = result.server_timing

  response: FunctionUrlResponse = {'statusCode': int(result.status), 'headers': headers}

  if result.b64_body is not None:
    response['body'] = result.b64_body
    response['isBase64Encoded'] = True
  elif result.message is not None:
    response['body'] = result.message

  return response


def lambda_main(event: FunctionUrlEvent, server: Optional[TransformServer] = None) -> FunctionUrlResponse:
  http = event['requestContext']['http']
  headers = {k.lower(): v for k, v in event.get('headers', {}).items()}
  referer = headers.get('referer')
  path = HttpPath(http['path'])

  if server is None:
    server = TransformServer.from_config(logger, load_config(logger))

  server.set_log_context(path, referer)
  result = server.process(http['method'], path, referer)

  server.log_debug(
      'responded', {
          'status': int(result.status),
          'content_type': result.content_type,
          'img_size': result.img_size,
          'server_timing': result.server_timing,
      })

  return to_response(result)
