import io
import logging
from logging import Logger
from typing import Any, Generator, Optional

import boto3
import pytest
import requests
from moto import mock_aws
from mypy_boto3_s3.client import S3Client
from pyvips import Image  # type: ignore

from imgdelivery.log import MyJsonFormatter

REGION = 'us-east-1'
ORIGINAL_BUCKET = 'test-original-bucket'
TRANSFORMED_BUCKET = 'test-transformed-bucket'


def new_image(width: int, height: int, suffix: str) -> bytes:
  return Image.black(width, height, bands=3).write_to_buffer(suffix)


class FakeHttpResponse:

  def __init__(self, status_code: int, content: bytes, headers: dict[str, str]):
    self.status_code = status_code
    self.content = content
    self.headers = headers


class FakeHttp:
  """Stands in for ``requests.Session``; unknown URLs fail to connect."""

  def __init__(self) -> None:
    self.responses: dict[str, FakeHttpResponse] = {}
    self.calls: list[str] = []

  def add(
      self,
      url: str,
      content: bytes,
      content_type: Optional[str],
      status_code: int = 200,
  ) -> None:
    headers = {} if content_type is None else {'Content-Type': content_type}
    self.responses[url] = FakeHttpResponse(status_code, content, headers)

  def get(self, url: str, **_: Any) -> FakeHttpResponse:
    self.calls.append(url)
    if url not in self.responses:
      raise requests.ConnectionError(f'connection refused: {url}')
    return self.responses[url]


@pytest.fixture
def logger() -> Logger:
  log = logging.getLogger('imgdelivery.test')
  log.setLevel(logging.DEBUG)

  log_handler = logging.StreamHandler()
  log_handler.setFormatter(MyJsonFormatter())
  log_handler.setLevel(logging.DEBUG)
  log_handler.setStream(io.StringIO())
  log.addHandler(log_handler)

  return log


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
  monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
  monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
  monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
  monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)


@pytest.fixture
def s3(aws_credentials: None) -> Generator[S3Client, None, None]:
  with mock_aws():
    client = boto3.client('s3', region_name=REGION)
    client.create_bucket(Bucket=ORIGINAL_BUCKET)
    client.create_bucket(Bucket=TRANSFORMED_BUCKET)
    yield client


@pytest.fixture
def http() -> FakeHttp:
  return FakeHttp()


@pytest.fixture
def jpeg() -> bytes:
  return new_image(400, 300, '.jpg')


def put_original(s3: S3Client, key: str, body: bytes, content_type: Optional[str]) -> None:
  if content_type is None:
    s3.put_object(Bucket=ORIGINAL_BUCKET, Key=key, Body=body)
  else:
    s3.put_object(Bucket=ORIGINAL_BUCKET, Key=key, Body=body, ContentType=content_type)
