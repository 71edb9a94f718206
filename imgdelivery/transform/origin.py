import dataclasses
import logging
from typing import Any, Iterable, Optional, Protocol, Sequence, Tuple
from urllib import parse

import requests
from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_s3.client import S3Client
from pathspec import PathSpec
from pathspec.patterns.gitwildmatch import GitWildMatchPattern

from imgdelivery.errors import OriginUnavailable
from imgdelivery.typing import S3Key

# (connect, read) seconds
REMOTE_FETCH_TIMEOUT: Tuple[float, float] = (3.05, 10.0)

REMOTE_SCHEMES = ['http', 'https']


@dataclasses.dataclass(frozen=True)
class SourceImage:
  body: bytes
  content_type: Optional[str]
  origin: str


def key_from_source(source: str) -> S3Key:
  return S3Key(parse.unquote(source))


def is_not_found_client_error(exception: ClientError) -> bool:
  if 'Error' not in exception.response:
    return False
  if 'Code' not in exception.response['Error']:
    return False
  return exception.response['Error']['Code'] in ['404', 'NoSuchKey']


class AllowList:
  """Host name globs such as ``images.example.com`` or ``*.example.com``.

  An empty list allows nothing.
  """
  patterns: tuple[str, ...]

  def __init__(self, patterns: Iterable[str]):
    self.patterns = tuple(p.strip().lower() for p in patterns if p.strip() != '')
    self.spec = (
        None if len(self.patterns) == 0 else PathSpec.from_lines(
            GitWildMatchPattern, self.patterns))

  def allows(self, host: Optional[str]) -> bool:
    if self.spec is None or host is None or host == '':
      return False
    return self.spec.match_file(host.lower())


def check_remote_access(
    url: str,
    referer: Optional[str],
    require_referer: bool,
    remote_allow: AllowList,
    referer_allow: AllowList,
) -> Optional[str]:
  """Return ``None`` when ``url`` may be fetched, otherwise why it may not."""
  u = parse.urlsplit(url)
  if u.scheme not in REMOTE_SCHEMES or not u.hostname:
    return 'not a remote url'

  if require_referer:
    if referer is None or referer == '':
      return 'referer missing'
    if not referer_allow.allows(parse.urlsplit(referer).hostname):
      return 'referer not allowed'

  if not remote_allow.allows(u.hostname):
    return 'remote host not allowed'

  return None


class Origin(Protocol):
  name: str

  def fetch(self, source: str, referer: Optional[str], require_referer: bool) -> Optional[SourceImage]:
    ...


class PrimaryStoreOrigin:
  name = 'primary'

  def __init__(self, log: logging.Logger, s3: S3Client, bucket: str):
    self.log = log
    self.s3 = s3
    self.bucket = bucket

  def fetch(self, source: str, referer: Optional[str], require_referer: bool) -> Optional[SourceImage]:
    key = key_from_source(source)
    try:
      res = self.s3.get_object(Bucket=self.bucket, Key=key)
      body = res['Body'].read()
    except ClientError as e:
      self.log.debug({
          'message': 'primary store miss',
          'key': key,
          'not_found': is_not_found_client_error(e),
          'reason': str(e),
      })
      return None
    except BotoCoreError as e:
      self.log.warning({'message': 'primary store unreachable', 'key': key, 'reason': str(e)})
      return None

    return SourceImage(body=body, content_type=res.get('ContentType'), origin=self.name)


class RemoteOrigin:
  name = 'remote'

  def __init__(
      self,
      log: logging.Logger,
      http: Any,
      remote_allow: AllowList,
      referer_allow: AllowList,
      timeout: Tuple[float, float] = REMOTE_FETCH_TIMEOUT,
  ):
    self.log = log
    self.http = http
    self.remote_allow = remote_allow
    self.referer_allow = referer_allow
    self.timeout = timeout

  def fetch(self, source: str, referer: Optional[str], require_referer: bool) -> Optional[SourceImage]:
    url = parse.unquote(source)
    reason = check_remote_access(
        url, referer, require_referer, self.remote_allow, self.referer_allow)
    if reason is not None:
      self.log.warning({
          'message': 'remote origin refused',
          'url': url,
          'referer': referer,
          'reason': reason,
      })
      return None

    try:
      # Redirects could leave the allowed hosts.
      res = self.http.get(url, timeout=self.timeout, allow_redirects=False)
    except requests.RequestException as e:
      self.log.warning({'message': 'remote fetch failed', 'url': url, 'reason': str(e)})
      return None

    if not 200 <= res.status_code < 300:
      self.log.warning({
          'message': 'remote fetch failed',
          'url': url,
          'reason': f'status {res.status_code}',
      })
      return None

    return SourceImage(
        body=res.content, content_type=res.headers.get('Content-Type'), origin=self.name)


class OriginResolver:
  """Tries each origin in order; the first one that yields bytes wins."""

  def __init__(self, origins: Sequence[Origin]):
    self.origins = origins

  def resolve(self, source: str, referer: Optional[str], require_referer: bool) -> SourceImage:
    for origin in self.origins:
      image = origin.fetch(source, referer, require_referer)
      if image is not None:
        return image

    raise OriginUnavailable(f'no origin served {source}')
