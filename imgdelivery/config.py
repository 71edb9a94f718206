import dataclasses
import os
from typing import Mapping, Optional

from imgdelivery.errors import ConfigError

DEFAULT_CACHE_TTL = 'max-age=31622400'
DEFAULT_MAX_IMAGE_SIZE = 4700000
DEFAULT_REGION = 'us-east-1'


def split_patterns(s: str) -> tuple[str, ...]:
  return tuple(p.strip() for p in s.split(',') if p.strip() != '')


@dataclasses.dataclass(eq=True, frozen=True)
class Config:
  """Process-wide settings, read once from the environment.

  ``transformed_bucket`` is optional; without it nothing is cached and oversized
  results are refused with 403 instead of being redirected.
  """
  original_bucket: str
  transformed_bucket: Optional[str] = None
  cache_ttl: str = DEFAULT_CACHE_TTL
  max_image_size: int = DEFAULT_MAX_IMAGE_SIZE
  allowed_remote_patterns: tuple[str, ...] = ()
  allowed_referer_patterns: tuple[str, ...] = ()
  region: str = DEFAULT_REGION

  @property
  def cache_enabled(self) -> bool:
    return self.transformed_bucket is not None

  @classmethod
  def from_env(cls, environ: Mapping[str, str] = os.environ) -> 'Config':
    original_bucket = environ.get('ORIGINAL_BUCKET_NAME', '')
    if original_bucket == '':
      raise ConfigError('ORIGINAL_BUCKET_NAME is not set')

    max_image_size_str = environ.get('MAX_IMAGE_SIZE', '')
    if max_image_size_str == '':
      max_image_size = DEFAULT_MAX_IMAGE_SIZE
    else:
      try:
        max_image_size = int(max_image_size_str)
      except ValueError:
        raise ConfigError(f'invalid MAX_IMAGE_SIZE: {max_image_size_str}')
      if max_image_size <= 0:
        raise ConfigError(f'invalid MAX_IMAGE_SIZE: {max_image_size_str}')

    return cls(
        original_bucket=original_bucket,
        transformed_bucket=environ.get('TRANSFORMED_BUCKET_NAME') or None,
        cache_ttl=environ.get('S3_TRANSFORMED_IMAGE_CACHE_TTL') or DEFAULT_CACHE_TTL,
        max_image_size=max_image_size,
        allowed_remote_patterns=split_patterns(environ.get('ALLOWED_REMOTE_PATTERNS', '')),
        allowed_referer_patterns=split_patterns(environ.get('ALLOWED_REFERER_PATTERNS', '')),
        region=environ.get('AWS_REGION') or DEFAULT_REGION)
