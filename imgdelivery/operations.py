import dataclasses
import re
from enum import Enum
from typing import Optional, Self

MAX_IMAGE_DIMENSION = 4000
MAX_QUALITY = 100
ORIGINAL = 'original'

WIDTH = 'width'
HEIGHT = 'height'
FORMAT = 'format'
QUALITY = 'quality'
AUTO = 'auto'

# Values accepted for ``format`` in a query string.
SUPPORTED_FORMATS = [AUTO, 'jpeg', 'webp', 'avif', 'png', 'svg', 'gif']

digits_re = re.compile(r'[0-9]+')


class ImageFormat(Enum):
  JPEG = 'jpeg'
  PNG = 'png'
  WEBP = 'webp'
  AVIF = 'avif'
  GIF = 'gif'

  @classmethod
  def from_token(cls, token: str) -> 'ImageFormat':
    """Anything unrecognized encodes as JPEG."""
    return FORMAT_ALIASES.get(token.lower(), cls.JPEG)

  @property
  def content_type(self) -> str:
    return f'image/{self.value}'

  @property
  def lossy(self) -> bool:
    return self in (ImageFormat.JPEG, ImageFormat.WEBP, ImageFormat.AVIF)

  @property
  def suffix(self) -> str:
    if self == ImageFormat.JPEG:
      return '.jpg'
    return f'.{self.value}'


FORMAT_ALIASES = {
    'jpg': ImageFormat.JPEG,
    'jpeg': ImageFormat.JPEG,
    'png': ImageFormat.PNG,
    'webp': ImageFormat.WEBP,
    'avif': ImageFormat.AVIF,
    'gif': ImageFormat.GIF,
    # No SVG encoder; rasterize instead.
    'svg': ImageFormat.PNG,
}


class AcceptHeader:
  avif: bool
  webp: bool

  def __init__(self, avif: bool, webp: bool):
    self.avif = avif
    self.webp = webp

  @classmethod
  def from_str(cls, accept_header: str) -> Self:
    return cls(avif='avif' in accept_header, webp='webp' in accept_header)

  def negotiate(self) -> ImageFormat:
    # Order matters: first match wins.
    if self.avif:
      return ImageFormat.AVIF
    if self.webp:
      return ImageFormat.WEBP
    return ImageFormat.JPEG


def parse_positive_int(s: str) -> Optional[int]:
  s = s.strip()
  if digits_re.fullmatch(s) is None:
    return None
  n = int(s)
  if n <= 0:
    return None
  return n


def parse_dimension(s: str) -> Optional[int]:
  n = parse_positive_int(s)
  if n is None:
    return None
  return min(n, MAX_IMAGE_DIMENSION)


def parse_quality(s: str) -> Optional[int]:
  n = parse_positive_int(s)
  if n is None:
    return None
  return min(n, MAX_QUALITY)


@dataclasses.dataclass(eq=True, frozen=True)
class OperationSet:
  width: Optional[int] = None
  height: Optional[int] = None
  format: Optional[ImageFormat] = None
  quality: Optional[int] = None

  @classmethod
  def create(
      cls,
      width: Optional[int] = None,
      height: Optional[int] = None,
      format: Optional[ImageFormat] = None,
      quality: Optional[int] = None,
  ) -> 'OperationSet':
    # Quality only survives for lossy targets, and only after the format is known.
    if format is None or not format.lossy:
      quality = None
    return cls(width=width, height=height, format=format, quality=quality)

  @classmethod
  def parse(cls, token: str) -> 'OperationSet':
    """Parse ``width=..,height=..,format=..,quality=..``.

    Unknown keys and malformed numbers are ignored rather than rejected. The
    ``original`` token, like an empty one, yields an empty set.
    """
    if token in ('', ORIGINAL):
      return cls()

    pairs: dict[str, str] = {}
    for op in token.split(','):
      if '=' not in op:
        continue
      key, value = op.split('=', 1)
      pairs[key.strip().lower()] = value.strip()

    width = parse_dimension(pairs[WIDTH]) if WIDTH in pairs else None
    height = parse_dimension(pairs[HEIGHT]) if HEIGHT in pairs else None
    quality = parse_quality(pairs[QUALITY]) if QUALITY in pairs else None
    if pairs.get(FORMAT, '') == '':
      format = None
    else:
      format = ImageFormat.from_token(pairs[FORMAT])

    return cls.create(width=width, height=height, format=format, quality=quality)

  @classmethod
  def from_querystring(cls, qs: dict[str, list[str]], accept: AcceptHeader) -> 'OperationSet':
    """Build the set from query parameters, resolving ``format=auto``.

    Only the four recognized keys are read, case-insensitively; unsupported
    format values are dropped.
    """
    values: dict[str, str] = {}
    for key, vs in sorted(qs.items()):
      k = key.lower()
      if k in (WIDTH, HEIGHT, FORMAT, QUALITY) and len(vs) != 0 and vs[0] != '' and k not in values:
        values[k] = vs[0]

    format: Optional[ImageFormat] = None
    if FORMAT in values:
      f = values[FORMAT].lower()
      if f == AUTO:
        format = accept.negotiate()
      elif f in SUPPORTED_FORMATS:
        format = ImageFormat.from_token(f)

    return cls.create(
        width=parse_dimension(values[WIDTH]) if WIDTH in values else None,
        height=parse_dimension(values[HEIGHT]) if HEIGHT in values else None,
        format=format,
        quality=parse_quality(values[QUALITY]) if QUALITY in values else None)

  @property
  def is_empty(self) -> bool:
    return self.width is None and self.height is None and self.format is None

  @property
  def resize_requested(self) -> bool:
    return self.width is not None or self.height is not None

  def to_tokens(self) -> list[str]:
    tokens = []
    if self.format is not None:
      tokens.append(f'{FORMAT}={self.format.value}')
    if self.quality is not None:
      tokens.append(f'{QUALITY}={self.quality}')
    if self.width is not None:
      tokens.append(f'{WIDTH}={self.width}')
    if self.height is not None:
      tokens.append(f'{HEIGHT}={self.height}')
    return tokens

  def to_path_suffix(self) -> str:
    if self.is_empty:
      return ORIGINAL
    return ','.join(self.to_tokens())
