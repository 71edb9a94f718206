import dataclasses
import logging
from typing import Any, Optional

from pyvips import Error as VipsError  # type: ignore
from pyvips import Image, Interesting  # type: ignore

from imgdelivery.errors import TransformFailure
from imgdelivery.operations import ImageFormat, OperationSet

SVG_MIME = 'image/svg+xml'

# Loaders that can hold more than one frame.
ANIMATED_LOADERS = ['gifload', 'webpload']

# Saver suffix for each loader whose format libvips can also write.
LOADER_SAVERS = {
    'jpegload': '.jpg',
    'pngload': '.png',
    'webpload': '.webp',
    'gifload': '.gif',
    'tiffload': '.tif',
    'heifload': '.avif',
    'jp2kload': '.jp2',
    'jxlload': '.jxl',
}

VIPS_MAX_COORD = 10000000

DEFAULT_ORIENTATION = 1


@dataclasses.dataclass(frozen=True)
class Encoding:
  format: Optional[ImageFormat]
  content_type: str
  quality: Optional[int]
  fallback_reason: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class Decoded:
  data: bytes
  image: Image
  loader: str
  orientation: int

  @property
  def animated(self) -> bool:
    return any(self.loader.startswith(a) for a in ANIMATED_LOADERS)


@dataclasses.dataclass(frozen=True)
class Encoded:
  body: bytes
  content_type: str


def is_image_content_type(content_type: Optional[str]) -> bool:
  return content_type is not None and content_type.lower().startswith('image/')


def saver_suffix(loader: str, content_type: str) -> Optional[str]:
  suffix = LOADER_SAVERS.get(loader.split('_', 1)[0])
  if suffix == '.avif' and 'hei' in content_type.lower():
    return '.heic'
  return suffix


def resolve_encoding(ops: OperationSet, source_content_type: Optional[str]) -> Encoding:
  """Decide the output type.

  ``format`` is ``None`` when the source type is kept.
  """
  if ops.format is not None:
    return Encoding(format=ops.format, content_type=ops.format.content_type, quality=ops.quality)

  if source_content_type is not None and source_content_type.lower().startswith(SVG_MIME):
    return Encoding(format=ImageFormat.PNG, content_type=ImageFormat.PNG.content_type, quality=None)

  if not is_image_content_type(source_content_type):
    return Encoding(
        format=ImageFormat.PNG,
        content_type=ImageFormat.PNG.content_type,
        quality=None,
        fallback_reason=f'unknown source content type: {source_content_type}')

  assert source_content_type is not None
  return Encoding(format=None, content_type=source_content_type, quality=None)


class Codec:

  def __init__(self, log: logging.Logger):
    self.log = log

  def decode(self, data: bytes) -> Decoded:
    try:
      image = Image.new_from_buffer(data, '', fail_on='none')
      loader: str = image.get('vips-loader')
      if any(loader.startswith(a) for a in ANIMATED_LOADERS):
        image = Image.new_from_buffer(data, '', fail_on='none', n=-1)

      if image.get_typeof('orientation') != 0:
        orientation = int(image.get('orientation'))
      else:
        orientation = DEFAULT_ORIENTATION
    except VipsError as e:
      raise TransformFailure(f'failed to decode: {e}') from e

    return Decoded(data=data, image=image, loader=loader, orientation=orientation)

  def resize(self, decoded: Decoded, width: Optional[int], height: Optional[int]) -> Image:
    load_options = ['fail_on=none']
    if decoded.animated:
      load_options.append('n=-1')

    kwargs: dict[str, Any] = {'option_string': ','.join(load_options)}
    if width is not None and height is not None:
      kwargs['height'] = height
      kwargs['crop'] = Interesting.CENTRE
    elif width is not None:
      kwargs['height'] = VIPS_MAX_COORD
    else:
      assert height is not None
      kwargs['height'] = height
      width = VIPS_MAX_COORD

    # thumbnail applies the orientation tag itself.
    return Image.thumbnail_buffer(decoded.data, width, **kwargs)

  def transform(
      self,
      decoded: Decoded,
      ops: OperationSet,
      source_content_type: Optional[str],
  ) -> Encoded:
    encoding = resolve_encoding(ops, source_content_type)
    if encoding.fallback_reason is not None:
      self.log.warning({'message': 'falling back to png', 'reason': encoding.fallback_reason})

    changed = False
    image = decoded.image
    try:
      if ops.resize_requested:
        image = self.resize(decoded, ops.width, ops.height)
        changed = True
      elif decoded.orientation != DEFAULT_ORIENTATION:
        image = image.autorot()
        changed = True

      if encoding.format is None and not changed:
        return Encoded(body=decoded.data, content_type=encoding.content_type)

      content_type = encoding.content_type
      save_options: dict[str, Any] = {}
      if encoding.format is not None:
        suffix = encoding.format.suffix
        if encoding.quality is not None and encoding.format.lossy:
          save_options['Q'] = encoding.quality
      else:
        # The source type is kept, so write with the saver matching its loader.
        kept = saver_suffix(decoded.loader, content_type)
        if kept is None:
          self.log.warning({
              'message': 'falling back to png',
              'reason': f'no encoder for {decoded.loader} ({source_content_type})',
          })
          kept = ImageFormat.PNG.suffix
          content_type = ImageFormat.PNG.content_type
        suffix = kept

      body: bytes = image.write_to_buffer(suffix, **save_options)
    except VipsError as e:
      raise TransformFailure(f'failed to transform: {e}') from e

    return Encoded(body=body, content_type=content_type)
