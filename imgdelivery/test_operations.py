import pytest

from .operations import MAX_IMAGE_DIMENSION, AcceptHeader, ImageFormat, OperationSet

ALL_ACCEPTED = AcceptHeader(avif=True, webp=True)


@pytest.mark.parametrize(
    'token,expected', [
        ('original', OperationSet()),
        ('', OperationSet()),
        ('width=200', OperationSet(width=200)),
        ('height=100,width=200', OperationSet(width=200, height=100)),
        ('format=webp,quality=60', OperationSet(format=ImageFormat.WEBP, quality=60)),
        ('format=jpg', OperationSet(format=ImageFormat.JPEG)),
        ('format=svg', OperationSet(format=ImageFormat.PNG)),
        ('format=bmp', OperationSet(format=ImageFormat.JPEG)),
        ('format=PNG', OperationSet(format=ImageFormat.PNG)),
        ('width=9999', OperationSet(width=MAX_IMAGE_DIMENSION)),
        ('height=4001', OperationSet(height=MAX_IMAGE_DIMENSION)),
        ('width=4000', OperationSet(width=4000)),
        ('width=abc', OperationSet()),
        ('width=-5', OperationSet()),
        ('width=0', OperationSet()),
        ('width=1.5', OperationSet()),
        ('width=1_000', OperationSet()),
        ('width=', OperationSet()),
        ('width', OperationSet()),
        ('rotate=90,width=10', OperationSet(width=10)),
        ('format=avif,quality=500', OperationSet(format=ImageFormat.AVIF, quality=100)),
        ('format=webp,quality=0', OperationSet(format=ImageFormat.WEBP)),
        ('format=png,quality=50', OperationSet(format=ImageFormat.PNG)),
        ('format=gif,quality=50', OperationSet(format=ImageFormat.GIF)),
        ('quality=50', OperationSet()),
        ('width=100,width=300', OperationSet(width=300)),
    ],
    ids=[
        'original',
        'empty',
        'width',
        'width_height',
        'format_quality',
        'jpg_alias',
        'svg_fallback',
        'unknown_format',
        'upper_format',
        'clamp_width',
        'clamp_height',
        'max_width',
        'non_numeric',
        'negative',
        'zero',
        'fraction',
        'underscore',
        'blank',
        'no_value',
        'unknown_key',
        'clamp_quality',
        'zero_quality',
        'quality_png',
        'quality_gif',
        'quality_without_format',
        'last_wins',
    ])
def test_parse(token: str, expected: OperationSet) -> None:
  assert OperationSet.parse(token) == expected


@pytest.mark.parametrize(
    'accept,expected', [
        ('image/avif,image/webp,image/apng,*/*;q=0.8', ImageFormat.AVIF),
        ('image/webp,*/*', ImageFormat.WEBP),
        ('image/avif', ImageFormat.AVIF),
        ('image/png,image/*;q=0.8', ImageFormat.JPEG),
        ('', ImageFormat.JPEG),
    ],
    ids=['chrome', 'webp_only', 'avif_only', 'old_safari', 'none'])
def test_negotiate(accept: str, expected: ImageFormat) -> None:
  assert AcceptHeader.from_str(accept).negotiate() == expected


@pytest.mark.parametrize(
    'qs,accept,expected_suffix', [
        ({}, ALL_ACCEPTED, 'original'),
        ({'foo': ['bar']}, ALL_ACCEPTED, 'original'),
        ({'width': ['200'], 'format': ['auto']}, ALL_ACCEPTED, 'format=avif,width=200'),
        ({'format': ['auto']}, AcceptHeader(avif=False, webp=True), 'format=webp'),
        ({'format': ['auto']}, AcceptHeader(avif=False, webp=False), 'format=jpeg'),
        ({'Width': ['200'], 'HEIGHT': ['100']}, ALL_ACCEPTED, 'width=200,height=100'),
        ({'format': ['tiff'], 'width': ['10']}, ALL_ACCEPTED, 'width=10'),
        ({'format': ['WEBP'], 'quality': ['80']}, ALL_ACCEPTED, 'format=webp,quality=80'),
        ({'format': ['png'], 'quality': ['80']}, ALL_ACCEPTED, 'format=png'),
        ({'format': ['svg']}, ALL_ACCEPTED, 'format=png'),
        ({'width': ['9999']}, ALL_ACCEPTED, 'width=4000'),
        ({'width': ['wide']}, ALL_ACCEPTED, 'original'),
    ],
    ids=[
        'no_query',
        'unsupported_only',
        'auto_avif',
        'auto_webp',
        'auto_jpeg',
        'case_insensitive_keys',
        'unsupported_format',
        'upper_format',
        'quality_dropped_for_png',
        'svg_as_png',
        'clamped',
        'malformed_only',
    ])
def test_from_querystring(
    qs: dict[str, list[str]], accept: AcceptHeader, expected_suffix: str) -> None:
  assert OperationSet.from_querystring(qs, accept).to_path_suffix() == expected_suffix


def test_from_querystring_ignores_order() -> None:
  a = OperationSet.from_querystring({'width': ['10'], 'format': ['webp']}, ALL_ACCEPTED)
  b = OperationSet.from_querystring({'format': ['webp'], 'width': ['10']}, ALL_ACCEPTED)
  assert a == b
  assert a.to_path_suffix() == 'format=webp,width=10'


def test_content_type_table() -> None:
  assert [(f.value, f.content_type, f.lossy) for f in ImageFormat] == [
      ('jpeg', 'image/jpeg', True),
      ('png', 'image/png', False),
      ('webp', 'image/webp', True),
      ('avif', 'image/avif', True),
      ('gif', 'image/gif', False),
  ]
