from typing import Callable

import pytest
from pyvips import Image  # type: ignore

from imgtransform.engine import transform
from imgtransform.errors import TransformError
from imgtransform.operations import TransformSpec
from imgtransform.storage import OriginalImage

JPEG_MIME = 'image/jpeg'
PNG_MIME = 'image/png'
SVG_MIME = 'image/svg+xml'
SVG_BODY = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10">'
    b'<rect width="10" height="5" fill="#ff0000"/></svg>')

LOADER_MAP = {
    'jpegload_buffer': 'image/jpeg',
    'pngload_buffer': 'image/png',
    'webpload_buffer': 'image/webp',
    'heifload_buffer': 'image/avif',
    'gifload_buffer': 'image/gif',
}


def decode(body: bytes) -> Image:
  return Image.new_from_buffer(body, '')


def size(image: Image) -> tuple[int, int]:
  return (image.get('width'), image.get('height'))


def run(original: OriginalImage, token: str) -> tuple[Image, str, bytes]:
  rendered = transform(original, TransformSpec.from_token(token))
  return decode(rendered.body), rendered.content_type, rendered.body


def test_original_keeps_format(jpeg_400x300: OriginalImage) -> None:
  image, content_type, _ = run(jpeg_400x300, 'original')

  assert JPEG_MIME == content_type
  assert 'jpegload_buffer' == image.get('vips-loader')
  assert (400, 300) == size(image)


def test_orientation_is_baked_in(rotated_jpeg: OriginalImage) -> None:
  assert 6 == decode(rotated_jpeg.body).get('orientation')

  image, content_type, _ = run(rotated_jpeg, 'original')

  assert JPEG_MIME == content_type
  assert (300, 400) == size(image)
  assert 'exif-data' not in image.get_fields()


def test_orientation_before_resize(rotated_jpeg: OriginalImage) -> None:
  image, _, _ = run(rotated_jpeg, 'format=png,width=150')

  assert (150, 200) == size(image)


@pytest.mark.parametrize(
    'token,expected', [
        ('width=200', (200, 150)),
        ('height=150', (200, 150)),
        ('height=100', (133, 100)),
        ('height=600', (800, 600)),
        ('width=800', (800, 600)),
        ('width=120,height=120', (120, 120)),
        ('width=50,height=200', (50, 200)),
        ('width=abc', (400, 300)),
    ])
def test_resize(jpeg_400x300: OriginalImage, token: str, expected: tuple[int, int]) -> None:
  image, content_type, _ = run(jpeg_400x300, token)

  assert JPEG_MIME == content_type
  assert expected == size(image)


@pytest.mark.parametrize(
    'token,content_type', [
        ('format=jpeg', 'image/jpeg'),
        ('format=png', 'image/png'),
        ('format=gif', 'image/gif'),
        ('format=webp', 'image/webp'),
        ('format=avif', 'image/avif'),
        ('format=tiff', 'image/jpeg'),
        ('format=', 'image/jpeg'),
    ])
def test_reformat(jpeg_400x300: OriginalImage, token: str, content_type: str) -> None:
  image, actual, _ = run(jpeg_400x300, token)

  assert content_type == actual
  assert content_type == LOADER_MAP[image.get('vips-loader')]


def test_webp_with_width(jpeg_400x300: OriginalImage) -> None:
  image, content_type, _ = run(jpeg_400x300, 'format=webp,width=200')

  assert 'image/webp' == content_type
  assert (200, 150) == size(image)


@pytest.mark.parametrize('fmt', ['png', 'gif'])
def test_quality_ignored_for_lossless(jpeg_400x300: OriginalImage, fmt: str) -> None:
  _, _, with_quality = run(jpeg_400x300, f'format={fmt},quality=50')
  _, _, without_quality = run(jpeg_400x300, f'format={fmt}')

  assert without_quality == with_quality


@pytest.mark.parametrize('fmt', ['jpeg', 'webp'])
def test_quality_applied_for_lossy(jpeg_400x300: OriginalImage, fmt: str) -> None:
  _, _, low = run(jpeg_400x300, f'format={fmt},quality=5')
  _, _, high = run(jpeg_400x300, f'format={fmt},quality=95')

  assert len(low) < len(high)


@pytest.mark.parametrize(
    'token', [
        'original',
        'format=webp,width=200',
        'format=png,height=10',
        'width=30,height=30,quality=40,format=jpeg',
    ])
def test_deterministic(jpeg_400x300: OriginalImage, token: str) -> None:
  _, _, first = run(jpeg_400x300, token)
  _, _, second = run(jpeg_400x300, token)

  assert first == second


def test_alpha_to_jpeg(make_image: Callable[..., bytes]) -> None:
  original = OriginalImage(body=make_image(suffix='.png', alpha=True), content_type=PNG_MIME)

  image, content_type, _ = run(original, 'format=jpeg,width=40')

  assert JPEG_MIME == content_type
  assert 3 == image.bands
  assert (40, 30) == size(image)


def test_png_without_format(make_image: Callable[..., bytes]) -> None:
  original = OriginalImage(body=make_image(suffix='.png', alpha=True), content_type=PNG_MIME)

  image, content_type, _ = run(original, 'height=30')

  assert PNG_MIME == content_type
  assert 'pngload_buffer' == image.get('vips-loader')
  assert 4 == image.bands
  assert (40, 30) == size(image)


@pytest.mark.parametrize('token', ['original', 'format=webp', 'format=png,width=100'])
def test_metadata_is_stripped(jpeg_400x300: OriginalImage, token: str) -> None:
  assert 'exif-data' in decode(jpeg_400x300.body).get_fields()

  image, _, _ = run(jpeg_400x300, token)

  assert 'exif-data' not in image.get_fields()


def test_svg_passes_through() -> None:
  original = OriginalImage(body=SVG_BODY, content_type=SVG_MIME)

  for token in ['original', 'format=svg']:
    rendered = transform(original, TransformSpec.from_token(token))
    assert SVG_BODY == rendered.body
    assert SVG_MIME == rendered.content_type


@pytest.mark.parametrize(
    'token,content_type,expected', [
        ('format=png,width=100', 'image/png', (100, 100)),
        ('format=webp', 'image/webp', (10, 10)),
        ('height=40', 'image/png', (40, 40)),
        ('width=30,height=10', 'image/png', (30, 10)),
    ])
def test_svg_is_rasterised(token: str, content_type: str, expected: tuple[int, int]) -> None:
  original = OriginalImage(body=SVG_BODY, content_type=SVG_MIME)

  image, actual, _ = run(original, token)

  assert content_type == actual
  assert content_type == LOADER_MAP[image.get('vips-loader')]
  assert expected == size(image)


def test_svg_output_is_unsupported(jpeg_400x300: OriginalImage) -> None:
  with pytest.raises(TransformError):
    transform(jpeg_400x300, TransformSpec.from_token('format=svg'))


@pytest.mark.parametrize('body', [b'', b'not an image', b'\xff\xd8\xff\xe0broken'])
def test_corrupt_input(body: bytes) -> None:
  with pytest.raises(TransformError):
    transform(OriginalImage(body=body, content_type=JPEG_MIME), TransformSpec())
