import dataclasses
from typing import Optional

from pyvips import Error, Image, Interesting, Size  # type: ignore

from imgtransform.errors import TransformError
from imgtransform.operations import ImageFormat, TransformSpec
from imgtransform.storage import OriginalImage

# Bound for the unconstrained side of a one-dimension resize.
UNBOUNDED = 10000000

# Saver suffix for each output format. SVG has no saver.
SAVE_SUFFIXES = {
    ImageFormat.JPEG: '.jpg',
    ImageFormat.PNG: '.png',
    ImageFormat.GIF: '.gif',
    ImageFormat.WEBP: '.webp',
    ImageFormat.AVIF: '.avif',
}

# Output format when none is requested, by the loader that decoded the source.
# Vector sources are rasterised to PNG.
SOURCE_FORMATS = {
    'jpegload': ImageFormat.JPEG,
    'pngload': ImageFormat.PNG,
    'gifload': ImageFormat.GIF,
    'webpload': ImageFormat.WEBP,
    'heifload': ImageFormat.AVIF,
    'svgload': ImageFormat.PNG,
}


@dataclasses.dataclass(frozen=True)
class RenderedImage:
  body: bytes
  content_type: str


def load(body: bytes, spec: TransformSpec) -> Image:
  """Decodes ``body`` with the orientation baked into the pixels.

  A resize goes through ``thumbnail_buffer`` so that vector sources are rendered at the
  target size instead of being scaled afterwards.
  """
  match (spec.width, spec.height):
    case (None, None):
      return Image.new_from_buffer(body, '').autorot()
    case (int() as width, int() as height):
      return Image.thumbnail_buffer(
          body, width, height=height, size=Size.BOTH, crop=Interesting.CENTRE)
    case (int() as width, None):
      return Image.thumbnail_buffer(body, width, height=UNBOUNDED, size=Size.BOTH)
    case (None, int() as height):
      return Image.thumbnail_buffer(body, UNBOUNDED, height=height, size=Size.BOTH)
    case _:
      raise TransformError(f'invalid size: {spec.width}x{spec.height}')


def source_format(image: Image) -> ImageFormat:
  loader = image.get('vips-loader').removesuffix('_buffer')
  if loader not in SOURCE_FORMATS:
    raise TransformError(f'no saver for {loader}')
  return SOURCE_FORMATS[loader]


def encode(image: Image, fmt: ImageFormat, quality: Optional[int]) -> bytes:
  # Savers convert the pixel format themselves; strip drops every metadata block.
  if quality is None:
    return image.write_to_buffer(SAVE_SUFFIXES[fmt], strip=True)
  return image.write_to_buffer(SAVE_SUFFIXES[fmt], strip=True, Q=quality)


def passes_through(original: OriginalImage, spec: TransformSpec) -> bool:
  return (
      original.content_type == ImageFormat.SVG.content_type and not spec.resizes and
      spec.target_format in (None, ImageFormat.SVG))


def transform(original: OriginalImage, spec: TransformSpec) -> RenderedImage:
  """Orientation normalization, then resize, then re-encode.

  The result only depends on ``original`` and ``spec``. Raises ``TransformError`` on
  any decode or encode failure.
  """
  if passes_through(original, spec):
    return RenderedImage(body=original.body, content_type=original.content_type)

  target = spec.target_format
  if target is not None and target not in SAVE_SUFFIXES:
    raise TransformError(f'no saver for {target.value}')

  try:
    image = load(original.body, spec)
    if target is None:
      fmt = source_format(image)
      body = encode(image, fmt, None)
    else:
      fmt = target
      body = encode(image, fmt, spec.encoder_quality())
  except Error as e:
    raise TransformError(f'vips: {e}') from e

  return RenderedImage(body=body, content_type=fmt.content_type)
