from typing import Callable, Optional

import pytest
from pyvips import GValue, Image  # type: ignore

from imgtransform.errors import FetchError, WriteError
from imgtransform.storage import OriginalImage, TransformedImage
from imgtransform.typing import S3Key

JPEG_MIME = 'image/jpeg'

ORIGINAL_KEY = S3Key('images/rio/1.jpg')

MakeImage = Callable[..., bytes]


class FakeOriginalStore:

  def __init__(self, objects: dict[str, OriginalImage]):
    self.objects = objects
    self.fetched: list[str] = []

  def fetch(self, key: S3Key) -> OriginalImage:
    self.fetched.append(key)
    if key not in self.objects:
      raise FetchError(f'not found: {key}')
    return self.objects[key]


class FakeTransformedStore:

  def __init__(self, error: Optional[Exception] = None):
    self.error = error
    self.stored: dict[str, TransformedImage] = {}

  def store(self, key: S3Key, image: TransformedImage) -> None:
    if self.error is not None:
      raise self.error
    self.stored[key] = image


@pytest.fixture
def make_image() -> MakeImage:

  def fn(
      size: tuple[int, int] = (400, 300),
      suffix: str = '.jpg',
      alpha: bool = False,
      orientation: Optional[int] = None,
  ) -> bytes:
    width, height = size
    # A gradient gives the encoders something to work on.
    xy = Image.xyz(width, height)
    image = (xy[0] * 255 / width).bandjoin([
        xy[1] * 255 / height,
        (xy[0] + xy[1]) * 255 / (width + height),
    ]).cast('uchar').copy(interpretation='srgb')
    if alpha:
      image = image.bandjoin(255)
    if orientation is not None:
      image = image.copy()
      image.set_type(GValue.gint_type, 'orientation', orientation)
    return image.write_to_buffer(suffix)

  return fn


@pytest.fixture
def jpeg_400x300(make_image: MakeImage) -> OriginalImage:
  return OriginalImage(body=make_image(), content_type=JPEG_MIME)


@pytest.fixture
def rotated_jpeg(make_image: MakeImage) -> OriginalImage:
  # Orientation 6: stored 400x300, displayed 300x400.
  return OriginalImage(body=make_image(orientation=6), content_type=JPEG_MIME)


@pytest.fixture
def original_store(jpeg_400x300: OriginalImage) -> FakeOriginalStore:
  return FakeOriginalStore({ORIGINAL_KEY: jpeg_400x300})


@pytest.fixture
def transformed_store() -> FakeTransformedStore:
  return FakeTransformedStore()


@pytest.fixture
def failing_transformed_store() -> FakeTransformedStore:
  return FakeTransformedStore(WriteError('put_object failed: AccessDenied'))
