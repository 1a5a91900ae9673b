import dataclasses
import re
from enum import Enum
from typing import Optional

ORIGINAL_TOKEN = 'original'

MAX_QUALITY = 100

digits_re = re.compile(r'^[0-9]+$')


class ImageFormat(Enum):
  JPEG = 'jpeg'
  PNG = 'png'
  GIF = 'gif'
  WEBP = 'webp'
  AVIF = 'avif'
  SVG = 'svg'

  @classmethod
  def from_name(cls, name: str) -> 'ImageFormat':
    # Unknown names fall back to JPEG instead of being rejected.
    try:
      return cls(name)
    except ValueError:
      return cls.JPEG

  @property
  def content_type(self) -> str:
    return CONTENT_TYPES[self]

  @property
  def lossy(self) -> bool:
    return self in LOSSY_FORMATS


CONTENT_TYPES = {
    ImageFormat.JPEG: 'image/jpeg',
    ImageFormat.PNG: 'image/png',
    ImageFormat.GIF: 'image/gif',
    ImageFormat.WEBP: 'image/webp',
    ImageFormat.AVIF: 'image/avif',
    ImageFormat.SVG: 'image/svg+xml',
}

LOSSY_FORMATS = frozenset([ImageFormat.JPEG, ImageFormat.WEBP, ImageFormat.AVIF])


@dataclasses.dataclass(eq=True, frozen=True)
class Format:
  value: ImageFormat
  requested: str


@dataclasses.dataclass(eq=True, frozen=True)
class Width:
  value: int


@dataclasses.dataclass(eq=True, frozen=True)
class Height:
  value: int


@dataclasses.dataclass(eq=True, frozen=True)
class Quality:
  value: int


@dataclasses.dataclass(eq=True, frozen=True)
class Ignored:
  key: str
  value: Optional[str]
  reason: str


Operation = Format | Width | Height | Quality | Ignored


def parse_positive_int(s: str) -> Optional[int]:
  if digits_re.match(s) is None:
    return None
  n = int(s)
  return n if 0 < n else None


def parse_operation(segment: str) -> Operation:
  if '=' not in segment:
    return Ignored(key=segment, value=None, reason='no value')

  key, value = segment.split('=', 1)

  match key:
    case 'format':
      return Format(ImageFormat.from_name(value), value)
    case 'width' | 'height':
      n = parse_positive_int(value)
      if n is None:
        return Ignored(key=key, value=value, reason='not a positive integer')
      return Width(n) if key == 'width' else Height(n)
    case 'quality':
      n = parse_positive_int(value)
      if n is None or MAX_QUALITY < n:
        return Ignored(key=key, value=value, reason=f'not an integer in 1..{MAX_QUALITY}')
      return Quality(n)
    case _:
      return Ignored(key=key, value=value, reason='unknown key')


@dataclasses.dataclass(eq=True, frozen=True)
class TransformSpec:
  format: Optional[Format] = None
  width: Optional[int] = None
  height: Optional[int] = None
  quality: Optional[int] = None
  ignored: tuple[Ignored, ...] = ()

  @classmethod
  def from_token(cls, token: str) -> 'TransformSpec':
    """Parses an operations token such as ``format=webp,width=200``.

    Never raises. Malformed or unknown segments are collected in ``ignored`` and a key
    given more than once resolves to its last occurrence. ``original`` parses to the
    empty spec.
    """
    if token == ORIGINAL_TOKEN:
      return cls()

    fields: dict[str, Format | int] = {}
    ignored: list[Ignored] = []

    for segment in token.split(','):
      match parse_operation(segment):
        case Format() as f:
          fields['format'] = f
        case Width(value=n):
          fields['width'] = n
        case Height(value=n):
          fields['height'] = n
        case Quality(value=n):
          fields['quality'] = n
        case Ignored() as i:
          # An invalid last occurrence still overrides earlier valid ones.
          fields.pop(i.key, None)
          ignored.append(i)

    return cls(**fields, ignored=tuple(ignored))  # type: ignore[arg-type]

  @property
  def resizes(self) -> bool:
    return self.width is not None or self.height is not None

  @property
  def target_format(self) -> Optional[ImageFormat]:
    return None if self.format is None else self.format.value

  def encoder_quality(self) -> Optional[int]:
    # Lossless encoders never see quality.
    fmt = self.target_format
    if fmt is None or not fmt.lossy:
      return None
    return self.quality

  def to_log(self) -> dict[str, object]:
    return {
        'format': None if self.format is None else self.format.requested,
        'width': self.width,
        'height': self.height,
        'quality': self.quality,
        'ignored': [dataclasses.asdict(i) for i in self.ignored],
    }
