"""Image decoding: bytes on disk to an RGB8 pixel buffer.

The rest of the pipeline never touches Pillow objects from this module:
``decode_image()`` returns a plain ``DecodedImage`` so the OCR engine's
input-preparation step can be exercised (and fail) independently.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from PIL import Image, ImageOps


class DecodeError(Exception):
    """The file could not be read or is not a decodable image."""


@dataclass(frozen=True)
class DecodedImage:
    """Raw RGB8 pixels, row-major, 3 bytes per pixel."""

    width: int
    height: int
    pixels: bytes

    @property
    def dimensions(self) -> tuple[int, int]:
        return (self.width, self.height)


def decode_bytes(data: bytes) -> DecodedImage:
    """Decode an in-memory image into RGB8 pixels.

    Animated formats (GIF, multi-page TIFF) contribute their first frame only.
    EXIF orientation is applied so text is upright before OCR.

    Raises:
        DecodeError: Corrupt, truncated or unsupported data.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.seek(0)
            img = ImageOps.exif_transpose(img)
            rgb = img.convert("RGB")
    except (OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"{type(exc).__name__}: {exc}") from exc
    return DecodedImage(width=rgb.width, height=rgb.height, pixels=rgb.tobytes())


def decode_image(path: Union[str, Path]) -> DecodedImage:
    """Read ``path`` from disk and decode it.

    Raises:
        DecodeError: The file cannot be read or decoded.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise DecodeError(f"{type(exc).__name__}: {exc}") from exc
    return decode_bytes(data)
