"""Annotation images: data URL in, tracked temp PNG out.

The UI sends each camera angle's drawing as a ``data:<mime>;base64,...``
string. The image is decoded with Pillow and re-saved as RGBA PNG, so
whatever the browser produced, ffmpeg always gets an alpha-capable
file it can overlay.
"""

import asyncio
import base64
import binascii
import io
import logging
import re
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from .errors import AnnotationDecodeError
from .tempfiles import TempKind, TempRegistry

logger = logging.getLogger(__name__)

_DATA_URL = re.compile(r"^data:([\w.+-]+/[\w.+-]+);base64,(.+)$", re.DOTALL)


def decode_data_url(data_url: str) -> tuple[str, bytes]:
    """Split a base64 data URL into (mime type, raw bytes).

    Raises:
        AnnotationDecodeError: Not a ``data:<mime>;base64,<payload>`` string,
            or the payload is not valid base64.
    """
    match = _DATA_URL.match(data_url.strip())
    if not match:
        raise AnnotationDecodeError("Annotation is not a base64 data URL")
    mime, payload = match.groups()
    try:
        data = base64.b64decode(re.sub(r"\s+", "", payload), validate=True)
    except (binascii.Error, ValueError) as e:
        raise AnnotationDecodeError(f"Annotation payload is not valid base64: {e}") from e
    return mime, data


def _write_png(data: bytes, path: Path) -> tuple[int, int]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, OSError) as e:
        raise AnnotationDecodeError(f"Annotation payload is not an image: {e}") from e
    rgba.save(path, format="PNG")
    return rgba.size


async def materialize_annotation(
    data_url: str | None,
    temps: TempRegistry,
    label: str = "annotation",
) -> Path | None:
    """Write an annotation data URL to a tracked temp PNG.

    Args:
        data_url: The data URL, or None/empty for "no annotation".
        temps: Registry that will delete the file when the request ends.
        label: Goes into the temp file name (e.g. "annotation_primary").

    Returns:
        Path of the PNG, or None when there was no annotation.
    """
    if not data_url:
        return None
    _mime, data = decode_data_url(data_url)
    path = temps.new_path(label, ".png", TempKind.ANNOTATION)
    width, height = await asyncio.to_thread(_write_png, data, path)
    logger.debug(f"[ANNOTATION] Wrote {width}x{height} {path}")
    return path
