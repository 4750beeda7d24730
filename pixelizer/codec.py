"""
Image decoding and encoding.

Responsibility:
    Turn an image file into a BGR buffer plus its encoded origin, and a
    finished canvas back into encoded bytes.

Non-goals:
    - No orientation correction (see orientation.normalize). Decoding
      deliberately ignores the EXIF tag so the caller decides.
"""

import logging
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np

from pixelizer.orientation import Origin, read_origin

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "jpeg": ".jpg",
    "png": ".png",
    "webp": ".webp",
}


def decode_image(path: Union[str, Path]) -> Tuple[np.ndarray, Origin]:
    """Decode an image file without applying its orientation tag.

    Returns:
        (bitmap, origin) where bitmap is a BGR uint8 array.

    Raises:
        ValueError: If OpenCV cannot decode the file.
    """
    bitmap = cv2.imread(str(path), cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION)
    if bitmap is None:
        raise ValueError(f"Unreadable image: '{path}'.")

    origin = read_origin(path)
    logger.debug("Decoded %s (%dx%d, origin=%s)", path, bitmap.shape[1], bitmap.shape[0], origin.name)
    return bitmap, origin


def extension_for(fmt: str) -> str:
    """Return the file extension used when encoding to fmt."""
    try:
        return _EXTENSIONS[fmt]
    except KeyError:
        raise ValueError(
            f"Unsupported output format: '{fmt}'. Must be one of {set(_EXTENSIONS)}."
        ) from None


def encode_image(canvas: np.ndarray, fmt: str = "jpeg", quality: int = 100) -> bytes:
    """Encode a BGR canvas.

    Args:
        canvas: Image to encode.
        fmt: 'jpeg', 'png' or 'webp'.
        quality: Encoder quality in [0, 100]. PNG is lossless and ignores it.

    Raises:
        ValueError: If fmt is unsupported.
        RuntimeError: If OpenCV fails to encode.
    """
    ext = extension_for(fmt)

    if fmt == "jpeg":
        params = [cv2.IMWRITE_JPEG_QUALITY, int(quality)]
    elif fmt == "webp":
        params = [cv2.IMWRITE_WEBP_QUALITY, max(1, int(quality))]
    else:
        params = []

    ok, buffer = cv2.imencode(ext, canvas, params)
    if not ok:
        raise RuntimeError(f"OpenCV failed to encode image as {fmt}.")
    return buffer.tobytes()
