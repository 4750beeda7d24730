"""
Orientation correction for decoded images.

Responsibility:
    Rotate a decoded BGR buffer so it matches how an image viewer would
    display it, given the EXIF orientation ("origin") tag. Vision
    backends report coordinates on the displayed image, so redaction
    must happen on the rotated buffer.

Non-goals:
    - No EXIF parsing beyond reading the single orientation tag.
    - No mirrored orientations. TOP_RIGHT, BOTTOM_LEFT, LEFT_TOP and
      RIGHT_BOTTOM are passed through unchanged with a warning.
"""

import logging
from enum import IntEnum
from pathlib import Path
from typing import Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# EXIF tag id for Orientation
_EXIF_ORIENTATION_TAG = 0x0112


class Origin(IntEnum):
    """Encoded origin of an image, using the EXIF orientation values."""

    TOP_LEFT = 1
    TOP_RIGHT = 2
    BOTTOM_RIGHT = 3
    BOTTOM_LEFT = 4
    LEFT_TOP = 5
    RIGHT_TOP = 6
    RIGHT_BOTTOM = 7
    LEFT_BOTTOM = 8

    DEFAULT = 1


_MIRRORED = {Origin.TOP_RIGHT, Origin.BOTTOM_LEFT, Origin.LEFT_TOP, Origin.RIGHT_BOTTOM}


def coerce_origin(value: Union[int, Origin, None]) -> Origin:
    """Map a raw tag value to an Origin. Unknown values become DEFAULT."""
    if value is None:
        return Origin.DEFAULT
    try:
        return Origin(int(value))
    except (TypeError, ValueError):
        logger.warning("Unknown orientation tag %r, treating as default.", value)
        return Origin.DEFAULT


def read_origin(path: Union[str, Path]) -> Origin:
    """Read the EXIF orientation tag of an image file.

    Returns DEFAULT when the file has no EXIF data or Pillow cannot
    identify it.
    """
    try:
        with Image.open(path) as img:
            value = img.getexif().get(_EXIF_ORIENTATION_TAG)
    except (UnidentifiedImageError, OSError) as e:
        logger.debug("No orientation tag read from %s: %s", path, e)
        return Origin.DEFAULT

    return coerce_origin(value)


def normalize(bitmap: np.ndarray, origin: Origin) -> np.ndarray:
    """Rotate bitmap so that its origin becomes TOP_LEFT.

    Args:
        bitmap: Decoded image, shape (H, W) or (H, W, C).
        origin: The image's encoded origin.

    Returns:
        - the same array for TOP_LEFT, mirrored and unknown origins,
        - the same array rotated 180 degrees in place for BOTTOM_RIGHT,
        - a new (W, H) array rotated 90 degrees clockwise for RIGHT_TOP,
        - a new (W, H) array rotated 90 degrees counter-clockwise for
          LEFT_BOTTOM.
    """
    if origin == Origin.TOP_LEFT:
        return bitmap

    if origin == Origin.BOTTOM_RIGHT:
        bitmap[...] = cv2.rotate(bitmap, cv2.ROTATE_180)
        return bitmap

    if origin == Origin.RIGHT_TOP:
        return cv2.rotate(bitmap, cv2.ROTATE_90_CLOCKWISE)

    if origin == Origin.LEFT_BOTTOM:
        return cv2.rotate(bitmap, cv2.ROTATE_90_COUNTERCLOCKWISE)

    if origin in _MIRRORED:
        logger.warning("Mirrored origin %s is not supported, leaving image as is.", origin.name)
    return bitmap
