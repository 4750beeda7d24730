"""
Detection categories and redaction policy switches.

The two processing enums are closed: the compositor dispatches over
every member and treats anything else as a programming error.
"""

from enum import Enum
from typing import Callable

# (image_width, image_height, patch_width, patch_height) -> block size in pixels
PixelSizeFunction = Callable[[int, int, int, int], int]


class Category(str, Enum):
    """Kinds of regions a feature extractor can report."""

    FACE = "face"
    PERSON = "person"
    CAR = "car"
    TEXT = "text"
    LICENSE_PLATE = "license_plate"


class FaceProcessing(str, Enum):
    """What to redact for people."""

    SKIP = "skip"
    PIXELATE_FACES = "pixelate_faces"
    PIXELATE_PERSONS = "pixelate_persons"


class CarProcessing(str, Enum):
    """What to redact for vehicles."""

    SKIP = "skip"
    PIXELATE_CARS = "pixelate_cars"
    PIXELATE_PLATES_AND_TEXT_ON_CARS = "pixelate_plates_and_text_on_cars"


def block_size_by_divisor(divisor: int) -> PixelSizeFunction:
    """Return a pixel size function that divides the longer patch side by divisor."""

    def pixel_size(image_width: int, image_height: int, patch_width: int, patch_height: int) -> int:
        return max(patch_width, patch_height) // divisor

    return pixel_size


default_pixel_size = block_size_by_divisor(16)
