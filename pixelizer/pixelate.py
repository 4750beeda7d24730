"""
Pixelation drawing for the redaction pipeline.

Responsibility:
    Replace one rectangular region of a canvas with a blocky version of
    the same region taken from the source image, and optionally stroke
    an outline around it. This is a pure rendering module: it mutates
    the canvas it is given and performs no I/O.

Hard-coded:
    - Nearest-neighbour filtering for both the downscale and the upscale,
      so every block is a single flat color.
"""

from typing import Optional

import cv2
import numpy as np

from pixelizer.config import OutlineConfig
from pixelizer.geometry import Rectangle, clip
from pixelizer.policy import PixelSizeFunction, default_pixel_size


def pixelate_region(
    canvas: np.ndarray,
    source: np.ndarray,
    rect: Rectangle,
    pixel_size_fn: PixelSizeFunction = default_pixel_size,
    outline: Optional[OutlineConfig] = None,
) -> Rectangle:
    """Pixelate rect of source and draw the result onto canvas.

    Args:
        canvas: Output BGR image, modified in place.
        source: Read-only BGR image with the same shape as canvas.
        rect: Region to redact. Parts outside the image are ignored.
        pixel_size_fn: Returns the block size for the region.
        outline: If given and enabled, a border is drawn afterwards.

    Returns:
        The rectangle actually drawn (rect clipped to the image). It is
        zero-area when rect lies entirely outside the image, in which
        case nothing is drawn.
    """
    img_h, img_w = source.shape[:2]
    region = clip(rect, img_w, img_h)

    if region.width == 0 or region.height == 0:
        return region

    block = max(1, int(pixel_size_fn(img_w, img_h, region.width, region.height)))

    small_w = max(1, region.width // block)
    small_h = max(1, region.height // block)

    sub = source[region.y:region.y2, region.x:region.x2]
    small = cv2.resize(sub, (small_w, small_h), interpolation=cv2.INTER_NEAREST)
    blocky = cv2.resize(small, (region.width, region.height), interpolation=cv2.INTER_NEAREST)

    canvas[region.y:region.y2, region.x:region.x2] = blocky

    if outline is not None and outline.enabled:
        draw_outline(canvas, region, outline)

    return region


def draw_outline(canvas: np.ndarray, rect: Rectangle, outline: OutlineConfig) -> None:
    """Stroke the border of rect onto canvas."""
    cv2.rectangle(
        canvas,
        (rect.x, rect.y),
        (rect.x2 - 1, rect.y2 - 1),
        color=outline.color,
        thickness=outline.thickness,
    )
