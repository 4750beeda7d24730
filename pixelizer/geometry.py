"""
Rectangle type and geometry predicates for the redaction pipeline.

Responsibility:
    Provide the axis-aligned Rectangle used by every other module, plus
    the small set of pure predicates the clusterizer and compositor rely
    on (range checks, overlap tests, per-axis gaps, bounding unions).

Non-goals:
    - No drawing or image access.
    - No rotated or polygonal shapes (vendor polygons are reduced to
      their bounding rectangle by the extractor backends).
"""

from dataclasses import dataclass
from typing import Iterable, Tuple


@dataclass(frozen=True, slots=True)
class Rectangle:
    """An axis-aligned rectangle in absolute pixel coordinates.

    Attributes:
        x: Left edge.
        y: Top edge.
        width: Extent along x (non-negative).
        height: Extent along y (non-negative).
    """

    x: int
    y: int
    width: int
    height: int

    @property
    def x2(self) -> int:
        """Right edge (exclusive)."""
        return self.x + self.width

    @property
    def y2(self) -> int:
        """Bottom edge (exclusive)."""
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def extent(self, axis: str) -> Tuple[int, int]:
        """Return the (start, end) interval of this rectangle along 'x' or 'y'."""
        if axis == "x":
            return self.x, self.x2
        if axis == "y":
            return self.y, self.y2
        raise ValueError(f"Unknown axis: '{axis}'. Must be 'x' or 'y'.")

    def to_dict(self) -> dict:
        """Return a plain dict suitable for JSON serialization."""
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }


def is_in_range(value: int, lower: int, upper: int) -> bool:
    """Return True if lower <= value <= upper."""
    return lower <= value <= upper


def _intervals_touch(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    a1, a2 = a
    b1, b2 = b
    return (
        is_in_range(a1, b1, b2)
        or is_in_range(a2, b1, b2)
        or is_in_range(b1, a1, a2)
        or is_in_range(b2, a1, a2)
    )


def intersects_or_contains(a: Rectangle, b: Rectangle) -> bool:
    """Return True if the extents of a and b overlap or touch on both axes."""
    return (
        _intervals_touch(a.extent("x"), b.extent("x"))
        and _intervals_touch(a.extent("y"), b.extent("y"))
    )


def gap_along(a: Rectangle, b: Rectangle, axis: str) -> int:
    """Return the gap between a and b along one axis.

    The gap is 0 when the two intervals overlap or touch. Otherwise it is
    the smaller of the two edge-to-edge distances.
    """
    a1, a2 = a.extent(axis)
    b1, b2 = b.extent(axis)

    if _intervals_touch((a1, a2), (b1, b2)):
        return 0

    return min(
        abs(min(a1, a2) - max(b1, b2)),
        abs(min(b1, b2) - max(a1, a2)),
    )


def union(rectangles: Iterable[Rectangle]) -> Rectangle:
    """Return the bounding rectangle of all given rectangles.

    Raises:
        ValueError: If no rectangles are given.
    """
    rects = list(rectangles)
    if not rects:
        raise ValueError("Cannot compute the union of zero rectangles.")

    x1 = min(r.x for r in rects)
    y1 = min(r.y for r in rects)
    x2 = max(r.x2 for r in rects)
    y2 = max(r.y2 for r in rects)
    return Rectangle(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


def clip(rect: Rectangle, image_width: int, image_height: int) -> Rectangle:
    """Clip a rectangle to the image bounds. The result may be zero-area."""
    x1 = max(0, min(rect.x, image_width))
    y1 = max(0, min(rect.y, image_height))
    x2 = max(x1, min(rect.x2, image_width))
    y2 = max(y1, min(rect.y2, image_height))
    return Rectangle(x=x1, y=y1, width=x2 - x1, height=y2 - y1)
