"""
Containment test used to decide whether a merged text region sits on a car.
"""

from pixelizer.geometry import Rectangle


def is_inside(patch: Rectangle, container: Rectangle) -> bool:
    """Return True if patch starts inside container and fits in what is left.

    The patch origin must lie within the container's extents, and the
    patch size must not exceed the container extent remaining from the
    patch origin. This is not a corner-to-corner containment check: the
    exact inequalities below are what decide text-on-car redaction.
    """
    return (
        patch.y >= container.y
        and patch.x >= container.x
        and patch.y <= container.y + container.height
        and patch.x <= container.x + container.width
        and patch.width <= container.width + container.x - patch.x
        and patch.height <= container.height + container.y - patch.y
    )
