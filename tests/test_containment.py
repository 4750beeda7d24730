"""
Tests for the containment module.
"""

from pixelizer.containment import is_inside
from pixelizer.geometry import Rectangle

CAR = Rectangle(100, 100, 200, 100)


def test_patch_equal_to_container():
    """Test that a patch identical to the container is inside."""
    assert is_inside(CAR, CAR)


def test_patch_strictly_inside():
    """Test a patch well within the container."""
    assert is_inside(Rectangle(150, 120, 50, 20), CAR)


def test_patch_touching_bottom_right_corner():
    """Test a patch ending exactly on the container's right and bottom edges."""
    assert is_inside(Rectangle(250, 180, 50, 20), CAR)


def test_patch_beyond_right_edge():
    """Test that exceeding the right edge by one pixel is rejected."""
    assert not is_inside(Rectangle(250, 150, 51, 10), CAR)


def test_patch_beyond_bottom_edge():
    """Test that exceeding the bottom edge by one pixel is rejected."""
    assert not is_inside(Rectangle(150, 180, 10, 21), CAR)


def test_patch_before_origin():
    """Test that a patch starting left of or above the container is rejected."""
    assert not is_inside(Rectangle(99, 150, 10, 10), CAR)
    assert not is_inside(Rectangle(150, 99, 10, 10), CAR)


def test_quirk_zero_size_patch_on_far_edge():
    """Origin-relative fit: a zero-size patch on the far corner counts as inside.

    The check only requires the patch to start within the container and
    fit in the remaining extent, so a degenerate patch sitting on the
    bottom-right corner passes.
    """
    assert is_inside(Rectangle(300, 200, 0, 0), CAR)
    assert not is_inside(Rectangle(300, 200, 1, 0), CAR)


def test_quirk_container_inside_patch_is_not_inside():
    """Containment is not symmetric: a bigger patch never fits a smaller car."""
    assert not is_inside(Rectangle(0, 0, 1000, 1000), CAR)
