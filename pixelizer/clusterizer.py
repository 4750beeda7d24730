"""
Region clustering for detected text patches.

Responsibility:
    Merge a set of rectangles into fewer, larger rectangles by greedy
    agglomerative clustering. Two groups are merged when the gap between
    their bounding boxes (X-gap + Y-gap) is within a threshold. The pair
    with the smallest gap is merged first; ties go to the pair found
    first in (i, j) scan order.

Non-goals:
    - No image access or drawing.
    - No sub-quadratic spatial indexing. Each pass is O(n^2) over the
      partitions and up to n passes run, which is fine for the tens of
      text detections a photo produces but will not scale to thousands.

Hard-coded:
    - Partitions live in a list whose indices stay stable for the whole
      call. A merged-away partition is left as an empty list.
"""

import logging
import math
from typing import Iterable, List, Sequence, Union

from pixelizer.geometry import Rectangle, gap_along, intersects_or_contains, union

logger = logging.getLogger(__name__)

Distance = Union[int, float]


def partition_distance(
    first: Sequence[Rectangle],
    second: Sequence[Rectangle],
) -> Distance:
    """Return the gap distance between two groups of rectangles.

    Empty groups are infinitely far from everything.
    """
    if not first or not second:
        return math.inf

    a = union(first)
    b = union(second)

    if intersects_or_contains(a, b):
        return 0

    return gap_along(a, b, "x") + gap_along(a, b, "y")


def clusterize(
    rectangles: Iterable[Rectangle],
    distance_threshold: int,
) -> List[Rectangle]:
    """Merge rectangles whose groups lie within distance_threshold of each other.

    Args:
        rectangles: Input rectangles, in any order.
        distance_threshold: Maximum gap distance (pixels) for a merge.
                            0 merges only touching or overlapping groups.

    Returns:
        One bounding rectangle per surviving group, in the order the
        groups were created.

    Raises:
        ValueError: If distance_threshold is negative.
    """
    if distance_threshold < 0:
        raise ValueError(
            f"distance_threshold must be non-negative, got {distance_threshold}."
        )

    partitions: List[List[Rectangle]] = [[r] for r in rectangles]
    merges = 0

    while True:
        min_d: Distance = -1
        min_i = -1
        min_j = -1

        for i in range(len(partitions)):
            if min_d == 0:
                break
            for j in range(i + 1, len(partitions)):
                dist = partition_distance(partitions[i], partitions[j])
                if dist <= distance_threshold and (min_d == -1 or dist < min_d):
                    min_d = dist
                    min_i = i
                    min_j = j
                    if min_d == 0:
                        # Nothing can be closer than touching.
                        break

        if min_d == -1:
            break

        partitions[min_i].extend(partitions[min_j])
        partitions[min_j] = []
        merges += 1

    merged = [union(p) for p in partitions if p]

    logger.debug(
        "Clusterized %d rectangles into %d regions (%d merges, threshold=%d)",
        len(partitions), len(merged), merges, distance_threshold,
    )
    return merged
