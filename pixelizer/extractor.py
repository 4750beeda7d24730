"""
Feature extraction interface.

Responsibility:
    Define the single capability the compositor consumes: an object that
    returns rectangles per detection category for one image. Backends
    subclass FeatureExtractor and implement _fetch(); the base class
    memoizes each category so a backend is asked at most once per
    category per extractor, even when callers ask concurrently.

Non-goals:
    - No retries. A failed fetch propagates to the caller; the failed
      task stays cached, so asking again re-raises the same error.
    - No vendor-specific types leak out of this interface.
"""

import abc
import asyncio
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pixelizer.geometry import Rectangle
from pixelizer.policy import Category

logger = logging.getLogger(__name__)


class FeatureExtractor(abc.ABC):
    """Per-image source of detected rectangles, cached by category.

    Usage:
        extractor = SomeBackendExtractor(...)
        faces = await extractor.extract_faces()
        again = await extractor.extract(Category.FACE)   # no second fetch
    """

    def __init__(self) -> None:
        self._cache: Dict[Category, "asyncio.Task[List[Rectangle]]"] = {}

    @abc.abstractmethod
    async def _fetch(self, category: Category) -> List[Rectangle]:
        """Ask the backend for one category. Called at most once per category."""

    async def extract(self, category: Category) -> List[Rectangle]:
        """Return the rectangles for a category, fetching on first access."""
        category = Category(category)
        task = self._cache.get(category)
        if task is None:
            logger.debug("Fetching %s from %s", category.value, type(self).__name__)
            task = asyncio.ensure_future(self._fetch(category))
            self._cache[category] = task
        rectangles = await asyncio.shield(task)
        return list(rectangles)

    def is_cached(self, category: Category) -> bool:
        """Return True if category has been requested before."""
        return Category(category) in self._cache

    def cancel_pending(self) -> List[asyncio.Future]:
        """Cancel every fetch that has not finished yet.

        Cancelled categories are dropped from the cache, so a later
        extract() starts a new fetch. Finished fetches, failed ones
        included, stay cached.

        Returns:
            The cancelled tasks. Await them so they are fully unwound.
        """
        cancelled: List[asyncio.Future] = []
        for category, task in list(self._cache.items()):
            if not task.done():
                task.cancel()
                cancelled.append(task)
                del self._cache[category]
        if cancelled:
            logger.debug("Cancelled %d pending fetch(es) in %s", len(cancelled), type(self).__name__)
        return cancelled

    async def extract_faces(self) -> List[Rectangle]:
        return await self.extract(Category.FACE)

    async def extract_persons(self) -> List[Rectangle]:
        return await self.extract(Category.PERSON)

    async def extract_cars(self) -> List[Rectangle]:
        return await self.extract(Category.CAR)

    async def extract_text(self) -> List[Rectangle]:
        return await self.extract(Category.TEXT)

    async def extract_license_plates(self) -> List[Rectangle]:
        return await self.extract(Category.LICENSE_PLATE)


class StaticFeatureExtractor(FeatureExtractor):
    """Extractor over detections that are already known.

    Missing categories yield an empty list.
    """

    def __init__(self, detections: Optional[Mapping[Category, Iterable[Rectangle]]] = None) -> None:
        super().__init__()
        self._detections = {
            Category(category): list(rects)
            for category, rects in (detections or {}).items()
        }

    async def _fetch(self, category: Category) -> List[Rectangle]:
        return list(self._detections.get(category, []))


class Connector(abc.ABC):
    """Factory producing one FeatureExtractor per image for a given backend."""

    @property
    @abc.abstractmethod
    def supported_extensions(self) -> Sequence[str]:
        """File extensions (lower-case, with dot) this backend accepts."""

    @abc.abstractmethod
    def analyse_image(
        self,
        image_path: Union[str, Path],
        image_size: Tuple[int, int],
    ) -> FeatureExtractor:
        """Return an extractor for one image.

        Args:
            image_path: The image file.
            image_size: (width, height) of the orientation-corrected image.
                        Backends that report relative coordinates scale by it.

        No backend call happens here; it happens on first extraction.
        """
