"""
Compositor — turns detections into a redacted image.

This module is the main programmatic entry point of the library. Given a
decoded image, its origin and a FeatureExtractor, it fixes orientation,
fetches the categories the policy needs, decides which regions to hide
and pixelates them onto a copy of the image.

Public contract:
    await Compositor(config).render(bitmap, origin, extractor) -> np.ndarray
    await Compositor(config).pixelate(bitmap, origin, extractor) -> bytes

Constraints:
    - The input bitmap is only read, except that a BOTTOM_RIGHT origin is
      corrected in place.
    - All category fetches complete before anything is drawn. If one
      fails, the others are cancelled and the error propagates.
    - Drawing and encoding run in a worker thread, so redaction logger
      callbacks may be invoked off the event loop thread.
    - One render() call owns its canvas; no state is shared between calls.

Non-goals:
    - No file I/O (see batch.py).
    - No retries of failed fetches.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

import numpy as np

from pixelizer.clusterizer import clusterize
from pixelizer.codec import encode_image
from pixelizer.config import AppConfig, load_config
from pixelizer.containment import is_inside
from pixelizer.extractor import FeatureExtractor
from pixelizer.geometry import Rectangle
from pixelizer.orientation import Origin, normalize
from pixelizer.pixelate import pixelate_region
from pixelizer.policy import (
    CarProcessing,
    Category,
    FaceProcessing,
    PixelSizeFunction,
    block_size_by_divisor,
)
from pixelizer.redaction_log import RedactionLogger

logger = logging.getLogger(__name__)


class Compositor:
    """Applies the configured redaction policy to one image at a time.

    Usage:
        compositor = Compositor()                               # safe defaults
        compositor = Compositor(config, redaction_logger=rec)   # with telemetry
        data = await compositor.pixelate(bitmap, origin, extractor, "a.jpg")

    Without a redaction logger no telemetry is emitted.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        redaction_logger: Optional[RedactionLogger] = None,
        pixel_size_fn: Optional[PixelSizeFunction] = None,
    ) -> None:
        """Initialize the compositor.

        Args:
            config: Application configuration. If None, defaults are used.
            redaction_logger: Optional receiver of extraction/redaction events.
            pixel_size_fn: Overrides the block size derived from
                           config.policy.pixel_size_divisor.
        """
        if config is None:
            config = load_config()

        self._config = config
        self._redaction_logger = redaction_logger
        self._pixel_size_fn = pixel_size_fn or block_size_by_divisor(
            config.policy.pixel_size_divisor
        )

        logger.debug(
            "Compositor initialized (faces=%s, cars=%s, merge_factor=%.3f)",
            config.policy.face_processing,
            config.policy.car_processing,
            config.policy.merge_factor,
        )

    @property
    def config(self) -> AppConfig:
        """Return the active configuration (read-only)."""
        return self._config

    def required_categories(self) -> List[Category]:
        """Return the categories the active policy needs, in fetch order.

        Raises:
            ValueError: If a policy value is not a known enum member.
        """
        categories: List[Category] = []

        face_processing = self._config.policy.face_processing
        if face_processing == FaceProcessing.PIXELATE_FACES:
            categories.append(Category.FACE)
        elif face_processing == FaceProcessing.PIXELATE_PERSONS:
            categories.append(Category.PERSON)
        elif face_processing != FaceProcessing.SKIP:
            raise ValueError(f"Unsupported face processing: {face_processing!r}")

        car_processing = self._config.policy.car_processing
        if car_processing == CarProcessing.PIXELATE_PLATES_AND_TEXT_ON_CARS:
            categories.extend([Category.TEXT, Category.CAR, Category.LICENSE_PLATE])
        elif car_processing == CarProcessing.PIXELATE_CARS:
            categories.append(Category.CAR)
        elif car_processing != CarProcessing.SKIP:
            raise ValueError(f"Unsupported car processing: {car_processing!r}")

        return categories

    async def render(
        self,
        bitmap: np.ndarray,
        origin: Origin,
        extractor: FeatureExtractor,
        image_id: str = "<memory>",
    ) -> np.ndarray:
        """Return a redacted copy of bitmap.

        Args:
            bitmap: Decoded BGR image, shape (H, W, 3).
            origin: Encoded origin of the image.
            extractor: Source of detections, in coordinates of the
                       orientation-corrected image.
            image_id: Name reported to the redaction logger.

        Raises:
            ValueError: If the policy holds an unknown value.
            Exception: Whatever the extractor raises for a failed fetch.
        """
        categories = self.required_categories()

        source = normalize(bitmap, origin)
        canvas = source.copy()

        detections = await self._fetch_all(extractor, categories)

        # Clustering and drawing are CPU bound; keep them off the event loop
        await asyncio.to_thread(self._draw, canvas, source, detections, image_id)
        return canvas

    async def pixelate(
        self,
        bitmap: np.ndarray,
        origin: Origin,
        extractor: FeatureExtractor,
        image_id: str = "<memory>",
    ) -> bytes:
        """Render the redacted image and encode it with the output settings."""
        canvas = await self.render(bitmap, origin, extractor, image_id)
        return await asyncio.to_thread(
            encode_image, canvas, self._config.output.format, self._config.output.quality
        )

    async def _fetch_all(
        self,
        extractor: FeatureExtractor,
        categories: Iterable[Category],
    ) -> Dict[Category, List[Rectangle]]:
        """Fetch all categories concurrently and wait for every one of them."""
        categories = list(categories)
        tasks = [asyncio.ensure_future(extractor.extract(c)) for c in categories]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # extract() shields the backend fetches, cancel those as well
            pending = extractor.cancel_pending()
            await asyncio.gather(*tasks, *pending, return_exceptions=True)
            raise
        return dict(zip(categories, results))

    def _draw(
        self,
        canvas: np.ndarray,
        source: np.ndarray,
        detections: Dict[Category, List[Rectangle]],
        image_id: str,
    ) -> None:
        face_processing = self._config.policy.face_processing
        if face_processing == FaceProcessing.PIXELATE_FACES:
            self._redact_all(canvas, source, Category.FACE, detections, image_id)
        elif face_processing == FaceProcessing.PIXELATE_PERSONS:
            self._redact_all(canvas, source, Category.PERSON, detections, image_id)

        car_processing = self._config.policy.car_processing
        if car_processing == CarProcessing.PIXELATE_PLATES_AND_TEXT_ON_CARS:
            self._redact_plates_and_text(canvas, source, detections, image_id)
        elif car_processing == CarProcessing.PIXELATE_CARS:
            self._redact_all(canvas, source, Category.CAR, detections, image_id)

    def _redact_all(
        self,
        canvas: np.ndarray,
        source: np.ndarray,
        category: Category,
        detections: Dict[Category, List[Rectangle]],
        image_id: str,
    ) -> None:
        rects = detections.get(category, [])
        self._notify_extracted(image_id, category, rects)
        for rect in rects:
            self._redact(canvas, source, rect, category, image_id)

    def _redact_plates_and_text(
        self,
        canvas: np.ndarray,
        source: np.ndarray,
        detections: Dict[Category, List[Rectangle]],
        image_id: str,
    ) -> None:
        text = detections.get(Category.TEXT, [])
        cars = detections.get(Category.CAR, [])
        plates = detections.get(Category.LICENSE_PLATE, [])
        self._notify_extracted(image_id, Category.TEXT, text)
        self._notify_extracted(image_id, Category.CAR, cars)
        self._notify_extracted(image_id, Category.LICENSE_PLATE, plates)

        merge_distance = int(round(source.shape[1] * self._config.policy.merge_factor))
        merged = clusterize(text, merge_distance)

        # A patch inside several cars is drawn once per car.
        for car in cars:
            for patch in merged:
                if is_inside(patch, car):
                    self._redact(canvas, source, patch, Category.TEXT, image_id)

        for plate in plates:
            self._redact(canvas, source, plate, Category.LICENSE_PLATE, image_id)

    def _redact(
        self,
        canvas: np.ndarray,
        source: np.ndarray,
        rect: Rectangle,
        category: Category,
        image_id: str,
    ) -> None:
        outline = self._config.outline if self._config.outline.enabled else None
        pixelate_region(canvas, source, rect, self._pixel_size_fn, outline)
        if self._redaction_logger is not None:
            self._redaction_logger.on_pixelated(image_id, category, rect)

    def _notify_extracted(self, image_id: str, category: Category, rects: List[Rectangle]) -> None:
        logger.debug("%s: %d %s region(s)", image_id, len(rects), category.value)
        if self._redaction_logger is not None:
            self._redaction_logger.on_extracted(image_id, category, rects)
