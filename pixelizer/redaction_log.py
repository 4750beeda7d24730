"""
Redaction telemetry hooks and reports.

Responsibility:
    Define the optional collaborator the compositor notifies when a
    category has been extracted for an image and when each single
    region has been pixelated. Also provides two concrete loggers: one
    that writes to the standard logging module, and one that records
    events and exports them to JSON or CSV for offline review.

Non-goals:
    - No redaction logic.
    - No streaming output. Reports are written as complete files.
"""

import csv
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from pixelizer.geometry import Rectangle
from pixelizer.policy import Category

logger = logging.getLogger(__name__)


class RedactionLogger:
    """No-op base class. Override the hooks you care about.

    Hooks are called in processing order: on_extracted once per fetched
    category, then on_pixelated once per redacted rectangle. They run in
    the compositor's drawing thread, and in a batch several images may
    report at the same time.
    """

    def on_extracted(self, image_id: str, category: Category, rectangles: Sequence[Rectangle]) -> None:
        """Called once after a category has been extracted for an image."""

    def on_pixelated(self, image_id: str, category: Category, rectangle: Rectangle) -> None:
        """Called once per region drawn onto the canvas."""


class LoggingRedactionLogger(RedactionLogger):
    """Reports extraction and redaction events through the logging module."""

    def __init__(self, target: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self._logger = target or logger
        self._level = level

    def on_extracted(self, image_id: str, category: Category, rectangles: Sequence[Rectangle]) -> None:
        self._logger.log(
            self._level,
            "%s in %s: %s",
            category.value, image_id, ", ".join(_format_rect(r) for r in rectangles),
        )

    def on_pixelated(self, image_id: str, category: Category, rectangle: Rectangle) -> None:
        self._logger.log(
            self._level,
            "pixelated %s in %s at %s",
            category.value, image_id, _format_rect(rectangle),
        )


@dataclass(frozen=True)
class RedactionEvent:
    """A single pixelated region."""

    image_id: str
    category: Category
    rectangle: Rectangle

    def to_dict(self) -> dict:
        return {
            "image_id": self.image_id,
            "category": self.category.value,
            **self.rectangle.to_dict(),
        }


class RecordingRedactionLogger(RedactionLogger):
    """Accumulates events in memory and writes them out on request.

    Usage:
        recorder = RecordingRedactionLogger()
        compositor = Compositor(config, redaction_logger=recorder)
        ...
        recorder.save_json("output/redactions.json")
    """

    def __init__(self) -> None:
        self.extracted: List[tuple] = []
        self.events: List[RedactionEvent] = []

    def on_extracted(self, image_id: str, category: Category, rectangles: Sequence[Rectangle]) -> None:
        self.extracted.append((image_id, category, list(rectangles)))

    def on_pixelated(self, image_id: str, category: Category, rectangle: Rectangle) -> None:
        self.events.append(RedactionEvent(image_id, category, rectangle))

    def pixelated(self, category: Optional[Category] = None) -> List[Rectangle]:
        """Return redacted rectangles, optionally for one category only."""
        return [
            e.rectangle for e in self.events
            if category is None or e.category == category
        ]

    def save_json(self, output_path: str) -> None:
        """Export all events to a JSON file.

        Output schema:
            {
                "images": [
                    {
                        "image_id": "...",
                        "extracted": {"face": 2, "text": 5, ...},
                        "pixelated": [
                            {"category": "face", "x": ..., "y": ..., "width": ..., "height": ...}
                        ]
                    }
                ],
                "total_images": N,
                "total_pixelated": M
            }

        Raises:
            OSError: If the output path is not writable.
        """
        _ensure_parent_dir(output_path)

        images = {}
        for image_id, category, rects in self.extracted:
            entry = images.setdefault(image_id, {"image_id": image_id, "extracted": {}, "pixelated": []})
            entry["extracted"][category.value] = len(rects)
        for event in self.events:
            entry = images.setdefault(
                event.image_id, {"image_id": event.image_id, "extracted": {}, "pixelated": []}
            )
            record = event.to_dict()
            del record["image_id"]
            entry["pixelated"].append(record)

        payload = {
            "images": [images[k] for k in sorted(images)],
            "total_images": len(images),
            "total_pixelated": len(self.events),
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

        logger.info(
            "JSON report saved: %s (%d images, %d regions)",
            output_path, len(images), len(self.events),
        )

    def save_csv(self, output_path: str) -> None:
        """Export all events to a CSV file.

        Columns: image_id, category, x, y, width, height

        Raises:
            OSError: If the output path is not writable.
        """
        _ensure_parent_dir(output_path)

        fieldnames = ["image_id", "category", "x", "y", "width", "height"]

        with open(output_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for event in self.events:
                writer.writerow(event.to_dict())

        logger.info("CSV report saved: %s (%d rows)", output_path, len(self.events))


def _format_rect(rect: Rectangle) -> str:
    return f"(x={rect.x}, y={rect.y}, w={rect.width}, h={rect.height})"


def _ensure_parent_dir(path: str) -> None:
    """Create parent directories if they don't exist."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
