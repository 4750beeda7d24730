"""
Tests for the redaction_log module.
"""

import csv
import json
import logging

from pixelizer.geometry import Rectangle
from pixelizer.policy import Category
from pixelizer.redaction_log import (
    LoggingRedactionLogger,
    RecordingRedactionLogger,
    RedactionLogger,
)


def _recorder() -> RecordingRedactionLogger:
    recorder = RecordingRedactionLogger()
    recorder.on_extracted("a.jpg", Category.FACE, [Rectangle(0, 0, 5, 5), Rectangle(9, 9, 5, 5)])
    recorder.on_pixelated("a.jpg", Category.FACE, Rectangle(0, 0, 5, 5))
    recorder.on_pixelated("a.jpg", Category.FACE, Rectangle(9, 9, 5, 5))
    recorder.on_extracted("b.jpg", Category.LICENSE_PLATE, [Rectangle(1, 2, 3, 4)])
    recorder.on_pixelated("b.jpg", Category.LICENSE_PLATE, Rectangle(1, 2, 3, 4))
    return recorder


def test_base_logger_is_noop():
    """Test that the base hooks accept calls and do nothing."""
    base = RedactionLogger()
    base.on_extracted("a", Category.CAR, [])
    base.on_pixelated("a", Category.CAR, Rectangle(0, 0, 1, 1))


def test_recording_filters_by_category():
    """Test in-memory event access."""
    recorder = _recorder()
    assert recorder.pixelated(Category.LICENSE_PLATE) == [Rectangle(1, 2, 3, 4)]
    assert len(recorder.pixelated()) == 3


def test_save_json(tmp_path):
    """Test the JSON report layout."""
    path = tmp_path / "reports" / "redactions.json"
    _recorder().save_json(str(path))

    payload = json.loads(path.read_text(encoding="utf-8"))

    assert payload["total_images"] == 2
    assert payload["total_pixelated"] == 3
    first = payload["images"][0]
    assert first["image_id"] == "a.jpg"
    assert first["extracted"] == {"face": 2}
    assert first["pixelated"][1] == {"category": "face", "x": 9, "y": 9, "width": 5, "height": 5}


def test_save_csv(tmp_path):
    """Test the CSV report rows."""
    path = tmp_path / "redactions.csv"
    _recorder().save_csv(str(path))

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    assert len(rows) == 3
    assert rows[2] == {
        "image_id": "b.jpg", "category": "license_plate",
        "x": "1", "y": "2", "width": "3", "height": "4",
    }


def test_logging_logger(caplog):
    """Test that events are written through the logging module."""
    redaction_logger = LoggingRedactionLogger()

    with caplog.at_level(logging.INFO, logger="pixelizer.redaction_log"):
        redaction_logger.on_extracted("a.jpg", Category.TEXT, [Rectangle(1, 2, 3, 4)])
        redaction_logger.on_pixelated("a.jpg", Category.TEXT, Rectangle(1, 2, 3, 4))

    messages = [r.getMessage() for r in caplog.records]
    assert messages == [
        "text in a.jpg: (x=1, y=2, w=3, h=4)",
        "pixelated text in a.jpg at (x=1, y=2, w=3, h=4)",
    ]
