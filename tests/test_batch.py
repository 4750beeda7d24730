"""
Tests for the batch module.
"""

import asyncio
from pathlib import Path
from typing import Sequence, Tuple, Union

import cv2
import numpy as np
import pytest

from pixelizer.batch import BatchProcessor, discover_images
from pixelizer.compositor import Compositor
from pixelizer.config import AppConfig, OutputConfig, PolicyConfig
from pixelizer.extractor import Connector, FeatureExtractor, StaticFeatureExtractor
from pixelizer.geometry import Rectangle
from pixelizer.policy import CarProcessing, Category, FaceProcessing


class _StaticConnector(Connector):
    """Returns the same detections for every image, failing for chosen names."""

    def __init__(self, detections=None, failing: Sequence[str] = ()) -> None:
        self._detections = detections or {}
        self._failing = set(failing)
        self.sizes = {}

    @property
    def supported_extensions(self) -> Sequence[str]:
        return (".png", ".jpg")

    def analyse_image(self, image_path: Union[str, Path], image_size: Tuple[int, int]) -> FeatureExtractor:
        self.sizes[Path(image_path).name] = image_size
        if Path(image_path).name in self._failing:
            return _FailingExtractor()
        return StaticFeatureExtractor(self._detections)


class _FailingExtractor(FeatureExtractor):
    async def _fetch(self, category: Category):
        raise ConnectionError("quota exceeded")


def _write_image(path: Path, height: int = 40, width: int = 60) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    rng = np.random.default_rng(len(str(path)))
    cv2.imwrite(str(path), rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8))


def _processor(connector: Connector, max_workers: int = 2) -> BatchProcessor:
    config = AppConfig(
        policy=PolicyConfig(face_processing=FaceProcessing.PIXELATE_FACES, car_processing=CarProcessing.SKIP),
        output=OutputConfig(format="png"),
    )
    return BatchProcessor(Compositor(config), connector, max_workers=max_workers)


def test_discover_images(tmp_path):
    """Test extension filtering, hidden files and recursion."""
    for name in ["a.png", "B.JPG", ".hidden.png", "notes.txt", "sub/c.png", ".cache/d.png"]:
        target = tmp_path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"")

    assert discover_images(tmp_path, [".png", ".jpg"]) == ["B.JPG", "a.png"]
    assert discover_images(tmp_path, [".png", ".jpg"], recursive=True) == ["B.JPG", "a.png", "sub/c.png"]


def test_discover_missing_directory(tmp_path):
    """Test that a missing input directory fails early."""
    with pytest.raises(FileNotFoundError):
        discover_images(tmp_path / "missing", [".png"])


def test_pixelate_file_replaces_existing_output(tmp_path):
    """Test single-image processing, directory creation and overwrite."""
    source = tmp_path / "in.png"
    _write_image(source)
    target = tmp_path / "out" / "nested" / "in.png"
    target.parent.mkdir(parents=True)
    target.write_bytes(b"stale")

    connector = _StaticConnector({Category.FACE: [Rectangle(0, 0, 32, 32)]})
    asyncio.run(_processor(connector).pixelate_file(source, target))

    result = cv2.imread(str(target))
    assert result.shape == (40, 60, 3)
    cell = result[0:2, 0:2]
    assert (cell == cell[0, 0]).all()
    assert connector.sizes == {"in.png": (60, 40)}


def test_process_directory_mirrors_and_isolates_failures(tmp_path):
    """Test that one failing image does not stop the batch."""
    input_dir = tmp_path / "in"
    output_dir = tmp_path / "out"
    for name in ["a.png", "bad.png", "sub/c.png"]:
        _write_image(input_dir / name)

    connector = _StaticConnector({Category.FACE: [Rectangle(5, 5, 16, 16)]}, failing=["bad.png"])
    report = asyncio.run(_processor(connector).process_directory(input_dir, output_dir, recursive=True))

    assert report.succeeded == ["a.png", "sub/c.png"]
    assert report.failed == [("bad.png", "quota exceeded")]
    assert not report.ok
    assert (output_dir / "a.png").is_file()
    assert (output_dir / "sub" / "c.png").is_file()
    assert not (output_dir / "bad.png").exists()


def test_worker_limit_bounds_concurrency(tmp_path):
    """Test that no more than max_workers images are in flight."""
    input_dir = tmp_path / "in"
    for i in range(6):
        _write_image(input_dir / f"{i}.png")

    state = {"active": 0, "peak": 0}

    class _TrackingExtractor(FeatureExtractor):
        async def _fetch(self, category):
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            await asyncio.sleep(0.01)
            state["active"] -= 1
            return []

    class _TrackingConnector(_StaticConnector):
        def analyse_image(self, image_path, image_size):
            return _TrackingExtractor()

    report = asyncio.run(
        _processor(_TrackingConnector(), max_workers=2).process_directory(input_dir, tmp_path / "out")
    )

    assert len(report.succeeded) == 6
    assert 1 <= state["peak"] <= 2


def test_invalid_worker_count():
    """Test fail-fast on a non-positive worker limit."""
    with pytest.raises(ValueError, match="max_workers"):
        BatchProcessor(Compositor(AppConfig()), _StaticConnector(), max_workers=0)
