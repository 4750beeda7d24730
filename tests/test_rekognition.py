"""
Tests for the rekognition module.
"""

import asyncio
import json
from types import SimpleNamespace

import pytest

from pixelizer import rekognition
from pixelizer.geometry import Rectangle
from pixelizer.policy import Category
from pixelizer.rekognition import (
    RekognitionCacheConnector,
    RekognitionCacheExtractor,
    RekognitionConnector,
    RekognitionExtractor,
    relative_box_to_absolute,
    relative_polygon_to_absolute,
)

FACES = {
    "FaceDetails": [
        {"BoundingBox": {"Left": 0.1, "Top": 0.2, "Width": 0.25, "Height": 0.5}},
    ]
}

OBJECTS = {
    "Labels": [
        {"Name": "Tree", "Instances": []},
        {
            "Name": "Car",
            "Instances": [
                {"BoundingBox": {"Left": 0.0, "Top": 0.0, "Width": 0.5, "Height": 0.5}},
                {"BoundingBox": {"Left": 0.5, "Top": 0.5, "Width": 0.5, "Height": 0.5}},
            ],
        },
        {
            "Name": "Person",
            "Instances": [
                {"BoundingBox": {"Left": 0.25, "Top": 0.0, "Width": 0.25, "Height": 1.0}},
            ],
        },
    ]
}

TEXT = {
    "TextDetections": [
        {
            "Geometry": {
                "Polygon": [
                    {"X": 0.1, "Y": 0.1},
                    {"X": 0.3, "Y": 0.12},
                    {"X": 0.3, "Y": 0.2},
                    {"X": 0.1, "Y": 0.2},
                ]
            }
        }
    ]
}


def _write_responses(image_path, faces=FACES, objects=OBJECTS, text=TEXT):
    image_path.write_bytes(b"")
    for suffix, payload in (("-faces.json", faces), ("-objects.json", objects), ("-text.json", text)):
        if payload is not None:
            (image_path.parent / (image_path.name + suffix)).write_text(json.dumps(payload))


def test_relative_box_to_absolute():
    """Test scaling of a relative bounding box."""
    box = {"Left": 0.1, "Top": 0.2, "Width": 0.25, "Height": 0.5}
    assert relative_box_to_absolute(box, 200, 100) == Rectangle(20, 20, 50, 50)


def test_relative_polygon_to_absolute():
    """Test the bounding rectangle of a relative polygon."""
    poly = TEXT["TextDetections"][0]["Geometry"]["Polygon"]
    assert relative_polygon_to_absolute(poly, 200, 100) == Rectangle(20, 10, 40, 10)


def test_extracts_all_categories(tmp_path):
    """Test translation of every category from cached responses."""
    image = tmp_path / "street.jpg"
    _write_responses(image)
    extractor = RekognitionCacheExtractor(image, (200, 100))

    async def scenario():
        return {
            c: await extractor.extract(c)
            for c in Category
        }

    result = asyncio.run(scenario())

    assert result[Category.FACE] == [Rectangle(20, 20, 50, 50)]
    assert result[Category.CAR] == [Rectangle(0, 0, 100, 50), Rectangle(100, 50, 100, 50)]
    assert result[Category.PERSON] == [Rectangle(50, 0, 50, 100)]
    assert result[Category.TEXT] == [Rectangle(20, 10, 40, 10)]
    assert result[Category.LICENSE_PLATE] == []


def test_objects_file_read_once(tmp_path, monkeypatch):
    """Test that cars and persons share one read of the objects response."""
    image = tmp_path / "street.jpg"
    _write_responses(image)
    extractor = RekognitionCacheExtractor(image, (200, 100))

    reads = []
    original = rekognition._read_json

    def counting_read(path):
        reads.append(path.name)
        return original(path)

    monkeypatch.setattr(rekognition, "_read_json", counting_read)

    async def scenario():
        await asyncio.gather(extractor.extract_cars(), extractor.extract_persons())

    asyncio.run(scenario())
    assert reads == ["street.jpg-objects.json"]


def test_missing_response_raises(tmp_path):
    """Test that a missing cache file is a fetch failure."""
    image = tmp_path / "street.jpg"
    _write_responses(image, text=None)
    extractor = RekognitionCacheExtractor(image, (200, 100))

    async def scenario():
        await extractor.extract_text()

    with pytest.raises(FileNotFoundError, match="street.jpg-text.json"):
        asyncio.run(scenario())


def test_connector(tmp_path):
    """Test the connector's extensions and extractor factory."""
    connector = RekognitionCacheConnector()
    assert ".jpg" in connector.supported_extensions

    extractor = connector.analyse_image(tmp_path / "a.jpg", (10, 10))
    assert isinstance(extractor, RekognitionCacheExtractor)


class _FakeRekognitionClient:
    """Stands in for a boto3 Rekognition client."""

    def __init__(self, fail_text=False):
        self.meta = SimpleNamespace(region_name="eu-west-1")
        self.calls = []
        self.images = []
        self._fail_text = fail_text

    def detect_faces(self, Image):
        self.calls.append("detect_faces")
        self.images.append(Image)
        return FACES

    def detect_labels(self, Image):
        self.calls.append("detect_labels")
        self.images.append(Image)
        return OBJECTS

    def detect_text(self, Image):
        self.calls.append("detect_text")
        self.images.append(Image)
        if self._fail_text:
            raise RuntimeError("ThrottlingException")
        return TEXT


def test_live_extractor_calls_each_operation_once(tmp_path):
    """Test that the live extractor sends the image bytes and translates responses."""
    image = tmp_path / "street.jpg"
    image.write_bytes(b"jpeg-bytes")
    client = _FakeRekognitionClient()
    extractor = RekognitionExtractor(image, (200, 100), client)

    async def scenario():
        results = await asyncio.gather(*(extractor.extract(c) for c in Category))
        return dict(zip(Category, results))

    result = asyncio.run(scenario())

    assert result[Category.FACE] == [Rectangle(20, 20, 50, 50)]
    assert result[Category.CAR] == [Rectangle(0, 0, 100, 50), Rectangle(100, 50, 100, 50)]
    assert result[Category.PERSON] == [Rectangle(50, 0, 50, 100)]
    assert result[Category.TEXT] == [Rectangle(20, 10, 40, 10)]
    assert result[Category.LICENSE_PLATE] == []
    assert sorted(client.calls) == ["detect_faces", "detect_labels", "detect_text"]
    assert all(i == {"Bytes": b"jpeg-bytes"} for i in client.images)


def test_live_extractor_propagates_service_errors(tmp_path):
    """Test that a failing service call is a fetch failure."""
    image = tmp_path / "street.jpg"
    image.write_bytes(b"jpeg-bytes")
    extractor = RekognitionExtractor(image, (200, 100), _FakeRekognitionClient(fail_text=True))

    with pytest.raises(RuntimeError, match="Throttling"):
        asyncio.run(extractor.extract_text())


def test_live_extractor_rejects_oversized_images(tmp_path, monkeypatch):
    """Test that images above the byte limit are refused before any call."""
    image = tmp_path / "huge.jpg"
    image.write_bytes(b"x" * 64)
    monkeypatch.setattr(rekognition, "_MAX_IMAGE_BYTES", 32)
    client = _FakeRekognitionClient()
    extractor = RekognitionExtractor(image, (200, 100), client)

    with pytest.raises(ValueError, match="too large"):
        asyncio.run(extractor.extract_faces())
    assert client.calls == []


def test_live_connector_shares_one_client(tmp_path, monkeypatch):
    """Test that the connector creates one boto3 client for all images."""
    created = []

    def fake_client(service, region_name=None):
        created.append((service, region_name))
        return _FakeRekognitionClient()

    monkeypatch.setattr(rekognition.boto3, "client", fake_client)
    connector = RekognitionConnector(region_name="eu-west-1")

    first = connector.analyse_image(tmp_path / "a.jpg", (10, 10))
    second = connector.analyse_image(tmp_path / "b.jpg", (10, 10))

    assert created == [("rekognition", "eu-west-1")]
    assert isinstance(first, RekognitionExtractor)
    assert first._client is second._client
    assert ".png" in connector.supported_extensions
