"""
Feature extraction with Amazon Rekognition.

Responsibility:
    Translate DetectFaces, DetectLabels and DetectText responses into
    absolute Rectangles. Two sources of responses are supported:

    - RekognitionConnector calls the service through boto3. One client
      is shared by every image of the connector.
    - RekognitionCacheConnector reads responses that were saved as JSON
      next to an image. For an image "photo.jpg" the expected files are:
          photo.jpg-faces.json    (DetectFaces)
          photo.jpg-objects.json  (DetectLabels: "Car" and "Person" labels)
          photo.jpg-text.json     (DetectText)

    Cars and persons share one DetectLabels response, so each response
    is requested at most once per image.

Non-goals:
    - No license plate detection: Rekognition has no such feature, so
      LICENSE_PLATE always yields an empty list.
    - No credential handling. boto3 resolves credentials and region from
      its usual chain (environment, shared config, instance role).
    - No S3 object input. Images are sent as bytes.

Failure behavior:
    - A missing response file raises FileNotFoundError on first access
      of a category that needs it.
    - Malformed JSON raises json.JSONDecodeError.
    - Service errors (botocore ClientError, BotoCoreError) propagate.
    - Images larger than the service's 5 MB byte limit raise ValueError.
"""

import abc
import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import boto3

from pixelizer.extractor import Connector, FeatureExtractor
from pixelizer.geometry import Rectangle
from pixelizer.policy import Category

logger = logging.getLogger(__name__)

# Response kinds, one per Rekognition operation
_FACES = "faces"
_OBJECTS = "objects"
_TEXT = "text"

# Labels in a DetectLabels response that map to our categories
_LABEL_NAMES = {
    Category.CAR: "Car",
    Category.PERSON: "Person",
}

_SUPPORTED_EXTENSIONS = (".jpg", ".jpeg", ".png")

# Hard-coded: Rekognition rejects raw image bytes above this size
_MAX_IMAGE_BYTES = 5 * 1024 * 1024


def relative_box_to_absolute(box: Mapping[str, float], width: int, height: int) -> Rectangle:
    """Translate a relative Rekognition BoundingBox into absolute pixels."""
    return Rectangle(
        x=int(round(box["Left"] * width)),
        y=int(round(box["Top"] * height)),
        width=int(round(box["Width"] * width)),
        height=int(round(box["Height"] * height)),
    )


def relative_polygon_to_absolute(
    polygon: Sequence[Mapping[str, float]],
    width: int,
    height: int,
) -> Rectangle:
    """Translate a relative polygon into its absolute axis-aligned bounds."""
    x1 = int(round(min(p["X"] for p in polygon) * width))
    x2 = int(round(max(p["X"] for p in polygon) * width))
    y1 = int(round(min(p["Y"] for p in polygon) * height))
    y2 = int(round(max(p["Y"] for p in polygon) * height))
    return Rectangle(x=x1, y=y1, width=x2 - x1, height=y2 - y1)


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise FileNotFoundError(
            f"Cached Rekognition response not found.\n"
            f"  Expected: {path}"
        )
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


class _RekognitionExtractor(FeatureExtractor):
    """Shared response caching and translation for Rekognition extractors.

    Subclasses implement _load(kind), a blocking call returning the raw
    response for "faces", "objects" or "text". It runs in a worker thread.
    """

    def __init__(self, image_size: Tuple[int, int]) -> None:
        super().__init__()
        self._width, self._height = image_size
        self._responses: Dict[str, "asyncio.Task[Dict[str, Any]]"] = {}

    @abc.abstractmethod
    def _load(self, kind: str) -> Dict[str, Any]:
        """Return the raw response of one kind. Blocking."""

    async def _response(self, kind: str) -> Dict[str, Any]:
        """Load one response, at most once per extractor."""
        task = self._responses.get(kind)
        if task is None:
            task = asyncio.ensure_future(asyncio.to_thread(self._load, kind))
            self._responses[kind] = task
        return await asyncio.shield(task)

    def cancel_pending(self) -> List[asyncio.Future]:
        cancelled = super().cancel_pending()
        for kind, task in list(self._responses.items()):
            if not task.done():
                task.cancel()
                cancelled.append(task)
                del self._responses[kind]
        return cancelled

    async def _fetch(self, category: Category) -> List[Rectangle]:
        if category == Category.FACE:
            response = await self._response(_FACES)
            return [
                relative_box_to_absolute(face["BoundingBox"], self._width, self._height)
                for face in response.get("FaceDetails", [])
            ]

        if category in _LABEL_NAMES:
            response = await self._response(_OBJECTS)
            name = _LABEL_NAMES[category]
            return [
                relative_box_to_absolute(instance["BoundingBox"], self._width, self._height)
                for label in response.get("Labels", [])
                if label.get("Name") == name
                for instance in label.get("Instances", [])
            ]

        if category == Category.TEXT:
            response = await self._response(_TEXT)
            return [
                relative_polygon_to_absolute(
                    detection["Geometry"]["Polygon"], self._width, self._height
                )
                for detection in response.get("TextDetections", [])
            ]

        if category == Category.LICENSE_PLATE:
            return []

        raise ValueError(f"Unsupported category: {category!r}")


class RekognitionExtractor(_RekognitionExtractor):
    """Extractor calling Amazon Rekognition for one image.

    Usage:
        client = boto3.client("rekognition", region_name="eu-west-1")
        extractor = RekognitionExtractor("photo.jpg", (1920, 1080), client)
        faces = await extractor.extract_faces()
    """

    def __init__(
        self,
        image_path: Union[str, Path],
        image_size: Tuple[int, int],
        client: Any,
    ) -> None:
        super().__init__(image_size)
        self._image_path = Path(image_path)
        self._client = client
        self._image_bytes: Optional[bytes] = None
        self._image_lock = threading.Lock()

    def _image(self) -> Dict[str, bytes]:
        """Read the image once; responses are loaded from several threads."""
        with self._image_lock:
            if self._image_bytes is None:
                data = self._image_path.read_bytes()
                if len(data) > _MAX_IMAGE_BYTES:
                    raise ValueError(
                        f"Image too large for Rekognition: {self._image_path} "
                        f"is {len(data)} bytes, limit is {_MAX_IMAGE_BYTES}."
                    )
                self._image_bytes = data
        return {"Bytes": self._image_bytes}

    def _load(self, kind: str) -> Dict[str, Any]:
        image = self._image()
        logger.debug("Calling Rekognition (%s) for %s", kind, self._image_path)
        if kind == _FACES:
            return self._client.detect_faces(Image=image)
        if kind == _OBJECTS:
            return self._client.detect_labels(Image=image)
        if kind == _TEXT:
            return self._client.detect_text(Image=image)
        raise ValueError(f"Unknown response kind: {kind!r}")


class RekognitionCacheExtractor(_RekognitionExtractor):
    """Extractor reading cached Rekognition JSON responses for one image."""

    _SUFFIXES = {
        _FACES: "-faces.json",
        _OBJECTS: "-objects.json",
        _TEXT: "-text.json",
    }

    def __init__(self, image_path: Union[str, Path], image_size: Tuple[int, int]) -> None:
        super().__init__(image_size)
        self._image_path = Path(image_path)

    def _load(self, kind: str) -> Dict[str, Any]:
        path = self._image_path.with_name(self._image_path.name + self._SUFFIXES[kind])
        logger.debug("Reading cached response: %s", path)
        return _read_json(path)


class RekognitionConnector(Connector):
    """Connector that analyses images with one shared Rekognition client.

    Args:
        client: A boto3 Rekognition client. If None, one is created.
        region_name: AWS region for the created client. If None, boto3's
                     configured default region is used.
    """

    def __init__(self, client: Any = None, region_name: Optional[str] = None) -> None:
        if client is None:
            client = boto3.client("rekognition", region_name=region_name)
            logger.info("Rekognition client created (region=%s)", client.meta.region_name)
        self._client = client

    @property
    def supported_extensions(self) -> Sequence[str]:
        return _SUPPORTED_EXTENSIONS

    def analyse_image(
        self,
        image_path: Union[str, Path],
        image_size: Tuple[int, int],
    ) -> FeatureExtractor:
        return RekognitionExtractor(image_path, image_size, self._client)


class RekognitionCacheConnector(Connector):
    """Connector that builds a RekognitionCacheExtractor per image."""

    @property
    def supported_extensions(self) -> Sequence[str]:
        return _SUPPORTED_EXTENSIONS

    def analyse_image(
        self,
        image_path: Union[str, Path],
        image_size: Tuple[int, int],
    ) -> FeatureExtractor:
        return RekognitionCacheExtractor(image_path, image_size)
