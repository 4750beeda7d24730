"""
Pixelizer — redact faces, persons, cars, plates and text on cars in images.

Public API:
    - Compositor: applies a redaction policy to a decoded image.
    - BatchProcessor: runs the compositor over files and directories.
    - FeatureExtractor / Connector: the detection backend interface.
    - Rectangle, clusterize, is_inside: the geometry the policy is built on.

Usage:
    from pixelizer import BatchProcessor, Compositor
    from pixelizer.rekognition import RekognitionCacheConnector

    processor = BatchProcessor(Compositor(), RekognitionCacheConnector())
    await processor.pixelate_file("in.jpg", "out.jpg")
"""

from pixelizer.batch import BatchProcessor, BatchReport
from pixelizer.clusterizer import clusterize
from pixelizer.compositor import Compositor
from pixelizer.containment import is_inside
from pixelizer.extractor import Connector, FeatureExtractor, StaticFeatureExtractor
from pixelizer.geometry import Rectangle
from pixelizer.orientation import Origin
from pixelizer.policy import CarProcessing, Category, FaceProcessing

__all__ = [
    "BatchProcessor",
    "BatchReport",
    "CarProcessing",
    "Category",
    "Compositor",
    "Connector",
    "FaceProcessing",
    "FeatureExtractor",
    "Origin",
    "Rectangle",
    "StaticFeatureExtractor",
    "clusterize",
    "is_inside",
]
