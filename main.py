"""
Pixelizer CLI Entrypoint.

Responsibility:
    Parse command-line arguments, configure the application, wire together
    the compositor, the detection connector and the batch processor, and
    redact a single image or a whole directory.

Usage:
    python main.py --source photo.jpg --output out/photo.jpg
    python main.py --source images/ --output redacted/ --recursive
    python main.py --source images/ --face-processing pixelate_persons --outline
    python main.py --config my_config.yaml --report out/redactions.json
    python main.py --source photo.jpg --backend rekognition-cache

Detections come from Amazon Rekognition (credentials and region through
the usual AWS configuration) or, with --backend rekognition-cache, from
responses saved next to each image (photo.jpg-faces.json,
photo.jpg-objects.json, photo.jpg-text.json).

This module is the executable entry point. It should not be imported
by other modules.
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

from botocore.exceptions import BotoCoreError

# Configure logging before importing local modules
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")

from pixelizer.batch import BatchProcessor
from pixelizer.compositor import Compositor
from pixelizer.config import AppConfig, apply_overrides, load_config
from pixelizer.extractor import Connector
from pixelizer.policy import CarProcessing, FaceProcessing
from pixelizer.redaction_log import LoggingRedactionLogger, RecordingRedactionLogger
from pixelizer.rekognition import RekognitionCacheConnector, RekognitionConnector


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Image Pixelizer — redact faces, plates and text on cars",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--source",
        type=str,
        required=True,
        help="Input image file or directory of images.",
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Output file (single image) or directory (batch). Overrides config.",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML configuration file.",
    )
    parser.add_argument(
        "--face-processing",
        type=str,
        choices=[p.value for p in FaceProcessing],
        help="Redaction policy for people. Overrides config.",
    )
    parser.add_argument(
        "--car-processing",
        type=str,
        choices=[p.value for p in CarProcessing],
        help="Redaction policy for vehicles. Overrides config.",
    )
    parser.add_argument(
        "--merge-factor",
        type=float,
        help="Text merge distance as a fraction of image width. Overrides config.",
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["jpeg", "png", "webp"],
        help="Output image format. Overrides config.",
    )
    parser.add_argument(
        "--quality",
        type=int,
        help="Output quality (0 - 100). Overrides config.",
    )
    parser.add_argument(
        "--outline",
        action="store_true",
        default=None,
        help="Draw an outline around every redacted region.",
    )
    parser.add_argument(
        "--recursive",
        action="store_true",
        default=None,
        help="Descend into sub-directories when --source is a directory.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Maximum number of images processed concurrently. Overrides config.",
    )
    parser.add_argument(
        "--backend",
        type=str,
        choices=["rekognition", "rekognition-cache"],
        help="Detection backend: live Amazon Rekognition or cached responses. Overrides config.",
    )
    parser.add_argument(
        "--region",
        type=str,
        help="AWS region for the rekognition backend. Overrides config.",
    )
    parser.add_argument(
        "--report",
        type=str,
        help="Write a report of redacted regions (.json or .csv).",
    )

    return parser.parse_args()


def build_connector(config: AppConfig) -> Connector:
    """Create the detection backend selected in the configuration."""
    if config.backend.name == "rekognition-cache":
        logger.info("Using cached Rekognition responses.")
        return RekognitionCacheConnector()
    return RekognitionConnector(region_name=config.backend.region)


async def run(args: argparse.Namespace, processor: BatchProcessor, output: Path, recursive: bool) -> bool:
    """Process the source. Returns True if every image succeeded."""
    source = Path(args.source)

    if source.is_dir():
        report = await processor.process_directory(source, output, recursive=recursive)
        return report.ok

    # An output without a file extension is treated as a directory
    target = output / source.name if output.is_dir() or not output.suffix else output
    await processor.pixelate_file(source, target)
    return True


def main() -> int:
    """Main execution entry."""
    args = parse_args()

    # 1. Load Configuration (CLI args > ENV > YAML > Defaults)
    try:
        config = load_config(args.config)
        config = apply_overrides(config, {
            "policy": {
                "face_processing": FaceProcessing(args.face_processing) if args.face_processing else None,
                "car_processing": CarProcessing(args.car_processing) if args.car_processing else None,
                "merge_factor": args.merge_factor,
            },
            "output": {
                "format": args.format,
                "quality": args.quality,
                "save_path": args.output,
            },
            "outline": {"enabled": args.outline},
            "batch": {"recursive": args.recursive, "max_workers": args.workers},
            "backend": {"name": args.backend, "region": args.region},
        })
        logger.info("Configuration active for this run.")

    except Exception as e:
        logger.error("Configuration error: %s", e)
        return 1

    # 2. Initialize Components
    try:
        source = Path(args.source)
        if not source.exists():
            raise FileNotFoundError(
                f"Input source not found: '{source}'. "
                f"Provide a valid file or directory path."
            )

        recorder = RecordingRedactionLogger() if args.report else None
        compositor = Compositor(config, redaction_logger=recorder or LoggingRedactionLogger())
        processor = BatchProcessor(
            compositor,
            build_connector(config),
            max_workers=config.batch.max_workers,
        )

    except (FileNotFoundError, ValueError, BotoCoreError) as e:
        logger.error("Initialization failed: %s", e)
        return 1

    # 3. Processing
    start_time = time.perf_counter()
    try:
        ok = asyncio.run(run(args, processor, Path(config.output.save_path), config.batch.recursive))
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        return 1
    except Exception as e:
        logger.exception("Runtime error during processing: %s", e)
        return 1
    finally:
        elapsed = time.perf_counter() - start_time
        logger.info("Processing finished in %.2fs.", elapsed)

    # 4. Report
    if recorder is not None:
        if args.report.lower().endswith(".csv"):
            recorder.save_csv(args.report)
        else:
            recorder.save_json(args.report)

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
