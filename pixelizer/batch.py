"""
File and directory processing for the pixelizer.

Responsibility:
    Find image files in a directory, run each through decode → extractor
    → compositor → encode, and write the result to a mirrored path under
    an output directory. Images are processed concurrently up to a fixed
    limit, which also bounds concurrent calls to the vision backend.

Non-goals:
    - No redaction logic (see compositor.py).
    - No retries. A failing image is logged, recorded in the report and
      skipped; the remaining images are still processed.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Tuple, Union

from pixelizer.codec import decode_image
from pixelizer.compositor import Compositor
from pixelizer.extractor import Connector
from pixelizer.orientation import Origin

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class BatchReport:
    """Outcome of a batch run.

    Attributes:
        succeeded: Relative paths written successfully.
        failed: (relative path, error message) for every image that failed.
    """

    succeeded: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def discover_images(
    root: PathLike,
    extensions: Sequence[str],
    recursive: bool = False,
) -> List[str]:
    """List image files under root as sorted relative paths.

    Hidden files (names starting with '.') are skipped, and so are hidden
    directories when recursing. Extension matching ignores case.

    Raises:
        FileNotFoundError: If root is not a directory.
    """
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(
            f"Input directory not found: '{root}'. "
            f"Provide a valid directory path."
        )

    allowed = {e.lower() for e in extensions}
    found = []

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        for name in filenames:
            if name.startswith("."):
                continue
            if Path(name).suffix.lower() not in allowed:
                continue
            found.append((Path(dirpath) / name).relative_to(root).as_posix())
        if not recursive:
            break

    return sorted(found)


class BatchProcessor:
    """Runs the compositor over files using one connector.

    Usage:
        processor = BatchProcessor(compositor, connector)
        await processor.pixelate_file("in/a.jpg", "out/a.jpg")
        report = await processor.process_directory("in/", "out/")
    """

    def __init__(
        self,
        compositor: Compositor,
        connector: Connector,
        max_workers: int = 4,
    ) -> None:
        if max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {max_workers}.")
        self._compositor = compositor
        self._connector = connector
        self._max_workers = max_workers

    async def pixelate_bytes(self, input_path: PathLike) -> bytes:
        """Redact one image file and return the encoded result."""
        bitmap, origin = await asyncio.to_thread(decode_image, input_path)

        # The extractor sees the image as displayed, so swap dims for 90° origins.
        height, width = bitmap.shape[:2]
        if origin in (Origin.RIGHT_TOP, Origin.LEFT_BOTTOM):
            width, height = height, width

        extractor = self._connector.analyse_image(input_path, (width, height))
        return await self._compositor.pixelate(bitmap, origin, extractor, str(input_path))

    async def pixelate_file(self, input_path: PathLike, output_path: PathLike) -> None:
        """Redact one image file and write it to output_path.

        An existing file at output_path is replaced; missing parent
        directories are created.
        """
        data = await self.pixelate_bytes(input_path)

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if output_path.exists():
            output_path.unlink()
        await asyncio.to_thread(output_path.write_bytes, data)

        logger.info("Pixelated %s -> %s", input_path, output_path)

    async def process_directory(
        self,
        input_dir: PathLike,
        output_dir: PathLike,
        recursive: bool = False,
    ) -> BatchReport:
        """Redact every supported image under input_dir into output_dir.

        Relative paths are mirrored. Failures are isolated per image.
        """
        input_dir = Path(input_dir)
        output_dir = Path(output_dir)
        files = discover_images(input_dir, self._connector.supported_extensions, recursive)
        logger.info("Found %d images in directory: %s", len(files), input_dir)

        report = BatchReport()
        semaphore = asyncio.Semaphore(self._max_workers)

        async def run(relative: str) -> None:
            async with semaphore:
                try:
                    await self.pixelate_file(input_dir / relative, output_dir / relative)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.exception("Failed to pixelate %s: %s", relative, e)
                    report.failed.append((relative, str(e)))
                else:
                    report.succeeded.append(relative)

        await asyncio.gather(*(run(f) for f in files))

        report.succeeded.sort()
        report.failed.sort()
        logger.info(
            "Batch finished: %d succeeded, %d failed.",
            len(report.succeeded), len(report.failed),
        )
        return report
