"""
Collect the image files a generator run left in its output directory.
"""

import stat
from dataclasses import dataclass
from pathlib import Path
from typing import List

from imagegen.utils.logging import worker_logger as logger

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp", ".ico")


@dataclass(frozen=True)
class HarvestedImage:
    filename: str
    rel_path: str
    format: str


def harvest_images(output_dir: Path, data_root: Path) -> List[HarvestedImage]:
    """
    Scan ``output_dir`` (not recursively) for recognized image files.

    Results are sorted by filename and carry POSIX paths relative to
    ``data_root``. An entry that cannot be inspected is logged and skipped;
    an output directory that cannot be listed raises OSError.
    """
    output_dir = Path(output_dir)
    data_root = Path(data_root).resolve()
    images = []

    for entry in sorted(output_dir.iterdir(), key=lambda p: p.name):
        suffix = entry.suffix.lower()
        if suffix not in IMAGE_EXTENSIONS:
            continue
        try:
            mode = entry.stat().st_mode
            if stat.S_ISDIR(mode):
                continue
            if not stat.S_ISREG(mode):
                logger.warning("Skipping non-regular output entry", path=str(entry))
                continue
            with entry.open("rb"):
                pass
            rel_path = entry.resolve().relative_to(data_root).as_posix()
        except (OSError, ValueError) as e:
            logger.warning("Skipping unreadable output file", path=str(entry), error=str(e))
            continue

        images.append(HarvestedImage(filename=entry.name, rel_path=rel_path, format=suffix[1:]))

    logger.info("Harvested images", output_dir=str(output_dir), count=len(images))
    return images
