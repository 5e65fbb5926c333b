"""Archive cache layout and maintenance."""

import os
import tempfile
import time
from pathlib import Path
from typing import IO, List, Tuple

from node_archive.logging import get_logger
from node_archive.platforms import PlatformTag, distro_file_name
from node_archive.types import Version

logger = get_logger(__name__)

PARTIAL_SUFFIX = ".partial"


def canonical_path(cache_dir: Path, version: Version, platform_tag: PlatformTag) -> Path:
    """Path that, when present, holds a complete archive for (version, platform)."""
    return Path(cache_dir) / distro_file_name(version, platform_tag)


def is_partial(path: Path) -> bool:
    return Path(path).name.endswith(PARTIAL_SUFFIX)


def open_partial(canonical: Path) -> Tuple[Path, IO[bytes]]:
    """Create a uniquely named in-flight file next to ``canonical``."""
    fd, name = tempfile.mkstemp(
        dir=canonical.parent, prefix=f"{canonical.name}.", suffix=PARTIAL_SUFFIX
    )
    return Path(name), os.fdopen(fd, "wb")


def commit(partial: Path, canonical: Path) -> Path:
    """Atomically promote a fully validated download to its canonical name."""
    os.replace(partial, canonical)
    logger.debug("archive_committed", partial=str(partial), path=str(canonical))
    return canonical


def discard(partial: Path) -> None:
    """Remove an in-flight file; a missing file is fine."""
    try:
        partial.unlink()
    except FileNotFoundError:
        return
    logger.debug("partial_discarded", path=str(partial))


def list_entries(cache_dir: Path) -> List[Path]:
    """List committed archives, ignoring in-flight downloads."""
    cache_dir = Path(cache_dir)
    if not cache_dir.is_dir():
        return []
    return sorted(p for p in cache_dir.iterdir() if p.is_file() and not is_partial(p))


def sweep_partials(cache_dir: Path, older_than: float = 24 * 60 * 60) -> List[Path]:
    """Remove orphaned in-flight downloads older than ``older_than`` seconds.

    Never called by the fetch path; a live download younger than the
    threshold is left alone.
    """
    cache_dir = Path(cache_dir)
    if not cache_dir.is_dir():
        return []

    cutoff = time.time() - older_than
    removed = []
    for path in cache_dir.iterdir():
        if not (path.is_file() and is_partial(path)):
            continue
        try:
            if path.stat().st_mtime > cutoff:
                continue
            path.unlink()
        except FileNotFoundError:
            continue
        removed.append(path)
        logger.info("partial_swept", path=str(path))

    return removed
