"""Archive formats behind one extraction interface."""
from typing import Optional

from node_archive.archives.base import Archive, ProgressCallback
from node_archive.archives.tarball import Tarball
from node_archive.archives.zip import Zip
from node_archive.sources import Source
from node_archive.types import ArchiveFormat, Origin

ARCHIVE_TYPES = {
    ArchiveFormat.TARBALL: Tarball,
    ArchiveFormat.ZIP: Zip,
}


def load_archive(
    source: Source, archive_format: ArchiveFormat, origin: Optional[Origin] = None
) -> Archive:
    """Wrap ``source`` in the archive type for ``archive_format``."""
    return ARCHIVE_TYPES[archive_format](source, origin=origin)


__all__ = [
    "Archive",
    "ProgressCallback",
    "Tarball",
    "Zip",
    "load_archive",
]
