"""Zip archives. The central directory sits at the end, so sources must seek."""
import stat
import zipfile
import zlib
from pathlib import Path
from typing import List, Optional, Tuple

from node_archive.archives.base import (
    EXTRACT_CHUNK_SIZE,
    Archive,
    ProgressCallback,
    apply_dir_modes,
    dir_mode,
    entry_target,
    file_mode,
    require_source,
    staged_file,
)
from node_archive.errors import SeekNotSupportedError, ZipFormatError
from node_archive.logging import get_logger
from node_archive.sources import Source, source_size
from node_archive.types import ArchiveFormat, Origin

logger = get_logger(__name__)

UNIX_CREATE_SYSTEM = 3
ZIP_ERRORS = (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError, NotImplementedError)


def unix_mode(info: zipfile.ZipInfo) -> Optional[int]:
    """Unix permission bits stored in the external attributes, if any."""
    if info.create_system != UNIX_CREATE_SYSTEM:
        return None
    return stat.S_IMODE(info.external_attr >> 16) or None


class Zip(Archive):
    """A zip archive over a seekable source."""

    format = ArchiveFormat.ZIP

    def __init__(self, source: Source, origin: Optional[Origin] = None):
        require_source(source)
        if not source.seekable():
            raise SeekNotSupportedError(source.origin)

        try:
            self._zip = zipfile.ZipFile(source)
        except ZIP_ERRORS as e:
            raise ZipFormatError(f"invalid zip archive: {e}") from e

        super().__init__(
            source,
            origin,
            compressed_size=source_size(source),
            uncompressed_size=sum(info.file_size for info in self._zip.infolist()),
        )

    def names(self) -> List[str]:
        return self._zip.namelist()

    def extract(self, destination: Path, progress: Optional[ProgressCallback] = None) -> None:
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        root = destination.resolve()

        logger.debug("zip_extract_started", destination=str(root), origin=str(self.origin))
        dir_modes: List[Tuple[Path, int]] = []

        for info in self._zip.infolist():
            target = entry_target(root, info.filename)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                mode = dir_mode(unix_mode(info))
                if mode is not None:
                    dir_modes.append((target, mode))
                continue

            try:
                with staged_file(target, file_mode(unix_mode(info))) as handle, \
                        self._zip.open(info) as entry:
                    while chunk := entry.read(EXTRACT_CHUNK_SIZE):
                        handle.write(chunk)
                        if progress is not None:
                            progress(info.filename, len(chunk))
            except ZIP_ERRORS as e:
                raise ZipFormatError(f"corrupt zip entry: {e}", entry=info.filename) from e

        apply_dir_modes(dir_modes)
        logger.info("zip_extracted", destination=str(root), entries=len(self._zip.infolist()))

    def close(self) -> None:
        self._zip.close()
        super().close()
