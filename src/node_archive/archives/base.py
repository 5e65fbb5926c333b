"""Shared archive behaviour: sizes, path safety and staged writes."""

import os
import stat
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from typing import IO, Any, Callable, Iterator, List, Optional, Tuple

from node_archive.errors import UnsafeEntryError
from node_archive.sources import Source
from node_archive.types import ArchiveFormat, Origin

ProgressCallback = Callable[[str, int], Any]

EXTRACT_CHUNK_SIZE = 64 * 1024


class Archive(ABC):
    """A format-aware view over a Source that can unpack into a directory."""

    format: ArchiveFormat

    def __init__(
        self,
        source: Source,
        origin: Optional[Origin] = None,
        compressed_size: Optional[int] = None,
        uncompressed_size: Optional[int] = None,
    ):
        self.source = source
        self.origin = origin or source.origin
        self.compressed_size = compressed_size
        self.uncompressed_size = uncompressed_size

    @property
    def total_size(self) -> Optional[int]:
        """Best available size for progress reporting."""
        if self.uncompressed_size is not None:
            return self.uncompressed_size
        return self.compressed_size

    @abstractmethod
    def extract(self, destination: Path, progress: Optional[ProgressCallback] = None) -> None:
        """Unpack every entry below ``destination``."""

    def close(self) -> None:
        self.source.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(origin={self.origin}, source={self.source!r})"


def require_source(source: Any) -> None:
    """Reject objects that do not implement the Source protocol."""
    if not isinstance(source, Source):
        raise TypeError(f"{type(source).__name__} is not a readable Source")


def entry_target(root: Path, name: str) -> Path:
    """Map an archive entry name onto a path below ``root``.

    ``root`` must already be resolved. Absolute names, ``..`` components
    and parents that resolve outside ``root`` (through an earlier symlink
    entry) are rejected.
    """
    normalized = name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute() or (len(normalized) > 1 and normalized[1] == ":"):
        raise UnsafeEntryError("absolute path in archive", entry=name)

    parts = [part for part in relative.parts if part not in ("", ".")]
    if ".." in parts:
        raise UnsafeEntryError("path escapes destination", entry=name)

    target = root.joinpath(*parts)
    if parts and not target.parent.resolve().is_relative_to(root):
        raise UnsafeEntryError("path escapes destination through a link", entry=name)
    return target


def file_mode(mode: Optional[int]) -> Optional[int]:
    """Permission bits for an extracted file; the owner keeps read/write."""
    if not mode:
        return None
    return (stat.S_IMODE(mode) & 0o777) | stat.S_IRUSR | stat.S_IWUSR


def dir_mode(mode: Optional[int]) -> Optional[int]:
    if not mode:
        return None
    return (stat.S_IMODE(mode) & 0o777) | stat.S_IRWXU


def remove_existing(target: Path) -> None:
    if target.is_symlink() or target.is_file():
        target.unlink()


@contextmanager
def staged_file(target: Path, mode: Optional[int] = None) -> Iterator[IO[bytes]]:
    """Write a file under a temporary sibling name, renaming it on success.

    A failure while writing removes the temporary file, so ``target`` is
    either absent, its previous content, or complete.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".partial")
    staged = Path(name)
    try:
        with os.fdopen(fd, "wb") as handle:
            yield handle
        if mode is not None:
            os.chmod(staged, mode)
        if target.is_symlink():
            target.unlink()
        os.replace(staged, target)
    except BaseException:
        try:
            staged.unlink()
        except FileNotFoundError:
            pass
        raise


def apply_dir_modes(dir_modes: List[Tuple[Path, int]]) -> None:
    """Set directory permissions deepest-first, after all entries were written."""
    for path, mode in sorted(dir_modes, key=lambda item: len(item[0].parts), reverse=True):
        os.chmod(path, mode)
