"""Byte sources that archives read from.

A source always supports sequential ``read``. Positioning is optional:
``seekable()`` reports it, and archive formats that need it check at
construction time rather than failing halfway through extraction.
"""

import os
from pathlib import Path
from typing import Iterable, Iterator, Optional, Protocol, runtime_checkable

from node_archive.errors import CacheEntryNotFoundError, SeekNotSupportedError
from node_archive.logging import get_logger
from node_archive.types import Origin

logger = get_logger(__name__)


@runtime_checkable
class Source(Protocol):
    """Sequential (and optionally random-access) archive bytes."""

    origin: Origin

    def read(self, size: int = -1) -> bytes: ...

    def seekable(self) -> bool: ...

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int: ...

    def tell(self) -> int: ...

    def close(self) -> None: ...


class SourceBase:
    """Context-manager plumbing shared by concrete sources."""

    origin: Origin = Origin.LOCAL

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class CachedSource(SourceBase):
    """An archive file already present in the local cache."""

    def __init__(self, path: Path, origin: Origin = Origin.LOCAL):
        self.path = Path(path)
        self.origin = origin
        try:
            self._file = open(self.path, "rb")
        except FileNotFoundError as e:
            raise CacheEntryNotFoundError(self.path) from e
        self.size = os.fstat(self._file.fileno()).st_size

    def read(self, size: int = -1) -> bytes:
        return self._file.read(size)

    def seekable(self) -> bool:
        return True

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        return self._file.tell()

    def close(self) -> None:
        self._file.close()

    @property
    def closed(self) -> bool:
        return self._file.closed

    def __repr__(self) -> str:
        return f"CachedSource({str(self.path)!r})"


class StreamSource(SourceBase):
    """Sequential, non-seekable reader over a one-shot sequence of chunks."""

    def __init__(
        self,
        chunks: Iterable[bytes],
        origin: Origin = Origin.REMOTE,
        size: Optional[int] = None,
    ):
        self.origin = origin
        self.size = size
        self._chunks: Iterator[bytes] = iter(chunks)
        self._buffer = bytearray()
        self._position = 0
        self._exhausted = False
        self.closed = False

    def _fill(self, size: int) -> None:
        while not self._exhausted and (size < 0 or len(self._buffer) < size):
            try:
                self._buffer.extend(next(self._chunks))
            except StopIteration:
                self._exhausted = True

    def read(self, size: int = -1) -> bytes:
        if size is None:
            size = -1
        self._fill(size)
        if size < 0:
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
        self._position += len(data)
        return data

    def seekable(self) -> bool:
        return False

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        raise SeekNotSupportedError(self.origin)

    def tell(self) -> int:
        return self._position

    def close(self) -> None:
        close = getattr(self._chunks, "close", None)
        if close is not None:
            close()
        self._buffer.clear()
        self.closed = True


def source_size(source: Source) -> Optional[int]:
    """Total length of a source when it is known without consuming it."""
    size = getattr(source, "size", None)
    if size is not None or not source.seekable():
        return size

    position = source.tell()
    try:
        return source.seek(0, os.SEEK_END)
    finally:
        source.seek(position)
