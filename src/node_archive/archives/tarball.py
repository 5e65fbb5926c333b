"""Gzip-compressed tarballs, read in a single sequential pass."""
import os
import struct
import tarfile
import zlib
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from node_archive.archives.base import (
    EXTRACT_CHUNK_SIZE,
    Archive,
    ProgressCallback,
    apply_dir_modes,
    dir_mode,
    entry_target,
    file_mode,
    remove_existing,
    require_source,
    staged_file,
)
from node_archive.errors import GzipFormatError, TarFormatError, TarHeaderError
from node_archive.logging import get_logger
from node_archive.sources import Source, source_size
from node_archive.types import ArchiveFormat, Origin

logger = get_logger(__name__)

BLOCKSIZE = tarfile.BLOCKSIZE
ENCODING = "utf-8"
GZIP_WBITS = 16 + zlib.MAX_WBITS
GZIP_MIN_SIZE = 18
PAX_TYPES = (tarfile.XHDTYPE, tarfile.XGLTYPE, tarfile.SOLARIS_XHDTYPE)
LONG_NAME_TYPES = (tarfile.GNUTYPE_LONGNAME, tarfile.GNUTYPE_LONGLINK)


class GzipReader:
    """Decompress a gzip stream from a Source on demand.

    Concatenated members are decoded in sequence; trailing NUL padding after
    the last member is ignored. Running out of input inside a member is an
    error.
    """

    def __init__(self, source: Source, chunk_size: int = EXTRACT_CHUNK_SIZE):
        self._source = source
        self._chunk_size = chunk_size
        self._decompressor = zlib.decompressobj(GZIP_WBITS)
        self._buffer = bytearray()
        self._eof = False

    def _feed(self, data: bytes) -> None:
        while data:
            if self._decompressor.eof:
                if not data.strip(b"\0"):
                    return
                self._decompressor = zlib.decompressobj(GZIP_WBITS)
            try:
                self._buffer.extend(self._decompressor.decompress(data))
            except zlib.error as e:
                raise GzipFormatError(f"corrupt gzip stream: {e}") from e
            data = self._decompressor.unused_data if self._decompressor.eof else b""

    def _fill(self, size: int) -> None:
        while len(self._buffer) < size and not self._eof:
            data = self._source.read(self._chunk_size)
            if data:
                self._feed(data)
                continue
            if not self._decompressor.eof:
                raise GzipFormatError("gzip stream ended before the end-of-stream marker")
            self._eof = True

    def read(self, size: int) -> bytes:
        self._fill(size)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data


def parse_pax_records(data: bytes) -> Dict[str, str]:
    """Parse ``"<length> <key>=<value>\\n"`` records of a pax header."""
    records = {}
    pos = 0
    while pos < len(data):
        if not data[pos:].strip(b"\0"):
            break
        space = data.find(b" ", pos)
        if space == -1:
            raise TarHeaderError("malformed pax record")
        try:
            length = int(data[pos:space])
        except ValueError as e:
            raise TarHeaderError("malformed pax record length") from e
        end = pos + length
        if length <= 0 or end > len(data) or data[end - 1:end] != b"\n":
            raise TarHeaderError("malformed pax record length")
        key, sep, value = data[space + 1:end - 1].partition(b"=")
        if not sep:
            raise TarHeaderError("malformed pax record")
        records[key.decode(ENCODING, "surrogateescape")] = value.decode(ENCODING, "surrogateescape")
        pos = end
    return records


def has_body(info: tarfile.TarInfo) -> bool:
    return info.isreg() or info.type not in tarfile.SUPPORTED_TYPES


class TarStream:
    """Iterate tar members from a decompressed byte stream.

    Iteration yields each member's ``TarInfo``; ``body()`` streams the data of
    the current member. Unread data is skipped when iteration resumes.
    """

    def __init__(self, reader: GzipReader):
        self._reader = reader
        self._remaining = 0
        self._padding = 0
        self._current: Optional[str] = None
        self._global_pax: Dict[str, str] = {}

    def _read_exact(self, size: int, what: str) -> bytes:
        data = self._reader.read(size)
        if len(data) != size:
            raise TarFormatError(f"truncated {what}", entry=self._current)
        return data

    def _skip_rest(self) -> None:
        while self._remaining:
            step = min(self._remaining, EXTRACT_CHUNK_SIZE)
            self._read_exact(step, "entry body")
            self._remaining -= step
        if self._padding:
            self._read_exact(self._padding, "entry padding")
            self._padding = 0

    def _start_body(self, size: int) -> None:
        self._remaining = size
        self._padding = -size % BLOCKSIZE

    def _read_meta(self, info: tarfile.TarInfo) -> bytes:
        self._start_body(info.size)
        data = self._read_exact(info.size, "extended header")
        self._remaining = 0
        self._skip_rest()
        return data

    def _next_header(self) -> Optional[tarfile.TarInfo]:
        block = self._reader.read(BLOCKSIZE)
        if not block:
            return None
        if len(block) != BLOCKSIZE:
            raise TarHeaderError("truncated tar header", entry=self._current)
        if block.count(0) == BLOCKSIZE:
            return None
        try:
            return tarfile.TarInfo.frombuf(block, ENCODING, "surrogateescape")
        except tarfile.HeaderError as e:
            raise TarHeaderError(f"invalid tar header: {e}", entry=self._current) from e

    def __iter__(self) -> Iterator[tarfile.TarInfo]:
        long_names: Dict[bytes, str] = {}
        pax: Dict[str, str] = {}
        while True:
            self._skip_rest()
            info = self._next_header()
            if info is None:
                return

            if info.type in LONG_NAME_TYPES:
                value = self._read_meta(info).split(b"\0", 1)[0]
                long_names[info.type] = value.decode(ENCODING, "surrogateescape")
                continue
            if info.type in PAX_TYPES:
                records = parse_pax_records(self._read_meta(info))
                if info.type == tarfile.XGLTYPE:
                    self._global_pax.update(records)
                else:
                    pax.update(records)
                continue

            overrides = {**self._global_pax, **pax}
            if tarfile.GNUTYPE_LONGNAME in long_names:
                info.name = long_names[tarfile.GNUTYPE_LONGNAME]
            if tarfile.GNUTYPE_LONGLINK in long_names:
                info.linkname = long_names[tarfile.GNUTYPE_LONGLINK]
            if "path" in overrides:
                info.name = overrides["path"]
            if "linkpath" in overrides:
                info.linkname = overrides["linkpath"]
            if "size" in overrides:
                try:
                    info.size = int(overrides["size"])
                except ValueError as e:
                    raise TarHeaderError("invalid pax size", entry=info.name) from e
            long_names.clear()
            pax.clear()

            if info.type == tarfile.GNUTYPE_SPARSE:
                raise TarFormatError("sparse entries are not supported", entry=info.name)

            self._current = info.name
            self._start_body(info.size if has_body(info) else 0)
            yield info

    def body(self) -> Iterator[bytes]:
        """Yield the current member's data in chunks."""
        while self._remaining:
            step = min(self._remaining, EXTRACT_CHUNK_SIZE)
            chunk = self._read_exact(step, "entry body")
            self._remaining -= step
            yield chunk


def read_gzip_trailer(source: Source) -> Optional[int]:
    """Read the ISIZE trailer of a seekable gzip source, then rewind."""
    size = source_size(source)
    if size is None or size < GZIP_MIN_SIZE:
        return None
    source.seek(-4, os.SEEK_END)
    trailer = source.read(4)
    source.seek(0)
    if len(trailer) != 4:
        return None
    return struct.unpack("<I", trailer)[0]


class Tarball(Archive):
    """A gzip+tar archive. Needs only sequential reads from its source."""

    format = ArchiveFormat.TARBALL

    def __init__(
        self,
        source: Source,
        origin: Optional[Origin] = None,
        compressed_size: Optional[int] = None,
        uncompressed_size: Optional[int] = None,
    ):
        require_source(source)
        if source.seekable():
            if compressed_size is None:
                compressed_size = source_size(source)
            if uncompressed_size is None:
                uncompressed_size = read_gzip_trailer(source)
        else:
            compressed_size = compressed_size if compressed_size is not None else source_size(source)
        super().__init__(source, origin, compressed_size, uncompressed_size)

    def extract(self, destination: Path, progress: Optional[ProgressCallback] = None) -> None:
        destination = Path(destination)
        destination.mkdir(parents=True, exist_ok=True)
        root = destination.resolve()
        if self.source.seekable():
            self.source.seek(0)

        logger.debug("tarball_extract_started", destination=str(root), origin=str(self.origin))
        stream = TarStream(GzipReader(self.source))
        dir_modes: List[Tuple[Path, int]] = []
        count = 0

        for info in stream:
            target = entry_target(root, info.name)
            if info.isdir():
                target.mkdir(parents=True, exist_ok=True)
                mode = dir_mode(info.mode)
                if mode is not None:
                    dir_modes.append((target, mode))
            elif info.isreg():
                with staged_file(target, file_mode(info.mode)) as handle:
                    for chunk in stream.body():
                        handle.write(chunk)
                        if progress is not None:
                            progress(info.name, len(chunk))
            elif info.issym():
                target.parent.mkdir(parents=True, exist_ok=True)
                remove_existing(target)
                os.symlink(info.linkname, target)
            elif info.islnk():
                link_source = entry_target(root, info.linkname)
                if not link_source.is_file():
                    raise TarFormatError("hard link to missing entry", entry=info.name)
                target.parent.mkdir(parents=True, exist_ok=True)
                remove_existing(target)
                os.link(link_source, target)
            else:
                logger.debug("tar_entry_skipped", entry=info.name, type=info.type)
                continue
            count += 1

        apply_dir_modes(dir_modes)
        logger.info("tarball_extracted", destination=str(root), entries=count)
