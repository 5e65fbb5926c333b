"""HTTP source that validates a transfer and commits it into the cache."""
import asyncio
import os
import struct
from pathlib import Path
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Iterator,
    Mapping,
    Optional,
)

import aiohttp

from node_archive.cache import commit, discard, open_partial
from node_archive.config import DEFAULT_CHUNK_SIZE
from node_archive.errors import (
    ByteRangesNotAcceptedError,
    HttpError,
    MissingHeaderError,
    SeekNotSupportedError,
    UnexpectedContentLengthError,
)
from node_archive.logging import get_logger
from node_archive.sources import StreamSource
from node_archive.types import Origin

logger = get_logger(__name__)

IDENTITY_ENCODING = {"Accept-Encoding": "identity"}
GZIP_TRAILER_SIZE = 4


def accepts_byte_ranges(headers: Mapping[str, str]) -> bool:
    """Whether ``Accept-Ranges`` lists the ``bytes`` unit."""
    value = headers.get("Accept-Ranges", "")
    return "bytes" in (unit.strip().lower() for unit in value.split(","))


async def tee(
    chunks: AsyncIterable[bytes], *sinks: Callable[[bytes], Any]
) -> AsyncIterator[bytes]:
    """Hand every chunk to each sink, then yield it downstream."""
    async for chunk in chunks:
        for sink in sinks:
            sink(chunk)
        yield chunk


def iter_threadsafe(
    chunks: AsyncIterator[bytes], loop: asyncio.AbstractEventLoop
) -> Iterator[bytes]:
    """Drive an async chunk iterator from a worker thread.

    Every step runs on ``loop``, which must be running in another thread.
    Closing this iterator early also closes ``chunks`` on the loop.
    """
    async def advance() -> Optional[bytes]:
        try:
            return await chunks.__anext__()
        except StopAsyncIteration:
            return None

    async def abandon() -> None:
        await chunks.aclose()

    def call(step: Callable[[], Awaitable[Any]]) -> Any:
        return asyncio.run_coroutine_threadsafe(step(), loop).result()

    finished = False
    try:
        while True:
            chunk = call(advance)
            if chunk is None:
                finished = True
                return
            yield chunk
    finally:
        if not finished:
            call(abandon)


class RemoteSource:
    """One GET of a distribution archive, mirrored into the cache.

    The body is written to a ``.partial`` file next to ``cache_file`` and
    renamed onto ``cache_file`` only after the received length matched
    ``Content-Length``. Not seekable.
    """

    origin = Origin.REMOTE

    def __init__(
        self,
        url: str,
        cache_file: Path,
        session: aiohttp.ClientSession,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        require_ranges: bool = False,
    ):
        self.url = url
        self.cache_file = Path(cache_file)
        self.session = session
        self.chunk_size = chunk_size
        self.require_ranges = require_ranges
        self.content_length: Optional[int] = None
        self.received = 0
        self._response: Optional[aiohttp.ClientResponse] = None
        self._consumed = False

    async def __aenter__(self) -> "RemoteSource":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    async def open(self) -> None:
        """Issue the GET and validate status and headers before any body byte."""
        logger.info("remote_fetch_started", url=self.url)
        response = await self.session.get(
            self.url, headers=IDENTITY_ENCODING, auto_decompress=False
        )
        try:
            self._validate(response)
        except Exception:
            response.release()
            raise
        self._response = response
        self.content_length = response.content_length

    def _validate(self, response: aiohttp.ClientResponse) -> None:
        if response.status != 200:
            logger.error(
                "remote_fetch_failed",
                url=self.url,
                status=response.status,
                reason=response.reason,
            )
            raise HttpError(self.url, response.status)

        if response.content_length is None:
            raise MissingHeaderError("Content-Length", self.url)

        if self.require_ranges and not accepts_byte_ranges(response.headers):
            raise ByteRangesNotAcceptedError(self.url)

    def _count(self, chunk: bytes) -> None:
        self.received += len(chunk)

    async def chunks(self) -> AsyncIterator[bytes]:
        """Stream the body once, teeing it into the cache.

        The partial file is discarded on any failure or early exit.
        """
        if self._response is None:
            raise RuntimeError(f"RemoteSource for {self.url} is not open")
        if self._consumed:
            raise RuntimeError(f"RemoteSource for {self.url} was already consumed")
        self._consumed = True

        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        partial, handle = open_partial(self.cache_file)
        committed = False
        try:
            with handle:
                body = self._response.content.iter_chunked(self.chunk_size)
                try:
                    async for chunk in tee(body, handle.write, self._count):
                        yield chunk
                except (aiohttp.ClientPayloadError, aiohttp.ServerDisconnectedError) as e:
                    raise UnexpectedContentLengthError(
                        self.content_length, self.received, self.url
                    ) from e

            if self.received != self.content_length:
                raise UnexpectedContentLengthError(
                    self.content_length, self.received, self.url
                )

            commit(partial, self.cache_file)
            committed = True
        finally:
            if not committed:
                discard(partial)
                logger.warning(
                    "remote_fetch_aborted",
                    url=self.url,
                    received=self.received,
                    expected=self.content_length,
                )

    def reader(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> StreamSource:
        """A sequential Source over the body, for extraction in a worker thread.

        Bytes are teed into the cache as they are read. The cache entry is
        committed once the reader has been drained to the end of the body;
        closing it earlier discards the partial file.
        """
        if self._response is None:
            raise RuntimeError(f"RemoteSource for {self.url} is not open")
        loop = loop or asyncio.get_running_loop()
        return StreamSource(
            iter_threadsafe(self.chunks(), loop),
            origin=self.origin,
            size=self.content_length,
        )

    async def download(self, progress: Optional[Callable[[int], Any]] = None) -> Path:
        """Drain the body into the cache and return the committed path."""
        async for chunk in self.chunks():
            if progress is not None:
                progress(len(chunk))

        logger.info(
            "remote_fetch_complete",
            url=self.url,
            size=self.received,
            path=str(self.cache_file),
        )
        return self.cache_file

    async def fetch_uncompressed_size(self) -> int:
        """Read the gzip ISIZE trailer with a HEAD and a ranged GET."""
        async with self.session.head(
            self.url, headers=IDENTITY_ENCODING, allow_redirects=True
        ) as head:
            if head.status != 200:
                raise HttpError(self.url, head.status)
            length = head.headers.get("Content-Length")
            if length is None:
                raise MissingHeaderError("Content-Length", self.url)
            if not accepts_byte_ranges(head.headers):
                raise ByteRangesNotAcceptedError(self.url)

        length = int(length)
        if length < GZIP_TRAILER_SIZE:
            raise UnexpectedContentLengthError(GZIP_TRAILER_SIZE, length, self.url)

        byte_range = f"bytes={length - GZIP_TRAILER_SIZE}-{length - 1}"
        async with self.session.get(
            self.url,
            headers={"Range": byte_range, **IDENTITY_ENCODING},
            auto_decompress=False,
        ) as response:
            if response.status == 200:
                # Range ignored; the body is the whole archive
                raise ByteRangesNotAcceptedError(self.url)
            if response.status != 206:
                raise HttpError(self.url, response.status)
            if response.content_length not in (None, GZIP_TRAILER_SIZE):
                raise UnexpectedContentLengthError(
                    GZIP_TRAILER_SIZE, response.content_length, self.url
                )
            trailer = b""
            async for chunk in response.content.iter_chunked(GZIP_TRAILER_SIZE):
                trailer += chunk
                if len(trailer) > GZIP_TRAILER_SIZE:
                    break

        if len(trailer) != GZIP_TRAILER_SIZE:
            raise UnexpectedContentLengthError(GZIP_TRAILER_SIZE, len(trailer), self.url)

        (size,) = struct.unpack("<I", trailer)
        logger.debug("remote_size_read", url=self.url, uncompressed_size=size)
        return size

    def seekable(self) -> bool:
        return False

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        raise SeekNotSupportedError(self.origin)

    def close(self) -> None:
        if self._response is not None:
            self._response.release()
            self._response = None
