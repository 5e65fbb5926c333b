"""Turn a resolved Node version into a ready-to-extract archive."""
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional

import aiohttp

from node_archive.archives import Archive, ProgressCallback, Tarball, load_archive
from node_archive.archives.base import EXTRACT_CHUNK_SIZE
from node_archive.cache import canonical_path
from node_archive.config import DEFAULT_CHUNK_SIZE, PUBLIC_NODE_SERVER_ROOT, FetchConfig
from node_archive.errors import CacheEntryNotFoundError, FetchError, log_error
from node_archive.logging import get_logger
from node_archive.platforms import PlatformTag, distro_file_name
from node_archive.remote import RemoteSource
from node_archive.sources import CachedSource
from node_archive.types import ArchiveFormat, Origin, Version

logger = get_logger(__name__)


def extract_through(
    archive: Archive, destination: Path, progress: Optional[ProgressCallback] = None
) -> None:
    """Extract, then read a streamed source to its end so its download commits."""
    with archive:
        archive.extract(destination, progress)
        source = archive.source
        if not source.seekable():
            while source.read(EXTRACT_CHUNK_SIZE):
                pass


class ArchiveFetcher:
    """Serve distribution archives from the cache, downloading on a miss.

    The cache directory is injected. An ``aiohttp.ClientSession`` may be
    shared across calls; otherwise one is opened per fetch.
    """

    def __init__(
        self,
        cache_dir: Path,
        server_root: str = PUBLIC_NODE_SERVER_ROOT,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.cache_dir = Path(cache_dir)
        self.server_root = server_root.rstrip("/")
        self.session = session
        self.timeout = timeout
        self.chunk_size = chunk_size

    @classmethod
    def from_config(
        cls, config: FetchConfig, session: Optional[aiohttp.ClientSession] = None
    ) -> "ArchiveFetcher":
        return cls(
            cache_dir=config.cache_dir,
            server_root=config.server_root,
            session=session,
            timeout=config.timeout,
            chunk_size=config.chunk_size,
        )

    def cache_path(self, version: Version, platform_tag: PlatformTag) -> Path:
        return canonical_path(self.cache_dir, version, platform_tag)

    def distro_url(self, version: Version, platform_tag: PlatformTag) -> str:
        return f"{self.server_root}/v{version}/{distro_file_name(version, platform_tag)}"

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self.session is not None:
            yield self.session
            return

        # bounds connecting and each socket read, never the whole transfer
        timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=self.timeout, sock_read=self.timeout
        )
        async with aiohttp.ClientSession(timeout=timeout, auto_decompress=False) as session:
            yield session

    def _load_cached(self, path: Path, platform_tag: PlatformTag) -> Optional[Archive]:
        if not path.is_file():
            return None
        try:
            source = CachedSource(path)
        except CacheEntryNotFoundError:
            logger.debug("archive_cache_vanished", path=str(path))
            return None
        try:
            return load_archive(source, platform_tag.archive_format)
        except Exception:
            source.close()
            raise

    async def obtain(
        self,
        version: Version,
        platform_tag: PlatformTag,
        url: Optional[str] = None,
        progress: Optional[Callable[[int], Any]] = None,
    ) -> Archive:
        """Return the archive for (version, platform), fetching it if needed.

        ``url`` replaces the public distribution URL. ``progress`` receives
        the size of each downloaded chunk. Extraction is left to the caller.
        """
        path = self.cache_path(version, platform_tag)

        archive = self._load_cached(path, platform_tag)
        if archive is not None:
            logger.debug(
                "archive_cache_hit", version=str(version), platform=str(platform_tag), path=str(path)
            )
            return archive

        url = url or self.distro_url(version, platform_tag)
        logger.info(
            "archive_download", version=str(version), platform=str(platform_tag), url=url
        )

        try:
            async with self._session() as session:
                async with RemoteSource(url, path, session, chunk_size=self.chunk_size) as remote:
                    committed = await remote.download(progress)
        except FetchError as e:
            log_error(e, {"version": str(version), "platform": str(platform_tag)})
            raise

        source = CachedSource(committed, origin=Origin.REMOTE)
        try:
            return load_archive(source, platform_tag.archive_format, origin=Origin.REMOTE)
        except Exception:
            source.close()
            raise

    async def remote_uncompressed_size(
        self, version: Version, platform_tag: PlatformTag, url: Optional[str] = None
    ) -> Optional[int]:
        """Uncompressed size of a remote tarball, read through byte ranges.

        Zip distributions have no cheap size trailer; ``None`` is returned.
        """
        if platform_tag.archive_format is not ArchiveFormat.TARBALL:
            return None

        url = url or self.distro_url(version, platform_tag)
        async with self._session() as session:
            remote = RemoteSource(
                url,
                self.cache_path(version, platform_tag),
                session,
                chunk_size=self.chunk_size,
                require_ranges=True,
            )
            return await remote.fetch_uncompressed_size()

    async def extract(
        self,
        version: Version,
        platform_tag: PlatformTag,
        destination: Path,
        url: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Origin:
        """Unpack the archive for (version, platform) into ``destination``.

        A cache hit is extracted from disk. On a miss a tarball is extracted
        while it downloads, each chunk teed into the cache, and the entry is
        committed only once the whole body matched ``Content-Length``. Zip
        distributions need random access, so they are downloaded first.

        Extraction runs in the default executor; returns where the bytes
        came from.
        """
        loop = asyncio.get_running_loop()
        path = self.cache_path(version, platform_tag)

        archive = self._load_cached(path, platform_tag)
        if archive is None and platform_tag.archive_format is not ArchiveFormat.TARBALL:
            archive = await self.obtain(version, platform_tag, url)
        if archive is not None:
            await loop.run_in_executor(None, extract_through, archive, destination, progress)
            return archive.origin

        url = url or self.distro_url(version, platform_tag)
        logger.info(
            "archive_stream_extract", version=str(version), platform=str(platform_tag), url=url
        )

        try:
            async with self._session() as session:
                async with RemoteSource(url, path, session, chunk_size=self.chunk_size) as remote:
                    archive = Tarball(remote.reader(loop))
                    await loop.run_in_executor(
                        None, extract_through, archive, destination, progress
                    )
        except FetchError as e:
            log_error(e, {"version": str(version), "platform": str(platform_tag)})
            raise
        return Origin.REMOTE
