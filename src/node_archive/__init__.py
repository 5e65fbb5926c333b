"""Fetch, cache and unpack Node distribution archives."""
from node_archive.archives import Archive, Tarball, Zip, load_archive
from node_archive.config import FetchConfig
from node_archive.errors import (
    ByteRangesNotAcceptedError,
    CacheEntryNotFoundError,
    ExtractError,
    FetchError,
    HttpError,
    MissingHeaderError,
    NodeArchiveError,
    SeekNotSupportedError,
    UnexpectedContentLengthError,
)
from node_archive.fetcher import ArchiveFetcher
from node_archive.install import unpack_distro
from node_archive.platforms import PlatformTag, current_platform
from node_archive.sources import CachedSource, Source, StreamSource
from node_archive.types import ArchiveFormat, NodeVersion, Origin, Version

__all__ = [
    "Archive",
    "ArchiveFetcher",
    "ArchiveFormat",
    "ByteRangesNotAcceptedError",
    "CacheEntryNotFoundError",
    "CachedSource",
    "ExtractError",
    "FetchConfig",
    "FetchError",
    "HttpError",
    "MissingHeaderError",
    "NodeArchiveError",
    "NodeVersion",
    "Origin",
    "PlatformTag",
    "SeekNotSupportedError",
    "Source",
    "StreamSource",
    "Tarball",
    "UnexpectedContentLengthError",
    "Version",
    "Zip",
    "current_platform",
    "load_archive",
    "unpack_distro",
]
