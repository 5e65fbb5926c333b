"""Error types for archive fetching and extraction."""
from typing import Any, Dict, Optional

from node_archive.logging import get_logger

logger = get_logger(__name__)


def log_error(error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an error with context."""
    error_info: Dict[str, Any] = {
        "error_type": error.__class__.__name__,
        "error_message": str(error),
    }
    if context:
        error_info["context"] = context
    if isinstance(error, NodeArchiveError):
        error_info["details"] = error.details

    logger.error("node_archive_error", **error_info)


class NodeArchiveError(Exception):
    """Base error class for archive operations."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FetchError(NodeArchiveError):
    """Fetch-phase failure: HTTP transfer or cache lookup."""


class HttpError(FetchError):
    """The server answered with a non-success status."""

    def __init__(self, url: str, status: int):
        super().__init__(
            f"HTTP {status} fetching {url}",
            details={"url": url, "status": status},
        )
        self.url = url
        self.status = status


class MissingHeaderError(FetchError):
    """A required response header was absent."""

    def __init__(self, header: str, url: str):
        super().__init__(
            f"Response from {url} is missing the {header} header",
            details={"url": url, "header": header},
        )
        self.header = header
        self.url = url


class ByteRangesNotAcceptedError(FetchError):
    """The server does not accept byte range requests."""

    def __init__(self, url: str):
        super().__init__(
            f"Server for {url} does not accept byte ranges",
            details={"url": url},
        )
        self.url = url


class UnexpectedContentLengthError(FetchError):
    """The body length did not match the advertised Content-Length."""

    def __init__(self, expected: int, actual: int, url: Optional[str] = None):
        super().__init__(
            f"Expected {expected} bytes but received {actual}",
            details={"url": url, "expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual
        self.url = url


class CacheEntryNotFoundError(FetchError):
    """A cache entry disappeared between the existence check and open."""

    def __init__(self, path: Any):
        super().__init__(
            f"Cached archive {path} not found",
            details={"path": str(path)},
        )
        self.path = path


class SeekNotSupportedError(NodeArchiveError):
    """The source cannot be positioned."""

    def __init__(self, origin: Any = None):
        super().__init__(
            "Source does not support seeking",
            details={"origin": str(origin) if origin is not None else None},
        )


class UnsupportedPlatformError(NodeArchiveError):
    """The operating system or architecture has no Node distribution."""

    def __init__(self, system: str, machine: Optional[str] = None):
        target = f"{system}/{machine}" if machine else system
        super().__init__(
            f"Unsupported platform: {target}",
            details={"system": system, "machine": machine},
        )


class ManifestError(NodeArchiveError):
    """The bundled npm manifest is missing or unreadable."""


class ExtractError(NodeArchiveError):
    """Extraction-phase failure."""

    def __init__(self, reason: str, entry: Optional[str] = None):
        message = f"{reason} ({entry})" if entry else reason
        super().__init__(message, details={"reason": reason, "entry": entry})
        self.reason = reason
        self.entry = entry


class TarHeaderError(ExtractError):
    """A tar header is missing, short or malformed."""


class TarFormatError(ExtractError):
    """The tar stream is structurally invalid, e.g. an entry body is truncated."""


class GzipFormatError(ExtractError):
    """The gzip stream is corrupt or truncated."""


class ZipFormatError(ExtractError):
    """The zip structure is corrupt."""


class UnsafeEntryError(ExtractError):
    """An entry path would escape the destination directory."""
