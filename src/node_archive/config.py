"""Fetch configuration."""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import appdirs

APP_NAME = "node-archive"
PUBLIC_NODE_SERVER_ROOT = "https://nodejs.org/dist"
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class FetchConfig:
    """Directories and transfer settings for fetching distributions.

    Every path is injected; nothing in the package reads global state
    beyond ``FetchConfig.default()``.
    """
    cache_dir: Path
    tmp_dir: Path
    image_dir: Path
    server_root: str = PUBLIC_NODE_SERVER_ROOT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    timeout: Optional[float] = DEFAULT_TIMEOUT

    @classmethod
    def default(cls) -> "FetchConfig":
        return cls.under(Path(appdirs.user_data_dir(APP_NAME)))

    @classmethod
    def under(cls, root: Path, **overrides) -> "FetchConfig":
        """Lay out all directories below a single root."""
        root = Path(root)
        return cls(
            cache_dir=root / "inventory" / "node",
            tmp_dir=root / "tmp",
            image_dir=root / "tools" / "image" / "node",
            **overrides,
        )
