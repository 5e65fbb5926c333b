"""Core type definitions"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

VERSION_PATTERN = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?$"
)


class ArchiveFormat(Enum):
    """Archive container used by a platform's distribution."""
    TARBALL = "tar.gz"
    ZIP = "zip"

    @property
    def extension(self) -> str:
        return self.value


class Origin(Enum):
    """Where an archive's bytes came from."""
    LOCAL = "local"
    REMOTE = "remote"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Version:
    """A concrete, already-resolved release version."""
    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "Version":
        match = VERSION_PATTERN.match(text.strip())
        if not match:
            raise ValueError(f"Not a concrete version: {text!r}")
        return cls(
            major=int(match["major"]),
            minor=int(match["minor"]),
            patch=int(match["patch"]),
            prerelease=match["prerelease"],
        )

    def __str__(self) -> str:
        core = f"{self.major}.{self.minor}.{self.patch}"
        return f"{core}-{self.prerelease}" if self.prerelease else core


@dataclass(frozen=True)
class NodeVersion:
    """A Node version plus the npm version bundled with it"""
    runtime: Version
    npm: Version
