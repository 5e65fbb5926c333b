"""Platform detection and distribution naming."""
import platform
from dataclasses import dataclass
from typing import NamedTuple, Optional

from node_archive.errors import UnsupportedPlatformError
from node_archive.types import ArchiveFormat, Version


class PlatformMapping(NamedTuple):
    """Platform-specific values."""
    node: str
    archive_format: ArchiveFormat
    npm_manifest_path: str


# Architecture mappings, keyed by normalized platform.machine()
ARCH_MAPPINGS = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
    "armv7l": "armv7l",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}

PLATFORM_MAPPINGS = {
    "Linux": PlatformMapping(
        node="linux",
        archive_format=ArchiveFormat.TARBALL,
        npm_manifest_path="lib/node_modules/npm/package.json",
    ),
    "Darwin": PlatformMapping(
        node="darwin",
        archive_format=ArchiveFormat.TARBALL,
        npm_manifest_path="lib/node_modules/npm/package.json",
    ),
    "Windows": PlatformMapping(
        node="win",
        archive_format=ArchiveFormat.ZIP,
        npm_manifest_path="node_modules/npm/package.json",
    ),
}

NODE_OS_MAPPINGS = {mapping.node: mapping for mapping in PLATFORM_MAPPINGS.values()}
NODE_ARCHES = frozenset(ARCH_MAPPINGS.values())


@dataclass(frozen=True)
class PlatformTag:
    """Node distribution OS/architecture pair, e.g. ``linux-x64``."""
    os: str
    arch: str

    def __post_init__(self):
        if self.os not in NODE_OS_MAPPINGS or self.arch not in NODE_ARCHES:
            raise UnsupportedPlatformError(self.os, self.arch)

    @classmethod
    def parse(cls, text: str) -> "PlatformTag":
        os_name, sep, arch = text.partition("-")
        if not sep:
            raise UnsupportedPlatformError(text)
        return cls(os=os_name, arch=arch)

    @property
    def archive_format(self) -> ArchiveFormat:
        return NODE_OS_MAPPINGS[self.os].archive_format

    @property
    def extension(self) -> str:
        return self.archive_format.extension

    @property
    def npm_manifest_path(self) -> str:
        return NODE_OS_MAPPINGS[self.os].npm_manifest_path

    def __str__(self) -> str:
        return f"{self.os}-{self.arch}"


def current_platform(system: Optional[str] = None, machine: Optional[str] = None) -> PlatformTag:
    """Get the platform tag of the running interpreter."""
    system = system or platform.system()
    machine = (machine or platform.machine()).lower()

    if system not in PLATFORM_MAPPINGS:
        raise UnsupportedPlatformError(system, machine)

    if machine not in ARCH_MAPPINGS:
        raise UnsupportedPlatformError(system, machine)

    return PlatformTag(os=PLATFORM_MAPPINGS[system].node, arch=ARCH_MAPPINGS[machine])


def distro_root_dir_name(version: Version, platform_tag: PlatformTag) -> str:
    """Name of the top-level directory inside a Node distribution archive."""
    return f"node-v{version}-{platform_tag}"


def distro_file_name(version: Version, platform_tag: PlatformTag) -> str:
    """File name of a Node distribution archive, e.g. ``node-v18.16.0-linux-x64.tar.gz``."""
    return f"{distro_root_dir_name(version, platform_tag)}.{platform_tag.extension}"
