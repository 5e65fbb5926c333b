import pytest

from node_archive.errors import UnsupportedPlatformError
from node_archive.platforms import (
    PlatformTag,
    current_platform,
    distro_file_name,
    distro_root_dir_name,
)
from node_archive.types import ArchiveFormat, Version


@pytest.mark.parametrize(
    "text,expected",
    [
        ("18.16.0", "18.16.0"),
        ("v20.10.0", "20.10.0"),
        ("0.12.18", "0.12.18"),
        ("21.0.0-rc.1", "21.0.0-rc.1"),
    ],
)
def test_version_parse(text, expected):
    assert str(Version.parse(text)) == expected


@pytest.mark.parametrize("text", ["18", "^18.0.0", "lts", "18.x", "latest", ""])
def test_version_rejects_ranges_and_aliases(text):
    with pytest.raises(ValueError):
        Version.parse(text)


@pytest.mark.parametrize("text", ["18.16.0+build.1", "18.16.0-rc.1+a"])
def test_version_rejects_build_metadata(text):
    with pytest.raises(ValueError):
        Version.parse(text)


def test_version_is_hashable_cache_key():
    assert {Version.parse("v18.16.0"): 1}[Version.parse("18.16.0")] == 1


@pytest.mark.parametrize(
    "system,machine,expected",
    [
        ("Linux", "x86_64", "linux-x64"),
        ("Linux", "aarch64", "linux-arm64"),
        ("Darwin", "arm64", "darwin-arm64"),
        ("Windows", "AMD64", "win-x64"),
        ("Windows", "x86", "win-x86"),
    ],
)
def test_current_platform_mapping(system, machine, expected):
    assert str(current_platform(system, machine)) == expected


@pytest.mark.parametrize("system,machine", [("SunOS", "x86_64"), ("Linux", "mips")])
def test_current_platform_unsupported(system, machine):
    with pytest.raises(UnsupportedPlatformError):
        current_platform(system, machine)


def test_archive_format_by_os():
    assert PlatformTag.parse("linux-x64").archive_format is ArchiveFormat.TARBALL
    assert PlatformTag.parse("darwin-arm64").extension == "tar.gz"
    assert PlatformTag.parse("win-x64").archive_format is ArchiveFormat.ZIP
    assert PlatformTag.parse("win-x64").extension == "zip"


@pytest.mark.parametrize("text", ["linux", "plan9-x64", "linux-sparc"])
def test_platform_tag_parse_rejects_unknown(text):
    with pytest.raises(UnsupportedPlatformError):
        PlatformTag.parse(text)


def test_distro_names():
    version = Version.parse("18.16.0")
    assert distro_root_dir_name(version, PlatformTag.parse("linux-x64")) == "node-v18.16.0-linux-x64"
    assert distro_file_name(version, PlatformTag.parse("linux-x64")) == "node-v18.16.0-linux-x64.tar.gz"
    assert distro_file_name(version, PlatformTag.parse("win-arm64")) == "node-v18.16.0-win-arm64.zip"
