import pytest
import pytest_asyncio

from node_archive.fetcher import ArchiveFetcher
from node_archive.platforms import PlatformTag
from node_archive.types import Version
from stub_server import StubServer


@pytest_asyncio.fixture
async def stub_server():
    """Local HTTP server with per-path canned responses"""
    server = StubServer()
    await server.start()
    try:
        yield server
    finally:
        await server.stop()


@pytest.fixture
def cache_dir(tmp_path):
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def fetcher(stub_server, cache_dir):
    return ArchiveFetcher(cache_dir, server_root=stub_server.root, timeout=30)


@pytest.fixture
def node_version():
    return Version.parse("18.16.0")


@pytest.fixture
def linux_x64():
    return PlatformTag(os="linux", arch="x64")


@pytest.fixture
def win_x64():
    return PlatformTag(os="win", arch="x64")
