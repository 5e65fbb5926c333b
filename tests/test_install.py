"""Tests for unpacking distributions into the image directory."""
import os

import pytest

from builders import gzipped, node_tarball, node_zip, tar_bytes
from node_archive.archives import Tarball, Zip
from node_archive.errors import ManifestError
from node_archive.install import (
    load_default_npm_version,
    npm_version_file,
    read_npm_version,
    save_default_npm_version,
    unpack_distro,
)
from node_archive.sources import CachedSource, StreamSource
from node_archive.types import NodeVersion, Version


@pytest.fixture
def dirs(tmp_path):
    return tmp_path / "image", tmp_path / "tmp"


def test_unpack_tarball(dirs, node_version, linux_x64):
    image_root, tmp_root = dirs
    archive = Tarball(StreamSource([node_tarball()]))

    installed = unpack_distro(archive, node_version, linux_x64, image_root, tmp_root)

    assert installed == NodeVersion(runtime=node_version, npm=Version.parse("9.5.1"))
    image = image_root / "18.16.0" / "9.5.1"
    assert (image / "bin" / "node").read_bytes() == b"\x7fELF fake node"
    assert os.path.islink(image / "bin" / "npm")
    assert os.listdir(tmp_root) == []


def test_unpack_zip(tmp_path, dirs, node_version, win_x64):
    image_root, tmp_root = dirs
    path = tmp_path / "node.zip"
    path.write_bytes(node_zip())

    with Zip(CachedSource(path)) as archive:
        installed = unpack_distro(archive, node_version, win_x64, image_root, tmp_root)

    assert installed.npm == Version.parse("9.5.1")
    assert (image_root / "18.16.0" / "9.5.1" / "node.exe").exists()


def test_unpack_replaces_existing_image(dirs, node_version, linux_x64):
    image_root, tmp_root = dirs
    stale = image_root / "18.16.0" / "9.5.1"
    stale.mkdir(parents=True)
    (stale / "leftover").write_text("old")

    unpack_distro(Tarball(StreamSource([node_tarball()])), node_version, linux_x64, image_root, tmp_root)

    assert not (stale / "leftover").exists()
    assert (stale / "README.md").exists()


def test_missing_npm_manifest_cleans_scratch(dirs, node_version, linux_x64):
    image_root, tmp_root = dirs
    raw = tar_bytes({"node-v18.16.0-linux-x64/bin/node": b"node"})

    with pytest.raises(ManifestError):
        unpack_distro(Tarball(StreamSource([gzipped(raw)])), node_version, linux_x64, image_root, tmp_root)

    assert os.listdir(tmp_root) == []
    assert not image_root.exists()


def test_unpack_progress(dirs, node_version, linux_x64):
    image_root, tmp_root = dirs
    names = set()

    unpack_distro(
        Tarball(StreamSource([node_tarball()])),
        node_version,
        linux_x64,
        image_root,
        tmp_root,
        progress=lambda name, nbytes: names.add(name),
    )

    assert "node-v18.16.0-linux-x64/bin/node" in names


@pytest.mark.parametrize("content", ['{"name": "npm"}', "not json", '{"version": "latest"}'])
def test_read_npm_version_invalid(tmp_path, content):
    manifest = tmp_path / "package.json"
    manifest.write_text(content)

    with pytest.raises(ManifestError):
        read_npm_version(manifest)


def test_default_npm_version_roundtrip(tmp_path, node_version):
    save_default_npm_version(tmp_path / "inventory", node_version, Version.parse("9.5.1"))

    assert npm_version_file(tmp_path / "inventory", node_version).name == "node-v18.16.0-npm"
    assert load_default_npm_version(tmp_path / "inventory", node_version) == Version.parse("9.5.1")


def test_default_npm_version_missing(tmp_path, node_version):
    with pytest.raises(ManifestError):
        load_default_npm_version(tmp_path, node_version)


def test_default_npm_version_garbage(tmp_path, node_version):
    npm_version_file(tmp_path, node_version).write_text("nine")

    with pytest.raises(ManifestError):
        load_default_npm_version(tmp_path, node_version)
