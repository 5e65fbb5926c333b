"""Unpack a Node distribution into its image directory."""

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from node_archive.archives import Archive, ProgressCallback
from node_archive.errors import ManifestError
from node_archive.logging import get_logger
from node_archive.platforms import PlatformTag, distro_root_dir_name
from node_archive.types import NodeVersion, Version

logger = get_logger(__name__)


def npm_version_file(inventory_dir: Path, node: Version) -> Path:
    return Path(inventory_dir) / f"node-v{node}-npm"


def load_default_npm_version(inventory_dir: Path, node: Version) -> Version:
    """Load the npm version bundled with an installed Node version."""
    path = npm_version_file(inventory_dir, node)
    try:
        return Version.parse(path.read_text())
    except OSError as e:
        raise ManifestError(f"Could not read default npm version from {path}") from e
    except ValueError as e:
        raise ManifestError(f"Invalid default npm version in {path}") from e


def save_default_npm_version(inventory_dir: Path, node: Version, npm: Version) -> None:
    path = npm_version_file(inventory_dir, node)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(str(npm))


def read_npm_version(manifest: Path) -> Version:
    """Read ``version`` from npm's package.json."""
    try:
        with open(manifest, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ManifestError(f"Could not read npm manifest {manifest}") from e
    except json.JSONDecodeError as e:
        raise ManifestError(f"Could not parse npm manifest {manifest}") from e

    try:
        return Version.parse(data["version"])
    except (KeyError, TypeError, ValueError) as e:
        raise ManifestError(f"npm manifest {manifest} has no valid version") from e


def unpack_distro(
    archive: Archive,
    version: Version,
    platform_tag: PlatformTag,
    image_root: Path,
    tmp_root: Path,
    progress: Optional[ProgressCallback] = None,
) -> NodeVersion:
    """Extract ``archive`` and move its root directory to ``{image_root}/{node}/{npm}``.

    Extraction happens in a scratch directory under ``tmp_root`` so the
    image directory only ever receives a complete tree, in one rename.
    """
    tmp_root = Path(tmp_root)
    tmp_root.mkdir(parents=True, exist_ok=True)
    scratch = Path(tempfile.mkdtemp(dir=tmp_root, prefix="node-unpack-"))
    logger.debug("unpacking_distro", version=str(version), scratch=str(scratch))

    try:
        archive.extract(scratch, progress)

        root = scratch / distro_root_dir_name(version, platform_tag)
        npm = read_npm_version(root / platform_tag.npm_manifest_path)

        dest = Path(image_root) / str(version) / str(npm)
        dest.parent.mkdir(parents=True, exist_ok=True)
        if dest.exists():
            shutil.rmtree(dest)
        os.replace(root, dest)
    finally:
        shutil.rmtree(scratch, ignore_errors=True)

    logger.info("distro_installed", node=str(version), npm=str(npm), path=str(dest))
    return NodeVersion(runtime=version, npm=npm)
