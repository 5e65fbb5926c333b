"""Build in-memory Node-like distribution archives for tests."""
import gzip
import io
import tarfile
import time
import zipfile
from typing import Dict, Optional

NPM_VERSION = "9.5.1"


def tar_bytes(files: Dict[str, bytes], modes: Optional[Dict[str, int]] = None,
              symlinks: Optional[Dict[str, str]] = None, dirs=(), fmt=tarfile.USTAR_FORMAT) -> bytes:
    """Uncompressed tar stream with the given files, symlinks and directories."""
    modes = modes or {}
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=fmt) as tf:
        for name in dirs:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = modes.get(name, 0o755)
            info.mtime = int(time.time())
            tf.addfile(info)
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = modes.get(name, 0o644)
            info.mtime = int(time.time())
            tf.addfile(info, io.BytesIO(content))
        for name, target in (symlinks or {}).items():
            info = tarfile.TarInfo(name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tf.addfile(info)
    return buf.getvalue()


def gzipped(data: bytes) -> bytes:
    return gzip.compress(data)


def node_files(root: str, windows: bool = False, npm_version: str = NPM_VERSION) -> Dict[str, bytes]:
    manifest = f'{{"name": "npm", "version": "{npm_version}"}}'.encode()
    if windows:
        return {
            f"{root}/node.exe": b"MZ fake node",
            f"{root}/node_modules/npm/package.json": manifest,
            f"{root}/README.md": b"# Node.js\n",
        }
    return {
        f"{root}/bin/node": b"\x7fELF fake node",
        f"{root}/lib/node_modules/npm/package.json": manifest,
        f"{root}/lib/node_modules/npm/bin/npm-cli.js": b"#!/usr/bin/env node\n",
        f"{root}/include/node/node.h": b"#define NODE 1\n",
        f"{root}/README.md": b"# Node.js\n",
    }


def node_tarball(root: str = "node-v18.16.0-linux-x64", npm_version: str = NPM_VERSION) -> bytes:
    return gzipped(tar_bytes(
        node_files(root, npm_version=npm_version),
        modes={f"{root}/bin/node": 0o755},
        symlinks={f"{root}/bin/npm": "../lib/node_modules/npm/bin/npm-cli.js"},
        dirs=[root, f"{root}/bin"],
    ))


def zip_bytes(files: Dict[str, bytes], modes: Optional[Dict[str, int]] = None) -> bytes:
    modes = modes or {}
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            info = zipfile.ZipInfo(name)
            info.compress_type = zipfile.ZIP_DEFLATED
            if name in modes:
                info.create_system = 3
                info.external_attr = modes[name] << 16
            zf.writestr(info, content)
    return buf.getvalue()


def node_zip(root: str = "node-v18.16.0-win-x64", npm_version: str = NPM_VERSION) -> bytes:
    return zip_bytes(node_files(root, windows=True, npm_version=npm_version))
