# File: mirrorurl/mirror/storage.py
"""mirrorurl.mirror.storage: low-level file helpers (hashing, atomic replace)."""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path
from typing import Union

from mirrorurl.errors import MirrorIOError, PathTraversalError

_PathT = Union[str, Path]


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: _PathT) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(1 << 16), b""):
            digest.update(chunk)
    return digest.hexdigest()


def resolve_inside(root: Path, relative: str) -> Path:
    """Return ``root / relative`` resolved, refusing anything outside *root*."""
    base = root.resolve()
    full = (base / relative).resolve()
    if full == base or not full.is_relative_to(base):
        raise PathTraversalError(relative, f"resolves outside {base}")
    return full


def ensure_directory(path: Path) -> None:
    """Create *path* and its parents; a non-directory in the way is an error."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except (FileExistsError, NotADirectoryError) as exc:
        raise MirrorIOError(str(path), "already exists and is not a directory") from exc
    except OSError as exc:
        raise MirrorIOError(str(path), f"cannot create directory: {exc}") from exc


def atomic_write(path: Path, data: bytes) -> None:
    """Write *data* to a temporary sibling, then rename it over *path*.

    Readers see either the old file or the complete new one, never a
    partial write.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def store_if_changed(path: Path, data: bytes, digest: str | None = None) -> bool:
    """Write *data* unless *path* already holds identical bytes.

    Returns True when the file was (re)written.
    """
    digest = digest or sha256_bytes(data)
    try:
        if path.is_dir():
            raise MirrorIOError(str(path), "a directory is in the way")
        if path.is_file() and path.stat().st_size == len(data) and sha256_file(path) == digest:
            return False
        ensure_directory(path.parent)
        atomic_write(path, data)
    except MirrorIOError:
        raise
    except OSError as exc:
        raise MirrorIOError(str(path), str(exc)) from exc
    return True
