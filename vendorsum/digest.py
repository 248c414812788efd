"""Content digests for vendored files."""

from __future__ import annotations

import hashlib
from pathlib import Path

from .errors import VendorIOError

CHUNK_SIZE = 64 * 1024


def compute_file_hash(file_path: Path) -> str:
    """Compute the SHA-256 hex digest of a file, as Cargo records it."""
    hasher = hashlib.sha256()
    try:
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                hasher.update(chunk)
    except OSError as exc:
        raise VendorIOError(
            f"failed to get checksum for file `{file_path}`: {exc.strerror or exc}",
            path=file_path,
            operation="hash",
        ) from exc
    return hasher.hexdigest()


__all__ = ["compute_file_hash", "CHUNK_SIZE"]
