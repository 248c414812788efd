"""Error taxonomy for checksum synchronization."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]


class ChecksumError(Exception):
    """Base class for every failure that aborts a checksum run."""

    operation = "update"

    def __init__(self, message: str, path: Optional[PathLike] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None
        if operation is not None:
            self.operation = operation

    def __str__(self) -> str:
        return self.message


class VendorIOError(ChecksumError):
    """A file or directory could not be read, written or listed."""

    operation = "read"


class ManifestParseError(ChecksumError):
    """A checksum manifest does not match the expected schema."""

    operation = "parse"


class InvalidRequestError(ChecksumError):
    """A requested vendor-relative path cannot name a file inside a package."""

    operation = "resolve"


class ManifestSerializeError(ChecksumError):
    """An in-memory manifest could not be encoded back to JSON."""

    operation = "serialize"


__all__ = [
    "ChecksumError",
    "InvalidRequestError",
    "ManifestParseError",
    "ManifestSerializeError",
    "VendorIOError",
]
