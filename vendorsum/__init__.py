"""Keep vendored `.cargo-checksum.json` manifests in sync with file contents."""

from __future__ import annotations

from .digest import compute_file_hash
from .errors import (
    ChecksumError,
    InvalidRequestError,
    ManifestParseError,
    ManifestSerializeError,
    VendorIOError,
)
from .manifest import ChecksumManifest
from .paths import CHECKSUM_FILENAME, list_packages, manifest_path, split_vendor_relative_path
from .sync import ChecksumSynchronizer, PackageReport, SyncReport

__version__ = "0.1.0"

__all__ = [
    # Errors
    "ChecksumError",
    "InvalidRequestError",
    "ManifestParseError",
    "ManifestSerializeError",
    "VendorIOError",
    # Core
    "CHECKSUM_FILENAME",
    "ChecksumManifest",
    "ChecksumSynchronizer",
    "PackageReport",
    "SyncReport",
    "compute_file_hash",
    "list_packages",
    "manifest_path",
    "split_vendor_relative_path",
]
