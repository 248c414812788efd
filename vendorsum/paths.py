"""Mapping between vendor-relative paths, packages and manifest locations."""

from __future__ import annotations

import logging
from pathlib import Path, PurePath, PurePosixPath
from typing import List, Tuple, Union

from .errors import InvalidRequestError, VendorIOError

logger = logging.getLogger("vendorsum.paths")

CHECKSUM_FILENAME = ".cargo-checksum.json"


def split_vendor_relative_path(path: Union[str, PurePath]) -> Tuple[str, PurePosixPath]:
    """Split ``pkg/some/file`` into ``("pkg", PurePosixPath("some/file"))``.

    The first segment names the package; the remainder is the key used in that
    package's manifest. A bare package name is not a file and is rejected, as
    are absolute paths and paths that climb out of the package with ``..``.
    """
    pure = PurePath(path)
    if pure.anchor:
        raise InvalidRequestError(
            f"File name should be relative to the vendor directory but given `{path}`",
            path=str(path),
        )

    parts = pure.parts
    if ".." in parts:
        raise InvalidRequestError(
            f"File name should not contain `..` but given `{path}`",
            path=str(path),
        )
    if len(parts) < 2:
        raise InvalidRequestError(
            f"File name should contain at least 2 parts but given `{path}`",
            path=str(path),
        )

    return parts[0], PurePosixPath(*parts[1:])


def validate_package_name(package: str) -> str:
    """Reject package names that would resolve outside the vendor root."""
    pure = PurePath(package)
    if not package or pure.anchor or len(pure.parts) != 1 or pure.parts[0] in (".", ".."):
        raise InvalidRequestError(
            f"Package name should be a single directory name but given `{package}`",
            path=package,
        )
    return pure.parts[0]


def manifest_path(vendor_dir: Path, package: str) -> Path:
    """Location of the checksum manifest for ``package``."""
    return vendor_dir / package / CHECKSUM_FILENAME


def list_packages(vendor_dir: Path) -> List[str]:
    """Every immediate subdirectory of the vendor root, sorted by name."""
    try:
        entries = list(vendor_dir.iterdir())
    except OSError as exc:
        raise VendorIOError(
            f"failed to read vendor directory `{vendor_dir}`: {exc.strerror or exc}",
            path=vendor_dir,
            operation="list",
        ) from exc

    packages = sorted(entry.name for entry in entries if entry.is_dir())
    skipped = len(entries) - len(packages)
    if skipped:
        logger.debug("Ignoring %d non-directory entries under %s", skipped, vendor_dir)
    return packages


__all__ = [
    "CHECKSUM_FILENAME",
    "list_packages",
    "manifest_path",
    "split_vendor_relative_path",
    "validate_package_name",
]
