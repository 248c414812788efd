"""Loading, mutating and persisting one package's `.cargo-checksum.json`."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import ManifestParseError, ManifestSerializeError, VendorIOError

logger = logging.getLogger("vendorsum.manifest")

KNOWN_FIELDS = ("files", "package")


class EntryChange(str, Enum):
    """What an upsert did to a single manifest entry."""
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    SKIP = "skip"


def path_sort_key(key: str) -> Tuple[str, ...]:
    """Order manifest keys component by component (``a/b`` before ``a-b/c``)."""
    return PurePosixPath(key).parts


@dataclass
class ChecksumManifest:
    """In-memory view of a package checksum manifest.

    ``files`` maps package-relative POSIX paths to lowercase SHA-256 digests.
    ``package`` and any unknown top-level fields are carried through
    untouched. ``origin_path`` is where the manifest was read from and where
    ``save`` writes it back; it is never serialized.
    """

    origin_path: Path
    files: Dict[str, str] = field(default_factory=dict)
    package: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "files": {key: self.files[key] for key in sorted(self.files, key=path_sort_key)},
            "package": self.package,
        }
        for key, value in self.extra.items():
            data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Any, origin_path: Path) -> "ChecksumManifest":
        if not isinstance(data, dict):
            raise ManifestParseError(
                f"failed to parse checksum file `{origin_path}`: expected a JSON object",
                path=origin_path,
            )
        if "files" not in data:
            raise ManifestParseError(
                f"failed to parse checksum file `{origin_path}`: missing field `files`",
                path=origin_path,
            )

        files = data["files"]
        if not isinstance(files, dict):
            raise ManifestParseError(
                f"failed to parse checksum file `{origin_path}`: `files` must be an object",
                path=origin_path,
            )
        for key, value in files.items():
            if not isinstance(value, str):
                raise ManifestParseError(
                    f"failed to parse checksum file `{origin_path}`: "
                    f"checksum for `{key}` must be a string",
                    path=origin_path,
                )

        package = data.get("package")
        if package is not None and not isinstance(package, str):
            raise ManifestParseError(
                f"failed to parse checksum file `{origin_path}`: `package` must be a string or null",
                path=origin_path,
            )

        extra = {key: value for key, value in data.items() if key not in KNOWN_FIELDS}
        return cls(origin_path=origin_path, files=dict(files), package=package, extra=extra)

    @classmethod
    def load(cls, path: Path) -> "ChecksumManifest":
        """Read and validate the manifest stored at ``path``."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = f.read()
        except OSError as exc:
            raise VendorIOError(
                f"failed to read checksum file `{path}`: {exc.strerror or exc}",
                path=path,
            ) from exc
        except UnicodeDecodeError as exc:
            raise ManifestParseError(
                f"failed to parse checksum file `{path}`: {exc}",
                path=path,
            ) from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ManifestParseError(
                f"failed to parse checksum file `{path}`: {exc}",
                path=path,
            ) from exc

        manifest = cls.from_dict(data, origin_path=path)
        logger.debug("Loaded manifest %s (%d files)", path, len(manifest.files))
        return manifest

    def dumps(self) -> str:
        """Canonical compact JSON encoding of the manifest."""
        try:
            return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise ManifestSerializeError(
                f"failed to serialize checksum file `{self.origin_path}`: {exc}",
                path=self.origin_path,
            ) from exc

    def save(self) -> None:
        """Replace the manifest on disk with the in-memory state."""
        content = self.dumps()
        try:
            with open(self.origin_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as exc:
            raise VendorIOError(
                f"failed to write checksum file `{self.origin_path}`: {exc.strerror or exc}",
                path=self.origin_path,
                operation="write",
            ) from exc
        logger.debug("Saved manifest to %s (%d files)", self.origin_path, len(self.files))

    def upsert(self, relative_path: Union[str, PurePosixPath], digest: Optional[str]) -> EntryChange:
        """Set ``relative_path`` to ``digest``, or drop it when ``digest`` is None."""
        key = relative_path.as_posix() if isinstance(relative_path, PurePosixPath) else str(relative_path)

        if digest is None:
            if self.files.pop(key, None) is None:
                return EntryChange.SKIP
            return EntryChange.DELETE

        previous = self.files.get(key)
        self.files[key] = digest
        if previous is None:
            return EntryChange.ADD
        if previous == digest:
            return EntryChange.SKIP
        return EntryChange.UPDATE

    def keys(self) -> List[str]:
        return sorted(self.files, key=path_sort_key)


__all__ = ["ChecksumManifest", "EntryChange", "path_sort_key"]
