"""Recompute file digests and merge them into package checksum manifests."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .digest import compute_file_hash
from .manifest import ChecksumManifest, EntryChange
from .paths import list_packages, manifest_path, split_vendor_relative_path, validate_package_name

logger = logging.getLogger("vendorsum.sync")


@dataclass
class PackageReport:
    """Per-package outcome of a run."""

    package: str
    manifest: Path
    added: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0

    def record(self, change: EntryChange) -> None:
        if change is EntryChange.ADD:
            self.added += 1
        elif change is EntryChange.UPDATE:
            self.updated += 1
        elif change is EntryChange.DELETE:
            self.removed += 1
        else:
            self.unchanged += 1

    @property
    def changed(self) -> int:
        return self.added + self.updated + self.removed

    def to_dict(self) -> dict:
        return {
            "package": self.package,
            "manifest": str(self.manifest),
            "added": self.added,
            "updated": self.updated,
            "removed": self.removed,
            "unchanged": self.unchanged,
        }


@dataclass
class SyncReport:
    """Result of one synchronization run."""

    mode: str
    packages: Dict[str, PackageReport] = field(default_factory=dict)

    @property
    def files_processed(self) -> int:
        return sum(report.changed + report.unchanged for report in self.packages.values())

    @property
    def files_changed(self) -> int:
        return sum(report.changed for report in self.packages.values())

    def summary(self) -> str:
        return (
            f"{len(self.packages)} package(s), {self.files_processed} file(s) processed, "
            f"{self.files_changed} changed"
        )


@dataclass(frozen=True)
class HashJob:
    """A single file to hash on behalf of a package manifest."""

    package: str
    key: str
    file_path: Path


RequestedPath = Union[str, os.PathLike]


class ChecksumSynchronizer:
    """Fan out digest computation to a thread pool and merge per package.

    Manifests are owned by the calling thread for the whole run: workers only
    hash files and return digests, and every merge and write happens back on
    the caller's thread. The first failing job cancels the rest of the batch.
    """

    def __init__(
        self,
        vendor_dir: Path,
        ignore_missing: bool = False,
        num_threads: Optional[int] = None,
    ):
        if num_threads is not None and num_threads < 1:
            raise ValueError(f"num_threads must be at least 1, got {num_threads}")
        self.vendor_dir = Path(vendor_dir)
        self.ignore_missing = ignore_missing
        self.num_threads = num_threads or os.cpu_count() or 1

    def update_files(self, files: Iterable[RequestedPath]) -> SyncReport:
        """Rehash explicit vendor-relative files and write each touched manifest once."""

        jobs: List[HashJob] = []
        seen = set()
        for requested in files:
            package, in_package = split_vendor_relative_path(requested)
            key = in_package.as_posix()
            if (package, key) in seen:
                continue
            seen.add((package, key))
            jobs.append(HashJob(package, key, self.vendor_dir / package / in_package))

        manifests = self._load_manifests(job.package for job in jobs)
        logger.info("Hashing %d file(s) across %d package(s)", len(jobs), len(manifests))

        results: Dict[str, List[Tuple[HashJob, Optional[str]]]] = {name: [] for name in manifests}
        for job, digest in self._hash_all(jobs):
            results[job.package].append((job, digest))

        report = SyncReport(mode="files")
        for package, manifest in manifests.items():
            report.packages[package] = self._merge(package, manifest, results[package])
        for manifest in manifests.values():
            manifest.save()
            logger.info("Updated %s", manifest.origin_path)
        return report

    def update_packages(self, packages: Iterable[str]) -> SyncReport:
        """Rehash every file already listed in each package's manifest."""

        manifests = self._load_manifests(validate_package_name(name) for name in packages)

        jobs: List[HashJob] = []
        remaining: Dict[str, int] = {}
        for package, manifest in manifests.items():
            package_dir = self.vendor_dir / package
            keys = manifest.keys()
            remaining[package] = len(keys)
            jobs.extend(HashJob(package, key, package_dir / key) for key in keys)
        logger.info("Hashing %d file(s) across %d package(s)", len(jobs), len(manifests))

        report = SyncReport(mode="packages")
        collected: Dict[str, List[Tuple[HashJob, Optional[str]]]] = {name: [] for name in manifests}

        # Packages with nothing to hash are complete before any work starts.
        for package, count in remaining.items():
            if count == 0:
                report.packages[package] = self._flush(package, manifests[package], [])

        for job, digest in self._hash_all(jobs):
            collected[job.package].append((job, digest))
            remaining[job.package] -= 1
            if remaining[job.package] == 0:
                report.packages[job.package] = self._flush(
                    job.package, manifests[job.package], collected.pop(job.package)
                )
        return report

    def update_all(self) -> SyncReport:
        """Rehash every package found directly under the vendor root."""

        packages = list_packages(self.vendor_dir)
        logger.info("Found %d package(s) under %s", len(packages), self.vendor_dir)
        return self.update_packages(packages)

    def _load_manifests(self, packages: Iterable[str]) -> Dict[str, ChecksumManifest]:
        manifests: Dict[str, ChecksumManifest] = {}
        for package in packages:
            if package not in manifests:
                manifests[package] = ChecksumManifest.load(manifest_path(self.vendor_dir, package))
        return manifests

    def _hash(self, job: HashJob) -> Optional[str]:
        if self.ignore_missing and not job.file_path.exists():
            logger.info("%s/%s is missing; dropping its checksum", job.package, job.key)
            return None
        return compute_file_hash(job.file_path)

    def _hash_all(self, jobs: Sequence[HashJob]) -> Iterator[Tuple[HashJob, Optional[str]]]:
        """Yield ``(job, digest)`` pairs in completion order."""

        if not jobs:
            return
        with ThreadPoolExecutor(max_workers=self.num_threads, thread_name_prefix="vendorsum") as executor:
            futures: Dict[Future, HashJob] = {executor.submit(self._hash, job): job for job in jobs}
            try:
                for future in as_completed(futures):
                    yield futures[future], future.result()
            except BaseException:
                for pending in futures:
                    pending.cancel()
                raise

    def _merge(
        self,
        package: str,
        manifest: ChecksumManifest,
        results: Sequence[Tuple[HashJob, Optional[str]]],
    ) -> PackageReport:
        report = PackageReport(package=package, manifest=manifest.origin_path)
        for job, digest in results:
            report.record(manifest.upsert(job.key, digest))
        logger.debug(
            "Merged %s: +%d ~%d -%d =%d",
            package,
            report.added,
            report.updated,
            report.removed,
            report.unchanged,
        )
        return report

    def _flush(
        self,
        package: str,
        manifest: ChecksumManifest,
        results: Sequence[Tuple[HashJob, Optional[str]]],
    ) -> PackageReport:
        report = self._merge(package, manifest, results)
        manifest.save()
        logger.info("Updated %s", manifest.origin_path)
        return report


__all__ = ["ChecksumSynchronizer", "HashJob", "PackageReport", "SyncReport"]
