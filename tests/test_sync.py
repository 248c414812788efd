"""Tests for the checksum synchronization engine."""

from __future__ import annotations

from pathlib import Path
import threading
import time

import pytest

from vendor_helpers import read_manifest, sha256, write_package
from vendorsum.errors import InvalidRequestError, ManifestParseError, VendorIOError
from vendorsum.manifest import ChecksumManifest
from vendorsum import sync
from vendorsum.sync import ChecksumSynchronizer


def test_update_files_rewrites_changed_file(vendor: Path):
    checksum = write_package(vendor, "pkg", {"a.txt": b"new"}, manifest={"a.txt": "OLDHASH"}, package="p")

    report = ChecksumSynchronizer(vendor).update_files(["pkg/a.txt"])

    assert read_manifest(checksum) == {"files": {"a.txt": sha256(b"new")}, "package": "p"}
    assert report.mode == "files"
    assert report.packages["pkg"].updated == 1


def test_update_files_adds_new_entry(vendor: Path):
    checksum = write_package(vendor, "pkg", {"a.txt": b"a"})
    (vendor / "pkg" / "src").mkdir()
    (vendor / "pkg" / "src" / "new.rs").write_bytes(b"fn f() {}")

    report = ChecksumSynchronizer(vendor).update_files([Path("pkg/src/new.rs")])

    files = read_manifest(checksum)["files"]
    assert files == {"a.txt": sha256(b"a"), "src/new.rs": sha256(b"fn f() {}")}
    assert report.packages["pkg"].added == 1


def test_update_files_is_idempotent(vendor: Path):
    checksum = write_package(vendor, "pkg", {"a.txt": b"a", "b.txt": b"b"}, manifest={"a.txt": "x", "b.txt": "y"})
    synchronizer = ChecksumSynchronizer(vendor, num_threads=2)

    synchronizer.update_files(["pkg/a.txt", "pkg/b.txt"])
    first = checksum.read_bytes()
    report = synchronizer.update_files(["pkg/a.txt", "pkg/b.txt"])

    assert checksum.read_bytes() == first
    assert report.packages["pkg"].unchanged == 2
    assert report.files_changed == 0


def test_update_files_order_does_not_change_output(vendor: Path):
    files = {f"src/m{i}.rs": f"mod {i}".encode() for i in range(12)}
    checksum = write_package(vendor, "pkg", files, manifest={})
    requested = [f"pkg/{rel}" for rel in files]

    ChecksumSynchronizer(vendor, num_threads=4).update_files(requested)
    forward = checksum.read_bytes()
    write_package(vendor, "pkg", files, manifest={})
    ChecksumSynchronizer(vendor, num_threads=3).update_files(list(reversed(requested)))

    assert checksum.read_bytes() == forward
    assert list(read_manifest(checksum)["files"]) == sorted(files, key=lambda k: tuple(k.split("/")))


def test_update_files_batches_per_package(vendor: Path, monkeypatch: pytest.MonkeyPatch):
    write_package(vendor, "one", {"a": b"1", "b": b"2"}, manifest={})
    write_package(vendor, "two", {"c": b"3"}, manifest={})
    saved = []

    original_save = ChecksumManifest.save

    def tracking_save(self):
        saved.append(self.origin_path.parent.name)
        original_save(self)

    monkeypatch.setattr(ChecksumManifest, "save", tracking_save)

    report = ChecksumSynchronizer(vendor).update_files(["one/a", "two/c", "one/b", "one/a"])

    assert sorted(saved) == ["one", "two"]
    assert report.packages["one"].added == 2
    assert report.packages["two"].added == 1


def test_update_files_missing_without_flag_fails_and_writes_nothing(vendor: Path):
    ok = write_package(vendor, "ok", {"a": b"fresh"}, manifest={"a": "stale"})
    write_package(vendor, "pkg", {"a.txt": b"a"})
    before = ok.read_bytes()

    with pytest.raises(VendorIOError) as excinfo:
        ChecksumSynchronizer(vendor).update_files(["ok/a", "pkg/gone.txt"])

    assert excinfo.value.path == vendor / "pkg" / "gone.txt"
    assert ok.read_bytes() == before


def test_update_files_ignore_missing_removes_entry(vendor: Path):
    checksum = write_package(vendor, "pkg", {"a.txt": b"a"}, manifest={"a.txt": "x", "gone.txt": "y"})

    report = ChecksumSynchronizer(vendor, ignore_missing=True).update_files(["pkg/gone.txt"])

    assert read_manifest(checksum)["files"] == {"a.txt": "x"}
    assert report.packages["pkg"].removed == 1


def test_update_files_ignore_missing_absent_key_is_noop(vendor: Path):
    checksum = write_package(vendor, "pkg", {"a.txt": b"a"})
    before = read_manifest(checksum)

    report = ChecksumSynchronizer(vendor, ignore_missing=True).update_files(["pkg/never.txt"])

    assert read_manifest(checksum) == before
    assert report.packages["pkg"].unchanged == 1


def test_update_files_rejects_bare_package_before_hashing(vendor: Path):
    checksum = write_package(vendor, "pkg", {"a.txt": b"a"}, manifest={"a.txt": "x"})

    with pytest.raises(InvalidRequestError):
        ChecksumSynchronizer(vendor).update_files(["pkg/a.txt", "pkg"])

    assert read_manifest(checksum)["files"] == {"a.txt": "x"}


def test_update_files_requires_existing_manifest(vendor: Path):
    (vendor / "pkg").mkdir()
    (vendor / "pkg" / "a.txt").write_bytes(b"a")

    with pytest.raises(VendorIOError) as excinfo:
        ChecksumSynchronizer(vendor).update_files(["pkg/a.txt"])

    assert excinfo.value.path == vendor / "pkg" / ".cargo-checksum.json"


def test_update_packages_rehashes_known_keys_only(vendor: Path):
    checksum = write_package(
        vendor,
        "pkg",
        {"a.txt": b"a2", "src/lib.rs": b"lib"},
        manifest={"a.txt": "old", "src/lib.rs": sha256(b"lib")},
    )
    (vendor / "pkg" / "untracked.rs").write_bytes(b"new")

    report = ChecksumSynchronizer(vendor).update_packages(["pkg"])

    assert read_manifest(checksum)["files"] == {"a.txt": sha256(b"a2"), "src/lib.rs": sha256(b"lib")}
    assert report.packages["pkg"].updated == 1
    assert report.packages["pkg"].unchanged == 1


def test_update_packages_missing_file_fails_without_flag(vendor: Path):
    checksum = write_package(vendor, "pkg", {"a.txt": b"a"}, manifest={"a.txt": "x", "gone": "y"})

    with pytest.raises(VendorIOError):
        ChecksumSynchronizer(vendor).update_packages(["pkg"])

    assert read_manifest(checksum)["files"] == {"a.txt": "x", "gone": "y"}


def test_update_packages_ignore_missing_drops_entry(vendor: Path):
    checksum = write_package(vendor, "pkg", {"a.txt": b"a"}, manifest={"a.txt": "x", "gone": "y"})

    ChecksumSynchronizer(vendor, ignore_missing=True).update_packages(["pkg"])

    assert read_manifest(checksum)["files"] == {"a.txt": sha256(b"a")}


def test_update_packages_writes_empty_manifest(vendor: Path):
    checksum = write_package(vendor, "pkg", {}, package=None)
    checksum.write_text('{"files":{}, "package": null}', encoding="utf-8")

    report = ChecksumSynchronizer(vendor).update_packages(["pkg"])

    assert checksum.read_text(encoding="utf-8") == '{"files":{},"package":null}'
    assert report.packages["pkg"].unchanged == 0


def test_update_packages_loads_every_manifest_before_hashing(vendor: Path):
    good = write_package(vendor, "good", {"a": b"a"}, manifest={"a": "stale"})
    bad = write_package(vendor, "bad", {"a": b"a"})
    bad.write_text("{broken", encoding="utf-8")

    with pytest.raises(ManifestParseError):
        ChecksumSynchronizer(vendor).update_packages(["good", "bad"])

    assert read_manifest(good)["files"] == {"a": "stale"}


def test_update_packages_rejects_path_like_names(vendor: Path):
    with pytest.raises(InvalidRequestError):
        ChecksumSynchronizer(vendor).update_packages(["../outside"])


def test_update_all_rehashes_every_package(vendor: Path):
    first = write_package(vendor, "pkg1", {"a": b"one"}, manifest={"a": "old"})
    second = write_package(vendor, "pkg2", {"b": b"two", "c/d": b"three"}, manifest={"b": "old", "c/d": "old"})
    (vendor / "pkg1" / "extra").write_bytes(b"untracked")
    (vendor / "pkg2" / "extra").write_bytes(b"untracked")
    (vendor / "stray-file").write_bytes(b"ignored")

    report = ChecksumSynchronizer(vendor, num_threads=2).update_all()

    assert read_manifest(first)["files"] == {"a": sha256(b"one")}
    assert read_manifest(second)["files"] == {"b": sha256(b"two"), "c/d": sha256(b"three")}
    assert sorted(report.packages) == ["pkg1", "pkg2"]
    assert report.files_processed == 3
    assert report.files_changed == 3


def test_update_all_missing_vendor_dir(tmp_path: Path):
    with pytest.raises(VendorIOError) as excinfo:
        ChecksumSynchronizer(tmp_path / "vendor").update_all()

    assert excinfo.value.operation == "list"


def test_num_threads_defaults_and_validation(vendor: Path):
    assert ChecksumSynchronizer(vendor).num_threads >= 1
    assert ChecksumSynchronizer(vendor, num_threads=3).num_threads == 3
    with pytest.raises(ValueError):
        ChecksumSynchronizer(vendor, num_threads=0)


def test_report_summary_counts(vendor: Path):
    write_package(vendor, "pkg", {"a": b"a", "b": b"b"}, manifest={"a": "x"})

    report = ChecksumSynchronizer(vendor).update_files(["pkg/a", "pkg/b"])

    assert report.summary() == "1 package(s), 2 file(s) processed, 2 changed"
    assert report.packages["pkg"].to_dict()["added"] == 1


def test_update_packages_keeps_finished_package_when_later_one_fails(vendor: Path, monkeypatch: pytest.MonkeyPatch):
    finished = write_package(vendor, "finished", {"a": b"fresh"}, manifest={"a": "stale"})
    broken = write_package(vendor, "broken", {"b": b"b"}, manifest={"b": "stale", "gone": "y"})
    before = broken.read_bytes()
    first_saved = threading.Event()

    original_save = ChecksumManifest.save
    original_hash = sync.compute_file_hash

    def tracking_save(self):
        original_save(self)
        first_saved.set()

    def ordered_hash(file_path: Path) -> str:
        if file_path.parent.name == "broken":
            assert first_saved.wait(timeout=5)
        return original_hash(file_path)

    monkeypatch.setattr(ChecksumManifest, "save", tracking_save)
    monkeypatch.setattr(sync, "compute_file_hash", ordered_hash)

    with pytest.raises(VendorIOError) as excinfo:
        ChecksumSynchronizer(vendor, num_threads=2).update_packages(["finished", "broken"])

    assert excinfo.value.path == vendor / "broken" / "gone"
    assert read_manifest(finished)["files"] == {"a": sha256(b"fresh")}
    assert broken.read_bytes() == before


def test_first_failure_cancels_pending_hashes(vendor: Path, monkeypatch: pytest.MonkeyPatch):
    write_package(vendor, "a-bad", {}, manifest={"gone": "y"})
    many = {f"f{i:02d}": b"x" for i in range(20)}
    big = write_package(vendor, "big", many, manifest={key: "stale" for key in many})
    hashed = []

    original_hash = sync.compute_file_hash

    def slow_hash(file_path: Path) -> str:
        if file_path.parent.name == "big":
            hashed.append(file_path.name)
            time.sleep(0.05)
        return original_hash(file_path)

    monkeypatch.setattr(sync, "compute_file_hash", slow_hash)

    with pytest.raises(VendorIOError):
        ChecksumSynchronizer(vendor, num_threads=1).update_packages(["a-bad", "big"])

    assert len(hashed) < len(many)
    assert set(read_manifest(big)["files"].values()) == {"stale"}
