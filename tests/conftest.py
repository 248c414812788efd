"""Shared fixtures for vendorsum tests."""

from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def vendor(tmp_path: Path) -> Path:
    root = tmp_path / "vendor"
    root.mkdir()
    return root
