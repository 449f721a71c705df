"""Shared fixtures for Tune Out tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from tuneout.library import Library


@pytest.fixture()
def base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect all Tune Out runtime files to a temporary directory.

    Patches ``tuneout.config.get_base_dir`` (and the re-imported reference in
    ``tuneout.cli``) so that nothing touches the real ``~/.tuneout/``.
    """
    fake_base = tmp_path / ".tuneout"
    fake_base.mkdir()
    (fake_base / "logs").mkdir()

    monkeypatch.setattr("tuneout.config.get_base_dir", lambda: fake_base)
    monkeypatch.setattr("tuneout.cli.get_base_dir", lambda: fake_base)

    return fake_base


@pytest_asyncio.fixture()
async def library(tmp_path):
    """Provide a freshly opened library backed by a temporary file."""
    lib = Library(tmp_path / "library.db")
    await lib.open()
    yield lib
    await lib.close()
