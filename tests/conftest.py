"""Shared fixtures.

CLI tests must not install real log handlers: configure_logging() guards
against being called twice, so the first test would capture every later
one's output in its own temp directory.
"""

import os
from pathlib import Path

import pytest

from tool_warden import cli
from tool_warden.workspace import Workspace


@pytest.fixture(autouse=True)
def _no_log_handlers(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: kwargs.get("log_path", ""))


@pytest.fixture
def root(tmp_path) -> Path:
    r = tmp_path.resolve() / "project"
    r.mkdir()
    return r


@pytest.fixture
def outside(tmp_path) -> Path:
    o = tmp_path.resolve() / "outside"
    o.mkdir()
    (o / "secret.txt").write_text("secret\n", encoding="utf-8")
    return o


@pytest.fixture
def ws(root) -> Workspace:
    return Workspace.from_path(
        root,
        read_only_files=("locked.txt",),
        allowed_programs=("ls", "cat", "echo", "git", "grep", "rm"),
    )


@pytest.fixture
def symlinks(tmp_path):
    """Skip when the platform (or the user) cannot create symlinks."""
    link = tmp_path / ".symlink-check"
    try:
        os.symlink(tmp_path, link)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported here")
    link.unlink()
