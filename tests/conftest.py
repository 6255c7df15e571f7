"""
Shared fixtures for mirror optimizer tests.

Provides a temporary mirrorlist, backup directory and ledger so store,
ranker and CLI tests never touch /etc/pacman.d.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from src.config.loader import CacheSettings, Settings


SAMPLE_MIRRORLIST = """\
##
## Arch Linux repository mirrorlist
##

## Germany
Server = https://mirror.a.example/archlinux/$repo/os/$arch
#Server = https://disabled.example/archlinux/$repo/os/$arch
Server = https://mirror.b.example/archlinux/$repo/os/$arch

## Sweden
Server = https://mirror.c.example/$repo/os/$arch
Server = https://mirror.d.example/$repo/os/$arch
"""

SAMPLE_SERVERS = [
    "https://mirror.a.example/archlinux/$repo/os/$arch",
    "https://mirror.b.example/archlinux/$repo/os/$arch",
    "https://mirror.c.example/$repo/os/$arch",
    "https://mirror.d.example/$repo/os/$arch",
]


class FakeClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


@pytest.fixture
def mirrorlist_path(tmp_path: Path) -> Path:
    """A mirrorlist with four active servers."""
    path = tmp_path / "pacman.d" / "mirrorlist"
    path.parent.mkdir(parents=True)
    path.write_text(SAMPLE_MIRRORLIST, encoding="utf-8")
    return path


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    return tmp_path / "pacman.d" / "mirrorlist-backups"


@pytest.fixture
def ledger_path(tmp_path: Path) -> Path:
    return tmp_path / "log" / "ledger.ndjson"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path, mirrorlist_path: Path, backup_dir: Path, ledger_path: Path) -> Settings:
    """Settings pointing every path into tmp_path."""
    return Settings(
        mirrorlist_path=mirrorlist_path,
        backup_dir=backup_dir,
        ledger_path=ledger_path,
        delegate_command="reflector-not-installed-for-tests",
        cache=CacheSettings(
            pacman_dir=tmp_path / "cache" / "pkg",
            journal_dir=tmp_path / "journal",
            user_cache_dir=tmp_path / "home" / ".cache",
        ),
    )


@pytest.fixture
def env_settings(monkeypatch, settings: Settings) -> Settings:
    """Export `settings` through the environment variables the CLI reads."""
    for name in list(os.environ):
        if name.startswith(("MIRROR", "CACHE_")):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MIRRORLIST_PATH", str(settings.mirrorlist_path))
    monkeypatch.setenv("MIRROR_BACKUP_DIR", str(settings.backup_dir))
    monkeypatch.setenv("MIRROR_LEDGER_PATH", str(settings.ledger_path))
    monkeypatch.setenv("MIRROR_DELEGATE", settings.delegate_command)
    monkeypatch.setenv("CACHE_PACMAN_DIR", str(settings.cache.pacman_dir))
    monkeypatch.setenv("CACHE_JOURNAL_DIR", str(settings.cache.journal_dir))
    monkeypatch.setenv("CACHE_USER_DIR", str(settings.cache.user_cache_dir))
    return settings


@pytest.fixture
def sample_servers() -> list:
    """Active servers of the sample mirrorlist, in file order."""
    return list(SAMPLE_SERVERS)
