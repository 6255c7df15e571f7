"""
Cache Analyzer — Report how much disk the package caches use.

Read-only: sizes are measured, nothing is deleted. Cleaning is left to
paccache and journalctl.

## Usage

    from src.cache.analyzer import analyze_cache, analyze_pacman_cache

    report = analyze_cache(settings.cache)
    for loc in report.locations:
        print(loc.name, format_size(loc.size_bytes), f"{loc.percentage}%")
"""

from __future__ import annotations

import logging
import os
import re
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from ..config.loader import CacheSettings

logger = logging.getLogger(__name__)

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")

_PKG_MARKER = ".pkg.tar"
_VERSION_TAIL_RE = re.compile(r"-[0-9].*$")


@dataclass
class CacheLocation:
    """Size of one cache directory."""

    name: str
    path: str
    size_bytes: int
    percentage: int = 0
    counted: bool = True  # False when nested inside another counted location


@dataclass
class CacheReport:
    """Sizes of all cache locations."""

    locations: List[CacheLocation] = field(default_factory=list)
    total_bytes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_bytes": self.total_bytes,
            "locations": [asdict(loc) for loc in self.locations],
        }


@dataclass
class PackageGroup:
    """All cached versions of one package."""

    name: str
    versions: int
    size_bytes: int


@dataclass
class PackageFile:
    filename: str
    size_bytes: int


@dataclass
class PackageCacheReport:
    """Breakdown of the pacman package cache."""

    path: str
    exists: bool = True
    total_packages: int = 0
    unique_packages: int = 0
    total_bytes: int = 0
    most_versions: List[PackageGroup] = field(default_factory=list)
    largest: List[PackageFile] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def format_size(size: float) -> str:
    """
    Human-readable size, e.g. 1536 -> "1.50 KB".

    Divides by 1024 while the value is above 1024, up to TB.
    """
    unit = 0
    value = float(size)
    while value > 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{int(value)} {SIZE_UNITS[0]}"
    return f"{value:.2f} {SIZE_UNITS[unit]}"


def render_bar(percentage: int, width: int = 20) -> str:
    """Fixed-width usage bar: █ for the used share, ░ for the rest."""
    percentage = max(0, min(100, percentage))
    filled = percentage * width // 100
    return "█" * filled + "░" * (width - filled)


def directory_size(path: Path) -> int:
    """
    Total size in bytes of the regular files below `path`.

    Missing directories count as 0. Unreadable entries are skipped and
    symlinks are not followed.
    """
    if not path.is_dir():
        return 0

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path, onerror=lambda e: logger.debug(f"skip: {e}")):
        for name in filenames:
            try:
                st = os.lstat(os.path.join(dirpath, name))
            except OSError:
                continue
            if not os.path.islink(os.path.join(dirpath, name)):
                total += st.st_size
    return total


def is_package_file(filename: str) -> bool:
    """Whether a cache entry is a package archive (not a signature or partial download)."""
    return _PKG_MARKER in filename and not filename.endswith((".sig", ".part"))


def package_name(filename: str) -> str:
    """
    Package name from an archive file name.

    `python-foo-1.2-3-any.pkg.tar.zst` -> `python-foo`
    """
    stem = filename.split(_PKG_MARKER, 1)[0]
    parts = stem.rsplit("-", 3)
    if len(parts) == 4 and parts[0]:
        return parts[0]
    return _VERSION_TAIL_RE.sub("", stem) or stem


def analyze_cache(cache: CacheSettings) -> CacheReport:
    """
    Measure every known cache location.

    The AUR helper caches live inside the user cache, so the user cache
    is reported but left out of the total.
    """
    # (name, path, shown even when missing, counted in total)
    entries = [
        ("Pacman cache", cache.pacman_dir, True, True),
        ("Yay cache", cache.yay_dir, False, True),
        ("Paru cache", cache.paru_dir, False, True),
        ("Makepkg cache", cache.makepkg_dir, False, True),
        ("System journal", cache.journal_dir, True, True),
        ("User cache", cache.user_cache_dir, True, False),
    ]

    report = CacheReport()
    for name, path, always, counted in entries:
        if not always and not path.is_dir():
            continue
        size = directory_size(path)
        report.locations.append(
            CacheLocation(name=name, path=str(path), size_bytes=size, counted=counted)
        )
        if counted:
            report.total_bytes += size

    for loc in report.locations:
        if report.total_bytes > 0:
            loc.percentage = loc.size_bytes * 100 // report.total_bytes

    return report


def analyze_pacman_cache(path: Path, top: int = 5) -> PackageCacheReport:
    """Count packages, versions and sizes in the pacman cache directory."""
    if not path.is_dir():
        logger.warning(f"Pacman cache directory not found: {path}")
        return PackageCacheReport(path=str(path), exists=False)

    files: List[PackageFile] = []
    groups: Dict[str, List[PackageFile]] = defaultdict(list)

    for entry in sorted(path.iterdir()):
        if not entry.is_file() or not is_package_file(entry.name):
            continue
        try:
            size = entry.stat().st_size
        except OSError:
            continue
        pkg = PackageFile(filename=entry.name, size_bytes=size)
        files.append(pkg)
        groups[package_name(entry.name)].append(pkg)

    most_versions = sorted(
        (
            PackageGroup(name=name, versions=len(items), size_bytes=sum(i.size_bytes for i in items))
            for name, items in groups.items()
        ),
        key=lambda g: (-g.versions, g.name),
    )[:top]

    largest = sorted(files, key=lambda f: (-f.size_bytes, f.filename))[:top]

    return PackageCacheReport(
        path=str(path),
        total_packages=len(files),
        unique_packages=len(groups),
        total_bytes=directory_size(path),
        most_versions=most_versions,
        largest=largest,
    )
