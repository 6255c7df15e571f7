"""
Mirror Models — Pydantic schemas for ranking runs and backups.

A ranking run builds MirrorCandidates, orders them into a MirrorList and
wraps the outcome in a RankingResult. Only the rendered mirrorlist file
outlives the run.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class RankingMethod(str, Enum):
    """Which strategy produced a ranked list."""

    DELEGATED = "delegated"
    MANUAL = "manual"


class MirrorCandidate(BaseModel):
    """A mirror URL and the download speed measured for it."""

    url: str
    measured_speed_bytes_per_sec: int = Field(default=0, ge=0)

    @property
    def reachable(self) -> bool:
        return self.measured_speed_bytes_per_sec > 0


class MirrorList(BaseModel):
    """
    Ranked mirrors, best first.

    Invariants: URLs are unique and the list never exceeds max_length
    (when one is set).
    """

    entries: List[MirrorCandidate] = Field(default_factory=list)
    max_length: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_invariants(self) -> "MirrorList":
        seen = set()
        for entry in self.entries:
            if entry.url in seen:
                raise ValueError(f"Duplicate mirror URL: {entry.url}")
            seen.add(entry.url)
        if self.max_length is not None and len(self.entries) > self.max_length:
            raise ValueError(
                f"Mirror list has {len(self.entries)} entries, maximum is {self.max_length}"
            )
        return self

    @property
    def urls(self) -> List[str]:
        return [e.url for e in self.entries]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def __len__(self) -> int:
        return len(self.entries)


class RankingResult(BaseModel):
    """Outcome of a single optimize run."""

    mirrors: MirrorList
    method_used: RankingMethod
    written: bool = False
    backup_path: Optional[str] = None
    generated_at_iso: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class BackupInfo(BaseModel):
    """A timestamped copy of a previous mirrorlist."""

    backup_id: str
    path: str
    created_at_iso: str
    size_bytes: int = 0


class BenchmarkEntry(BaseModel):
    """Speed and latency of one configured mirror."""

    url: str
    host: str
    speed_bytes_per_sec: int = Field(default=0, ge=0)
    latency_ms: Optional[float] = None

    @property
    def reachable(self) -> bool:
        return self.speed_bytes_per_sec > 0
