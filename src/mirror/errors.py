"""
Mirror Errors — Failure kinds raised by ranking and the mirrorlist store.

Only DelegateUnavailable is recovered internally (by falling back to
manual ranking). Every other error aborts the operation and leaves the
live mirrorlist untouched.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MirrorError(Exception):
    """Base class for mirror optimizer failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DelegateUnavailable(MirrorError):
    """The external ranking tool is missing, failed, or produced nothing."""
    pass


class AllCandidatesUnreachable(MirrorError):
    """Manual ranking found no mirror with a non-zero measured speed."""
    pass


# Name used by the optimize operation for the same condition
NoMirrorsRanked = AllCandidatesUnreachable


class BackupWriteFailed(MirrorError):
    """The current mirrorlist could not be copied aside before replacement."""
    pass


class BackupNotFound(MirrorError):
    """No backup matches the requested identifier."""
    pass


class MirrorlistMissing(MirrorError):
    """The live mirrorlist does not exist or cannot be read."""
    pass


class MirrorlistWriteFailed(MirrorError):
    """The new mirrorlist could not be written; the previous file is intact."""
    pass
