"""
Mirrorlist Store — The live mirrorlist file and its backups.

The live file is only ever fully replaced (temp file + rename), never
edited in place. Every replacement is preceded by a timestamped copy of
the previous version in the backup directory; only the newest
`retention` copies are kept.

## Backup naming

    mirrorlist-20261019-141503-120034.bak
               └──────── backup_id ───────┘

Second-resolution names (`mirrorlist-YYYYmmdd-HHMMSS.bak`) are
recognised too.
"""

from __future__ import annotations

import logging
import re
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple, Union

from ..models.mirror import BackupInfo
from ..persistence.atomic_file import write_atomic
from ..persistence.ledger import OperationLedger
from .errors import BackupNotFound, BackupWriteFailed, MirrorlistMissing, MirrorlistWriteFailed
from .mirrorlist import parse_servers

if TYPE_CHECKING:
    from ..config.loader import Settings

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "mirrorlist-"
BACKUP_SUFFIX = ".bak"
BACKUP_ID_FORMAT = "%Y%m%d-%H%M%S-%f"
LEGACY_BACKUP_ID_FORMAT = "%Y%m%d-%H%M%S"

_BACKUP_RE = re.compile(r"^mirrorlist-(\d{8}-\d{6}(?:-\d{6})?)\.bak$")


def parse_backup_id(backup_id: str) -> Optional[datetime]:
    """Timestamp encoded in a backup id, or None if it is not one."""
    for fmt in (BACKUP_ID_FORMAT, LEGACY_BACKUP_ID_FORMAT):
        try:
            return datetime.strptime(backup_id, fmt)
        except ValueError:
            continue
    return None


class MirrorlistStore:
    """
    Read/replace access to the live mirrorlist, guarded by backups.

    Usage:
        store = MirrorlistStore(Path("/etc/pacman.d/mirrorlist"),
                                Path("/etc/pacman.d/mirrorlist-backups"))
        servers = store.servers()
        store.replace(new_text)        # backs up, then swaps atomically
        store.restore("20261019-141503-120034")
    """

    def __init__(
        self,
        path: Path,
        backup_dir: Path,
        retention: int = 10,
        ledger: Optional[OperationLedger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if retention < 1:
            raise ValueError(f"retention must be at least 1, got {retention}")
        self.path = path
        self.backup_dir = backup_dir
        self.retention = retention
        self.ledger = ledger or OperationLedger(None)
        self._clock = clock or datetime.now

    @classmethod
    def from_settings(cls, settings: "Settings") -> "MirrorlistStore":
        """Store wired to the configured paths, retention and ledger."""
        return cls(
            settings.mirrorlist_path,
            settings.backup_dir,
            retention=settings.backup_retention,
            ledger=OperationLedger(settings.ledger_path),
        )

    # ─── Live file ──────────────────────────────────────────

    def exists(self) -> bool:
        return self.path.is_file()

    def read_bytes(self) -> bytes:
        """Current mirrorlist contents, byte for byte."""
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            raise MirrorlistMissing(f"Mirrorlist not found: {self.path}")
        except OSError as e:
            raise MirrorlistMissing(f"Cannot read mirrorlist {self.path}: {e}")

    def read_text(self) -> str:
        return self.read_bytes().decode("utf-8", errors="replace")

    def servers(self) -> List[str]:
        """Active server URLs of the current mirrorlist, in file order."""
        return parse_servers(self.read_text())

    def replace(self, content: Union[str, bytes]) -> Optional[Path]:
        """
        Replace the live mirrorlist.

        The previous version is backed up first; if that fails the live
        file is left untouched.

        Returns:
            Path of the backup taken, or None when there was no previous file

        Raises:
            BackupWriteFailed: If the previous version could not be backed up
            MirrorlistWriteFailed: If the new contents could not be written
            ValueError: If `content` is empty
        """
        data = content.encode("utf-8") if isinstance(content, str) else content
        if not data.strip():
            raise ValueError("Refusing to write an empty mirrorlist")

        backup_path = self.backup() if self.exists() else None

        self._write(data)
        logger.info(f"Mirrorlist replaced → {self.path}")
        return backup_path

    def _write(self, data: bytes) -> None:
        try:
            write_atomic(self.path, data)
        except OSError as e:
            logger.error(f"Writing {self.path} failed: {e}")
            raise MirrorlistWriteFailed(f"Could not write {self.path}: {e}") from e

    # ─── Backups ────────────────────────────────────────────

    def backup(self) -> Path:
        """
        Copy the live mirrorlist into the backup directory, then prune.

        Raises:
            BackupWriteFailed: If the directory or copy cannot be written
        """
        if not self.exists():
            raise BackupWriteFailed(f"Nothing to back up: {self.path} does not exist")

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            target = self._next_backup_path()
            shutil.copy2(self.path, target)
        except OSError as e:
            logger.error(f"Backup of {self.path} failed: {e}")
            raise BackupWriteFailed(
                f"Could not back up {self.path} to {self.backup_dir}: {e}",
                details={"path": str(self.path), "backup_dir": str(self.backup_dir)},
            ) from e

        logger.info(f"Mirrorlist backed up to {target}")
        self.ledger.emit("backup_created", details={"backup": str(target)})
        self.prune_backups()
        return target

    def _next_backup_path(self) -> Path:
        stamp = self._clock()
        target = self._backup_path_for(stamp)
        # Two backups within the same microsecond: nudge forward
        while target.exists():
            stamp += timedelta(microseconds=1)
            target = self._backup_path_for(stamp)
        return target

    def _backup_path_for(self, stamp: datetime) -> Path:
        return self.backup_dir / f"{BACKUP_PREFIX}{stamp.strftime(BACKUP_ID_FORMAT)}{BACKUP_SUFFIX}"

    def _scan_backups(self) -> List[Tuple[datetime, str, Path]]:
        """All recognised backups, oldest first."""
        if not self.backup_dir.is_dir():
            return []

        found = []
        for path in self.backup_dir.iterdir():
            match = _BACKUP_RE.match(path.name)
            if not match or not path.is_file():
                continue
            backup_id = match.group(1)
            stamp = parse_backup_id(backup_id)
            if stamp is None:
                continue
            found.append((stamp, backup_id, path))

        found.sort(key=lambda item: (item[0], item[1]))
        return found

    def list_backups(self) -> List[BackupInfo]:
        """Available backups, newest first."""
        infos = []
        for stamp, backup_id, path in reversed(self._scan_backups()):
            try:
                size = path.stat().st_size
            except OSError:
                size = 0
            infos.append(
                BackupInfo(
                    backup_id=backup_id,
                    path=str(path),
                    created_at_iso=stamp.isoformat(),
                    size_bytes=size,
                )
            )
        return infos

    def get_backup(self, backup_id: str) -> BackupInfo:
        """
        Look up a backup by id (or by its file name).

        Raises:
            BackupNotFound: If no backup matches
        """
        wanted = backup_id
        match = _BACKUP_RE.match(backup_id)
        if match:
            wanted = match.group(1)

        for info in self.list_backups():
            if info.backup_id == wanted:
                return info
        raise BackupNotFound(f"No backup with id {backup_id} in {self.backup_dir}")

    def prune_backups(self) -> List[Path]:
        """
        Delete the oldest backups beyond the retention count.

        Returns:
            Paths that were deleted, oldest first
        """
        backups = self._scan_backups()
        excess = len(backups) - self.retention
        if excess <= 0:
            return []

        logger.info(f"Removing old backups (keeping last {self.retention})")
        deleted = []
        for _, _, path in backups[:excess]:
            try:
                path.unlink()
                deleted.append(path)
            except OSError as e:
                logger.warning(f"Could not remove old backup {path}: {e}")

        if deleted:
            self.ledger.emit(
                "backups_pruned",
                details={"deleted": [p.name for p in deleted], "retention": self.retention},
            )
        return deleted

    def restore(self, backup_id: str) -> BackupInfo:
        """
        Make a backup the live mirrorlist again.

        The current mirrorlist is itself backed up first, so a restore can
        be undone. The backup's bytes are read before that happens because
        pruning may remove the restored backup from disk.

        Raises:
            BackupNotFound: If the id is unknown
            BackupWriteFailed: If the current list cannot be backed up
        """
        info = self.get_backup(backup_id)
        try:
            data = Path(info.path).read_bytes()
        except OSError as e:
            raise BackupNotFound(f"Backup {backup_id} is not readable: {e}")

        if self.exists():
            self.backup()

        self._write(data)
        logger.info(f"Restored backup {info.backup_id} → {self.path}")
        self.ledger.emit("restore", details={"backup_id": info.backup_id, "path": info.path})
        return info
