"""
Operation Ledger — Append-only NDJSON record of mirrorlist changes.

Each line is one JSON object (newline-delimited JSON).
Events are never edited, only appended.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


class OperationLedger:
    """
    Append-only NDJSON ledger writer.

    A ledger that cannot be written is reported through logging and
    otherwise ignored; it never aborts a mirrorlist operation.

    Usage:
        ledger = OperationLedger(Path("/var/log/pacman-mirror-optimizer.ndjson"))
        ledger.emit("optimize_start", details={"country": "DE"})
    """

    def __init__(self, path: Optional[Path]):
        self.path = path

    def emit(
        self,
        event_type: str,
        level: str = "info",
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """
        Append an event.

        Args:
            event_type: optimize_start, delegate_failed, mirrorlist_replaced, ...
            level: info, warning or error
            details: Additional event details

        Returns:
            Generated event_id, or None if the ledger is disabled or unwritable
        """
        if self.path is None:
            return None

        event_id = f"E-{uuid4().hex[:8].upper()}"
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        entry: Dict[str, Any] = {
            "ts_iso": now,
            "event_id": event_id,
            "level": level,
            "type": event_type,
        }
        if details is not None:
            entry["details"] = details

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.warning(f"Could not write ledger {self.path}: {e}")
            return None

        return event_id

    def read_events(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Read back events, optionally filtered by type. Bad lines are skipped."""
        if self.path is None or not self.path.exists():
            return []

        events = []
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if event_type is None or entry.get("type") == event_type:
                    events.append(entry)
        return events
