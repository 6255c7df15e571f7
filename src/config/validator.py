"""
Configuration Validator — Check the environment the optimizer runs in.

Verifies that the tools, files and directories named in the settings are
usable before an optimize run needs them.

## Usage

    from src.config.validator import ConfigValidator

    validator = ConfigValidator(settings)
    status = validator.validate_all()

    for name, result in status.items():
        if not result.ok:
            print(f"{name}: {result.detail}")
            print(f"  → {result.guidance}")
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..mirror.mirrorlist import parse_servers
from ..mirror.strategies import DelegatedStrategy
from ..validation import ValidationError, validate_dir_writable, validate_file_readable
from .loader import Settings

logger = logging.getLogger(__name__)


@dataclass
class ConfigStatus:
    """Status of a configuration check."""

    check: str
    ok: bool
    detail: str = ""
    guidance: Optional[str] = None
    required: bool = True  # False: optimize still works without it

    def to_dict(self) -> Dict:
        """Convert to dictionary for logging."""
        return {
            "check": self.check,
            "ok": self.ok,
            "required": self.required,
            "detail": self.detail,
            "guidance": self.guidance,
        }


class ConfigValidator:
    """
    Validate settings against the running system.

    Each check returns a ConfigStatus; checks never raise.
    """

    def __init__(self, settings: Settings, which: Callable[[str], Optional[str]] = shutil.which):
        self.settings = settings
        self._which = which

    def check_delegate(self) -> ConfigStatus:
        delegate = DelegatedStrategy(command=self.settings.delegate_command, which=self._which)
        if delegate.is_available():
            return ConfigStatus("delegate", True, f"{delegate.command} found at {delegate.locate()}", required=False)
        return ConfigStatus(
            "delegate",
            False,
            f"{self.settings.delegate_command} not found on PATH",
            guidance="Install reflector (pacman -S reflector); manual speed tests are used meanwhile",
            required=False,
        )

    def check_mirrorlist(self) -> ConfigStatus:
        path = self.settings.mirrorlist_path
        try:
            validate_file_readable(path, "Mirrorlist")
        except ValidationError as e:
            return ConfigStatus(
                "mirrorlist",
                False,
                str(e),
                guidance="Set MIRRORLIST_PATH or restore a backup with 'restore'",
            )

        servers = parse_servers(path.read_text(encoding="utf-8", errors="replace"))
        if not servers:
            return ConfigStatus(
                "mirrorlist",
                False,
                f"{path} has no active Server entries",
                guidance="Uncomment at least one 'Server =' line so manual ranking has candidates",
            )
        return ConfigStatus("mirrorlist", True, f"{len(servers)} server(s) in {path}")

    def check_backup_dir(self) -> ConfigStatus:
        try:
            validate_dir_writable(self.settings.backup_dir, "Backup directory")
        except ValidationError as e:
            return ConfigStatus(
                "backup_dir",
                False,
                str(e),
                guidance="Run as root or set MIRROR_BACKUP_DIR to a writable directory",
            )
        return ConfigStatus("backup_dir", True, f"{self.settings.backup_dir} is writable")

    def check_ledger(self) -> ConfigStatus:
        try:
            validate_dir_writable(self.settings.ledger_path.parent, "Ledger directory")
        except ValidationError as e:
            return ConfigStatus(
                "ledger",
                False,
                str(e),
                guidance="Set MIRROR_LEDGER_PATH to a writable location",
                required=False,
            )
        return ConfigStatus("ledger", True, f"{self.settings.ledger_path}", required=False)

    def validate_all(self) -> Dict[str, ConfigStatus]:
        """
        Run every check.

        Returns:
            Dictionary mapping check name to ConfigStatus
        """
        results = {}
        for check in (self.check_delegate, self.check_mirrorlist, self.check_backup_dir, self.check_ledger):
            status = check()
            logger.debug(f"Check {status.check}: ok={status.ok} {status.detail}")
            results[status.check] = status
        return results
