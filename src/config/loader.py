"""
Config Loader — Load settings from defaults, a YAML file and env vars.

Precedence (lowest to highest):
1. Built-in defaults
2. YAML settings file (MIRROR_OPTIMIZER_CONFIG or --config)
3. Individual environment variables
4. CLI options (applied by the command layer)

## Usage

    # Option 1: environment only
    export MIRRORLIST_PATH=/etc/pacman.d/mirrorlist
    export MIRROR_COUNTRY=DE

    # Option 2: a settings file
    export MIRROR_OPTIMIZER_CONFIG=/etc/pacman-mirror-optimizer.yaml

    from src.config.loader import load_settings
    settings = load_settings()

A YAML file uses the field names of `Settings`; cache locations live
under a nested `cache:` mapping.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..validation import (
    ConfigurationError,
    ValidationError,
    validate_country_code,
    validate_positive_int,
    validate_protocol,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MIRROR_OPTIMIZER_CONFIG"

_TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass
class CacheSettings:
    """Locations inspected by the cache analyzer."""

    pacman_dir: Path = Path("/var/cache/pacman/pkg")
    journal_dir: Path = Path("/var/log/journal")
    user_cache_dir: Path = field(default_factory=lambda: Path.home() / ".cache")

    @property
    def yay_dir(self) -> Path:
        return self.user_cache_dir / "yay"

    @property
    def paru_dir(self) -> Path:
        return self.user_cache_dir / "paru"

    @property
    def makepkg_dir(self) -> Path:
        return self.user_cache_dir / "makepkg"


@dataclass
class Settings:
    """All runtime settings in one place."""

    # Files
    mirrorlist_path: Path = Path("/etc/pacman.d/mirrorlist")
    backup_dir: Path = Path("/etc/pacman.d/mirrorlist-backups")
    ledger_path: Path = Path("/var/log/pacman-mirror-optimizer.ndjson")

    # Ranking filters
    country: Optional[str] = None
    protocol: str = "https"
    max_mirrors: int = 10
    backup_retention: int = 10

    # Manual probing
    arch: str = "x86_64"
    reference_file: str = "core.db"
    connect_timeout: float = 5.0
    total_timeout: float = 10.0
    workers: int = 1

    # Delegate (reflector)
    delegate_command: str = "reflector"
    delegate_latest: int = 20
    delegate_threads: int = 5
    delegate_timeout: int = 300
    relax_country: bool = False

    cache: CacheSettings = field(default_factory=CacheSettings)

    @classmethod
    def from_env(cls, base: Optional["Settings"] = None) -> "Settings":
        """Overlay environment variables on `base` (or the defaults)."""
        settings = base or cls()
        overrides: Dict[str, Any] = {}

        for env_name, field_name in _ENV_FIELDS.items():
            raw = os.environ.get(env_name)
            if raw is None or raw == "":
                continue
            overrides[field_name] = _coerce(field_name, raw, source=env_name)

        cache_overrides: Dict[str, Any] = {}
        for env_name, field_name in _CACHE_ENV_FIELDS.items():
            raw = os.environ.get(env_name)
            if raw:
                cache_overrides[field_name] = Path(raw).expanduser()

        if cache_overrides:
            overrides["cache"] = replace(settings.cache, **cache_overrides)

        result = replace(settings, **overrides)
        result.validate()
        return result

    @classmethod
    def from_file(cls, path: Path, base: Optional["Settings"] = None) -> "Settings":
        """Overlay a YAML settings file on `base` (or the defaults)."""
        settings = base or cls()
        data = load_yaml(path)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown settings in {path}: {', '.join(unknown)}")

        overrides: Dict[str, Any] = {}
        for name, value in data.items():
            if name == "cache":
                overrides["cache"] = _cache_from_mapping(settings.cache, value, path)
                continue
            if value is None:
                overrides[name] = None
                continue
            overrides[name] = _coerce(name, value, source=str(path))

        result = replace(settings, **overrides)
        result.validate()
        logger.debug(f"Loaded settings file {path}")
        return result

    def validate(self) -> None:
        """
        Check cross-field constraints.

        Raises:
            ConfigurationError: If any value is out of range
        """
        try:
            self.country = validate_country_code(self.country)
            self.protocol = validate_protocol(self.protocol)
            for name in sorted(_INT_FIELDS):
                validate_positive_int(getattr(self, name), name)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e

        if self.connect_timeout <= 0 or self.total_timeout <= 0:
            raise ConfigurationError("Timeouts must be positive")
        if self.connect_timeout > self.total_timeout:
            raise ConfigurationError(
                f"connect_timeout ({self.connect_timeout}) exceeds total_timeout ({self.total_timeout})"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "cache":
                value = {
                    "pacman_dir": str(value.pacman_dir),
                    "journal_dir": str(value.journal_dir),
                    "user_cache_dir": str(value.user_cache_dir),
                }
            elif isinstance(value, Path):
                value = str(value)
            result[f.name] = value
        return result


_ENV_FIELDS = {
    "MIRRORLIST_PATH": "mirrorlist_path",
    "MIRROR_BACKUP_DIR": "backup_dir",
    "MIRROR_LEDGER_PATH": "ledger_path",
    "MIRROR_COUNTRY": "country",
    "MIRROR_PROTOCOL": "protocol",
    "MIRROR_MAX": "max_mirrors",
    "MIRROR_BACKUP_RETENTION": "backup_retention",
    "MIRROR_ARCH": "arch",
    "MIRROR_REFERENCE_FILE": "reference_file",
    "MIRROR_CONNECT_TIMEOUT": "connect_timeout",
    "MIRROR_TOTAL_TIMEOUT": "total_timeout",
    "MIRROR_WORKERS": "workers",
    "MIRROR_DELEGATE": "delegate_command",
    "MIRROR_DELEGATE_LATEST": "delegate_latest",
    "MIRROR_DELEGATE_THREADS": "delegate_threads",
    "MIRROR_DELEGATE_TIMEOUT": "delegate_timeout",
    "MIRROR_RELAX_COUNTRY": "relax_country",
}

_CACHE_ENV_FIELDS = {
    "CACHE_PACMAN_DIR": "pacman_dir",
    "CACHE_JOURNAL_DIR": "journal_dir",
    "CACHE_USER_DIR": "user_cache_dir",
}

_PATH_FIELDS = {"mirrorlist_path", "backup_dir", "ledger_path"}
_INT_FIELDS = {"max_mirrors", "backup_retention", "workers", "delegate_latest",
               "delegate_threads", "delegate_timeout"}
_FLOAT_FIELDS = {"connect_timeout", "total_timeout"}
_BOOL_FIELDS = {"relax_country"}


def _coerce(name: str, value: Any, source: str) -> Any:
    """Convert a raw env/YAML value to the field's type."""
    try:
        if name in _PATH_FIELDS:
            return Path(str(value)).expanduser()
        if name in _INT_FIELDS:
            if isinstance(value, bool):
                raise ValueError(value)
            return int(value)
        if name in _FLOAT_FIELDS:
            return float(value)
        if name in _BOOL_FIELDS:
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in _TRUE_VALUES
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {name} in {source}: {value!r}")
    return str(value)


def _cache_from_mapping(base: CacheSettings, data: Any, path: Path) -> CacheSettings:
    if not isinstance(data, dict):
        raise ConfigurationError(f"'cache' in {path} must be a mapping")
    known = {f.name for f in fields(CacheSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown cache settings in {path}: {', '.join(unknown)}")
    return replace(base, **{k: Path(str(v)).expanduser() for k, v in data.items()})


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping, treating an empty file as no settings."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Settings file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")
    return data


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """
    Load settings from the YAML file (if any) and the environment.

    Args:
        config_path: Explicit settings file. Defaults to the path in
            MIRROR_OPTIMIZER_CONFIG; no file is read when neither is set.

    Returns:
        Validated Settings
    """
    settings = Settings()

    if config_path is None and os.environ.get(CONFIG_ENV_VAR):
        config_path = Path(os.environ[CONFIG_ENV_VAR]).expanduser()

    if config_path is not None:
        settings = Settings.from_file(config_path, base=settings)
        logger.info(f"Loaded settings from {config_path}")

    return Settings.from_env(base=settings)
