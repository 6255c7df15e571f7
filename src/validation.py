"""
Validation — Input validation and error handling utilities.

Provides consistent validation patterns for CLI input and settings.

## Usage

    from src.validation import validate_country_code, validate_protocol

    try:
        country = validate_country_code(raw_country)
        protocol = validate_protocol(raw_protocol)
    except ValidationError as e:
        print(f"Validation failed: {e}")
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Dict, Optional

PROTOCOLS = ("http", "https", "rsync")

_COUNTRY_RE = re.compile(r"^[A-Za-z]{2}$")


class ValidationError(Exception):
    """Raised when validation fails."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict] = None):
        self.message = message
        self.field = field
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


def validate_path_exists(path: Path, description: str = "Path") -> None:
    """Validate that a path exists."""
    if not path.exists():
        raise ValidationError(f"{description} does not exist: {path}")


def validate_file_readable(path: Path, description: str = "File") -> None:
    """Validate that a file exists and is readable."""
    validate_path_exists(path, description)

    if not path.is_file():
        raise ValidationError(f"{description} is not a file: {path}")

    try:
        path.read_bytes()
    except PermissionError:
        raise ValidationError(f"{description} is not readable: {path}")
    except OSError as e:
        raise ValidationError(f"{description} cannot be read: {e}")


def validate_dir_writable(path: Path, description: str = "Directory") -> None:
    """
    Validate that a directory can be written to.

    A missing directory passes if its nearest existing parent is writable,
    since it will be created on first use.
    """
    probe = path
    while not probe.exists():
        if probe.parent == probe:
            break
        probe = probe.parent

    if probe.exists() and not probe.is_dir():
        raise ValidationError(f"{description} is not a directory: {probe}")

    if not os.access(probe, os.W_OK):
        raise ValidationError(f"{description} is not writable: {probe}")


def validate_country_code(country: Optional[str]) -> Optional[str]:
    """
    Validate an ISO 3166 alpha-2 country code.

    Returns:
        The upper-cased code, or None if no code was given

    Raises:
        ValidationError: If the code is not two letters
    """
    if country is None or not country.strip():
        return None

    country = country.strip()
    if not _COUNTRY_RE.match(country):
        raise ValidationError(
            f"Invalid country code: {country}",
            field="country",
            details={"expected": "two-letter code such as US, GB, DE"},
        )
    return country.upper()


def validate_protocol(protocol: str) -> str:
    """
    Validate a mirror protocol filter.

    Returns:
        The lower-cased protocol

    Raises:
        ValidationError: If the protocol is not supported
    """
    value = (protocol or "").strip().lower()
    if value not in PROTOCOLS:
        raise ValidationError(
            f"Unsupported protocol: {protocol}",
            field="protocol",
            details={"valid_protocols": list(PROTOCOLS)},
        )
    return value


def validate_positive_int(value: int, field: str) -> int:
    """Validate that an integer setting is at least 1."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"must be a positive integer, got {value!r}", field=field)
    return value
