"""Configuration helpers for the content core and its operator tooling."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, TypeVar

from .documents import VersionStampPolicy
from .migrations import MissingRequiredPolicy
from .store import DEFAULT_PAGE_SIZE
from .validation import LEGACY_SCHEMA_VERSION

_EnumT = TypeVar("_EnumT", bound=Enum)


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _optional_string(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def _positive_int(value: str | None, *, name: str, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a positive integer.") from exc
    if parsed < 1:
        raise ValueError(f"{name} must be greater than zero.")
    return parsed


def _enum_value(
    value: str | None, *, name: str, enum_type: type[_EnumT], default: _EnumT
) -> _EnumT:
    if value is None or not value.strip():
        return default
    normalised = value.strip().lower()
    for member in enum_type:
        if member.value == normalised:
            return member
    choices = ", ".join(str(member.value) for member in enum_type)
    raise ValueError(f"{name} must be one of: {choices}.")


def _log_level(value: str | None) -> int:
    if value is None or not value.strip():
        return logging.INFO
    level = logging.getLevelName(value.strip().upper())
    if not isinstance(level, int):
        raise ValueError("SIMCONTENT_LOG_LEVEL must be a standard logging level name.")
    return level


@dataclass(frozen=True)
class ContentSettings:
    """Deployment settings for the validation and migration core.

    Values are read from environment variables so operators can change
    policies without touching code. Paths are expanded to support ``~``
    prefixes while empty strings are treated as if the variable was unset.
    """

    schema_dir: Path | None = None
    store_root: Path | None = None
    page_size: int = DEFAULT_PAGE_SIZE
    version_policy: VersionStampPolicy = VersionStampPolicy.PRESERVE
    missing_required_policy: MissingRequiredPolicy = MissingRequiredPolicy.PLACEHOLDER
    legacy_version: str = LEGACY_SCHEMA_VERSION
    log_level: int = logging.INFO
    backup_dir: Path | None = None
    backup_s3_bucket: str | None = None
    backup_s3_prefix: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ContentSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        return cls(
            schema_dir=_normalise_path(source.get("SIMCONTENT_SCHEMA_DIR")),
            store_root=_normalise_path(source.get("SIMCONTENT_STORE_ROOT")),
            page_size=_positive_int(
                source.get("SIMCONTENT_PAGE_SIZE"),
                name="SIMCONTENT_PAGE_SIZE",
                default=DEFAULT_PAGE_SIZE,
            ),
            version_policy=_enum_value(
                source.get("SIMCONTENT_VERSION_POLICY"),
                name="SIMCONTENT_VERSION_POLICY",
                enum_type=VersionStampPolicy,
                default=VersionStampPolicy.PRESERVE,
            ),
            missing_required_policy=_enum_value(
                source.get("SIMCONTENT_MISSING_REQUIRED_POLICY"),
                name="SIMCONTENT_MISSING_REQUIRED_POLICY",
                enum_type=MissingRequiredPolicy,
                default=MissingRequiredPolicy.PLACEHOLDER,
            ),
            legacy_version=_normalise_string(
                source.get("SIMCONTENT_LEGACY_VERSION"),
                default=LEGACY_SCHEMA_VERSION,
            ),
            log_level=_log_level(source.get("SIMCONTENT_LOG_LEVEL")),
            backup_dir=_normalise_path(source.get("SIMCONTENT_BACKUP_DIR")),
            backup_s3_bucket=_optional_string(source.get("SIMCONTENT_BACKUP_S3_BUCKET")),
            backup_s3_prefix=_optional_string(source.get("SIMCONTENT_BACKUP_S3_PREFIX")),
        )


__all__ = ["ContentSettings"]
