"""
Batch settings (``purge_batch.config``).

Responsibility
--------------
Loads deployment-level settings for deletion jobs from a YAML file into a
frozen ``BatchSettings`` dataclass.  Per-job options (all-or-none, hard
delete, dry run, ...) live on JobConfiguration; these are the defaults and
environment knobs around them.

Example ``purge.yaml``::

    environment: production
    database_url: postgresql://purge@db/records
    default_chunk_size: 200
    error_log_cap: 100
    identifier_field: id
    all_or_none_scope: job
    report_sender: purge-bot@example.com

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from purge_kernel.exceptions import ConfigurationError

from purge_batch.domain.config import DEFAULT_CHUNK_SIZE, validate_chunk_size
from purge_batch.domain.state import DEFAULT_ERROR_LOG_CAP
from purge_batch.domain.types import AllOrNoneScope


@dataclass(frozen=True)
class BatchSettings:
    """Deployment-level defaults for deletion jobs."""

    environment: str = "development"
    database_url: str | None = None
    default_chunk_size: int = DEFAULT_CHUNK_SIZE
    error_log_cap: int = DEFAULT_ERROR_LOG_CAP
    identifier_field: str = "id"
    all_or_none_scope: AllOrNoneScope = AllOrNoneScope.JOB
    report_sender: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def settings_from_dict(data: dict[str, Any]) -> BatchSettings:
    """Build BatchSettings from a parsed mapping.

    Raises:
        ConfigurationError: On unknown keys or invalid values.
    """
    known = {f.name for f in fields(BatchSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown settings: {unknown}", option=unknown[0])

    values = dict(data)
    if "default_chunk_size" in values:
        values["default_chunk_size"] = validate_chunk_size(values["default_chunk_size"])

    cap = values.get("error_log_cap", DEFAULT_ERROR_LOG_CAP)
    if isinstance(cap, bool) or not isinstance(cap, int) or cap < 0:
        raise ConfigurationError(
            f"error_log_cap must be a non-negative int, got {cap!r}",
            option="error_log_cap",
            value=cap,
        )

    if "all_or_none_scope" in values:
        try:
            values["all_or_none_scope"] = AllOrNoneScope(values["all_or_none_scope"])
        except ValueError:
            raise ConfigurationError(
                f"all_or_none_scope must be 'job' or 'chunk', "
                f"got {values['all_or_none_scope']!r}",
                option="all_or_none_scope",
                value=values["all_or_none_scope"],
            ) from None

    for key in ("environment", "identifier_field"):
        if key in values and (not isinstance(values[key], str) or not values[key]):
            raise ConfigurationError(
                f"{key} must be a non-empty string", option=key, value=values[key],
            )

    return BatchSettings(**values)


def load_settings(path: Path) -> BatchSettings:
    """Load BatchSettings from a YAML file (an empty file gives defaults)."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return BatchSettings()
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Settings file {path} must contain a mapping, got {type(data).__name__}",
        )
    return settings_from_dict(data)
