"""
purge_batch.domain.config -- Job configuration and its fluent builder.

``JobConfigurationBuilder`` parses the selection descriptor in its
constructor, so a malformed job fails before any work or resources are
consumed.  Each setter validates only its own argument and returns the
same builder, allowing chained configuration::

    config = (
        JobConfigurationBuilder("SELECT Id FROM Lead WHERE IsConverted = 1")
        .set_all_or_none(False)
        .set_hard_delete(True)
        .set_send_report(True)
        .build(chunk_size=500)
    )

``build()`` freezes the options into an immutable ``JobConfiguration``.

ZERO I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from purge_kernel.exceptions import ConfigurationError

from purge_batch.domain.selection import SelectionQuery, parse_selection
from purge_batch.domain.types import AllOrNoneScope, MutationOperation

DEFAULT_CHUNK_SIZE = 200

_ADDRESS_RE = re.compile(r"^[^@\s]+@[^@\s]+$")


@dataclass(frozen=True)
class JobConfiguration:
    """Immutable configuration for one deletion job."""

    query: SelectionQuery
    all_or_none: bool = False
    hard_delete: bool = False
    dry_run: bool = False
    send_report: bool = False
    notification_target: str | None = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    all_or_none_scope: AllOrNoneScope = AllOrNoneScope.JOB

    @property
    def operation(self) -> MutationOperation:
        if self.dry_run:
            return MutationOperation.DRY_RUN
        if self.hard_delete:
            return MutationOperation.HARD_DELETE
        return MutationOperation.SOFT_DELETE

    @property
    def aborts_job_on_failure(self) -> bool:
        return self.all_or_none and self.all_or_none_scope == AllOrNoneScope.JOB


def _require_bool(option: str, value: object) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(
            f"{option} must be a bool, got {type(value).__name__}",
            option=option,
            value=value,
        )
    return value


def validate_chunk_size(value: object) -> int:
    """Return ``value`` if it is a positive int.

    Raises:
        ConfigurationError: For bools, non-ints, zero or negative values.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(
            f"chunk_size must be an int, got {type(value).__name__}",
            option="chunk_size",
            value=value,
        )
    if value <= 0:
        raise ConfigurationError(
            f"chunk_size must be positive, got {value}",
            option="chunk_size",
            value=value,
        )
    return value


class JobConfigurationBuilder:
    """Fluent, validating builder for ``JobConfiguration``."""

    def __init__(self, descriptor: object, identifier_field: str = "id"):
        self._query = parse_selection(descriptor, identifier_field=identifier_field)
        self._all_or_none = False
        self._hard_delete = False
        self._dry_run = False
        self._send_report = False
        self._notification_target: str | None = None
        self._chunk_size = DEFAULT_CHUNK_SIZE
        self._scope = AllOrNoneScope.JOB

    @property
    def query(self) -> SelectionQuery:
        return self._query

    def set_all_or_none(self, value: bool) -> JobConfigurationBuilder:
        self._all_or_none = _require_bool("all_or_none", value)
        return self

    def set_hard_delete(self, value: bool) -> JobConfigurationBuilder:
        self._hard_delete = _require_bool("hard_delete", value)
        return self

    def set_dry_run(self, value: bool) -> JobConfigurationBuilder:
        self._dry_run = _require_bool("dry_run", value)
        return self

    def set_send_report(self, value: bool) -> JobConfigurationBuilder:
        self._send_report = _require_bool("send_report", value)
        return self

    def set_notification_target(self, address: str | None) -> JobConfigurationBuilder:
        """Set the report recipient. ``None`` restores the default recipient."""
        if address is not None and (
            not isinstance(address, str) or not _ADDRESS_RE.match(address)
        ):
            raise ConfigurationError(
                f"notification_target is not an address: {address!r}",
                option="notification_target",
                value=address,
            )
        self._notification_target = address
        return self

    def set_chunk_size(self, value: int) -> JobConfigurationBuilder:
        self._chunk_size = validate_chunk_size(value)
        return self

    def set_all_or_none_scope(self, scope: AllOrNoneScope | str) -> JobConfigurationBuilder:
        try:
            self._scope = AllOrNoneScope(scope)
        except ValueError:
            raise ConfigurationError(
                f"all_or_none_scope must be one of "
                f"{[s.value for s in AllOrNoneScope]}, got {scope!r}",
                option="all_or_none_scope",
                value=scope,
            ) from None
        return self

    def build(
        self,
        chunk_size: int | None = None,
        default_notification_target: str | None = None,
    ) -> JobConfiguration:
        """Freeze the current options.

        Args:
            chunk_size: Overrides the builder's chunk size when given.
            default_notification_target: Recipient used when no explicit
                target was set (normally the invoking principal).
        """
        size = self._chunk_size if chunk_size is None else validate_chunk_size(chunk_size)
        return JobConfiguration(
            query=self._query,
            all_or_none=self._all_or_none,
            hard_delete=self._hard_delete,
            dry_run=self._dry_run,
            send_report=self._send_report,
            notification_target=self._notification_target or default_notification_target,
            chunk_size=size,
            all_or_none_scope=self._scope,
        )
