"""
purge_batch.domain.selection -- Selection descriptor parsing and validation.

A descriptor is a SOQL/SQL-like string::

    SELECT Id, Name FROM Contact WHERE CreatedDate < 2020-01-01 LIMIT 5000

Validation is syntactic only: the descriptor must contain a selection clause,
a source clause and the identifier field.  Whether the source table or the
filter's columns exist is only known when the ChunkSource executes it.

ZERO I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from purge_kernel.exceptions import ConfigurationError

_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"

_SELECT_RE = re.compile(r"^\s*SELECT\s+(?P<fields>.*?)\s*(?=\bFROM\b|$)", re.IGNORECASE | re.DOTALL)
_FROM_RE = re.compile(r"\bFROM\b\s*(?P<source>\S*)", re.IGNORECASE)
_WHERE_RE = re.compile(r"\bWHERE\b\s+(?P<where>.+?)\s*(?=\bLIMIT\b|$)", re.IGNORECASE | re.DOTALL)
_LIMIT_RE = re.compile(r"\bLIMIT\b\s+(?P<limit>-?\d+)\s*$", re.IGNORECASE)
_IDENT_RE = re.compile(rf"^{_IDENT}$")


@dataclass(frozen=True)
class SelectionQuery:
    """A parsed, validated selection descriptor."""

    text: str
    fields: tuple[str, ...]
    source: str
    identifier_field: str = "id"
    where: str | None = None
    limit: int | None = None

    @property
    def id_column(self) -> str:
        """The identifier field as spelled in the descriptor."""
        for f in self.fields:
            if f.lower() == self.identifier_field.lower():
                return f
        return self.identifier_field


def parse_selection(text: object, identifier_field: str = "id") -> SelectionQuery:
    """Parse ``text`` into a SelectionQuery.

    Raises:
        ConfigurationError: If the descriptor is empty, lacks a SELECT or
            FROM clause, does not name the identifier field, or carries an
            invalid LIMIT.
    """
    if text is None:
        raise ConfigurationError("Selection descriptor is required", option="query")
    if not isinstance(text, str):
        raise ConfigurationError(
            f"Selection descriptor must be a string, got {type(text).__name__}",
            option="query",
            value=text,
        )
    if not text.strip():
        raise ConfigurationError("Selection descriptor is empty", option="query", value=text)

    select_match = _SELECT_RE.match(text)
    if select_match is None:
        raise ConfigurationError(
            "Selection descriptor has no SELECT clause", option="query", value=text,
        )

    from_match = _FROM_RE.search(text)
    if from_match is None or not from_match.group("source"):
        raise ConfigurationError(
            "Selection descriptor has no FROM clause", option="query", value=text,
        )
    source = from_match.group("source")
    if not _IDENT_RE.match(source):
        raise ConfigurationError(
            f"Selection source '{source}' is not a plain identifier",
            option="query",
            value=text,
        )

    fields = tuple(
        f.strip() for f in select_match.group("fields").split(",") if f.strip()
    )
    if not fields:
        raise ConfigurationError(
            "Selection descriptor selects no fields", option="query", value=text,
        )
    if identifier_field.lower() not in {f.lower() for f in fields}:
        raise ConfigurationError(
            f"Selection descriptor must select the identifier field '{identifier_field}'",
            option="query",
            value=text,
        )

    where_match = _WHERE_RE.search(text)
    where = where_match.group("where") if where_match else None

    limit: int | None = None
    limit_match = _LIMIT_RE.search(text)
    if limit_match is not None:
        limit = int(limit_match.group("limit"))
        if limit <= 0:
            raise ConfigurationError(
                f"Selection LIMIT must be positive, got {limit}",
                option="query",
                value=text,
            )

    return SelectionQuery(
        text=text.strip(),
        fields=fields,
        source=source,
        identifier_field=identifier_field,
        where=where,
        limit=limit,
    )
