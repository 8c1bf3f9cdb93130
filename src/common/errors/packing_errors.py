"""Error taxonomy for column packing flows."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class PackingErrorCode(str, Enum):
    """Bounded error codes surfaced by classification and rewriting."""

    TYPE_NOT_FOUND = "TYPE_NOT_FOUND"
    AMBIGUOUS_COLUMN_COUNT = "AMBIGUOUS_COLUMN_COUNT"
    CATALOG_LOOKUP_FAILURE = "CATALOG_LOOKUP_FAILURE"
    COLUMN_NOT_FOUND = "COLUMN_NOT_FOUND"
    COLUMN_PARSE_FAILURE = "COLUMN_PARSE_FAILURE"


class ColumnPackingError(RuntimeError):
    """Base exception for failures that abort a reorder operation."""

    def __init__(
        self,
        message: str,
        code: PackingErrorCode,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize packing error with message, code, and optional details."""
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class TypeNotFoundError(ColumnPackingError):
    """Raised when the catalog has no entry for a type the rule table cannot place."""

    def __init__(self, sql_type: str, schema: Optional[str] = None) -> None:
        """Initialize with the offending type string and resolved schema."""
        qualified = f"{schema}.{sql_type}" if schema else sql_type
        super().__init__(
            f"Type '{qualified}' was not found in the catalog.",
            code=PackingErrorCode.TYPE_NOT_FOUND,
            details={"sql_type": sql_type, "schema": schema},
        )
        self.sql_type = sql_type
        self.schema = schema


class AmbiguousColumnCountError(ColumnPackingError):
    """Raised when a single-column fragment parses to more than one column."""

    def __init__(self, fragment: str, column_count: int) -> None:
        """Initialize with the fragment and the number of columns it produced."""
        super().__init__(
            f"Expected exactly one column definition, found {column_count}: {fragment!r}",
            code=PackingErrorCode.AMBIGUOUS_COLUMN_COUNT,
            details={"fragment": fragment, "column_count": column_count},
        )
        self.fragment = fragment
        self.column_count = column_count


class CatalogLookupError(ColumnPackingError):
    """Raised when the catalog collaborator itself fails (connectivity, driver)."""

    def __init__(self, message: str, *, query_name: str) -> None:
        """Initialize with the failing query name."""
        super().__init__(
            message,
            code=PackingErrorCode.CATALOG_LOOKUP_FAILURE,
            details={"query_name": query_name},
        )
        self.query_name = query_name


class ColumnNotFoundError(ColumnPackingError):
    """Raised when a dumped column has no matching live catalog row."""

    def __init__(self, schema: Optional[str], table: str, column: str) -> None:
        """Initialize with the table reference and column name."""
        qualified = f"{schema}.{table}" if schema else table
        super().__init__(
            f"Column '{column}' of table '{qualified}' was not found in the catalog.",
            code=PackingErrorCode.COLUMN_NOT_FOUND,
            details={"schema": schema, "table": table, "column": column},
        )
        self.schema = schema
        self.table = table
        self.column = column


class ColumnParseError(ValueError):
    """Raised when a fragment cannot be structurally parsed."""

    code = PackingErrorCode.COLUMN_PARSE_FAILURE
