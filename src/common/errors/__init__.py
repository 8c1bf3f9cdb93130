"""Common error taxonomy for column packing."""

from common.errors.packing_errors import (
    AmbiguousColumnCountError,
    CatalogLookupError,
    ColumnNotFoundError,
    ColumnPackingError,
    ColumnParseError,
    PackingErrorCode,
    TypeNotFoundError,
)

__all__ = [
    "AmbiguousColumnCountError",
    "CatalogLookupError",
    "ColumnNotFoundError",
    "ColumnPackingError",
    "ColumnParseError",
    "PackingErrorCode",
    "TypeNotFoundError",
]
