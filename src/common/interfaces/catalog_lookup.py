from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class TypeCatalogRow:
    """A pg_type row reduced to what alignment classification needs."""

    type_category: str
    alignment_code: str


@dataclass(frozen=True)
class ColumnCatalogRow:
    """A pg_attribute row reduced to what column ordering needs."""

    formatted_type: str
    not_null: bool
    has_default: bool
    is_primary_key: bool


@runtime_checkable
class CatalogLookup(Protocol):
    """Protocol for synchronous, read-only point queries against the catalog.

    Returning ``None`` means "no such row"; failures raise.
    """

    def lookup_type(self, type_name: str, schema: Optional[str] = None) -> Optional[TypeCatalogRow]:
        """Fetch the type category and alignment code for a type."""
        ...

    def lookup_column(
        self, schema: Optional[str], table: str, column: str
    ) -> Optional[ColumnCatalogRow]:
        """Fetch formatted type, nullability, default and primary-key flags for a column."""
        ...
