"""Interfaces for the catalog collaborator shared by the packer and the DAL."""

from .catalog_lookup import CatalogLookup, ColumnCatalogRow, TypeCatalogRow

__all__ = [
    "CatalogLookup",
    "ColumnCatalogRow",
    "TypeCatalogRow",
]
