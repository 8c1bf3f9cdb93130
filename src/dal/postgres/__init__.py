"""PostgreSQL DAL Implementations.

This package contains the concrete implementations of DAL interfaces for PostgreSQL.
"""

from .catalog import PostgresCatalog

__all__ = [
    "PostgresCatalog",
]
