import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from opentelemetry import trace
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from common.config.settings import PackerSettings
from common.errors.packing_errors import CatalogLookupError
from common.interfaces.catalog_lookup import ColumnCatalogRow, TypeCatalogRow

logger = logging.getLogger(__name__)

TYPE_QUERY = """
SELECT t.typtype, t.typalign
FROM pg_catalog.pg_type t
JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
WHERE t.typname = :type_name
  AND (
    (CAST(:schema_name AS text) IS NULL AND pg_catalog.pg_type_is_visible(t.oid))
    OR n.nspname = :schema_name
  )
LIMIT 1
"""

COLUMN_QUERY = """
SELECT
  pg_catalog.format_type(a.atttypid, a.atttypmod) AS formatted_type,
  a.attnotnull,
  a.atthasdef,
  EXISTS (
    SELECT 1
    FROM pg_catalog.pg_index i
    WHERE i.indrelid = c.oid
      AND i.indisprimary
      AND a.attnum = ANY (i.indkey)
  ) AS is_primary_key
FROM pg_catalog.pg_attribute a
JOIN pg_catalog.pg_class c ON c.oid = a.attrelid
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
WHERE c.relname = :table_name
  AND a.attname = :column_name
  AND a.attnum > 0
  AND NOT a.attisdropped
  AND (
    (CAST(:schema_name AS text) IS NULL AND pg_catalog.pg_table_is_visible(c.oid))
    OR n.nspname = :schema_name
  )
LIMIT 1
"""


class PostgresCatalog:
    """CatalogLookup implementation backed by pg_catalog point queries."""

    def __init__(self, engine: Engine, connection: Optional[Connection] = None) -> None:
        """Initialize with a SQLAlchemy engine.

        When ``connection`` is given, queries run on it instead of a pooled
        connection, so they see objects created earlier in its open transaction.
        """
        self._engine = engine
        self._connection = connection
        self._tracer = trace.get_tracer(__name__)

    @classmethod
    def from_url(cls, database_url: str) -> "PostgresCatalog":
        """Create a catalog from a database URL."""
        return cls(create_engine(database_url))

    @classmethod
    def from_settings(cls, settings: Optional[PackerSettings] = None) -> "PostgresCatalog":
        """Create a catalog from environment-driven settings."""
        settings = settings or PackerSettings()
        return cls.from_url(settings.DATABASE_URL)

    def on_connection(self, connection: Connection) -> "PostgresCatalog":
        """Return a catalog that queries on ``connection``."""
        return PostgresCatalog(self._engine, connection=connection)

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.connect() as conn:
            yield conn

    def _fetch_one(self, query_name: str, sql: str, params: Mapping[str, Any]) -> Optional[Any]:
        with self._tracer.start_as_current_span(f"column_packer.catalog.{query_name}") as span:
            for key, value in params.items():
                if value is not None:
                    span.set_attribute(f"column_packer.{key}", value)
            try:
                with self._connect() as conn:
                    row = conn.execute(text(sql), dict(params)).first()
            except SQLAlchemyError as e:
                logger.error("catalog_lookup_failed query=%s error=%s", query_name, e)
                raise CatalogLookupError(
                    f"Catalog query '{query_name}' failed: {e}", query_name=query_name
                ) from e
            span.set_attribute("column_packer.catalog.found", row is not None)
            return row

    def lookup_type(
        self, type_name: str, schema: Optional[str] = None
    ) -> Optional[TypeCatalogRow]:
        """Fetch (typtype, typalign) for a type by exact pg_type name and namespace."""
        row = self._fetch_one(
            "lookup_type", TYPE_QUERY, {"type_name": type_name, "schema_name": schema}
        )
        if row is None:
            logger.info("catalog_type_missing type=%s schema=%s", type_name, schema)
            return None
        return TypeCatalogRow(type_category=row[0], alignment_code=row[1])

    def lookup_column(
        self, schema: Optional[str], table: str, column: str
    ) -> Optional[ColumnCatalogRow]:
        """Fetch formatted type, NOT NULL, default and primary-key flags for a column."""
        row = self._fetch_one(
            "lookup_column",
            COLUMN_QUERY,
            {"schema_name": schema, "table_name": table, "column_name": column},
        )
        if row is None:
            logger.info(
                "catalog_column_missing schema=%s table=%s column=%s", schema, table, column
            )
            return None
        return ColumnCatalogRow(
            formatted_type=row[0],
            not_null=bool(row[1]),
            has_default=bool(row[2]),
            is_primary_key=bool(row[3]),
        )
