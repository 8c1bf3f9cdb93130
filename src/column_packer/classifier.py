import logging
from dataclasses import replace
from typing import Any, Optional

from opentelemetry import trace

from column_packer.alignment import AlignmentClass, alignment_for_catalog_row, match_static_rule
from column_packer.column_parser import TYPE_ALIASES, TypeName, parse_type_declaration
from column_packer.type_cache import TypeClassificationCache
from common.errors.packing_errors import ColumnParseError, TypeNotFoundError
from common.interfaces.catalog_lookup import CatalogLookup

logger = logging.getLogger(__name__)

SYSTEM_CATALOG_SCHEMA = "pg_catalog"

# SQL spellings whose pg_type.typname differs.
PG_TYPE_NAMES: dict[str, str] = {
    "character": "bpchar",
    "character varying": "varchar",
    "bit varying": "varbit",
    "double precision": "float8",
    "real": "float4",
    "integer": "int4",
    "bigint": "int8",
    "smallint": "int2",
    "boolean": "bool",
    "timestamp": "timestamp",
    "timestamp without time zone": "timestamp",
    "timestamp with time zone": "timestamptz",
    "time": "time",
    "time without time zone": "time",
    "time with time zone": "timetz",
}


def _fallback_type_name(sql_type: str, schema_qualifier: Optional[str]) -> TypeName:
    stripped = sql_type.strip()
    if len(stripped) >= 2 and stripped.startswith('"') and stripped.endswith('"'):
        return TypeName(
            name=stripped[1:-1].replace('""', '"'), schema=schema_qualifier, quoted=True
        )
    return TypeName(name=stripped.lower(), schema=schema_qualifier)


def normalize_type(sql_type: str, schema_qualifier: Optional[str] = None) -> TypeName:
    """Split a declared type into qualifier, bare name and modifiers.

    Array suffixes are dropped and ``pg_catalog`` spellings are folded onto
    the unqualified built-in names so the static rules can match them.
    """
    try:
        type_name = parse_type_declaration(sql_type)
    except ColumnParseError as e:
        logger.debug("type_normalize_unparsed sql_type=%r reason=%s", sql_type, e)
        type_name = _fallback_type_name(sql_type, schema_qualifier)

    type_name = replace(type_name, array_dimensions=0)
    if type_name.schema is None and schema_qualifier is not None:
        type_name = replace(type_name, schema=schema_qualifier)

    if type_name.schema != SYSTEM_CATALOG_SCHEMA:
        return type_name

    name, modifiers = type_name.name, type_name.modifiers
    if name == "bpchar" and not modifiers:
        name, modifiers = "character", ("1",)
    elif name == "varbit":
        name = "bit varying"
    elif name == "bit" and not modifiers:
        modifiers = ("1",)
    else:
        name = TYPE_ALIASES.get(name, name)
    return TypeName(name=name, modifiers=modifiers)


class TypeAlignmentClassifier:
    """Classify SQL type strings into alignment classes.

    Built-in types are placed by the static rule table. Anything else costs one
    catalog lookup per distinct ``(schema, type)`` key, served afterwards from
    the injected cache.
    """

    def __init__(
        self, catalog: CatalogLookup, cache: Optional[TypeClassificationCache] = None
    ) -> None:
        """Initialize with a catalog collaborator and an optional shared cache."""
        self._catalog = catalog
        self._cache = cache if cache is not None else TypeClassificationCache()
        self._tracer = trace.get_tracer(__name__)

    @property
    def cache(self) -> TypeClassificationCache:
        """Return the cache backing catalog fallbacks."""
        return self._cache

    def on_connection(self, connection: Any) -> "TypeAlignmentClassifier":
        """Return a classifier whose catalog misses are resolved on ``connection``.

        The returned classifier shares this one's cache. Catalogs that cannot be
        bound to a connection are reused as they are.
        """
        bind = getattr(self._catalog, "on_connection", None)
        if bind is None:
            return self
        return TypeAlignmentClassifier(bind(connection), cache=self._cache)

    def classify(self, sql_type: str, schema_qualifier: Optional[str] = None) -> AlignmentClass:
        """Return the alignment class of ``sql_type``.

        Raises:
            AmbiguousColumnCountError: if the type string declares several columns.
            TypeNotFoundError: if the catalog has no matching type.
        """
        type_name = normalize_type(sql_type, schema_qualifier)
        alignment = match_static_rule(type_name)
        if alignment is not None:
            return alignment

        key = (type_name.schema, type_name.bare_with_modifier)
        return self._cache.get_or_resolve(
            key, lambda: self._lookup_alignment(sql_type, type_name)
        )

    def _lookup_alignment(self, sql_type: str, type_name: TypeName) -> AlignmentClass:
        pg_type_name = PG_TYPE_NAMES.get(type_name.name, type_name.name)
        with self._tracer.start_as_current_span("column_packer.classify.catalog_fallback") as span:
            span.set_attribute("column_packer.type_name", pg_type_name)
            if type_name.schema:
                span.set_attribute("column_packer.schema_name", type_name.schema)

            row = self._catalog.lookup_type(pg_type_name, type_name.schema)
            if row is None:
                logger.warning(
                    "type_not_found sql_type=%r schema=%s", sql_type, type_name.schema
                )
                raise TypeNotFoundError(sql_type, type_name.schema)

            alignment = alignment_for_catalog_row(row.type_category, row.alignment_code)
            span.set_attribute("column_packer.alignment", int(alignment))
            logger.info(
                "type_catalog_fallback type=%s schema=%s typtype=%s typalign=%s alignment=%d",
                pg_type_name,
                type_name.schema,
                row.type_category,
                row.alignment_code,
                alignment,
            )
            return alignment
