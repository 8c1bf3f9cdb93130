"""Reorder columns of PostgreSQL CREATE TABLE statements compiled by SQLAlchemy.

While a classifier is installed, every ``CreateTable`` compiled for the
postgresql dialect (``metadata.create_all``, ``table.create``, or an explicit
``CreateTable(table).compile(...)``) lists its columns in alignment-optimal
order. The ``Table`` object itself keeps its declared column order.

During ``create`` the connection running the DDL is remembered per table, and a
classifier offering ``on_connection`` resolves catalog misses on it.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    Sequence,
    SmallInteger,
    Table,
    TypeDecorator,
    event,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.schema import CreateColumn, CreateTable

from column_packer.ordering import AlignmentClassifier, ColumnDescriptor, sort_columns

logger = logging.getLogger(__name__)


class _HookState:
    """Holds the installed classifier and the connections of tables being created."""

    def __init__(self) -> None:
        """Initialize with no classifier installed."""
        self.classifier: Optional[AlignmentClassifier] = None
        self.creating: Dict[Table, Any] = {}


_state = _HookState()


def _renders_as_serial(column: Column, dialect: Dialect) -> bool:
    impl_type = column.type.dialect_impl(dialect)
    if isinstance(impl_type, TypeDecorator):
        impl_type = impl_type.impl
    default_is_optional = column.default is None or (
        isinstance(column.default, Sequence) and column.default.optional
    )
    return (
        column.primary_key
        and column is column.table.autoincrement_column
        and isinstance(impl_type, Integer)
        and column.identity is None
        and default_is_optional
    )


def declared_type(column: Column, dialect: Dialect) -> str:
    """Return the type PostgreSQL DDL will declare for a column."""
    if _renders_as_serial(column, dialect):
        impl_type = column.type.dialect_impl(dialect)
        if isinstance(impl_type, TypeDecorator):
            impl_type = impl_type.impl
        if isinstance(impl_type, BigInteger):
            return "bigserial"
        if isinstance(impl_type, SmallInteger):
            return "smallserial"
        return "serial"
    return column.type.compile(dialect=dialect)


def describe_column(column: Column, dialect: Dialect) -> ColumnDescriptor:
    """Build a ColumnDescriptor from a SQLAlchemy column."""
    return ColumnDescriptor(
        name=column.name,
        raw_type=declared_type(column, dialect),
        is_primary_key=bool(column.primary_key),
        is_nullable=bool(column.nullable),
        has_default=column.server_default is not None,
    )


def reorder_create_columns(
    create: CreateTable, classifier: AlignmentClassifier, dialect: Dialect
) -> List[CreateColumn]:
    """Return the CreateColumn elements of a CreateTable in packed order."""
    by_name = {create_column.element.name: create_column for create_column in create.columns}
    descriptors = [
        describe_column(create_column.element, dialect) for create_column in create.columns
    ]
    ordered = sort_columns(descriptors, classifier)
    logger.debug(
        "create_table_reordered table=%s columns=%s",
        create.element.name,
        [descriptor.name for descriptor in ordered],
    )
    return [by_name[descriptor.name] for descriptor in ordered]


def _classifier_for(table: Table) -> Optional[AlignmentClassifier]:
    classifier = _state.classifier
    connection = _state.creating.pop(table, None)
    if classifier is None or connection is None:
        return classifier
    on_connection = getattr(classifier, "on_connection", None)
    return on_connection(connection) if on_connection is not None else classifier


@event.listens_for(Table, "before_create")
def _remember_creating_connection(table: Table, connection: Any, **kw: Any) -> None:
    if _state.classifier is not None and connection.dialect.name == "postgresql":
        _state.creating[table] = connection


@event.listens_for(Table, "after_create")
def _forget_creating_connection(table: Table, connection: Any, **kw: Any) -> None:
    _state.creating.pop(table, None)


@compiles(CreateTable, "postgresql")
def _compile_packed_create_table(create: CreateTable, compiler: Any, **kw: Any) -> str:
    # Types created earlier in the same transaction are only visible on the
    # connection running the DDL, so catalog misses are resolved there.
    classifier = _classifier_for(create.element)
    if classifier is not None:
        create.columns = reorder_create_columns(create, classifier, compiler.dialect)
    return compiler.visit_create_table(create, **kw)


def install_create_table_hook(classifier: AlignmentClassifier) -> None:
    """Start reordering columns of compiled PostgreSQL CREATE TABLE statements."""
    _state.classifier = classifier
    logger.info("create_table_hook_installed classifier=%s", type(classifier).__name__)


def uninstall_create_table_hook() -> None:
    """Stop reordering; CREATE TABLE compiles in declared column order again."""
    _state.classifier = None
    _state.creating.clear()
    logger.info("create_table_hook_uninstalled")


@contextmanager
def packed_create_tables(classifier: AlignmentClassifier) -> Iterator[AlignmentClassifier]:
    """Install the hook for the duration of a block, restoring the previous state after."""
    previous = _state.classifier
    install_create_table_hook(classifier)
    try:
        yield classifier
    finally:
        _state.classifier = previous
