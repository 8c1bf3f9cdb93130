import logging
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from column_packer.alignment import AlignmentClass

logger = logging.getLogger(__name__)

SERIAL_TYPES = frozenset(
    {"smallserial", "serial", "bigserial", "serial2", "serial4", "serial8"}
)

OrderKey = Tuple[int, int, int, int, str]


class AlignmentClassifier(Protocol):
    """Anything that can place a declared type into an alignment class."""

    def classify(self, sql_type: str, schema_qualifier: Optional[str] = None) -> AlignmentClass:
        """Return the alignment class of a type string."""
        ...


class ColumnDescriptor(BaseModel):
    """One table column under consideration for reordering."""

    model_config = ConfigDict(frozen=True)

    name: str
    raw_type: str
    schema_qualifier: Optional[str] = None
    is_primary_key: bool = False
    is_nullable: bool = True
    has_default: bool = False

    @model_validator(mode="before")
    @classmethod
    def serial_columns_are_not_nullable(cls, data: Any) -> Any:
        """Serial-family columns are implicitly NOT NULL."""
        if isinstance(data, dict):
            raw_type = str(data.get("raw_type", "")).strip().lower()
            if raw_type in SERIAL_TYPES:
                data = {**data, "is_nullable": False}
        return data


def order_key(column: ColumnDescriptor, alignment: AlignmentClass) -> OrderKey:
    """Build the sort key for a column.

    Components, most significant first: negated alignment, primary key first,
    NOT NULL first, nullable-with-default before plain nullable, then name.
    A NOT NULL column with a default ranks like any other NOT NULL column.
    """
    return (
        -int(alignment),
        0 if column.is_primary_key else 1,
        0 if not column.is_nullable else 1,
        0 if column.has_default and column.is_nullable else 1,
        column.name,
    )


def sort_columns(
    columns: Sequence[ColumnDescriptor], classifier: AlignmentClassifier
) -> List[ColumnDescriptor]:
    """Return columns resequenced into alignment-optimal order.

    Receives columns in declaration order; classification errors propagate.
    """
    keyed = [
        (order_key(column, classifier.classify(column.raw_type, column.schema_qualifier)), column)
        for column in columns
    ]
    keyed.sort(key=lambda pair: pair[0])
    ordered = [column for _, column in keyed]
    logger.debug(
        "columns_sorted before=%s after=%s",
        [column.name for column in columns],
        [column.name for column in ordered],
    )
    return ordered
