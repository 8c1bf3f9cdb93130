"""Alignment ranks and the ordered static rule table used to place built-in types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional, Sequence

from column_packer.column_parser import TypeName

# Largest varlena payload that still fits a 1-byte length header.
SHORT_VARLENA_MAX_BYTES = 126
SHORT_VARLENA_MAX_BITS = SHORT_VARLENA_MAX_BYTES * 8

# float(p) switches from float4 to float8 at this many binary digits.
DOUBLE_PRECISION_MIN_DIGITS = 25


class AlignmentClass(IntEnum):
    """Sort rank derived from a type's storage alignment. Higher sorts earlier."""

    UNALIGNED = 1
    SHORT = 2
    LONG_VARLENA = 3
    INT = 4
    DOUBLE = 8


# pg_type.typalign codes.
TYPALIGN_CLASSES: dict[str, AlignmentClass] = {
    "c": AlignmentClass.UNALIGNED,
    "s": AlignmentClass.SHORT,
    "i": AlignmentClass.INT,
    "d": AlignmentClass.DOUBLE,
}

ENUM_TYPE_CATEGORY = "e"


def alignment_for_catalog_row(type_category: str, alignment_code: str) -> AlignmentClass:
    """Map a pg_type (typtype, typalign) pair onto an alignment rank."""
    if type_category == ENUM_TYPE_CATEGORY:
        return AlignmentClass.INT
    return TYPALIGN_CLASSES.get(alignment_code, AlignmentClass.UNALIGNED)


@dataclass(frozen=True)
class AlignmentRule:
    """One row of the rule table: a predicate and the rank it assigns."""

    description: str
    matches: Callable[[TypeName], bool]
    alignment: Callable[[TypeName], AlignmentClass]


def _builtin(*names: str) -> Callable[[TypeName], bool]:
    accepted = frozenset(names)

    def predicate(type_name: TypeName) -> bool:
        return type_name.schema is None and type_name.name in accepted

    return predicate


def _unbounded(*names: str) -> Callable[[TypeName], bool]:
    is_builtin = _builtin(*names)
    return lambda type_name: is_builtin(type_name) and not type_name.modifiers


def _bounded(name: str) -> Callable[[TypeName], bool]:
    is_builtin = _builtin(name)
    return lambda type_name: is_builtin(type_name) and type_name.integer_modifier() is not None


def _fixed(alignment: AlignmentClass) -> Callable[[TypeName], AlignmentClass]:
    return lambda _type_name: alignment


def _varlena_limit(limit: int) -> Callable[[TypeName], AlignmentClass]:
    def alignment(type_name: TypeName) -> AlignmentClass:
        if type_name.integer_modifier() <= limit:
            return AlignmentClass.UNALIGNED
        return AlignmentClass.LONG_VARLENA

    return alignment


def _float_precision(type_name: TypeName) -> AlignmentClass:
    precision = type_name.integer_modifier()
    if precision is None or precision >= DOUBLE_PRECISION_MIN_DIGITS:
        return AlignmentClass.DOUBLE
    return AlignmentClass.INT


def _is_citext(type_name: TypeName) -> bool:
    # citext is an extension type and may live in any schema
    return type_name.name == "citext" and not type_name.modifiers


_is_unbounded_text = _unbounded("text", "character varying", "bit varying", "bit")

ALIGNMENT_RULES: Sequence[AlignmentRule] = (
    AlignmentRule(
        "8-byte integers, timestamps and double precision",
        _builtin(
            "bigint",
            "bigserial",
            "double precision",
            "timestamp",
            "timestamp without time zone",
            "timestamp with time zone",
        ),
        _fixed(AlignmentClass.DOUBLE),
    ),
    AlignmentRule(
        "4-byte integers, date, time of day, numeric and real",
        _builtin(
            "integer",
            "serial",
            "date",
            "time",
            "time without time zone",
            "time with time zone",
            "numeric",
            "real",
        ),
        _fixed(AlignmentClass.INT),
    ),
    AlignmentRule("binary blob", _builtin("bytea"), _fixed(AlignmentClass.INT)),
    AlignmentRule(
        "unbounded text-like types",
        lambda t: _is_citext(t) or _is_unbounded_text(t),
        _fixed(AlignmentClass.LONG_VARLENA),
    ),
    AlignmentRule(
        "bounded character varying",
        _bounded("character varying"),
        _varlena_limit(SHORT_VARLENA_MAX_BYTES),
    ),
    AlignmentRule(
        "bounded bit varying",
        _bounded("bit varying"),
        _varlena_limit(SHORT_VARLENA_MAX_BITS),
    ),
    AlignmentRule("float with binary precision", _builtin("float"), _float_precision),
    AlignmentRule(
        "2-byte integers and boolean",
        _builtin("smallint", "smallserial", "boolean"),
        _fixed(AlignmentClass.SHORT),
    ),
)


def match_static_rule(type_name: TypeName) -> Optional[AlignmentClass]:
    """Return the rank of the first matching rule, or None when no rule matches."""
    for rule in ALIGNMENT_RULES:
        if rule.matches(type_name):
            return rule.alignment(type_name)
    return None
