"""Structural parsing of single column-definition fragments.

Only enough of PostgreSQL's CREATE TABLE grammar is understood to pull a column
name and one type declaration out of a fragment such as
``"my col" public."my type"[] NOT NULL``; whatever follows the type is left
unread. Fragments are checked by wrapping them into a fabricated one-column
``CREATE TABLE`` statement, so a line from a dump is accepted only if it would
stand on its own as a table element. Lexing (quoted identifiers, string
literals, comments) is delegated to sqlparse.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from sqlparse import tokens as T
from sqlparse.lexer import tokenize

from common.errors.packing_errors import AmbiguousColumnCountError, ColumnParseError

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"^[\w$#]+$", re.UNICODE)

# Unquoted, unqualified spellings folded onto the names format_type() prints.
TYPE_ALIASES: dict[str, str] = {
    "int": "integer",
    "int4": "integer",
    "int8": "bigint",
    "int2": "smallint",
    "bool": "boolean",
    "float8": "double precision",
    "float4": "real",
    "decimal": "numeric",
    "dec": "numeric",
    "varchar": "character varying",
    "char": "character",
    "char varying": "character varying",
    "varbit": "bit varying",
    "timestamptz": "timestamp with time zone",
    "timetz": "time with time zone",
    "serial4": "serial",
    "serial8": "bigserial",
    "serial2": "smallserial",
}

# Types whose unmodified spelling means a length of one.
_IMPLICIT_LENGTH_ONE = frozenset({"character", "bit"})

_TABLE_CONSTRAINT_WORDS = frozenset({"CONSTRAINT", "PRIMARY", "UNIQUE", "CHECK", "FOREIGN", "LIKE"})

_INTERVAL_FIELDS = frozenset({"YEAR", "MONTH", "DAY", "HOUR", "MINUTE", "SECOND", "TO"})


@dataclass(frozen=True)
class TypeName:
    """A type declaration split into qualifier, bare name, modifiers and array depth."""

    name: str
    schema: Optional[str] = None
    modifiers: Tuple[str, ...] = ()
    array_dimensions: int = 0
    quoted: bool = False

    @property
    def bare_with_modifier(self) -> str:
        """Render the bare type with its modifier the way format_type() does."""
        if not self.modifiers:
            return self.name
        modifier = "(" + ",".join(self.modifiers) + ")"
        head, separator, tail = self.name.partition(" ")
        if not self.quoted and head in ("timestamp", "time") and separator:
            return f"{head}{modifier} {tail}"
        return f"{self.name}{modifier}"

    def integer_modifier(self) -> Optional[int]:
        """Return the single integer modifier, if the type carries exactly one."""
        if len(self.modifiers) != 1:
            return None
        try:
            return int(self.modifiers[0])
        except ValueError:
            return None


@dataclass(frozen=True)
class ParsedColumn:
    """A column definition pulled out of a single table element."""

    name: str
    type_name: TypeName


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str

    def is_word(self, *words: str) -> bool:
        return self.kind == "word" and self.value.upper() in words

    def is_punct(self, symbol: str) -> bool:
        return self.kind == "punct" and self.value == symbol


class _Cursor:
    def __init__(self, tokens: Sequence[_Token], position: int = 0) -> None:
        self._tokens = tokens
        self._position = position

    def peek(self, offset: int = 0) -> Optional[_Token]:
        index = self._position + offset
        if index < len(self._tokens):
            return self._tokens[index]
        return None

    def advance(self) -> _Token:
        token = self.peek()
        if token is None:
            raise ColumnParseError("Unexpected end of input")
        self._position += 1
        return token

    def at_end(self) -> bool:
        return self._position >= len(self._tokens)

    def accept_word(self, *words: str) -> bool:
        token = self.peek()
        if token is not None and token.is_word(*words):
            self._position += 1
            return True
        return False

    def accept_punct(self, symbol: str) -> bool:
        token = self.peek()
        if token is not None and token.is_punct(symbol):
            self._position += 1
            return True
        return False

    def expect_word(self, word: str) -> None:
        if not self.accept_word(word):
            raise ColumnParseError(f"Expected {word}")

    def expect_punct(self, symbol: str) -> None:
        if not self.accept_punct(symbol):
            raise ColumnParseError(f"Expected '{symbol}'")

    def peek_words(self, *words: str) -> bool:
        for offset, word in enumerate(words):
            token = self.peek(offset)
            if token is None or not token.is_word(word):
                return False
        return True

    def take_enclosed(self) -> List[_Token]:
        """Consume a balanced parenthesized group and return its inner tokens."""
        self.expect_punct("(")
        depth = 0
        inner: List[_Token] = []
        while True:
            token = self.advance()
            if token.is_punct("("):
                depth += 1
            elif token.is_punct(")"):
                if depth == 0:
                    return inner
                depth -= 1
            inner.append(token)


def _lex(sql: str) -> List[_Token]:
    result: List[_Token] = []
    offset = 0
    for ttype, value in tokenize(sql):
        start, offset = offset, offset + len(value)
        if ttype in T.Whitespace or ttype in T.Comment:
            continue
        if ttype in T.Error:
            raise ColumnParseError(f"Unexpected character {value!r} at offset {start}")
        if ttype in T.String.Symbol:
            result.append(_Token("quoted", value[1:-1].replace('""', '"')))
        elif ttype in T.Literal:
            result.append(_Token("literal", value))
        elif ttype in T.Punctuation:
            result.append(_Token("punct", value))
        elif ttype in T.Name and value.startswith("["):
            # sqlparse reads "[3]" after whitespace as a bracketed name
            result.append(_Token("punct", "["))
            inner = value[1:-1].strip()
            if inner:
                result.append(_Token("literal", inner))
            result.append(_Token("punct", "]"))
        else:
            words = value.split()
            if words and all(_WORD_RE.match(word) for word in words):
                # multi-word keywords such as "NOT NULL" arrive as one token
                result.extend(_Token("word", word) for word in words)
            else:
                result.append(_Token("other", value))
    return result


def _identifier(token: _Token) -> str:
    if token.kind == "quoted":
        return token.value
    if token.kind == "word":
        return token.value.lower()
    raise ColumnParseError(f"Expected an identifier, found {token.value!r}")


def _split_top_level(tokens: Sequence[_Token]) -> List[List[_Token]]:
    parts: List[List[_Token]] = [[]]
    depth = 0
    for token in tokens:
        if token.is_punct("(") or token.is_punct("["):
            depth += 1
        elif token.is_punct(")") or token.is_punct("]"):
            depth -= 1
        elif depth == 0 and token.is_punct(","):
            parts.append([])
            continue
        parts[-1].append(token)
    if parts == [[]]:
        return []
    return parts


def _parse_qualified_name(cursor: _Cursor) -> List[str]:
    token = cursor.advance()
    parts = [_identifier(token)]
    while cursor.accept_punct("."):
        parts.append(_identifier(cursor.advance()))
    return parts


def _continue_multiword(name: str, cursor: _Cursor) -> str:
    if name in ("character", "char", "bit") and cursor.accept_word("VARYING"):
        return f"{name} varying"
    if name == "double" and cursor.accept_word("PRECISION"):
        return "double precision"
    return name


def _parse_modifiers(cursor: _Cursor) -> Tuple[str, ...]:
    inner = cursor.take_enclosed()
    modifiers = []
    for part in _split_top_level(inner):
        if not part:
            raise ColumnParseError("Empty type modifier")
        modifiers.append(" ".join(token.value for token in part))
    return tuple(modifiers)


def _parse_time_zone(cursor: _Cursor) -> str:
    if cursor.peek_words("WITH", "TIME", "ZONE"):
        for _ in range(3):
            cursor.advance()
        return "with time zone"
    if cursor.peek_words("WITHOUT", "TIME", "ZONE"):
        for _ in range(3):
            cursor.advance()
    return "without time zone"


def _parse_array_dimensions(cursor: _Cursor) -> int:
    dimensions = 0
    while True:
        if cursor.accept_punct("["):
            token = cursor.peek()
            if token is not None and token.kind == "literal":
                cursor.advance()
            cursor.expect_punct("]")
            dimensions += 1
        elif cursor.accept_word("ARRAY"):
            if cursor.accept_punct("["):
                token = cursor.peek()
                if token is not None and token.kind == "literal":
                    cursor.advance()
                cursor.expect_punct("]")
            dimensions += 1
        else:
            return dimensions


def _parse_type(cursor: _Cursor) -> TypeName:
    first = cursor.peek()
    if first is None or first.kind not in ("word", "quoted"):
        raise ColumnParseError("Missing type declaration")

    name_tokens = [cursor.advance()]
    while cursor.peek() is not None and cursor.peek().is_punct("."):
        cursor.advance()
        name_tokens.append(cursor.advance())

    last = name_tokens[-1]
    name = _identifier(last)
    quoted = last.kind == "quoted"
    schema = _identifier(name_tokens[-2]) if len(name_tokens) > 1 else None
    builtin_spelling = schema is None and not quoted

    if builtin_spelling:
        name = _continue_multiword(name, cursor)
        name = TYPE_ALIASES.get(name, name)

    modifiers: Tuple[str, ...] = ()
    if cursor.peek() is not None and cursor.peek().is_punct("("):
        modifiers = _parse_modifiers(cursor)

    if builtin_spelling:
        if name in ("timestamp", "time"):
            name = f"{name} {_parse_time_zone(cursor)}"
        elif name == "interval":
            while cursor.accept_word(*_INTERVAL_FIELDS):
                pass
            if cursor.peek() is not None and cursor.peek().is_punct("("):
                modifiers = _parse_modifiers(cursor)
        if name in _IMPLICIT_LENGTH_ONE and not modifiers:
            modifiers = ("1",)

    return TypeName(
        name=name,
        schema=schema,
        modifiers=modifiers,
        array_dimensions=_parse_array_dimensions(cursor),
        quoted=quoted,
    )


def _parse_table_element(tokens: Sequence[_Token]) -> Optional[ParsedColumn]:
    if not tokens:
        raise ColumnParseError("Empty table element")

    head = tokens[0]
    if head.kind == "word":
        upper = head.value.upper()
        if upper in _TABLE_CONSTRAINT_WORDS:
            return None
        if upper == "EXCLUDE" and len(tokens) > 1 and (
            tokens[1].is_punct("(") or tokens[1].is_word("USING")
        ):
            return None

    name = _identifier(head)
    return ParsedColumn(name=name, type_name=_parse_type(_Cursor(tokens, 1)))


def parse_create_table_elements(statement: str) -> List[Optional[ParsedColumn]]:
    """Parse ``CREATE TABLE name (...)`` into its elements.

    Each element is a ParsedColumn, or None for table constraints and other
    non-column clauses. Raises ColumnParseError when the statement does not
    have that shape.
    """
    cursor = _Cursor(_lex(statement))
    cursor.expect_word("CREATE")
    cursor.expect_word("TABLE")
    _parse_qualified_name(cursor)
    inner = cursor.take_enclosed()
    cursor.accept_punct(";")
    if not cursor.at_end():
        raise ColumnParseError("Unexpected tokens after table definition")
    return [_parse_table_element(element) for element in _split_top_level(inner)]


def parse_single_column_statement(statement: str) -> Optional[ParsedColumn]:
    """Parse a fabricated single-column CREATE TABLE statement.

    Returns None when the only element is not a column definition. Raises
    AmbiguousColumnCountError when more than one column comes back.
    """
    columns = [element for element in parse_create_table_elements(statement) if element]
    if len(columns) > 1:
        raise AmbiguousColumnCountError(statement, len(columns))
    return columns[0] if columns else None


def parse_column_fragment(fragment: str) -> Optional[ParsedColumn]:
    """Parse one table-element line, returning None if it is not a column definition."""
    body = fragment.rstrip()
    if body.endswith(","):
        body = body[:-1]
    try:
        return parse_single_column_statement(f"CREATE TABLE t ({body});")
    except ColumnParseError as e:
        logger.debug("column_fragment_unparsed fragment=%r reason=%s", fragment, e)
        return None


def parse_type_declaration(sql_type: str) -> TypeName:
    """Parse a type string by declaring it as the type of a one-column table."""
    fragment = f"CREATE TABLE t (c {sql_type});"
    column = parse_single_column_statement(fragment)
    if column is None:
        raise AmbiguousColumnCountError(fragment, 0)
    return column.type_name


def split_qualified_name(qualified_name: str) -> Tuple[Optional[str], str]:
    """Split ``schema.table`` (either part optionally quoted) into its parts."""
    cursor = _Cursor(_lex(qualified_name))
    parts = _parse_qualified_name(cursor)
    if not cursor.at_end():
        raise ColumnParseError(f"Not a qualified name: {qualified_name!r}")
    if len(parts) == 1:
        return None, parts[0]
    return parts[-2], parts[-1]
