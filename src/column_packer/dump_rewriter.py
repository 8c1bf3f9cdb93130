"""Reorder columns inside the CREATE TABLE blocks of a plain-text schema dump.

The rewriter is a two-state machine over lines. Outside a table block every
line is copied through. Inside a block, body lines are buffered until the
closing parenthesis line, then column lines are resequenced by alignment and
table-level clauses are moved after them. Only line order and trailing commas
inside blocks ever change; line terminators are preserved.

A block ends at the first line that starts with ``)`` followed by nothing,
whitespace or ``;``. Besides the plain ``);`` this accepts ``) WITH (...);``
and a bare ``)`` continued by ``INHERITS`` or ``PARTITION BY`` lines. Those
continuation lines are copied through after the block like outside lines.
"""

import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from opentelemetry import trace

from column_packer.classifier import TypeAlignmentClassifier
from column_packer.column_parser import parse_column_fragment, split_qualified_name
from column_packer.ordering import AlignmentClassifier, ColumnDescriptor, sort_columns
from common.errors.packing_errors import ColumnNotFoundError
from common.interfaces.catalog_lookup import CatalogLookup

logger = logging.getLogger(__name__)

_NAME_PART = r'(?:"(?:[^"]|"")+"|[^\s(."]+)'

TABLE_START_RE = re.compile(
    rf"^CREATE\s+TABLE\s+(?P<name>{_NAME_PART}(?:\.{_NAME_PART})*)\s*\(\s*$"
)

# ");" alone, ") WITH (...);", or a bare ")" continued by INHERITS/PARTITION BY lines.
TABLE_END_RE = re.compile(r"^\)(?:[\s;].*)?$")

_TERMINATOR_RE = re.compile(r"\r?\n\Z|\r\Z")
_LINE_RE = re.compile(r"[^\n]*\n|[^\n]+")


class RewriterState(Enum):
    """States of the block scanner."""

    OUTSIDE = "outside"
    IN_BLOCK = "in_block"


@dataclass
class TableBlock:
    """A table definition being buffered between its start and end lines."""

    start_line: str
    qualified_name: str
    body: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DumpRewriteSummary:
    """Counters describing one rewrite pass."""

    tables_seen: int = 0
    tables_reordered: int = 0
    columns_moved: int = 0


def _split_terminator(line: str) -> Tuple[str, str]:
    match = _TERMINATOR_RE.search(line)
    if match is None:
        return line, ""
    return line[: match.start()], match.group(0)


def repair_trailing_comma(line: str, needs_comma: bool) -> str:
    """Add or strip a single trailing comma, keeping trailing whitespace and terminator."""
    content, terminator = _split_terminator(line)
    body = content.rstrip()
    trailing = content[len(body) :]
    if needs_comma and not body.endswith(","):
        body += ","
    elif not needs_comma and body.endswith(","):
        body = body[:-1]
    return body + trailing + terminator


class TableBlockRewriter:
    """Rewrite every CREATE TABLE block of a dump into alignment-optimal column order."""

    def __init__(
        self, catalog: CatalogLookup, classifier: Optional[AlignmentClassifier] = None
    ) -> None:
        """Initialize with a catalog for column metadata and a type classifier."""
        self._catalog = catalog
        self._classifier = classifier or TypeAlignmentClassifier(catalog)
        self._tracer = trace.get_tracer(__name__)

    def rewrite(self, text: str) -> Tuple[str, DumpRewriteSummary]:
        """Rewrite a whole dump document.

        Returns the new text with the same number of lines and a summary.
        Any error aborts the pass before output is produced.
        """
        output: List[str] = []
        state = RewriterState.OUTSIDE
        block: Optional[TableBlock] = None
        tables_seen = tables_reordered = columns_moved = 0

        for line in _LINE_RE.findall(text):
            content, _ = _split_terminator(line)
            if state is RewriterState.OUTSIDE:
                output.append(line)
                match = TABLE_START_RE.match(content)
                if match:
                    block = TableBlock(start_line=line, qualified_name=match.group("name"))
                    state = RewriterState.IN_BLOCK
                continue

            if TABLE_END_RE.match(content):
                body, moved = self._finalize(block)
                output.extend(body)
                output.append(line)
                tables_seen += 1
                if moved:
                    tables_reordered += 1
                    columns_moved += moved
                block = None
                state = RewriterState.OUTSIDE
            else:
                block.body.append(line)

        if block is not None:
            logger.warning(
                "dump_block_unterminated table=%s lines=%d", block.qualified_name, len(block.body)
            )
            output.extend(block.body)

        summary = DumpRewriteSummary(
            tables_seen=tables_seen,
            tables_reordered=tables_reordered,
            columns_moved=columns_moved,
        )
        return "".join(output), summary

    def _finalize(self, block: TableBlock) -> Tuple[List[str], int]:
        schema, table = split_qualified_name(block.qualified_name)
        with self._tracer.start_as_current_span("column_packer.rewrite_block") as span:
            span.set_attribute("column_packer.table_name", table)
            if schema:
                span.set_attribute("column_packer.schema_name", schema)

            columns: List[ColumnDescriptor] = []
            column_lines: Dict[str, str] = {}
            other_lines: List[str] = []
            for line in block.body:
                parsed = parse_column_fragment(_split_terminator(line)[0])
                if parsed is None:
                    other_lines.append(line)
                    continue
                row = self._catalog.lookup_column(schema, table, parsed.name)
                if row is None:
                    raise ColumnNotFoundError(schema, table, parsed.name)
                columns.append(
                    ColumnDescriptor(
                        name=parsed.name,
                        raw_type=row.formatted_type,
                        schema_qualifier=parsed.type_name.schema,
                        is_primary_key=row.is_primary_key,
                        is_nullable=not row.not_null,
                        has_default=row.has_default,
                    )
                )
                column_lines[parsed.name] = line

            ordered = sort_columns(columns, self._classifier)
            moved = sum(
                1 for before, after in zip(columns, ordered) if before.name != after.name
            )
            span.set_attribute("column_packer.columns", len(columns))
            span.set_attribute("column_packer.columns_moved", moved)

            sequence = [column_lines[column.name] for column in ordered] + other_lines
            last = max(
                (index for index, line in enumerate(sequence) if line.strip()), default=-1
            )
            repaired = [
                line if not line.strip() else repair_trailing_comma(line, index != last)
                for index, line in enumerate(sequence)
            ]
            logger.info(
                "dump_block_rewritten table=%s schema=%s columns=%d other_lines=%d moved=%d",
                table,
                schema,
                len(columns),
                len(other_lines),
                moved,
            )
            return repaired, moved


def rewrite_dump_file(
    path: str,
    catalog: CatalogLookup,
    classifier: Optional[AlignmentClassifier] = None,
    encoding: str = "utf-8",
) -> DumpRewriteSummary:
    """Rewrite a schema dump in place.

    The new content is written to a temporary file next to ``path`` and moved
    over it, so a failure never leaves a partially rewritten dump behind.
    """
    with open(path, "r", encoding=encoding, newline="") as f:
        original = f.read()

    rewritten, summary = TableBlockRewriter(catalog, classifier).rewrite(original)

    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=".pg-column-packer-", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as f:
            f.write(rewritten)
        shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.info(
        "dump_rewritten path=%s tables_seen=%d tables_reordered=%d columns_moved=%d",
        path,
        summary.tables_seen,
        summary.tables_reordered,
        summary.columns_moved,
    )
    return summary
