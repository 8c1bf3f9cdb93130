"""Alignment-aware column ordering for PostgreSQL table definitions."""

from column_packer.alignment import AlignmentClass
from column_packer.classifier import TypeAlignmentClassifier
from column_packer.dump_rewriter import DumpRewriteSummary, TableBlockRewriter, rewrite_dump_file
from column_packer.ordering import ColumnDescriptor, order_key, sort_columns
from column_packer.type_cache import TypeClassificationCache

__all__ = [
    "AlignmentClass",
    "ColumnDescriptor",
    "DumpRewriteSummary",
    "TableBlockRewriter",
    "TypeAlignmentClassifier",
    "TypeClassificationCache",
    "order_key",
    "rewrite_dump_file",
    "sort_columns",
]
