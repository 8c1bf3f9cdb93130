import argparse
import logging
import sys
from typing import List, Optional

from column_packer.classifier import TypeAlignmentClassifier
from column_packer.dump_rewriter import rewrite_dump_file
from common.config.settings import PackerSettings
from common.errors.packing_errors import ColumnPackingError
from dal.postgres.catalog import PostgresCatalog

logger = logging.getLogger(__name__)


def _build_parser(settings: PackerSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg-column-packer",
        description="Reorder PostgreSQL table columns to minimize alignment padding",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Rewrite Command
    rewrite_parser = subparsers.add_parser(
        "rewrite-dump", help="Reorder columns of every CREATE TABLE in a pg_dump file in place"
    )
    rewrite_parser.add_argument("path", help="Path to a plain-text schema dump")
    rewrite_parser.add_argument(
        "--database-url",
        default=settings.DATABASE_URL,
        help="Database holding the dumped schema (default: DATABASE_URL)",
    )
    rewrite_parser.add_argument(
        "--encoding",
        default=settings.PACKER_DUMP_ENCODING,
        help=f"Dump file encoding (default: {settings.PACKER_DUMP_ENCODING})",
    )

    # Classify Command
    classify_parser = subparsers.add_parser(
        "classify", help="Print the alignment class of a SQL type"
    )
    classify_parser.add_argument("sql_type", help="Type as declared, e.g. 'varchar(64)'")
    classify_parser.add_argument("--schema", default=None, help="Schema owning the type")
    classify_parser.add_argument(
        "--database-url",
        default=settings.DATABASE_URL,
        help="Database used for non built-in types (default: DATABASE_URL)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the column packer CLI."""
    settings = PackerSettings()
    logging.basicConfig(
        level=settings.PACKER_LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    parser = _build_parser(settings)
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    catalog = PostgresCatalog.from_url(args.database_url)
    try:
        if args.command == "rewrite-dump":
            logger.info("Rewriting dump %s", args.path)
            summary = rewrite_dump_file(args.path, catalog, encoding=args.encoding)
            print(
                f"{args.path}: {summary.tables_seen} tables, "
                f"{summary.tables_reordered} reordered, {summary.columns_moved} columns moved"
            )
        elif args.command == "classify":
            alignment = TypeAlignmentClassifier(catalog).classify(args.sql_type, args.schema)
            print(f"{alignment.name.lower()} {int(alignment)}")
    except ColumnPackingError as e:
        logger.error("%s failed code=%s: %s", args.command, e.code.value, e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
