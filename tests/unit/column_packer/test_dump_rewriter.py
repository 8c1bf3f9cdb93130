"""Unit coverage for rewriting CREATE TABLE blocks in schema dumps."""

import pytest

from column_packer.classifier import TypeAlignmentClassifier
from column_packer.dump_rewriter import (
    TABLE_END_RE,
    TABLE_START_RE,
    DumpRewriteSummary,
    TableBlockRewriter,
    repair_trailing_comma,
    rewrite_dump_file,
)
from common.errors.packing_errors import AmbiguousColumnCountError, ColumnNotFoundError
from tests._support.fake_catalog import FakeCatalog

ACCOUNTS_DUMP = """\
--
-- Name: accounts; Type: TABLE; Schema: public; Owner: app
--

CREATE TABLE public.accounts (
    a_int4 integer,
    b_int8 bigint,
    c_int8 bigint,
    d_int4 integer,
    CONSTRAINT accounts_a_check CHECK ((a_int4 > 0)),
    CONSTRAINT accounts_d_check CHECK ((d_int4 > 0))
);


ALTER TABLE public.accounts OWNER TO app;
"""

ACCOUNTS_PACKED = """\
--
-- Name: accounts; Type: TABLE; Schema: public; Owner: app
--

CREATE TABLE public.accounts (
    b_int8 bigint,
    c_int8 bigint,
    a_int4 integer,
    d_int4 integer,
    CONSTRAINT accounts_a_check CHECK ((a_int4 > 0)),
    CONSTRAINT accounts_d_check CHECK ((d_int4 > 0))
);


ALTER TABLE public.accounts OWNER TO app;
"""


@pytest.fixture
def catalog():
    """Catalog describing the tables used below."""
    return (
        FakeCatalog()
        .add_column("accounts", "a_int4", "integer")
        .add_column("accounts", "b_int8", "bigint")
        .add_column("accounts", "c_int8", "bigint")
        .add_column("accounts", "d_int4", "integer")
        .add_column("t", "a_text", "text")
        .add_column("t", "b_int", "bigint")
    )


def _rewrite(catalog, text):
    return TableBlockRewriter(catalog).rewrite(text)


def test_columns_reordered_and_constraints_kept_last(catalog):
    """Constraint clauses stay after the columns, in their original order."""
    rewritten, summary = _rewrite(catalog, ACCOUNTS_DUMP)

    assert rewritten == ACCOUNTS_PACKED
    assert summary == DumpRewriteSummary(tables_seen=1, tables_reordered=1, columns_moved=3)


def test_one_catalog_lookup_per_column_line(catalog):
    """Each column line costs one column lookup; constraint lines cost none."""
    _rewrite(catalog, ACCOUNTS_DUMP)

    assert catalog.column_lookups == [
        ("public", "accounts", "a_int4"),
        ("public", "accounts", "b_int8"),
        ("public", "accounts", "c_int8"),
        ("public", "accounts", "d_int4"),
    ]


def test_rewrite_is_idempotent(catalog):
    """Rewriting an already packed dump is a no-op."""
    rewritten, summary = _rewrite(catalog, ACCOUNTS_PACKED)

    assert rewritten == ACCOUNTS_PACKED
    assert summary.tables_seen == 1
    assert summary.tables_reordered == 0
    assert summary.columns_moved == 0


def test_line_count_is_preserved(catalog):
    """Only order and trailing commas change."""
    rewritten, _ = _rewrite(catalog, ACCOUNTS_DUMP)

    assert len(rewritten.splitlines()) == len(ACCOUNTS_DUMP.splitlines())
    assert sorted(line.rstrip(",") for line in rewritten.splitlines()) == sorted(
        line.rstrip(",") for line in ACCOUNTS_DUMP.splitlines()
    )


def test_trailing_commas_follow_the_new_last_line(catalog):
    """The line that becomes last loses its comma and the old last line gains one."""
    text = "CREATE TABLE public.t (\n    a_text text,\n    b_int bigint\n);\n"

    rewritten, _ = _rewrite(catalog, text)

    assert rewritten == "CREATE TABLE public.t (\n    b_int bigint,\n    a_text text\n);\n"


def test_crlf_terminators_are_preserved(catalog):
    """Windows line endings survive reordering."""
    text = "CREATE TABLE public.t (\r\n    a_text text,\r\n    b_int bigint\r\n);\r\n"

    rewritten, _ = _rewrite(catalog, text)

    assert rewritten == "CREATE TABLE public.t (\r\n    b_int bigint,\r\n    a_text text\r\n);\r\n"


@pytest.mark.parametrize(
    ("line", "needs_comma", "expected"),
    [
        ("    a text\n", True, "    a text,\n"),
        ("    a text,\n", False, "    a text\n"),
        ("    a text  \n", True, "    a text,  \n"),
        ("    a text,\t\r\n", False, "    a text\t\r\n"),
        ("    a text,", True, "    a text,"),
    ],
)
def test_repair_trailing_comma(line: str, needs_comma: bool, expected: str):
    """Comma repair touches one character and keeps trailing whitespace."""
    assert repair_trailing_comma(line, needs_comma) == expected


@pytest.mark.parametrize(
    "closing",
    [
        ")\nWITH (fillfactor='70');\n",
        ") WITH (autovacuum_enabled='false');\n",
        ")\nINHERITS (public.parent);\n",
        ")\nPARTITION BY RANGE (b_int);\n",
    ],
)
def test_table_options_after_closing_paren_pass_through(catalog, closing: str):
    """Storage options and partition clauses stay outside the block."""
    text = "CREATE TABLE public.t (\n    a_text text,\n    b_int bigint\n" + closing

    rewritten, summary = _rewrite(catalog, text)

    assert rewritten == "CREATE TABLE public.t (\n    b_int bigint,\n    a_text text\n" + closing
    assert summary.tables_seen == 1


def test_quoted_names_schema_qualified_types_and_arrays():
    """Quoted identifiers with spaces, qualified enum types and arrays are handled."""
    catalog = (
        FakeCatalog()
        .add_column("my table", "first col", "text", schema="my schema")
        .add_column("my table", "Id", "bigint", schema="my schema", not_null=True)
        .add_column("my table", "mood", '"my schema"."my enum"', schema="my schema")
        .add_column("my table", "tags", "text[]", schema="my schema")
        .add_type("my enum", "i", type_category="e", schema="my schema")
    )
    text = (
        'CREATE TABLE "my schema"."my table" (\n'
        '    "first col" text,\n'
        '    "Id" bigint NOT NULL,\n'
        '    mood "my schema"."my enum",\n'
        "    tags text[]\n"
        ");\n"
    )

    rewritten, _ = TableBlockRewriter(catalog).rewrite(text)

    assert rewritten == (
        'CREATE TABLE "my schema"."my table" (\n'
        '    "Id" bigint NOT NULL,\n'
        '    mood "my schema"."my enum",\n'
        '    "first col" text,\n'
        "    tags text[]\n"
        ");\n"
    )
    assert ("my schema", "my table", "Id") in catalog.column_lookups
    assert catalog.type_lookups == [("my enum", "my schema")]


def test_same_type_name_in_different_schemas():
    """Types sharing a bare name are disambiguated by their qualifier."""
    catalog = (
        FakeCatalog()
        .add_column("t", "a_status", "a.status")
        .add_column("t", "b_status", "b.status")
        .add_type("status", "c", schema="a")
        .add_type("status", "d", schema="b")
    )
    text = "CREATE TABLE public.t (\n    a_status a.status,\n    b_status b.status\n);\n"

    rewritten, _ = TableBlockRewriter(catalog).rewrite(text)

    assert rewritten == "CREATE TABLE public.t (\n    b_status b.status,\n    a_status a.status\n);\n"


def test_catalog_metadata_drives_ordering():
    """Nullability, defaults and primary keys come from the catalog row."""
    catalog = (
        FakeCatalog()
        .add_column("t", "a_text", "text")
        .add_column("t", "c_text", "text", has_default=True)
        .add_column("t", "b_text", "text", not_null=True)
        .add_column("t", "a_int", "integer")
        .add_column("t", "c_int", "integer", has_default=True)
        .add_column("t", "b_int", "integer", not_null=True)
    )
    text = (
        "CREATE TABLE public.t (\n"
        "    a_text text,\n"
        "    c_text text DEFAULT '5'::text,\n"
        "    b_text text NOT NULL,\n"
        "    a_int integer,\n"
        "    c_int integer DEFAULT 5,\n"
        "    b_int integer NOT NULL\n"
        ");\n"
    )

    rewritten, _ = TableBlockRewriter(catalog).rewrite(text)

    assert rewritten.splitlines()[1:7] == [
        "    b_int integer NOT NULL,",
        "    c_int integer DEFAULT 5,",
        "    a_int integer,",
        "    b_text text NOT NULL,",
        "    c_text text DEFAULT '5'::text,",
        "    a_text text",
    ]


def test_multiple_tables_and_passthrough_outside_blocks(catalog):
    """Every block is rewritten and text between blocks is untouched."""
    second = "SET default_tablespace = '';\n\nCREATE TABLE public.t (\n    a_text text,\n    b_int bigint\n);\n"

    rewritten, summary = _rewrite(catalog, ACCOUNTS_DUMP + second)

    assert rewritten == (
        ACCOUNTS_PACKED
        + "SET default_tablespace = '';\n\nCREATE TABLE public.t (\n    b_int bigint,\n    a_text text\n);\n"
    )
    assert summary.tables_seen == 2
    assert summary.tables_reordered == 2


def test_missing_catalog_column_is_fatal(catalog):
    """A dumped column with no live catalog row aborts the rewrite."""
    text = "CREATE TABLE public.t (\n    a_text text,\n    ghost integer\n);\n"

    with pytest.raises(ColumnNotFoundError) as exc_info:
        _rewrite(catalog, text)

    assert exc_info.value.column == "ghost"
    assert exc_info.value.table == "t"


def test_two_columns_on_one_line_is_ambiguous(catalog):
    """A body line that declares two columns is surfaced as an error."""
    text = "CREATE TABLE public.t (\n    a_text text, b_int bigint\n);\n"

    with pytest.raises(AmbiguousColumnCountError):
        _rewrite(catalog, text)


def test_unterminated_block_is_passed_through(catalog):
    """A block without a closing line is emitted unchanged."""
    text = "CREATE TABLE public.t (\n    a_text text,\n    b_int bigint\n"

    rewritten, summary = _rewrite(catalog, text)

    assert rewritten == text
    assert summary.tables_seen == 0


def test_injected_classifier_is_used(catalog):
    """The rewriter classifies through the classifier it was given."""
    classifier = TypeAlignmentClassifier(catalog)
    rewriter = TableBlockRewriter(catalog, classifier)

    rewriter.rewrite("CREATE TABLE public.t (\n    a_text text,\n    b_int bigint\n);\n")

    assert len(classifier.cache) == 0


@pytest.mark.parametrize(
    ("line", "name"),
    [
        ("CREATE TABLE public.accounts (", "public.accounts"),
        ("CREATE TABLE accounts (", "accounts"),
        ('CREATE TABLE "my schema"."my.table" (', '"my schema"."my.table"'),
        ('CREATE TABLE public."Order ""Items""" (', 'public."Order ""Items"""'),
    ],
)
def test_table_start_pattern(line: str, name: str):
    """The start pattern captures the qualified table name."""
    assert TABLE_START_RE.match(line).group("name") == name


@pytest.mark.parametrize(
    ("line", "is_end"),
    [
        (");", True),
        (")", True),
        (") WITH (fillfactor='70');", True),
        ("    );", False),
        (")x", False),
        ("    a integer", False),
    ],
)
def test_table_end_pattern(line: str, is_end: bool):
    """Only a closing parenthesis in column zero ends a block."""
    assert bool(TABLE_END_RE.match(line)) is is_end


def test_rewrite_dump_file_in_place(tmp_path, catalog):
    """The file is rewritten in place and the summary returned."""
    dump = tmp_path / "schema.sql"
    dump.write_text(ACCOUNTS_DUMP, encoding="utf-8")

    summary = rewrite_dump_file(str(dump), catalog)

    assert dump.read_text(encoding="utf-8") == ACCOUNTS_PACKED
    assert summary.tables_reordered == 1
    assert [path.name for path in tmp_path.iterdir()] == ["schema.sql"]


def test_rewrite_dump_file_keeps_crlf_bytes(tmp_path, catalog):
    """Line terminators are written back byte for byte."""
    dump = tmp_path / "schema.sql"
    dump.write_bytes(b"CREATE TABLE public.t (\r\n    a_text text,\r\n    b_int bigint\r\n);\r\n")

    rewrite_dump_file(str(dump), catalog)

    assert dump.read_bytes() == (
        b"CREATE TABLE public.t (\r\n    b_int bigint,\r\n    a_text text\r\n);\r\n"
    )


def test_failed_rewrite_leaves_file_untouched(tmp_path, catalog):
    """No partial write is produced when a block fails."""
    original = ACCOUNTS_DUMP + "CREATE TABLE public.t (\n    ghost integer\n);\n"
    dump = tmp_path / "schema.sql"
    dump.write_text(original, encoding="utf-8")

    with pytest.raises(ColumnNotFoundError):
        rewrite_dump_file(str(dump), catalog)

    assert dump.read_text(encoding="utf-8") == original
    assert [path.name for path in tmp_path.iterdir()] == ["schema.sql"]
