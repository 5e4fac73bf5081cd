"""Tests for the MySQL data dump parser."""

from decimal import Decimal

import pytest

from station_sync.errors import DumpParseError
from station_sync.extractors.sql_dump_extractor import (
    SqlDumpExtractor,
    parse_dump,
    parse_insert,
    parse_values,
    split_statements,
)


def test_split_statements_keeps_quoted_semicolons():
    text = """
    /*!40101 SET NAMES utf8mb4 */;
    # comment line
    INSERT INTO t (a) VALUES ('x;y');
    -- another comment
    INSERT INTO t (a) VALUES ("it's");
    """
    statements = list(split_statements(text))
    assert statements == [
        "INSERT INTO t (a) VALUES ('x;y')",
        "INSERT INTO t (a) VALUES (\"it's\")",
    ]


def test_unterminated_quote_raises():
    with pytest.raises(DumpParseError):
        list(split_statements("INSERT INTO t (a) VALUES ('oops);"))


def test_parse_values_literals():
    rows = parse_values("('a\\'b', 'line\\nbreak', NULL, 42, -7, 3.50, TRUE, false, _utf8mb4'x', 0x4142)")
    assert rows == [["a'b", "line\nbreak", None, 42, -7, Decimal("3.50"), True, False, "x", b"AB"]]


def test_parse_values_multiple_rows():
    assert parse_values("(1, 'a'), (2, 'b'),(3,'c')") == [[1, "a"], [2, "b"], [3, "c"]]


def test_parse_insert():
    parsed = parse_insert("INSERT INTO `db`.`customers` (`id`, `name`) VALUES ('c1', 'Acme'), ('c2', NULL)", 4)
    assert parsed.table == "customers"
    assert parsed.columns == ["id", "name"]
    assert parsed.rows == [{"id": "c1", "name": "Acme"}, {"id": "c2", "name": None}]
    assert parsed.statement_index == 4


def test_parse_insert_ignore():
    parsed = parse_insert("INSERT IGNORE INTO tools (id) VALUES ('t1')")
    assert parsed.table == "tools"


def test_parse_insert_requires_column_list():
    with pytest.raises(DumpParseError):
        parse_insert("INSERT INTO customers VALUES ('c1', 'Acme')")


def test_parse_insert_checks_value_count():
    with pytest.raises(DumpParseError):
        parse_insert("INSERT INTO customers (id, name) VALUES ('c1')")


def test_parse_dump_skips_bad_statements():
    dump = parse_dump(
        "CREATE TABLE x (id INT);\n"
        "INSERT INTO customers VALUES ('c1');\n"
        "INSERT INTO customers (id) VALUES ('c2');\n"
        "INSERT INTO job_cards (id) VALUES ('j1');\n"
        "INSERT INTO customers (id) VALUES ('c3');\n"
    )
    assert len(dump.inserts) == 3
    assert len(dump.skipped_statements) == 1
    assert dump.tables == ["customers", "job_cards"]
    assert [r["id"] for r in dump.rows_by_table()["customers"]] == ["c2", "c3"]


def test_extractor_pages_rows(tmp_path):
    path = tmp_path / "dump.sql"
    values = ", ".join(f"('c{i}')" for i in range(5))
    path.write_text(f"INSERT INTO customers (id) VALUES {values};")

    extractor = SqlDumpExtractor(str(path), batch_size=2)

    assert extractor.tables == ["customers"]
    pages = list(extractor.stream("customers"))
    assert [len(p) for p in pages] == [2, 2, 1]
    assert extractor.extract("missing").rows == []


def test_extractor_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        SqlDumpExtractor(str(tmp_path / "none.sql")).read()
