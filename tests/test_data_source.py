from __future__ import annotations

import sqlite3
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Ensure src-layout imports work when running tests from repo checkout.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from querybook.db import QueryDataSource, SpecColumn  # noqa: E402
from querybook.errors import DataSourceError  # noqa: E402


@pytest.fixture()
def connection() -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(":memory:")
    conn.executescript(
        """
        CREATE TABLE sales (region TEXT, city TEXT, units INTEGER, amount REAL);
        INSERT INTO sales VALUES
            ('East', 'Boston', 3, 10.5),
            ('East', 'Boston', 1, 2.25),
            ('East', 'Albany', 4, 8.0),
            ('West', 'Denver', 2, NULL);
        """
    )
    yield conn
    conn.close()


def test_read_metadata_follows_select_order(connection: sqlite3.Connection) -> None:
    source = QueryDataSource()
    cursor = source.execute_export_query(
        connection, "SELECT city, units AS n FROM sales"
    )
    try:
        l_columns = source.read_metadata(cursor)
    finally:
        cursor.close()

    assert [_col.name for _col in l_columns] == ["city", "n"]
    assert all(isinstance(_col, SpecColumn) for _col in l_columns)


def test_read_query_builds_typed_frame(connection: sqlite3.Connection) -> None:
    result = QueryDataSource(size_fetch=1).read_query(
        connection, "SELECT * FROM sales ORDER BY region, city"
    )

    assert result.df.height == 4
    assert result.df.columns == ["region", "city", "units", "amount"]
    assert result.kinds_by_col == {
        "region": "text",
        "city": "text",
        "units": "integer",
        "amount": "decimal",
    }
    assert result.df["city"].to_list() == ["Albany", "Boston", "Boston", "Denver"]
    assert result.df["amount"].to_list()[-1] is None


def test_read_query_with_params(connection: sqlite3.Connection) -> None:
    result = QueryDataSource().read_query(
        connection, "SELECT city FROM sales WHERE region = ?", ("West",)
    )

    assert result.df["city"].to_list() == ["Denver"]


def test_read_query_without_rows_keeps_columns(connection: sqlite3.Connection) -> None:
    result = QueryDataSource().read_query(
        connection, "SELECT region, units FROM sales WHERE 0"
    )

    assert result.df.height == 0
    assert result.df.columns == ["region", "units"]


def test_invalid_query_is_wrapped(connection: sqlite3.Connection) -> None:
    with pytest.raises(DataSourceError) as exc_info:
        QueryDataSource().read_query(connection, "SELECT nope FROM missing_table")

    assert isinstance(exc_info.value.__cause__, sqlite3.Error)


def test_statement_without_result_set_is_rejected(
    connection: sqlite3.Connection,
) -> None:
    with pytest.raises(DataSourceError):
        QueryDataSource().read_query(connection, "CREATE TABLE other (x INTEGER)")


def test_read_metadata_rejects_absent_cursor() -> None:
    with pytest.raises(DataSourceError):
        QueryDataSource().read_metadata(None)


def test_duplicate_column_names_are_rejected(connection: sqlite3.Connection) -> None:
    with pytest.raises(ValueError, match="Duplicate column names"):
        QueryDataSource().read_query(connection, "SELECT city, city FROM sales")


def test_size_fetch_must_be_positive() -> None:
    with pytest.raises(ValueError):
        QueryDataSource(size_fetch=0)
