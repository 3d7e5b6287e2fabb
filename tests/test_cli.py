from __future__ import annotations

import sqlite3
import sys
from pathlib import Path

import openpyxl
import pytest

# Ensure src-layout imports work when running tests from repo checkout.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from querybook.cli.app import build_parser, main  # noqa: E402

QUERY_SALES = "SELECT region, city, amount FROM sales ORDER BY region, city"


@pytest.fixture()
def path_database(tmp_path: Path) -> Path:
    path_db = tmp_path / "sales.db"
    conn = sqlite3.connect(path_db)
    try:
        conn.executescript(
            """
            CREATE TABLE sales (region TEXT, city TEXT, amount REAL);
            INSERT INTO sales VALUES
                ('East', 'Albany', 1.5),
                ('East', 'Albany', 2.0),
                ('East', 'Boston', 3.0),
                ('West', 'Denver', 4.0);
            """
        )
        conn.commit()
    finally:
        conn.close()
    return path_db


def _export_args(path_database: Path, path_file_out: Path, *extra: str) -> list[str]:
    return [
        "export",
        "--database",
        str(path_database),
        "--query",
        QUERY_SALES,
        "--output",
        str(path_file_out),
        *extra,
    ]


def test_parser_collects_repeatable_options() -> None:
    args = build_parser().parse_args(
        [
            "export",
            "--database",
            "x.db",
            "--query",
            "SELECT 1",
            "--output",
            "x.xlsx",
            "--merge",
            "a",
            "--merge",
            "b",
            "--subfooter",
            "c=sum",
        ]
    )

    assert args.merge == ["a", "b"]
    assert args.subfooter == [("c", "sum")]
    assert args.template == "standard"
    assert args.sheet == "Sheet1"


def test_parser_rejects_malformed_subfooter() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(
            [
                "export",
                "--database",
                "x.db",
                "--query",
                "SELECT 1",
                "--output",
                "x.xlsx",
                "--subfooter",
                "c=median",
            ]
        )


def test_export_writes_merged_workbook(path_database: Path, tmp_path: Path) -> None:
    path_file_out = tmp_path / "out.xlsx"

    n_code = main(
        _export_args(
            path_database,
            path_file_out,
            "--sheet",
            "Sales",
            "--merge",
            "region",
            "--merge",
            "city",
            "--subfooter",
            "amount=sum",
            "--template",
            "stone",
        )
    )

    assert n_code == 0
    ws = openpyxl.load_workbook(path_file_out)["Sales"]
    assert sorted(str(_rng) for _rng in ws.merged_cells.ranges) == [
        "A2:A4",
        "B2:B3",
    ]
    assert ws["A6"].value == "Total"
    assert ws["C6"].value == "=SUM(C2:C5)"


def test_export_unknown_merge_column_fails(path_database: Path, tmp_path: Path) -> None:
    n_code = main(
        _export_args(path_database, tmp_path / "out.xlsx", "--merge", "nope")
    )

    assert n_code == 1


def test_export_unknown_merge_column_with_force(
    path_database: Path, tmp_path: Path
) -> None:
    path_file_out = tmp_path / "out.xlsx"

    n_code = main(
        _export_args(
            path_database, path_file_out, "--merge", "nope", "--merge", "region", "--force"
        )
    )

    assert n_code == 0
    ws = openpyxl.load_workbook(path_file_out)["Sheet1"]
    assert [str(_rng) for _rng in ws.merged_cells.ranges] == ["A2:A4"]


def test_export_invalid_query_fails(path_database: Path, tmp_path: Path) -> None:
    n_code = main(
        [
            "export",
            "--database",
            str(path_database),
            "--query",
            "SELECT * FROM missing_table",
            "--output",
            str(tmp_path / "out.xlsx"),
        ]
    )

    assert n_code == 1


def test_export_missing_database(tmp_path: Path) -> None:
    n_code = main(_export_args(tmp_path / "absent.db", tmp_path / "out.xlsx"))

    assert n_code == 2
    assert not (tmp_path / "out.xlsx").exists()


def test_export_unwritable_output_fails(path_database: Path, tmp_path: Path) -> None:
    n_code = main(_export_args(path_database, tmp_path / "absent_dir" / "out.xlsx"))

    assert n_code == 1
