from __future__ import annotations

import re
import sqlite3
import sys
import zipfile
from collections.abc import Iterator
from pathlib import Path

import openpyxl
import polars as pl
import pytest

# Ensure src-layout imports work when running tests from repo checkout.
SRC_DIR = Path(__file__).resolve().parents[1] / "src"
sys.path.insert(0, str(SRC_DIR))

from querybook.db import QueryDataSource  # noqa: E402
from querybook.errors import InvalidInputError  # noqa: E402
from querybook.io.xlsx import (  # noqa: E402
    SpecMergedRegion,
    SpecSheetExport,
    SpecSubFooter,
    SpecXlsxWriteOptions,
    XlsxWriter,
    export_workbook,
)

DF_SALES = pl.DataFrame(
    {
        "region": ["East", "East", "East", "West", "West"],
        "city": ["Albany", "Albany", "Boston", "Denver", "Denver"],
        "amount": [1.5, 2.0, 3.0, 4.0, 5.5],
    }
)


@pytest.fixture()
def connection() -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(":memory:")
    conn.execute("CREATE TABLE sales (region TEXT, city TEXT, amount REAL)")
    conn.executemany("INSERT INTO sales VALUES (?, ?, ?)", DF_SALES.iter_rows())
    yield conn
    conn.close()


def _read_merged_ranges(path: Path, sheet_name: str) -> list[str]:
    ws = openpyxl.load_workbook(path)[sheet_name]
    return sorted(str(_rng) for _rng in ws.merged_cells.ranges)


def _read_raw_cell_values(path: Path, n_sheet: int = 1) -> dict[str, str | None]:
    # openpyxl drops the values of covered cells in merged ranges on load, so
    # read the stored <v> of each cell from the sheet XML instead
    with zipfile.ZipFile(path) as zf:
        c_xml_sheet = zf.read(f"xl/worksheets/sheet{n_sheet}.xml").decode("utf-8")
    return {
        _m.group(1): _m.group(2)
        for _m in re.finditer(
            r'<c r="([A-Z]+[0-9]+)"[^>]*?(?:/>|>(?:<f>[^<]*</f>)?<v>([^<]*)</v></c>)',
            c_xml_sheet,
        )
    }


def test_write_sheet_merges_runs_per_column(tmp_path: Path) -> None:
    path_file_out = tmp_path / "merged.xlsx"

    with XlsxWriter(path_file_out) as xf:
        xf.write_sheet(DF_SALES, "Sales", cols_merged=["region", "city"])
        reports = xf.report()

    # header occupies row 0, data rows start at sheet row 1
    assert reports[0].regions_merged["Sales"] == [
        SpecMergedRegion(1, 3, 0, 0),
        SpecMergedRegion(4, 5, 0, 0),
        SpecMergedRegion(1, 2, 1, 1),
        SpecMergedRegion(4, 5, 1, 1),
    ]
    assert _read_merged_ranges(path_file_out, "Sales") == [
        "A2:A4",
        "A5:A6",
        "B2:B3",
        "B5:B6",
    ]

    ws = openpyxl.load_workbook(path_file_out)["Sales"]
    assert ws["A1"].value == "region"
    assert ws["A1"].font.b is True
    assert ws["A2"].value == "East"
    assert ws["A2"].alignment.vertical == "center"
    assert ws["B4"].value == "Boston"
    assert ws["C6"].value == 5.5


def test_write_sheet_without_merged_columns_has_no_regions(tmp_path: Path) -> None:
    path_file_out = tmp_path / "plain.xlsx"

    with XlsxWriter(path_file_out) as xf:
        xf.write_sheet(DF_SALES, "Plain")
        reports = xf.report()

    assert reports[0].regions_merged == {"Plain": []}
    assert reports[0].warnings == []
    assert _read_merged_ranges(path_file_out, "Plain") == []


def test_merged_column_by_index_and_null_runs(tmp_path: Path) -> None:
    path_file_out = tmp_path / "nulls.xlsx"
    df = pl.DataFrame({"k": [None, None, "x", "x", "y"], "v": [1, 2, 3, 4, 5]})

    with XlsxWriter(path_file_out) as xf:
        xf.write_sheet(df, "N", cols_merged=[0])

    assert _read_merged_ranges(path_file_out, "N") == ["A2:A3", "A4:A5"]
    ws = openpyxl.load_workbook(path_file_out)["N"]
    assert ws["A2"].value is None


def test_write_sheet_subfooter_formulas(tmp_path: Path) -> None:
    path_file_out = tmp_path / "footer.xlsx"

    with XlsxWriter(path_file_out) as xf:
        xf.write_sheet(
            DF_SALES,
            "Footer",
            cols_merged=["region"],
            subfooter=SpecSubFooter(funcs_by_col={"amount": "sum"}, label="Total"),
        )

    ws = openpyxl.load_workbook(path_file_out)["Footer"]
    assert ws["A7"].value == "Total"
    assert ws["B7"].value is None
    assert ws["C7"].value == "=SUM(C2:C6)"
    # the footer row stays outside merged regions
    assert "A5:A6" in _read_merged_ranges(path_file_out, "Footer")


def test_subfooter_over_merged_column_keeps_covered_values(tmp_path: Path) -> None:
    path_file_out = tmp_path / "merged_footer.xlsx"
    df = pl.DataFrame({"qty": [10, 10, 20]})

    with XlsxWriter(path_file_out) as xf:
        xf.write_sheet(
            df,
            "Qty",
            cols_merged=["qty"],
            subfooter=SpecSubFooter(funcs_by_col={"qty": "sum"}),
        )

    assert _read_merged_ranges(path_file_out, "Qty") == ["A2:A3"]
    dict_values = _read_raw_cell_values(path_file_out)
    # every cell under the merged region still carries its value for the total
    assert [float(dict_values[_ref]) for _ref in ("A2", "A3", "A4")] == [
        10.0,
        10.0,
        20.0,
    ]
    assert openpyxl.load_workbook(path_file_out)["Qty"]["A5"].value == "=SUM(A2:A4)"


def test_subfooter_with_null_and_nan_cells(tmp_path: Path) -> None:
    path_file_out = tmp_path / "missing_footer.xlsx"
    df = pl.DataFrame(
        {
            "grp": ["a", "a", "b", "b"],
            "amount": [1.5, None, float("nan"), 4.0],
        }
    )

    with XlsxWriter(path_file_out) as xf:
        xf.write_sheet(
            df,
            "M",
            cols_merged=["grp", "amount"],
            subfooter=SpecSubFooter(funcs_by_col={"amount": "sum"}),
        )

    # NULL and NaN both render blank and form one run of their own
    assert _read_merged_ranges(path_file_out, "M") == ["A2:A3", "A4:A5", "B3:B4"]
    dict_values = _read_raw_cell_values(path_file_out)
    assert float(dict_values["B2"]) == 1.5
    assert "B3" in dict_values and dict_values["B3"] is None
    assert "B4" in dict_values and dict_values["B4"] is None
    assert float(dict_values["B5"]) == 4.0

    ws = openpyxl.load_workbook(path_file_out)["M"]
    assert ws["A6"].value == "Total"
    assert ws["B6"].value == "=SUM(B2:B5)"


def test_null_run_never_joins_equal_looking_text(tmp_path: Path) -> None:
    path_file_out = tmp_path / "null_vs_na.xlsx"
    df = pl.DataFrame({"code": [None, "NA", "NA"]})

    with XlsxWriter(path_file_out) as xf:
        xf.write_sheet(df, "C", cols_merged=["code"])

    assert _read_merged_ranges(path_file_out, "C") == ["A3:A4"]
    ws = openpyxl.load_workbook(path_file_out)["C"]
    assert ws["A2"].value is None
    assert ws["A3"].value == "NA"


def test_subfooter_requires_numeric_column(tmp_path: Path) -> None:
    with XlsxWriter(tmp_path / "bad_footer.xlsx") as xf:
        with pytest.raises(ValueError, match="numeric"):
            xf.write_sheet(
                DF_SALES, "S", subfooter=SpecSubFooter(funcs_by_col={"city": "max"})
            )


def test_unknown_merged_column_raises_by_default(tmp_path: Path) -> None:
    with XlsxWriter(tmp_path / "unknown.xlsx") as xf:
        with pytest.raises(KeyError):
            xf.write_sheet(DF_SALES, "S", cols_merged=["nope"])


def test_unknown_merged_column_is_skipped_in_force_generate(tmp_path: Path) -> None:
    path_file_out = tmp_path / "force.xlsx"

    with XlsxWriter(
        path_file_out, options=SpecXlsxWriteOptions(if_force_generate=True)
    ) as xf:
        xf.write_sheet(DF_SALES, "S", cols_merged=["nope", "region"])
        reports = xf.report()

    assert any("'nope'" in _msg for _msg in reports[0].warnings)
    assert _read_merged_ranges(path_file_out, "S") == ["A2:A4", "A5:A6"]


def test_failed_sheet_is_not_written_and_releases_name(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path_file_out = tmp_path / "failed.xlsx"

    def _raise_build(*args: object, **kwargs: object) -> None:
        raise InvalidInputError("broken grid")

    with XlsxWriter(path_file_out) as xf:
        with monkeypatch.context() as mp:
            mp.setattr(xf, "_build_sheet_grid", _raise_build)
            with pytest.raises(InvalidInputError):
                xf.write_sheet(DF_SALES, "Broken")
        xf.write_sheet(DF_SALES, "Broken")

    assert openpyxl.load_workbook(path_file_out).sheetnames == ["Broken"]


def test_duplicate_sheet_names_are_bumped(tmp_path: Path) -> None:
    path_file_out = tmp_path / "dupes.xlsx"

    with XlsxWriter(path_file_out) as xf:
        xf.write_sheet(DF_SALES, "Data")
        xf.write_sheet(DF_SALES, "data")
        xf.write_sheet(DF_SALES, "Da/ta")

    assert openpyxl.load_workbook(path_file_out).sheetnames == [
        "Data",
        "data__2",
        "Da_ta",
    ]


def test_write_query_uses_data_source(
    tmp_path: Path, connection: sqlite3.Connection
) -> None:
    path_file_out = tmp_path / "query.xlsx"

    with XlsxWriter(path_file_out) as xf:
        xf.write_query(
            QueryDataSource(),
            connection,
            "SELECT region, city, amount FROM sales ORDER BY region, city",
            "Q",
            cols_merged=["region"],
        )

    assert _read_merged_ranges(path_file_out, "Q") == ["A2:A4", "A5:A6"]


def test_export_workbook_writes_every_sheet(
    tmp_path: Path, connection: sqlite3.Connection
) -> None:
    path_file_out = tmp_path / "book.xlsx"

    reports = export_workbook(
        QueryDataSource(),
        connection,
        path_file_out,
        [
            SpecSheetExport(
                sheet_name="ByRegion",
                query="SELECT region, amount FROM sales ORDER BY region",
                cols_merged=["region"],
                subfooter=SpecSubFooter(funcs_by_col={"amount": "average"}),
            ),
            SpecSheetExport(
                sheet_name="West",
                query="SELECT city, amount FROM sales WHERE region = ?",
                params=("West",),
                cols_merged=["city"],
            ),
            SpecSheetExport(
                sheet_name="None",
                query="SELECT city FROM sales WHERE 0",
                cols_merged=["city"],
            ),
        ],
    )

    assert [_r.sheets[0].sheet_name for _r in reports] == ["ByRegion", "West", "None"]
    wb = openpyxl.load_workbook(path_file_out)
    assert wb.sheetnames == ["ByRegion", "West", "None"]
    assert wb["ByRegion"]["B7"].value == "=AVERAGE(B2:B6)"
    assert _read_merged_ranges(path_file_out, "West") == ["A2:A3"]
    assert wb["None"]["A1"].value == "city"
    assert wb["None"].max_row == 1


def test_export_workbook_requires_sheets(
    tmp_path: Path, connection: sqlite3.Connection
) -> None:
    with pytest.raises(ValueError):
        export_workbook(QueryDataSource(), connection, tmp_path / "x.xlsx", [])
