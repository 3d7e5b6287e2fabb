"""Command line entry point: export a SQLite query to a styled workbook.

    querybook export --database sales.db \\
        --query "SELECT region, city, amount FROM sales ORDER BY region, city" \\
        --output sales.xlsx --merge region --merge city --subfooter amount=sum
"""

import argparse
import sqlite3
import sys
from collections.abc import Sequence
from pathlib import Path

from loguru import logger
from xlsxwriter.exceptions import FileCreateError

from ..db.source import QueryDataSource
from ..errors import QuerybookError
from ..io.xlsx.conf import DICT_SUBFOOTER_FORMULAS
from ..io.xlsx.spec import SpecSheetExport, SpecSubFooter, SpecXlsxWriteOptions
from ..io.xlsx.style import DICT_STYLE_TEMPLATES, XlsxStylerBuilder
from ..io.xlsx.writer import export_workbook
from .base import SmartFormatter


def _parse_subfooter_item(text: str) -> tuple[str, str]:
    c_col, sep, c_func = text.partition("=")
    if not sep or not c_col or c_func not in DICT_SUBFOOTER_FORMULAS:
        raise argparse.ArgumentTypeError(
            f"Expected COLUMN=FUNC with FUNC in {sorted(DICT_SUBFOOTER_FORMULAS)}, "
            f"got {text!r}."
        )
    return c_col, c_func


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="querybook",
        description="Export relational query results into styled XLSX workbooks.",
        formatter_class=SmartFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_export = subparsers.add_parser(
        "export",
        help="Export one query to one sheet.",
        formatter_class=SmartFormatter,
    )
    p_export.add_argument(
        "--database", required=True, type=Path, help="SQLite database file."
    )
    p_export.add_argument("--query", required=True, help="SELECT statement to export.")
    p_export.add_argument(
        "--output", required=True, type=Path, help="Output .xlsx file."
    )
    p_export.add_argument("--sheet", default="Sheet1", help="Sheet name.")
    p_export.add_argument(
        "--merge",
        action="append",
        default=[],
        metavar="COLUMN",
        help="Merge runs of equal values in COLUMN (repeatable).",
    )
    p_export.add_argument(
        "--subfooter",
        action="append",
        default=[],
        type=_parse_subfooter_item,
        metavar="COLUMN=FUNC",
        help="Aggregate COLUMN in a sub-footer row (repeatable).\n"
        f"FUNC: {', '.join(DICT_SUBFOOTER_FORMULAS)}",
    )
    p_export.add_argument(
        "--template",
        default="standard",
        choices=sorted(DICT_STYLE_TEMPLATES),
        help="Style template.",
    )
    p_export.add_argument(
        "--keep-missing",
        action="store_true",
        help="Write NULL values as 'NA' instead of blank cells.",
    )
    p_export.add_argument(
        "--force",
        action="store_true",
        help="Skip unknown merge columns instead of failing.",
    )
    p_export.add_argument(
        "--fetch-size", type=int, default=5_000, help="Rows fetched per round trip."
    )
    p_export.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def _configure_logging(if_verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if if_verbose else "INFO")


def _run_export(args: argparse.Namespace) -> int:
    if not args.database.is_file():
        logger.error(f"Database file not found: {args.database}")
        return 2

    subfooter = (
        SpecSubFooter(funcs_by_col=dict(args.subfooter)) if args.subfooter else None
    )
    styler = XlsxStylerBuilder().with_style_template(args.template).build()
    options = SpecXlsxWriteOptions(
        keep_missing_values=args.keep_missing,
        if_force_generate=args.force,
    )
    source = QueryDataSource(size_fetch=args.fetch_size)

    connection = sqlite3.connect(args.database)
    try:
        reports = export_workbook(
            source,
            connection,
            args.output,
            [
                SpecSheetExport(
                    sheet_name=args.sheet,
                    query=args.query,
                    cols_merged=args.merge,
                    subfooter=subfooter,
                )
            ],
            styler=styler,
            options=options,
        )
    except (QuerybookError, KeyError, ValueError, FileCreateError) as e:
        logger.error(f"Export failed: {e}")
        return 1
    finally:
        connection.close()

    for _report in reports:
        for _msg in _report.warnings:
            logger.warning(_msg)
        for _sheet_name, _regions in _report.regions_merged.items():
            logger.info(f"Sheet {_sheet_name!r}: {len(_regions)} merged region(s).")
    logger.success(f"Wrote {args.output}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    if args.command == "export":
        return _run_export(args)
    parser.error(f"Unknown command: {args.command}")
    return 2
