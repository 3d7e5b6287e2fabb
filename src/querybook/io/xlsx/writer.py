import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any, Self

import polars as pl
import xlsxwriter
import xlsxwriter.format
from loguru import logger

from .conf import (
    DEFAULT_XLSX_WRITE_OPTIONS,
    LIT_COL_KINDS,
    N_LEN_EXCEL_SHEET_NAME_MAX,
    ColumnIdentifier,
)
from .region_merge import RegionMerger
from .sheet import SheetGrid, render_sheet_grid
from .spec import (
    SpecCellFormat,
    SpecSheetExport,
    SpecSheetSlice,
    SpecSubFooter,
    SpecXlsxReport,
    SpecXlsxWriteOptions,
)
from .style import SpecXlsxStyler, XlsxStylerBuilder
from .util import (
    build_subfooter_formula,
    convert_cell_value,
    derive_col_kind,
    estimate_width_len,
    generate_sheet_slices,
    normalize_col_index,
    sanitize_sheet_name,
    validate_unique_names,
)

if TYPE_CHECKING:
    from ...db.source import QueryDataSource, QueryParams

N_ROWS_HEADER = 1
# run key for NULL cells: equal only to itself, never to a real value
_NULL_RUN_KEY = object()


class XlsxWriter:
    """
    Write query results and tabular data to a styled XLSX workbook.

    This class wraps :class:`xlsxwriter.Workbook`. Every sheet is first built
    as an in-memory :class:`~querybook.io.xlsx.sheet.SheetGrid` (header, data,
    merged regions, optional sub-footer) and rendered once it is complete,
    so a sheet that fails to build is never written. It can be used directly
    or as a context manager::

        from querybook.db import QueryDataSource
        from querybook.io.xlsx import XlsxWriter

        source = QueryDataSource()
        with XlsxWriter("report.xlsx") as xf:
            xf.write_query(
                source, conn, "SELECT region, city, sales FROM t ORDER BY 1, 2",
                "Sales", cols_merged=["region"],
            )

    Parameters
    ----------
    file_out:
        Path to the output ``.xlsx`` file. The underlying workbook is created
        immediately for this path.
    styler:
        Cell formats per role. Defaults to the ``standard`` style template.
    options:
        Value policy, autofit policy and force-generate behaviour.
    """

    def __init__(
        self,
        file_out: os.PathLike[str] | str,
        *,
        styler: SpecXlsxStyler | None = None,
        options: SpecXlsxWriteOptions | None = None,
    ):
        self.file_out = Path(file_out)
        self.wb = xlsxwriter.Workbook(
            self.file_out.as_posix(),
            {
                # merges are declared after their anchor row is written
                "constant_memory": False,
                # NaN/Inf are converted by the value policy, never written as errors
                "nan_inf_to_errors": False,
                "strings_to_formulas": False,
                "strings_to_urls": False,
                "remove_timezone": True,
            },
        )
        self.styler = XlsxStylerBuilder().build() if styler is None else styler
        self.options = DEFAULT_XLSX_WRITE_OPTIONS if options is None else options
        self._format_cache: dict[SpecCellFormat, xlsxwriter.format.Format] = {}
        self._existing_sheet_names: set[str] = set()
        self._reports: list[SpecXlsxReport] = []

    def __enter__(self) -> "XlsxWriter":
        return self

    def __exit__(
        self, exc_type: type | None, exc: BaseException | None, tb: TracebackType | None
    ) -> None:
        self.close()

    def close(self) -> None:
        self.wb.close()

    def report(self) -> tuple[SpecXlsxReport, ...]:
        return tuple(self._reports)

    def _create_format_cached(self, spec: SpecCellFormat) -> xlsxwriter.format.Format:
        fmt = self._format_cache.get(spec)
        if fmt is None:
            fmt = self.wb.add_format(spec.to_xlsxwriter())
            self._format_cache[spec] = fmt
        return fmt

    def _create_unique_sheet_name(self, name: str) -> str:
        # Excel compares sheet names case-insensitively
        if name.casefold() not in self._existing_sheet_names:
            self._existing_sheet_names.add(name.casefold())
            return name

        # deterministic bump: name__2, name__3 ...
        c_base_name = name[: max(1, N_LEN_EXCEL_SHEET_NAME_MAX - 3)]
        i = 2
        c_candidate_name = f"{c_base_name}__{i}"[:N_LEN_EXCEL_SHEET_NAME_MAX]
        while c_candidate_name.casefold() in self._existing_sheet_names:
            i += 1
            c_candidate_name = f"{c_base_name}__{i}"[:N_LEN_EXCEL_SHEET_NAME_MAX]
        self._existing_sheet_names.add(c_candidate_name.casefold())
        return c_candidate_name

    def _select_merged_cols(
        self,
        colnames: Sequence[str],
        cols_merged: Sequence[ColumnIdentifier],
        report: SpecXlsxReport,
    ) -> tuple[int, ...]:
        set_cols_idx: set[int] = set()
        for _ref in cols_merged:
            try:
                set_cols_idx.add(normalize_col_index(colnames, _ref))
            except KeyError:
                if not self.options.if_force_generate:
                    raise
                c_msg = f"Merged column {_ref!r} not found; skipped."
                logger.warning(c_msg)
                report.warn(c_msg)
        return tuple(sorted(set_cols_idx))

    @staticmethod
    def _select_subfooter_funcs(
        colnames: Sequence[str],
        kinds: Sequence[LIT_COL_KINDS],
        subfooter: SpecSubFooter | None,
    ) -> dict[int, str]:
        if subfooter is None:
            return {}
        dict_funcs_by_col_idx: dict[int, str] = {}
        for _ref, _func in subfooter.funcs_by_col.items():
            n_col_idx = normalize_col_index(colnames, _ref)
            if kinds[n_col_idx] not in ("integer", "decimal"):
                raise ValueError(
                    f"Sub-footer {_func!r} needs a numeric column; "
                    f"{colnames[n_col_idx]!r} is {kinds[n_col_idx]}."
                )
            dict_funcs_by_col_idx[n_col_idx] = _func
        return dict_funcs_by_col_idx

    def _build_sheet_grid(
        self,
        df_slice: pl.DataFrame,
        sheet_name: str,
        *,
        kinds: Sequence[LIT_COL_KINDS],
        cols_idx_merged: Sequence[int],
        subfooter_funcs: Mapping[int, str],
        subfooter_label: str | None,
        col_freeze: int,
        row_freeze: int,
        if_autofit_columns: bool,
    ) -> SheetGrid:
        grid = SheetGrid(sheet_name)
        cfg_policy_value = self.options.value_policy
        cfg_policy_autofit = self.options.autofit_policy
        b_keep_missing = self.options.keep_missing_values
        n_width = df_slice.width
        n_height = df_slice.height

        l_fmts_by_col = [self.styler.format_for_kind(_kind) for _kind in kinds]
        dict_col_widths: dict[str, list[int]] = {
            "header": [0] * n_width,
            "body": [0] * n_width,
        }

        # header
        for _col_idx, _colname in enumerate(df_slice.columns):
            grid.write_cell(0, _col_idx, _colname, self.styler.header)
            dict_col_widths["header"][_col_idx] = estimate_width_len(
                _colname, kind="text"
            )

        # body, observed column by column by one merger each
        dict_mergers = {
            _col_idx: RegionMerger(
                grid,
                self.styler.format_for_merged_region(kinds[_col_idx]),
                _col_idx,
            )
            for _col_idx in cols_idx_merged
        }
        b_autofit_body = if_autofit_columns and cfg_policy_autofit.rule_columns in (
            "body",
            "all",
        )
        n_rows_autofit_max = cfg_policy_autofit.height_body_inferred_max
        for _row_idx_data, _row_val in enumerate(df_slice.iter_rows()):
            n_row_idx_sheet = N_ROWS_HEADER + _row_idx_data
            for _col_idx, _col_val in enumerate(_row_val):
                c_cell_val = convert_cell_value(
                    value=_col_val,
                    kind=kinds[_col_idx],
                    if_keep_missing_values=b_keep_missing,
                    value_policy=cfg_policy_value,
                )
                grid.write_cell(
                    n_row_idx_sheet, _col_idx, c_cell_val, l_fmts_by_col[_col_idx]
                )
                if (merger := dict_mergers.get(_col_idx)) is not None:
                    merger.observe(
                        n_row_idx_sheet,
                        _NULL_RUN_KEY
                        if _col_val is None or c_cell_val is None
                        else c_cell_val,
                    )
                if b_autofit_body and (
                    n_rows_autofit_max is None or _row_idx_data < n_rows_autofit_max
                ):
                    dict_col_widths["body"][_col_idx] = max(
                        dict_col_widths["body"][_col_idx],
                        estimate_width_len(c_cell_val, kind=kinds[_col_idx]),
                    )

        if n_height > 0:
            n_row_idx_data_last = N_ROWS_HEADER + n_height - 1
            for _merger in dict_mergers.values():
                _merger.finish(n_row_idx_data_last)

            if subfooter_funcs:
                n_row_idx_footer = n_row_idx_data_last + 1
                for _col_idx in range(n_width):
                    c_func = subfooter_funcs.get(_col_idx)
                    if c_func is not None:
                        grid.write_cell(
                            n_row_idx_footer,
                            _col_idx,
                            None,
                            self.styler.subfooter,
                            formula=build_subfooter_formula(
                                c_func,
                                col_idx=_col_idx,
                                row_idx_first=N_ROWS_HEADER,
                                row_idx_last=n_row_idx_data_last,
                            ),
                        )
                    elif _col_idx == 0 and subfooter_label:
                        grid.write_cell(
                            n_row_idx_footer, 0, subfooter_label, self.styler.subfooter
                        )
                    else:
                        grid.write_cell(
                            n_row_idx_footer, _col_idx, None, self.styler.subfooter
                        )

        if if_autofit_columns and cfg_policy_autofit.rule_columns != "none":
            n_min = max(1, int(cfg_policy_autofit.width_cell_min))
            n_max = min(255, max(n_min, int(cfg_policy_autofit.width_cell_max)))
            n_pad = max(0, int(cfg_policy_autofit.width_cell_padding))
            for _col_idx in range(n_width):
                n_col_width_recorded_ = (
                    dict_col_widths[cfg_policy_autofit.rule_columns][_col_idx]
                    if cfg_policy_autofit.rule_columns != "all"
                    else max(
                        dict_col_widths["header"][_col_idx],
                        dict_col_widths["body"][_col_idx],
                    )
                )
                grid.set_column_width(
                    _col_idx, min(n_max, max(n_min, n_col_width_recorded_ + n_pad))
                )

        grid.freeze_panes(row_freeze, col_freeze)
        return grid

    def write_sheet(
        self,
        df: Any,
        sheet_name: str,
        *,
        kinds_by_col: Mapping[str, LIT_COL_KINDS] | None = None,
        cols_merged: Sequence[ColumnIdentifier] = (),
        subfooter: SpecSubFooter | None = None,
        col_freeze: int = 0,
        row_freeze: int | None = None,
        if_autofit_columns: bool = True,
    ) -> Self:
        """
        Write ``df`` to one sheet (or several, when it exceeds Excel limits).

        Columns listed in ``cols_merged`` get runs of equal consecutive values
        merged into one cell. Data should be sorted on those columns for the
        merge to be meaningful; each column is merged independently.
        """
        report = SpecXlsxReport(sheets=[], warnings=[])

        df_custom = df if isinstance(df, pl.DataFrame) else pl.DataFrame(df)
        l_colnames = df_custom.columns
        validate_unique_names(l_colnames)

        dict_kinds = dict(kinds_by_col or {})
        l_kinds: list[LIT_COL_KINDS] = [
            dict_kinds.get(_colname) or derive_col_kind(df_custom.schema[_colname])
            for _colname in l_colnames
        ]

        tup_cols_idx_merged = self._select_merged_cols(l_colnames, cols_merged, report)
        dict_subfooter_funcs = self._select_subfooter_funcs(
            l_colnames, l_kinds, subfooter
        )

        l_sheet_parts = generate_sheet_slices(
            height_df=df_custom.height,
            width_df=df_custom.width,
            height_header=N_ROWS_HEADER,
            height_footer=1 if dict_subfooter_funcs else 0,
            sheet_name=sanitize_sheet_name(sheet_name),
            report=report,
        )
        if len(l_sheet_parts) > 1:
            logger.warning(
                f"Sheet {sheet_name!r} exceeds Excel limits; "
                f"split into {len(l_sheet_parts)} sheets."
            )

        for _sheet_slice in l_sheet_parts:
            n_col_start = _sheet_slice.col_start_inclusive
            n_col_end = _sheet_slice.col_end_exclusive
            df_slice_ = df_custom.slice(
                offset=_sheet_slice.row_start_inclusive,
                length=_sheet_slice.row_end_exclusive
                - _sheet_slice.row_start_inclusive,
            ).select(l_colnames[n_col_start:n_col_end])

            c_sheet_name_unique_ = self._create_unique_sheet_name(
                _sheet_slice.sheet_name
            )
            try:
                grid = self._build_sheet_grid(
                    df_slice_,
                    c_sheet_name_unique_,
                    kinds=l_kinds[n_col_start:n_col_end],
                    cols_idx_merged=[
                        _idx - n_col_start
                        for _idx in tup_cols_idx_merged
                        if n_col_start <= _idx < n_col_end
                    ],
                    subfooter_funcs={
                        _idx - n_col_start: _func
                        for _idx, _func in dict_subfooter_funcs.items()
                        if n_col_start <= _idx < n_col_end
                    },
                    subfooter_label=None if subfooter is None else subfooter.label,
                    col_freeze=col_freeze,
                    row_freeze=N_ROWS_HEADER if row_freeze is None else row_freeze,
                    if_autofit_columns=if_autofit_columns,
                )
            except Exception:
                self._existing_sheet_names.discard(c_sheet_name_unique_.casefold())
                raise

            render_sheet_grid(
                self.wb.add_worksheet(c_sheet_name_unique_),
                grid,
                self._create_format_cached,
            )
            logger.debug(
                f"Sheet {c_sheet_name_unique_!r}: {df_slice_.height} row(s), "
                f"{len(grid.merged_regions)} merged region(s)."
            )

            report.sheets.append(
                SpecSheetSlice(
                    sheet_name=c_sheet_name_unique_,
                    row_start_inclusive=_sheet_slice.row_start_inclusive,
                    row_end_exclusive=_sheet_slice.row_end_exclusive,
                    col_start_inclusive=n_col_start,
                    col_end_exclusive=n_col_end,
                )
            )
            report.regions_merged[c_sheet_name_unique_] = list(grid.merged_regions)

        self._reports.append(report)
        return self

    def write_query(
        self,
        source: "QueryDataSource",
        connection: Any,
        query: str,
        sheet_name: str,
        *,
        params: "QueryParams" = None,
        **kwargs: Any,
    ) -> Self:
        """Run ``query`` through ``source`` and write the result with :meth:`write_sheet`."""
        result = source.read_query(connection, query, params)
        return self.write_sheet(
            result.df, sheet_name, kinds_by_col=result.kinds_by_col, **kwargs
        )


def export_workbook(
    source: "QueryDataSource",
    connection: Any,
    file_out: os.PathLike[str] | str,
    sheets: Sequence[SpecSheetExport],
    *,
    styler: SpecXlsxStyler | None = None,
    options: SpecXlsxWriteOptions | None = None,
) -> tuple[SpecXlsxReport, ...]:
    """Export several queries into one workbook, one sheet request each."""
    if not sheets:
        raise ValueError("At least one sheet export is required.")
    with XlsxWriter(file_out, styler=styler, options=options) as xf:
        for _sheet in sheets:
            xf.write_query(
                source,
                connection,
                _sheet.query,
                _sheet.sheet_name,
                params=_sheet.params,
                cols_merged=_sheet.cols_merged,
                subfooter=_sheet.subfooter,
                col_freeze=_sheet.col_freeze,
                row_freeze=_sheet.row_freeze,
            )
        return xf.report()
