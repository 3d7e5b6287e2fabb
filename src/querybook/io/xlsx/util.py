import datetime as dt
import math
from collections import defaultdict
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

import polars as pl
from xlsxwriter.utility import xl_rowcol_to_cell

from .conf import (
    DICT_SUBFOOTER_FORMULAS,
    LIT_COL_KINDS,
    N_LEN_EXCEL_SHEET_NAME_MAX,
    N_NCOLS_EXCEL_MAX,
    N_NROWS_EXCEL_MAX,
    TUP_EXCEL_ILLEGAL,
    ColumnIdentifier,
)
from .spec import SpecSheetSlice, SpecXlsxReport, SpecXlsxValuePolicy

################################################################################
# #region CellValueConversion


def convert_nan_inf_to_str(*, x: float, value_policy: SpecXlsxValuePolicy) -> str:
    if math.isnan(x):
        return value_policy.nan_str
    if math.isinf(x):
        return value_policy.posinf_str if x > 0 else value_policy.neginf_str
    raise ValueError("Input is neither NaN nor Inf.")


def convert_cell_value(
    *,
    value: Any,
    kind: LIT_COL_KINDS,
    if_keep_missing_values: bool,
    value_policy: SpecXlsxValuePolicy,
) -> Any:
    if value is None:
        return value_policy.missing_value_str if if_keep_missing_values else None
    if kind == "boolean":
        return bool(value)
    if kind in ("date", "datetime"):
        if isinstance(value, (dt.date, dt.time)):
            return value
        return str(value)
    if kind == "integer":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return str(value)
    if kind == "decimal":
        try:
            n_cell_float_value = float(value)
        except (TypeError, ValueError):
            return str(value)
        if not math.isfinite(n_cell_float_value):
            return (
                convert_nan_inf_to_str(x=n_cell_float_value, value_policy=value_policy)
                if if_keep_missing_values
                else None
            )
        return n_cell_float_value
    return str(value)


def derive_col_kind(dtype: pl.DataType) -> LIT_COL_KINDS:
    if dtype == pl.Boolean:
        return "boolean"
    if dtype.is_integer():
        return "integer"
    if dtype.is_numeric():
        return "decimal"
    if dtype == pl.Datetime:
        return "datetime"
    if dtype == pl.Date:
        return "date"
    return "text"


def estimate_width_len(value: Any, *, kind: LIT_COL_KINDS) -> int:
    """Estimate display string length for column width calculation.

    Notes
    -----
    - Excel column width is not strictly character count; this is a pragmatic
      heuristic good enough for most reports.
    - Temporal and decimal kinds are estimated from the default number formats.
    """
    if value is None:
        return 0
    if kind == "datetime":
        return len("yyyy-mm-dd hh:mm:ss")
    if kind == "date":
        return len("yyyy-mm-dd")
    if kind == "decimal" and isinstance(value, (float, Decimal)):
        return len(f"{value:,.2f}")

    s = str(value)
    n_ascii = sum(1 for _chr in s if ord(_chr) < 128)
    n_non_ascii = len(s) - n_ascii
    return n_ascii + int(1.6 * n_non_ascii)


# #endregion
################################################################################
# #region ColumnRefs


def validate_unique_names(names: Sequence[str]) -> None:
    # fast path: no duplicates
    if len(names) == len(set(names)):
        return

    # slow path: collect details only when duplicates exist
    dict_pos: dict[str, list[int]] = defaultdict(list)
    for _idx, _val in enumerate(names):
        dict_pos[_val].append(_idx)

    c_msg = "; ".join(
        f"{c_name!r} x{len(l_pos)} at indices {l_pos}"
        for c_name, l_pos in dict_pos.items()
        if len(l_pos) > 1
    )
    raise ValueError(f"Duplicate column names detected: {c_msg}")


def normalize_col_index(colnames: Sequence[str], ref: ColumnIdentifier) -> int:
    if isinstance(ref, int):
        if not 0 <= ref < len(colnames):
            raise KeyError(f"Column index out of range: {ref!r}")
        return ref
    try:
        return list(colnames).index(ref)
    except ValueError as e:
        raise KeyError(f"Column not found: {ref!r}") from e


# #endregion
################################################################################
# #region SheetNormalization


def sanitize_sheet_name(name: str, *, replace_to: str = "_") -> str:
    for ch in TUP_EXCEL_ILLEGAL:
        name = name.replace(ch, replace_to)
    name = name.strip() or "Sheet"
    return name[:N_LEN_EXCEL_SHEET_NAME_MAX]


def generate_sheet_slices(
    *,
    height_df: int,
    width_df: int,
    height_header: int,
    height_footer: int,
    sheet_name: str,
    report: SpecXlsxReport,
) -> list[SpecSheetSlice]:
    if height_header <= 0:
        raise ValueError("height_header must be >= 1.")
    if (n_rows_data_max := N_NROWS_EXCEL_MAX - height_header - height_footer) <= 0:
        raise ValueError(
            f"Header too tall: height_header={height_header} exceeds Excel limit."
        )

    l_col_slices: list[tuple[int, int]] = []
    n_col_start = 0
    while n_col_start < width_df:
        n_col_end = min(width_df, n_col_start + N_NCOLS_EXCEL_MAX)
        l_col_slices.append((n_col_start, n_col_end))
        n_col_start = n_col_end
    if not l_col_slices:
        l_col_slices.append((0, 0))

    l_row_slices: list[tuple[int, int]] = []
    n_row_start = 0
    while n_row_start < height_df:
        n_row_end = min(height_df, n_row_start + n_rows_data_max)
        l_row_slices.append((n_row_start, n_row_end))
        n_row_start = n_row_end
    if not l_row_slices:
        # Ensure we still create a sheet to write headers for 0-row results.
        l_row_slices.append((0, 0))

    n_parts_total = len(l_col_slices) * len(l_row_slices)

    l_sheet_parts: list[SpecSheetSlice] = []
    n_idx_part = 1
    for _col_start, _col_end in l_col_slices:
        for _row_start, _row_end in l_row_slices:
            # Only add a suffix when the data was actually split.
            c_part_sheet_name = (
                sheet_name
                if n_parts_total == 1
                else _create_sheet_identifier(sheet_name, n_idx_part)
            )
            l_sheet_parts.append(
                SpecSheetSlice(
                    sheet_name=c_part_sheet_name,
                    row_start_inclusive=_row_start,
                    row_end_exclusive=_row_end,
                    col_start_inclusive=_col_start,
                    col_end_exclusive=_col_end,
                )
            )
            n_idx_part += 1

    if n_parts_total > 1:
        report.warn(
            f"Excel limit overflow: split into {len(l_sheet_parts)} sheets (columns-first, then rows)."
        )
    return l_sheet_parts


def _create_sheet_identifier(base_name: str, part_idx_1based: int) -> str:
    c_sheet_name_suffix = f"_{part_idx_1based}"
    n_len_base_name_max = N_LEN_EXCEL_SHEET_NAME_MAX - len(c_sheet_name_suffix)
    c_sheet_name_base = base_name[: max(1, n_len_base_name_max)]
    return f"{c_sheet_name_base}{c_sheet_name_suffix}"


# #endregion
################################################################################
# #region SubFooter


def build_subfooter_formula(
    func: str, *, col_idx: int, row_idx_first: int, row_idx_last: int
) -> str:
    """
    Build an aggregate formula over one column of data rows.

    Examples:
        >>> build_subfooter_formula("sum", col_idx=1, row_idx_first=1, row_idx_last=3)
        '=SUM(B2:B4)'
    """
    try:
        c_func = DICT_SUBFOOTER_FORMULAS[func]
    except KeyError as e:
        raise ValueError(
            f"Unknown sub-footer function {func!r}; "
            f"known: {sorted(DICT_SUBFOOTER_FORMULAS)}"
        ) from e
    c_cell_first = xl_rowcol_to_cell(row_idx_first, col_idx)
    c_cell_last = xl_rowcol_to_cell(row_idx_last, col_idx)
    return f"={c_func}({c_cell_first}:{c_cell_last})"


# #endregion
################################################################################
