"""
In-memory sheet model used as the merge target before rendering.

``xlsxwriter`` worksheets are write-only: a cell cannot be looked up or
restyled after it is written. :class:`SheetGrid` keeps the cells and merged
regions of one sheet in memory so merges can be declared against cells that
already exist, and :func:`render_sheet_grid` writes the finished grid to a
worksheet in one pass.
"""

import datetime as dt
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Protocol

import xlsxwriter.format
import xlsxwriter.worksheet

from ...errors import DuplicateRegionError, PreconditionViolationError
from .spec import SpecCellFormat, SpecMergedRegion

################################################################################
# #region SheetTarget


@dataclass(slots=True)
class SheetCell:
    row_idx: int
    col_idx: int
    value: Any
    style: SpecCellFormat
    formula: str | None = None


class SheetTarget(Protocol):
    """Sheet operations needed to merge a run of cells."""

    def declare_merged_region(
        self,
        row_first: int,
        row_last: int,
        col_first: int,
        col_last: int | None = None,
    ) -> SpecMergedRegion: ...

    def get_cell(self, row_idx: int, col_idx: int) -> SheetCell | None: ...

    def set_cell_style(self, cell: SheetCell, style: SpecCellFormat) -> None: ...


# #endregion
################################################################################
# #region SheetGrid


class SheetGrid:
    def __init__(self, name: str):
        self.name = name
        self._cells: dict[tuple[int, int], SheetCell] = {}
        self._regions: list[SpecMergedRegion] = []
        self.widths_by_col: dict[int, float] = {}
        self.panes_frozen: tuple[int, int] | None = None

    def __repr__(self) -> str:
        return (
            f"SheetGrid(name={self.name!r}, cells={len(self._cells)}, "
            f"regions={len(self._regions)})"
        )

    @property
    def merged_regions(self) -> tuple[SpecMergedRegion, ...]:
        return tuple(self._regions)

    @property
    def n_cells(self) -> int:
        return len(self._cells)

    def write_cell(
        self,
        row_idx: int,
        col_idx: int,
        value: Any,
        style: SpecCellFormat,
        *,
        formula: str | None = None,
    ) -> SheetCell:
        if row_idx < 0 or col_idx < 0:
            raise PreconditionViolationError(
                f"Cell indices must be >= 0, got ({row_idx}, {col_idx})."
            )
        cell = SheetCell(
            row_idx=row_idx, col_idx=col_idx, value=value, style=style, formula=formula
        )
        self._cells[(row_idx, col_idx)] = cell
        return cell

    def get_cell(self, row_idx: int, col_idx: int) -> SheetCell | None:
        return self._cells.get((row_idx, col_idx))

    def set_cell_style(self, cell: SheetCell, style: SpecCellFormat) -> None:
        if self._cells.get((cell.row_idx, cell.col_idx)) is not cell:
            raise PreconditionViolationError(
                f"Cell ({cell.row_idx}, {cell.col_idx}) does not belong to sheet "
                f"{self.name!r}."
            )
        cell.style = style

    def declare_merged_region(
        self,
        row_first: int,
        row_last: int,
        col_first: int,
        col_last: int | None = None,
    ) -> SpecMergedRegion:
        n_col_last = col_first if col_last is None else col_last
        if row_first > row_last or col_first > n_col_last:
            raise PreconditionViolationError(
                f"Invalid region rows {row_first}..{row_last}, "
                f"cols {col_first}..{n_col_last}."
            )
        region = SpecMergedRegion(
            row_first=row_first,
            row_last=row_last,
            col_first=col_first,
            col_last=n_col_last,
        )
        for _region_existing in self._regions:
            if _region_existing.check_overlap(region):
                raise DuplicateRegionError(
                    f"Region {region} overlaps {_region_existing} on sheet "
                    f"{self.name!r}."
                )
        self._regions.append(region)
        return region

    def set_column_width(self, col_idx: int, width: float) -> None:
        self.widths_by_col[col_idx] = width

    def freeze_panes(self, row_idx: int, col_idx: int) -> None:
        self.panes_frozen = (row_idx, col_idx)

    def generate_cells(self) -> Iterator[SheetCell]:
        """Yield cells in row-major order."""
        for _key in sorted(self._cells):
            yield self._cells[_key]


# #endregion
################################################################################
# #region Rendering


def write_cell_value(
    ws: xlsxwriter.worksheet.Worksheet,
    cell: SheetCell,
    cell_format: xlsxwriter.format.Format,
) -> None:
    n_row, n_col, value = cell.row_idx, cell.col_idx, cell.value
    if cell.formula is not None:
        ws.write_formula(n_row, n_col, cell.formula, cell_format)
        return
    if value is None:
        ws.write_blank(row=n_row, col=n_col, blank=None, cell_format=cell_format)
        return
    if isinstance(value, str):
        ws.write_string(row=n_row, col=n_col, string=value, cell_format=cell_format)
        return
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        ws.write_boolean(row=n_row, col=n_col, boolean=value, cell_format=cell_format)
        return
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        ws.write_datetime(
            row=n_row, col=n_col, date=value, cell_format=cell_format
        )
        return
    ws.write_number(row=n_row, col=n_col, number=value, cell_format=cell_format)


def render_sheet_grid(
    ws: xlsxwriter.worksheet.Worksheet,
    grid: SheetGrid,
    format_factory: Callable[[SpecCellFormat], xlsxwriter.format.Format],
) -> None:
    for _cell in grid.generate_cells():
        write_cell_value(ws, _cell, format_factory(_cell.style))

    for _region in grid.merged_regions:
        cell_anchor = grid.get_cell(_region.row_first, _region.col_first)
        if cell_anchor is None:
            continue
        cfg_fmt_anchor = format_factory(cell_anchor.style)
        ws.merge_range(
            _region.row_first,
            _region.col_first,
            _region.row_last,
            _region.col_last,
            "",
            cfg_fmt_anchor,
        )
        # merge_range blanks every covered cell and writes the anchor through
        # the generic dispatcher; restore all of them with explicit typed calls
        for _row_idx in range(_region.row_first, _region.row_last + 1):
            for _col_idx in range(_region.col_first, _region.col_last + 1):
                cell_covered = grid.get_cell(_row_idx, _col_idx)
                if cell_covered is not None:
                    write_cell_value(ws, cell_covered, cfg_fmt_anchor)

    for _col_idx, _width in grid.widths_by_col.items():
        ws.set_column(first_col=_col_idx, last_col=_col_idx, width=_width)

    if grid.panes_frozen is not None:
        ws.freeze_panes(*grid.panes_frozen)


# #endregion
################################################################################
