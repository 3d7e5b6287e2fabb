"""
Vertical merge detection for exported columns.

A :class:`RunDetector` watches the values written to one column, row by row,
and reports the row boundaries of every run of equal values as a
:class:`~querybook.io.xlsx.spec.SpecMergeRange`. :func:`merge_region` turns
such a range into a merged region on a sheet and styles its anchor cell.
:class:`RegionMerger` wires the two together for a single column.

Example:
    >>> detector = RunDetector()
    >>> [detector.observe(i, v) for i, v in enumerate(["a", "a", "b"])]
    [None, None, SpecMergeRange(row_first=0, row_last=1)]
    >>> detector.close(2) is None
    True
"""

from dataclasses import dataclass
from typing import Any, TypeAlias

from loguru import logger

from ...errors import (
    InvalidInputError,
    MissingAnchorCellError,
    PreconditionViolationError,
)
from .sheet import SheetTarget
from .spec import SpecCellFormat, SpecMergeRange

################################################################################
# #region RunState


@dataclass(frozen=True, slots=True)
class _StateEmpty:
    pass


@dataclass(frozen=True, slots=True)
class _StateTracking:
    value_last: Any
    row_idx_run_start: int  # first row of the open run
    row_idx_last_seen: int


_RunState: TypeAlias = _StateEmpty | _StateTracking

_STATE_EMPTY = _StateEmpty()


# #endregion
################################################################################
# #region RunDetector


class RunDetector:
    """
    Detect runs of equal values in one column.

    Rows must be observed in strictly increasing order; gaps between row
    indices are allowed. One detector belongs to exactly one column of one
    sheet and is discarded after :meth:`close`.
    """

    __slots__ = ("_state",)

    def __init__(self) -> None:
        self._state: _RunState = _STATE_EMPTY

    @property
    def is_tracking(self) -> bool:
        return isinstance(self._state, _StateTracking)

    def observe(self, row_idx: int, value: Any) -> SpecMergeRange | None:
        """
        Record ``value`` at ``row_idx``.

        Returns the range of the previous run when ``value`` differs from it,
        ``None`` otherwise. Single-row ranges are returned as well; skipping
        them is up to :func:`merge_region`.

        Raises:
            InvalidInputError: ``value`` is ``None``, ``row_idx`` is negative,
                or ``row_idx`` does not follow the previous observation.
        """
        if value is None:
            raise InvalidInputError(f"Absent value observed at row {row_idx}.")
        if row_idx < 0:
            raise InvalidInputError(f"row_idx must be >= 0, got {row_idx}.")

        match self._state:
            case _StateEmpty():
                self._state = _StateTracking(
                    value_last=value,
                    row_idx_run_start=row_idx,
                    row_idx_last_seen=row_idx,
                )
                return None
            case _StateTracking(
                value_last=value_last,
                row_idx_run_start=row_idx_run_start,
                row_idx_last_seen=row_idx_last_seen,
            ):
                if row_idx <= row_idx_last_seen:
                    raise InvalidInputError(
                        f"Rows must be observed in increasing order: "
                        f"got {row_idx} after {row_idx_last_seen}."
                    )
                if value == value_last:
                    self._state = _StateTracking(
                        value_last=value_last,
                        row_idx_run_start=row_idx_run_start,
                        row_idx_last_seen=row_idx,
                    )
                    return None

                self._state = _StateTracking(
                    value_last=value,
                    row_idx_run_start=row_idx,
                    row_idx_last_seen=row_idx,
                )
                return SpecMergeRange(row_idx_run_start, row_idx - 1)

        raise AssertionError(f"Unexpected run state: {self._state!r}")

    def close(self, row_idx_final: int) -> SpecMergeRange | None:
        """
        Flush the run still open after the last observation.

        Returns ``None`` when the open run covers only ``row_idx_final``.

        Raises:
            PreconditionViolationError: nothing was observed yet.
            InvalidInputError: ``row_idx_final`` precedes the open run.
        """
        if not isinstance(self._state, _StateTracking):
            raise PreconditionViolationError(
                "close() called before any value was observed."
            )
        n_row_idx_run_start = self._state.row_idx_run_start
        if row_idx_final < n_row_idx_run_start:
            raise InvalidInputError(
                f"row_idx_final ({row_idx_final}) precedes the open run "
                f"starting at row {n_row_idx_run_start}."
            )
        if n_row_idx_run_start == row_idx_final:
            return None
        return SpecMergeRange(n_row_idx_run_start, row_idx_final)


# #endregion
################################################################################
# #region RegionMerger


def merge_region(
    sheet: SheetTarget | None,
    cell_style: SpecCellFormat,
    row_first: int,
    row_last: int,
    col_idx: int,
) -> None:
    """
    Merge rows ``row_first..row_last`` of column ``col_idx`` into one region.

    A single-row range is a no-op. Otherwise the anchor cell
    ``(row_first, col_idx)`` must already exist; the region is declared on the
    sheet and ``cell_style`` is set on the anchor.

    Raises:
        PreconditionViolationError: ``sheet`` is ``None``, ``row_first`` is
            greater than ``row_last``, or an index is negative.
        MissingAnchorCellError: no cell was written at the anchor position.
        DuplicateRegionError: raised by the sheet for an overlapping region.
    """
    if sheet is None:
        raise PreconditionViolationError("Cannot merge a region on an absent sheet.")
    if row_first > row_last:
        raise PreconditionViolationError(
            f"row_first ({row_first}) must be <= row_last ({row_last})."
        )
    if row_first < 0 or col_idx < 0:
        raise PreconditionViolationError(
            f"Indices must be >= 0, got row_first={row_first}, col_idx={col_idx}."
        )
    if row_first == row_last:
        return

    cell_anchor = sheet.get_cell(row_first, col_idx)
    if cell_anchor is None:
        raise MissingAnchorCellError(row_first, col_idx)

    sheet.declare_merged_region(row_first, row_last, col_idx)
    sheet.set_cell_style(cell_anchor, cell_style)


class RegionMerger:
    """
    Merge runs of equal values in one column of one sheet.

    Feed every written cell of the column through :meth:`observe`, then call
    :meth:`finish` with the last data row. Ranges are merged as soon as they
    are detected.
    """

    def __init__(
        self,
        sheet: SheetTarget,
        cell_style: SpecCellFormat,
        col_idx: int,
    ):
        if sheet is None:
            raise PreconditionViolationError("RegionMerger requires a sheet.")
        if col_idx < 0:
            raise PreconditionViolationError(f"col_idx must be >= 0, got {col_idx}.")
        self.sheet = sheet
        self.cell_style = cell_style
        self.col_idx = col_idx
        self._detector = RunDetector()
        self._n_regions = 0

    @property
    def n_regions(self) -> int:
        return self._n_regions

    def _apply(self, rng: SpecMergeRange | None) -> None:
        if rng is None or rng.is_single_row:
            return
        merge_region(
            self.sheet, self.cell_style, rng.row_first, rng.row_last, self.col_idx
        )
        self._n_regions += 1

    def observe(self, row_idx: int, value: Any) -> None:
        self._apply(self._detector.observe(row_idx, value))

    def finish(self, row_idx_final: int) -> int:
        """Close the open run and return the number of regions merged."""
        if self._detector.is_tracking:
            self._apply(self._detector.close(row_idx_final))
        logger.debug(
            f"Column {self.col_idx}: merged {self._n_regions} region(s) "
            f"up to row {row_idx_final}."
        )
        return self._n_regions


# #endregion
################################################################################
