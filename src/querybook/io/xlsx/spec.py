# "Facts/Results/Plans" generated while exporting query results to XLSX files.

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from ...errors import PreconditionViolationError

LIT_SUBFOOTER_FUNCS = Literal["sum", "average", "max", "min"]


################################################################################
# #region CellFormatSpecification
@dataclass(frozen=True, slots=True)
class SpecCellFormat:
    # field names follow xlsxwriter format property keys
    font_name: str | None = None
    font_size: int | None = None
    bold: bool | None = None
    italic: bool | None = None

    align: str | None = None
    valign: str | None = None
    border: int | None = None
    text_wrap: bool | None = None

    top: int | None = None
    bottom: int | None = None
    left: int | None = None
    right: int | None = None

    num_format: str | None = None
    bg_color: str | None = None
    font_color: str | None = None
    pattern: int | None = None

    def with_(self, **kwargs: Any) -> "SpecCellFormat":
        return replace(self, **kwargs)

    def merge(self, other: "SpecCellFormat") -> "SpecCellFormat":
        # non-None fields on the right win
        data = {
            k: (
                getattr(other, k) if getattr(other, k) is not None else getattr(self, k)
            )
            for k in self.__dataclass_fields__
        }
        return SpecCellFormat(**data)

    def to_xlsxwriter(self) -> dict[str, Any]:
        return {
            k: getattr(self, k)
            for k in self.__dataclass_fields__
            if getattr(self, k) is not None
        }


# #endregion
################################################################################
# #region MergeSpecification
@dataclass(frozen=True, slots=True)
class SpecMergeRange:
    """
    Inclusive, 0-based row boundaries of a run of equal values in one column.

    A range with ``row_first == row_last`` describes a single-row run; it is
    still a valid range but is never turned into a merged region.
    """

    row_first: int
    row_last: int

    def __post_init__(self) -> None:
        if self.row_first < 0:
            raise PreconditionViolationError(
                f"row_first must be >= 0, got {self.row_first}."
            )
        if self.row_first > self.row_last:
            raise PreconditionViolationError(
                f"row_first ({self.row_first}) must be <= row_last ({self.row_last})."
            )

    @property
    def is_single_row(self) -> bool:
        return self.row_first == self.row_last

    @property
    def height(self) -> int:
        return self.row_last - self.row_first + 1


@dataclass(frozen=True, slots=True)
class SpecMergedRegion:
    row_first: int
    row_last: int  # inclusive
    col_first: int
    col_last: int  # inclusive

    def check_overlap(self, other: "SpecMergedRegion") -> bool:
        return not (
            self.row_last < other.row_first
            or other.row_last < self.row_first
            or self.col_last < other.col_first
            or other.col_last < self.col_first
        )


# #endregion
################################################################################
# #region WriteOptions


@dataclass(frozen=True, slots=True)
class SpecXlsxValuePolicy:
    missing_value_str: str = "NA"
    nan_str: str = "NaN"
    posinf_str: str = "Inf"
    neginf_str: str = "-Inf"


@dataclass(frozen=True, slots=True)
class SpecAutofitCellsPolicy:
    rule_columns: Literal["none", "header", "body", "all"] = "all"
    height_body_inferred_max: int | None = 20_000
    width_cell_min: int = 8
    width_cell_max: int = 60
    width_cell_padding: int = 2


@dataclass(frozen=True, slots=True)
class SpecXlsxWriteOptions:
    value_policy: SpecXlsxValuePolicy = field(default_factory=SpecXlsxValuePolicy)
    autofit_policy: SpecAutofitCellsPolicy = field(
        default_factory=SpecAutofitCellsPolicy
    )
    keep_missing_values: bool = False
    # skip (and report) invalid merged-column references instead of raising
    if_force_generate: bool = False


# #endregion
################################################################################
# #region SheetSpecification
@dataclass(frozen=True, slots=True)
class SpecSheetSlice:
    sheet_name: str
    row_start_inclusive: int
    row_end_exclusive: int  # exclusive in source df rows
    col_start_inclusive: int
    col_end_exclusive: int  # exclusive in source df cols


@dataclass(frozen=True, slots=True)
class SpecSubFooter:
    """Aggregate row written below the data of a sheet."""

    funcs_by_col: Mapping[str | int, LIT_SUBFOOTER_FUNCS] = field(
        default_factory=dict
    )
    label: str | None = "Total"


@dataclass(frozen=True, slots=True)
class SpecSheetExport:
    """One sheet of a multi-sheet export: a query plus its layout options."""

    sheet_name: str
    query: str
    params: Sequence[Any] | Mapping[str, Any] | None = None
    cols_merged: Sequence[str | int] = ()
    subfooter: SpecSubFooter | None = None
    col_freeze: int = 0
    row_freeze: int | None = None


# #endregion
################################################################################
# #region ReportSpecification
@dataclass(slots=True)
class SpecXlsxReport:
    sheets: list[SpecSheetSlice]
    warnings: list[str]
    regions_merged: dict[str, list[SpecMergedRegion]] = field(default_factory=dict)

    def warn(self, msg: str) -> None:
        self.warnings.append(str(msg))


# #endregion
################################################################################
