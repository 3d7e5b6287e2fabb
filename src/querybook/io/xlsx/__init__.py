from .region_merge import RegionMerger, RunDetector, merge_region
from .sheet import SheetCell, SheetGrid, SheetTarget, render_sheet_grid
from .spec import (
    SpecAutofitCellsPolicy,
    SpecCellFormat,
    SpecMergedRegion,
    SpecMergeRange,
    SpecSheetExport,
    SpecSubFooter,
    SpecXlsxReport,
    SpecXlsxValuePolicy,
    SpecXlsxWriteOptions,
)
from .style import (
    SpecStyleTemplate,
    SpecXlsxStyler,
    XlsxStylerBuilder,
    get_style_template,
)
from .writer import XlsxWriter, export_workbook

__all__ = [
    "XlsxWriter",
    "export_workbook",
    "RunDetector",
    "RegionMerger",
    "merge_region",
    "SheetCell",
    "SheetGrid",
    "SheetTarget",
    "render_sheet_grid",
    "SpecAutofitCellsPolicy",
    "SpecCellFormat",
    "SpecMergedRegion",
    "SpecMergeRange",
    "SpecSheetExport",
    "SpecSubFooter",
    "SpecXlsxReport",
    "SpecXlsxValuePolicy",
    "SpecXlsxWriteOptions",
    "SpecStyleTemplate",
    "SpecXlsxStyler",
    "XlsxStylerBuilder",
    "get_style_template",
]
