from typing import Literal, TypeAlias

from .spec import SpecXlsxWriteOptions

N_NROWS_EXCEL_MAX = 1_048_576
N_NCOLS_EXCEL_MAX = 16_384
N_LEN_EXCEL_SHEET_NAME_MAX = 31
TUP_EXCEL_ILLEGAL = ("*", ":", "?", "/", "\\", "[", "]")

# Strategy/Preference/Adjustable Parameters for XLSX export.

LIT_COL_KINDS = Literal["text", "integer", "decimal", "date", "datetime", "boolean"]
LIT_FMT_ROLES = Literal[
    "header",
    "subfooter",
    "text",
    "integer",
    "decimal",
    "date",
    "datetime",
    "boolean",
    "merged",
]

DICT_SUBFOOTER_FORMULAS: dict[str, str] = {
    "sum": "SUM",
    "average": "AVERAGE",
    "max": "MAX",
    "min": "MIN",
}

DEFAULT_STYLE_TEMPLATE_NAME = "standard"
DEFAULT_XLSX_WRITE_OPTIONS = SpecXlsxWriteOptions()

ColumnIdentifier: TypeAlias = str | int
