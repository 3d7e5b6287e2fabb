from dataclasses import dataclass
from typing import Any

import polars as pl

from ..io.xlsx.conf import LIT_COL_KINDS


@dataclass(frozen=True, slots=True)
class SpecColumn:
    name: str
    type_code: Any = None  # DB-API ``cursor.description`` type code, driver specific
    kind: LIT_COL_KINDS = "text"

    def with_kind(self, kind: LIT_COL_KINDS) -> "SpecColumn":
        return SpecColumn(name=self.name, type_code=self.type_code, kind=kind)


@dataclass(frozen=True, slots=True)
class SpecQueryResult:
    columns: list[SpecColumn]
    df: pl.DataFrame

    @property
    def kinds_by_col(self) -> dict[str, LIT_COL_KINDS]:
        return {_col.name: _col.kind for _col in self.columns}
