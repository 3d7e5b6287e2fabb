from collections.abc import Mapping, Sequence
from typing import Any, TypeAlias

import polars as pl
from loguru import logger

from ..errors import DataSourceError
from ..io.xlsx.util import derive_col_kind, validate_unique_names
from .spec import SpecColumn, SpecQueryResult

QueryParams: TypeAlias = Sequence[Any] | Mapping[str, Any] | None


class QueryDataSource:
    """
    Run export queries over any DB-API 2.0 connection.

    Construct one instance and pass it to whatever needs it; it keeps no
    per-query state.

    Parameters
    ----------
    size_fetch:
        Number of rows requested per ``cursor.fetchmany`` call.
    """

    def __init__(self, *, size_fetch: int = 5_000):
        if size_fetch <= 0:
            raise ValueError(f"size_fetch must be >= 1, got {size_fetch}.")
        self.size_fetch = size_fetch

    def execute_export_query(
        self, connection: Any, query: str, params: QueryParams = None
    ) -> Any:
        """
        Execute ``query`` and return the open cursor.

        The caller owns the returned cursor and must close it.
        """
        logger.debug(f"Executing export query: {query}")
        cursor = connection.cursor()
        try:
            if params is None:
                cursor.execute(query)
            else:
                cursor.execute(query, params)
        except Exception as e:
            cursor.close()
            raise DataSourceError(f"Export query failed: {e}") from e
        return cursor

    def read_metadata(self, cursor: Any) -> list[SpecColumn]:
        if cursor is None:
            raise DataSourceError("Cannot read metadata from an absent cursor.")
        description = cursor.description
        if description is None:
            raise DataSourceError("Query did not produce a result set.")
        return [
            SpecColumn(name=str(_desc[0]), type_code=_desc[1])
            for _desc in description
        ]

    def fetch_frame(self, cursor: Any, columns: Sequence[SpecColumn]) -> pl.DataFrame:
        l_names = [_col.name for _col in columns]
        validate_unique_names(l_names)

        l_rows: list[tuple[Any, ...]] = []
        try:
            while batch := cursor.fetchmany(self.size_fetch):
                l_rows.extend(tuple(_row) for _row in batch)
        except Exception as e:
            raise DataSourceError(f"Fetching query rows failed: {e}") from e

        logger.debug(f"Fetched {len(l_rows)} row(s) x {len(l_names)} column(s).")
        return pl.DataFrame(
            l_rows,
            schema=l_names,
            orient="row",
            infer_schema_length=None,
            strict=False,
        )

    def read_query(
        self, connection: Any, query: str, params: QueryParams = None
    ) -> SpecQueryResult:
        cursor = self.execute_export_query(connection, query, params)
        try:
            l_columns = self.read_metadata(cursor)
            df = self.fetch_frame(cursor, l_columns)
        finally:
            cursor.close()

        l_columns_typed = [
            _col.with_kind(derive_col_kind(df.schema[_col.name])) for _col in l_columns
        ]
        return SpecQueryResult(columns=l_columns_typed, df=df)
