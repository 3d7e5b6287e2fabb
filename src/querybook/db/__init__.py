from .source import QueryDataSource
from .spec import SpecColumn, SpecQueryResult

__all__ = ["QueryDataSource", "SpecColumn", "SpecQueryResult"]
