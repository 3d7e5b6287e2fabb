class QuerybookError(Exception):
    """Base class for errors raised by querybook."""


class InvalidInputError(QuerybookError, ValueError):
    """Raised when a value stream carries an absent value or breaks row order."""


class PreconditionViolationError(QuerybookError, ValueError):
    """Raised when an operation is called with arguments it cannot accept."""


class MissingAnchorCellError(QuerybookError, LookupError):
    """Raised when the top-left cell of a region to merge was never written."""

    def __init__(self, row_idx: int, col_idx: int):
        super().__init__(
            f"No cell at (row={row_idx}, col={col_idx}); "
            "cells must be written before their region is merged."
        )
        self.row_idx = row_idx
        self.col_idx = col_idx


class DuplicateRegionError(QuerybookError, ValueError):
    """Raised when a merged region overlaps one already declared on the sheet."""


class DataSourceError(QuerybookError, RuntimeError):
    """Raised when executing a query or reading its metadata fails."""
