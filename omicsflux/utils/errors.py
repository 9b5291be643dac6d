"""Error kinds raised by the omicsflux stages.

All derive from ValueError so callers catching the usual pandas/polars
validation errors keep working.
"""

from typing import Iterable, Optional


class OmicsFluxError(ValueError):
    """Base class for stage errors."""


class ParseError(OmicsFluxError):
    """Input file missing, empty or structurally malformed."""

    def __init__(self, path, reason: str, rows: Optional[list] = None):
        self.path = str(path)
        self.reason = reason
        self.rows = list(rows or [])
        msg = f"Cannot parse {self.path!r}: {reason}"
        if self.rows:
            head = ", ".join(map(str, self.rows[:10]))
            tail = " ..." if len(self.rows) > 10 else ""
            msg += f" (lines: {head}{tail})"
        super().__init__(msg)


class ColumnMissingError(OmicsFluxError):
    """One or more expected columns are absent after name normalization."""

    def __init__(self, columns: Iterable[str], available: Optional[Iterable[str]] = None):
        self.columns = list(columns)
        msg = f"{len(self.columns)} expected column(s) not found: {self.columns}"
        if available is not None:
            avail = list(available)
            msg += f" (available: {avail[:20]}{' ...' if len(avail) > 20 else ''})"
        super().__init__(msg)


class NormalizationError(OmicsFluxError):
    """Total-abundance normalization cannot produce finite values."""

    def __init__(self, columns: Iterable[str], reason: str):
        self.columns = list(columns)
        self.reason = reason
        super().__init__(f"Normalization failed for {len(self.columns)} column(s) {self.columns}: {reason}")


class FitError(OmicsFluxError):
    """Per-row linear model cannot be fitted. Row-scoped, collected by the tester."""

    def __init__(self, row, reason: str):
        self.row = row
        self.reason = reason
        super().__init__(f"Row {row!r}: {reason}")
