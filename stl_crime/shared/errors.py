"""
STL Crime - Pipeline Exceptions

Fatal error taxonomy. Per-record misses (geocoding below threshold, points
outside every polygon) are not exceptions; they are counted in the metrics.
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base class for fatal pipeline errors."""

    def __init__(self, message: str, stage: str | None = None, year: int | None = None):
        self.stage = stage
        self.year = year
        prefix = []
        if stage:
            prefix.append(f"stage={stage}")
        if year is not None:
            prefix.append(f"year={year}")
        if prefix:
            message = f"[{', '.join(prefix)}] {message}"
        super().__init__(message)


class SchemaRepairError(PipelineError):
    """Raised when a non-conforming release still fails validation after repair."""


class RowCountInvariantViolation(PipelineError):
    """Raised when a stage adds, drops or duplicates records."""

    def __init__(
        self,
        expected: int,
        actual: int,
        stage: str | None = None,
        year: int | None = None,
        detail: str | None = None,
    ):
        self.expected = expected
        self.actual = actual
        message = f"Row count invariant violated: expected {expected}, got {actual}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, stage=stage, year=year)


class ExternalServiceUnavailable(PipelineError):
    """Raised when the geocoder or a polygon source cannot be reached."""


def check_row_count(
    expected: int,
    actual: int,
    stage: str,
    year: int | None = None,
    detail: str | None = None,
) -> None:
    """Raise RowCountInvariantViolation unless the counts match."""
    if expected != actual:
        raise RowCountInvariantViolation(expected, actual, stage=stage, year=year, detail=detail)


class YearFailures(PipelineError):
    """
    Raised at the end of a run in which one or more years failed.

    The years that finished are kept on run. With a single failure the stage
    and year are those of the failing year.
    """

    def __init__(self, failures: dict[int, PipelineError], run: Any = None):
        self.failures = dict(sorted(failures.items()))
        self.run = run
        details = "; ".join(str(error) for error in self.failures.values())
        message = f"{len(self.failures)} year(s) failed: {details}"

        stage = year = None
        if len(self.failures) == 1:
            year, error = next(iter(self.failures.items()))
            stage = error.stage
        super().__init__(message, stage=stage, year=year)
