"""
STL Crime - Release Schema Validator

Structural validation of a year's monthly releases. Only column shape is
checked here (count and names); cell content is never inspected.

A single non-conforming month fails the whole year. That failure is a value,
not an exception: the caller routes it to the SchemaRepairer.

Usage:
    validator = SchemaValidator(config)

    result = validator.validate_year(releases, year=2017, verbose=True)
    if not result.is_valid:
        print(result.failing_months)
        print(result.report)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

import pandas as pd

from stl_crime.datasets.crime.releases import YearReleases
from stl_crime.shared.config import Settings, get_config
from stl_crime.validation.schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)


class ValidationLevel(StrEnum):
    """Validation severity level."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ValidationIssue:
    """Individual validation issue."""

    level: ValidationLevel
    check: str  # Name of the check that failed
    message: str
    month: int | None = None
    observed_columns: int | None = None
    expected_columns: int | None = None


@dataclass
class ValidationResult:
    """Result of validating one year's releases."""

    year: int
    is_valid: bool
    issues: list[ValidationIssue] = field(default_factory=list)
    month_count: int = 0
    report: pd.DataFrame | None = None
    validated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def errors(self) -> list[str]:
        """Get list of error messages."""
        return [issue.message for issue in self.issues if issue.level == ValidationLevel.ERROR]

    @property
    def warnings(self) -> list[str]:
        """Get list of warning messages."""
        return [issue.message for issue in self.issues if issue.level == ValidationLevel.WARNING]

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def failing_months(self) -> list[int]:
        """Months with a schema compliance error, in order."""
        months = {
            issue.month
            for issue in self.issues
            if issue.level == ValidationLevel.ERROR
            and issue.check == "schema_compliance"
            and issue.month is not None
        }
        return sorted(months)

    def __bool__(self) -> bool:
        return self.is_valid


class SchemaValidator:
    """Validates the column layout of every month in a release year."""

    def __init__(self, config: Settings | None = None, registry: SchemaRegistry | None = None):
        """
        Initialize the validator.

        Args:
            config: Configuration object (uses default if not provided)
            registry: Schema registry (built from config if not provided)
        """
        self.config = config or get_config()
        self.registry = registry or SchemaRegistry(self.config)

    def validate_year(
        self,
        releases: YearReleases,
        year: int,
        verbose: bool = False,
    ) -> ValidationResult:
        """
        Validate a year's releases.

        Checks:
        - Collection year label matches the expected year
        - Month labels are unique and within 1..12
        - Every month's columns match a known-valid layout

        Args:
            releases: The year's monthly releases
            year: Expected year label
            verbose: Attach a per-month report of observed vs. expected columns

        Returns:
            ValidationResult (is_valid is False if any month fails)
        """
        result = ValidationResult(year=year, is_valid=True, month_count=len(releases))
        expected = self.registry.expected_column_count

        # 1. Year label
        if releases.year != year:
            result.issues.append(
                ValidationIssue(
                    level=ValidationLevel.ERROR,
                    check="year_label",
                    message=f"Release collection is labelled {releases.year}, expected {year}",
                )
            )
            result.is_valid = False

        # 2. Month labels
        months = releases.months
        duplicated = sorted({m for m in months if months.count(m) > 1})
        out_of_range = sorted({m for m in months if not 1 <= m <= 12})
        if duplicated:
            result.issues.append(
                ValidationIssue(
                    level=ValidationLevel.ERROR,
                    check="month_labels",
                    message=f"Duplicate month labels for {year}: {duplicated}",
                )
            )
            result.is_valid = False
        if out_of_range:
            result.issues.append(
                ValidationIssue(
                    level=ValidationLevel.ERROR,
                    check="month_labels",
                    message=f"Month labels out of range for {year}: {out_of_range}",
                )
            )
            result.is_valid = False
        if len(set(months)) < 12:
            absent = sorted(set(range(1, 13)) - set(months))
            result.issues.append(
                ValidationIssue(
                    level=ValidationLevel.WARNING,
                    check="month_coverage",
                    message=f"{year} is missing months: {absent}",
                )
            )

        # 3. Column layout per month
        rows = []
        for release in releases:
            is_valid, schema_errors = self.registry.validate_columns(release.columns)
            rows.append(
                {
                    "month": release.month,
                    "observed_columns": release.column_count,
                    "expected_columns": expected,
                    "names_match": set(release.columns) == set(self.registry.canonical),
                    "valid": is_valid,
                }
            )
            if not is_valid:
                result.issues.append(
                    ValidationIssue(
                        level=ValidationLevel.ERROR,
                        check="schema_compliance",
                        message=(
                            f"{release.label}: {release.column_count} columns "
                            f"(expected {expected}); " + "; ".join(schema_errors)
                        ),
                        month=release.month,
                        observed_columns=release.column_count,
                        expected_columns=expected,
                    )
                )
                result.is_valid = False

        if verbose:
            result.report = pd.DataFrame(
                rows,
                columns=["month", "observed_columns", "expected_columns", "names_match", "valid"],
            )

        logger.info(
            f"Schema validation for {year}: {'PASSED' if result.is_valid else 'FAILED'}",
            extra={
                "year": year,
                "is_valid": result.is_valid,
                "failing_months": result.failing_months,
            },
        )

        return result
