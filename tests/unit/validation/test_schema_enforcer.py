"""
Tests for Schema Validator

Tests structural validation of a year's monthly releases.
"""

import pandas as pd
import pytest

from stl_crime.datasets.crime.releases import MonthlyRelease, YearReleases
from stl_crime.shared.config import CANONICAL_COLUMNS
from stl_crime.validation.schema_enforcer import (
    SchemaValidator,
    ValidationLevel,
    ValidationResult,
)


@pytest.fixture
def validator(test_config):
    return SchemaValidator(test_config)


def with_surplus_columns(release: MonthlyRelease, count: int = 6) -> MonthlyRelease:
    data = release.data.copy()
    for i in range(count):
        data[f"Extra{i}"] = None
    return MonthlyRelease(year=release.year, month=release.month, data=data)


class TestValidateYear:
    """Test cases for SchemaValidator.validate_year."""

    def test_conforming_year_passes(self, validator, make_year):
        result = validator.validate_year(make_year(2018), year=2018)

        assert isinstance(result, ValidationResult)
        assert result.is_valid
        assert bool(result)
        assert result.month_count == 12
        assert result.errors == []
        assert result.failing_months == []

    def test_one_bad_month_fails_the_year(self, validator, make_year):
        releases = make_year(2017)
        releases = releases.with_release(with_surplus_columns(releases.get(5)))

        result = validator.validate_year(releases, year=2017)

        assert not result.is_valid
        assert result.failing_months == [5]
        assert len(result.errors) == 1
        assert "2017-05: 26 columns (expected 20)" in result.errors[0]

    def test_failure_carries_observed_and_expected_counts(self, validator, make_year):
        releases = make_year(2017)
        releases = releases.with_release(with_surplus_columns(releases.get(5)))

        result = validator.validate_year(releases, year=2017)
        issue = next(i for i in result.issues if i.check == "schema_compliance")

        assert issue.level == ValidationLevel.ERROR
        assert issue.month == 5
        assert issue.observed_columns == 26
        assert issue.expected_columns == 20

    def test_cell_content_is_not_inspected(self, validator, make_year, make_incident):
        garbage = make_incident(DateOccur="not a date", Count="many", XCoord="??")
        releases = make_year(2019, rows_by_month={3: [garbage]})

        assert validator.validate_year(releases, year=2019).is_valid

    def test_empty_month_with_canonical_columns_passes(self, validator, make_year):
        releases = make_year(2019, rows_by_month={})
        empty = MonthlyRelease(2019, 1, pd.DataFrame(columns=list(CANONICAL_COLUMNS)))
        releases = releases.with_release(empty)

        assert validator.validate_year(releases, year=2019).is_valid

    def test_year_label_mismatch_is_an_error(self, validator, make_year):
        result = validator.validate_year(make_year(2018), year=2017)

        assert not result.is_valid
        assert result.failing_months == []
        assert any("labelled 2018, expected 2017" in e for e in result.errors)

    def test_duplicate_month_labels_are_an_error(self, validator, make_release):
        releases = YearReleases(
            year=2018,
            releases=(make_release(2018, 1), make_release(2018, 1), make_release(2018, 2)),
        )

        result = validator.validate_year(releases, year=2018)

        assert not result.is_valid
        assert any("Duplicate month labels" in e for e in result.errors)

    def test_out_of_range_month_is_an_error(self, validator, make_year, make_release):
        releases = YearReleases(year=2018, releases=(make_release(2018, 13),))

        result = validator.validate_year(releases, year=2018)

        assert not result.is_valid
        assert any("out of range" in e for e in result.errors)

    def test_missing_months_only_warn(self, validator, make_year):
        result = validator.validate_year(make_year(2019, months=[1, 2, 3]), year=2019)

        assert result.is_valid
        assert result.errors == []
        assert len(result.warnings) == 1
        assert "[4, 5, 6, 7, 8, 9, 10, 11, 12]" in result.warnings[0]


class TestVerboseReport:
    """Test cases for the per-month report."""

    def test_report_is_only_attached_when_verbose(self, validator, make_year):
        assert validator.validate_year(make_year(2018), year=2018).report is None

    def test_report_lists_observed_and_expected_columns(self, validator, make_year):
        releases = make_year(2017)
        releases = releases.with_release(with_surplus_columns(releases.get(5)))

        report = validator.validate_year(releases, year=2017, verbose=True).report

        assert list(report.columns) == [
            "month",
            "observed_columns",
            "expected_columns",
            "names_match",
            "valid",
        ]
        assert len(report) == 12
        may = report[report["month"] == 5].iloc[0]
        assert may["observed_columns"] == 26
        assert may["expected_columns"] == 20
        assert not may["names_match"]
        assert not may["valid"]
        assert report[report["month"] != 5]["valid"].all()
