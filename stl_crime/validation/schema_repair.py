"""
STL Crime - Release Schema Repairer

Applies declarative repair rules to months published with a non-canonical
layout, then re-validates. A month that still fails after repair (or has no
rule) is fatal: the assembler concatenates months and needs one layout.

Usage:
    repairer = SchemaRepairer(config)

    # Repair one month with the rule for its observed column count
    fixed = repairer.repair(releases, month=5, config=26)

    # Validate, repair every failing month, re-validate
    releases = repairer.validate_and_repair(releases, year=2017)
"""

from __future__ import annotations

import logging

import numpy as np

from stl_crime.datasets.crime.releases import MonthlyRelease, YearReleases
from stl_crime.shared.config import Settings, get_config
from stl_crime.shared.errors import SchemaRepairError
from stl_crime.validation.schema_enforcer import SchemaValidator, ValidationResult
from stl_crime.validation.schema_registry import RepairRule, SchemaRegistry

logger = logging.getLogger(__name__)


class SchemaRepairer:
    """Normalizes non-conforming monthly releases to the canonical layout."""

    def __init__(
        self,
        config: Settings | None = None,
        registry: SchemaRegistry | None = None,
        validator: SchemaValidator | None = None,
    ):
        self.config = config or get_config()
        self.registry = registry or SchemaRegistry(self.config)
        self.validator = validator or SchemaValidator(self.config, self.registry)

    def apply_rule(self, release: MonthlyRelease, rule: RepairRule) -> MonthlyRelease:
        """
        Apply one rule to a release and return the rewritten release.

        Order: rename, drop, pad, then reorder canonical columns first.
        """
        df = release.data.copy()

        if rule.rename:
            df = df.rename(columns=rule.rename)

        to_drop = [c for c in rule.drop if c in df.columns]
        absent = sorted(set(rule.drop) - set(to_drop))
        if absent:
            logger.warning(f"{release.label}: repair rule drops absent columns {absent}")
        df = df.drop(columns=to_drop)

        for col in rule.pad:
            if col not in df.columns:
                df[col] = np.nan

        canonical = [c for c in self.registry.canonical if c in df.columns]
        others = [c for c in df.columns if c not in self.registry.canonical]
        df = df[canonical + others]

        return MonthlyRelease(year=release.year, month=release.month, data=df)

    def repair(self, releases: YearReleases, month: int, config: int) -> YearReleases:
        """
        Repair one month of a release year.

        Args:
            releases: The year's release collection
            month: Month to repair
            config: Observed column count the repair rule is keyed on

        Returns:
            New YearReleases with that month normalized

        Raises:
            SchemaRepairError: If no rule exists for (year, month, config)
                or the month does not have the configured column count
        """
        release = releases.get(month)
        rule = self.registry.get_repair_rule(releases.year, month, config)
        if rule is None:
            raise SchemaRepairError(
                f"No repair rule for {release.label} with {config} columns",
                stage="schema_repair",
                year=releases.year,
            )
        if release.column_count != config:
            raise SchemaRepairError(
                f"{release.label} has {release.column_count} columns, "
                f"repair rule expects {config}",
                stage="schema_repair",
                year=releases.year,
            )

        repaired = self.apply_rule(release, rule)
        logger.info(
            f"Repaired {release.label}: {release.column_count} -> {repaired.column_count} columns",
            extra={"year": releases.year, "month": month, "rule": list(rule.key)},
        )
        return releases.with_release(repaired)

    def validate_and_repair(self, releases: YearReleases, year: int) -> YearReleases:
        """
        Validate a year and repair every failing month.

        Returns the input unchanged when it already validates.

        Raises:
            SchemaRepairError: If any month still fails after repair
        """
        result = self.validator.validate_year(releases, year, verbose=True)
        if result.is_valid:
            return releases

        if not result.failing_months:
            # Year label or month label problems cannot be repaired column-wise
            raise SchemaRepairError(
                "; ".join(result.errors), stage="schema_validation", year=year
            )

        repaired = releases
        for month in result.failing_months:
            release = repaired.get(month)
            rule = self.registry.get_repair_rule(year, month, release.column_count)
            if rule is None:
                raise SchemaRepairError(
                    f"{release.label} is non-conforming ({release.column_count} columns, "
                    f"expected {self.registry.expected_column_count}) and no repair rule "
                    f"is configured",
                    stage="schema_repair",
                    year=year,
                )
            repaired = self.repair(repaired, month, release.column_count)

        revalidated = self.validator.validate_year(repaired, year, verbose=True)
        if not revalidated.is_valid:
            raise SchemaRepairError(
                _describe_failure(revalidated), stage="schema_repair", year=year
            )

        return repaired


def _describe_failure(result: ValidationResult) -> str:
    return "Release still non-conforming after repair: " + "; ".join(result.errors)
