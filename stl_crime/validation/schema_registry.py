"""
STL Crime - Release Schema Registry

Holds the known-valid column layouts for SLMPD monthly releases and the
declarative repair rules for months published with a deviating layout.

Repair rules are keyed by (year, month, observed column count) and come from
configuration, so new schema drift is handled by adding a rule rather than
touching pipeline code.

Usage:
    registry = SchemaRegistry(config)

    # Check a release's columns
    is_valid, errors = registry.validate_columns(release.columns)

    # Look up the rule for a non-conforming month
    rule = registry.get_repair_rule(2017, 5, 26)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from stl_crime.shared.config import RepairRuleConfig, Settings, get_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepairRule:
    """Transformation that brings one month back to the canonical layout."""

    year: int
    month: int
    observed_columns: int
    rename: dict[str, str] = field(default_factory=dict)
    drop: tuple[str, ...] = ()
    pad: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.year, self.month, self.observed_columns)

    @classmethod
    def from_config(cls, rule: RepairRuleConfig) -> RepairRule:
        return cls(
            year=rule.year,
            month=rule.month,
            observed_columns=rule.observed_columns,
            rename=dict(rule.rename),
            drop=tuple(rule.drop),
            pad=tuple(rule.pad),
        )


class SchemaRegistry:
    """
    Registry of valid release layouts and repair rules.

    The canonical layout is the 20-column SLMPD extract. Additional layouts
    can be registered when a new valid variant is published.
    """

    def __init__(self, config: Settings | None = None):
        """
        Initialize schema registry.

        Args:
            config: Configuration object (uses default if not provided)
        """
        self.config = config or get_config()
        self.canonical = list(self.config.schema_rules.canonical_columns)
        self._layouts: list[tuple[str, ...]] = [tuple(self.canonical)]
        self._rules: dict[tuple[int, int, int], RepairRule] = {}

        for rule_config in self.config.schema_rules.repairs:
            self.register_rule(RepairRule.from_config(rule_config))

    @property
    def expected_column_count(self) -> int:
        return len(self.canonical)

    @property
    def layouts(self) -> list[tuple[str, ...]]:
        return list(self._layouts)

    def register_layout(self, columns: list[str]) -> None:
        """Register an additional known-valid layout."""
        layout = tuple(columns)
        if layout not in self._layouts:
            self._layouts.append(layout)
            logger.info(f"Registered release layout with {len(layout)} columns")

    def register_rule(self, rule: RepairRule) -> None:
        """Register (or replace) a repair rule."""
        if rule.key in self._rules:
            logger.warning(f"Replacing repair rule for {rule.key}")
        self._rules[rule.key] = rule

    def get_repair_rule(self, year: int, month: int, observed_columns: int) -> RepairRule | None:
        """Return the repair rule for a month, or None if no rule exists."""
        return self._rules.get((year, month, observed_columns))

    def rules_for_year(self, year: int) -> list[RepairRule]:
        return [rule for key, rule in sorted(self._rules.items()) if key[0] == year]

    def validate_columns(self, columns: list[str]) -> tuple[bool, list[str]]:
        """
        Validate a release's columns against the known layouts.

        Returns:
            (is_valid, errors) where errors describe the mismatch against the
            canonical layout
        """
        for layout in self._layouts:
            if len(columns) == len(layout) and set(columns) == set(layout):
                return True, []

        errors = []
        if len(columns) != len(self.canonical):
            errors.append(
                f"Column count {len(columns)} does not match expected {len(self.canonical)}"
            )

        missing = [c for c in self.canonical if c not in columns]
        extra = [c for c in columns if c not in self.canonical]
        if missing:
            errors.append(f"Missing columns: {missing}")
        if extra:
            errors.append(f"Unexpected columns: {extra}")
        return False, errors
