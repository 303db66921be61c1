"""
STL Crime - Validation System

Structural checks on the monthly releases and run metrics:
- Schema validation against the known-valid release layouts
- Declarative repair of drifted months
- Missing-coordinate and join-failure rates per year

Components:
    - SchemaRegistry: Canonical layouts and repair rules
    - SchemaValidator: Per-year structural validation
    - SchemaRepairer: Rule-driven repair and re-validation
    - PipelineMetrics: Immutable per-year metrics collector
"""

from stl_crime.validation.metrics import PipelineMetrics, YearMetrics
from stl_crime.validation.schema_enforcer import (
    SchemaValidator,
    ValidationIssue,
    ValidationLevel,
    ValidationResult,
)
from stl_crime.validation.schema_registry import RepairRule, SchemaRegistry
from stl_crime.validation.schema_repair import SchemaRepairer

__all__ = [
    "SchemaRegistry",
    "RepairRule",
    "SchemaValidator",
    "ValidationIssue",
    "ValidationLevel",
    "ValidationResult",
    "SchemaRepairer",
    "PipelineMetrics",
    "YearMetrics",
]
