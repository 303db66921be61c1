from stl_crime.shared.config import Settings, get_config, reload_config
from stl_crime.shared.errors import (
    ExternalServiceUnavailable,
    PipelineError,
    RowCountInvariantViolation,
    SchemaRepairError,
)

__all__ = [
    "get_config",
    "reload_config",
    "Settings",
    "PipelineError",
    "SchemaRepairError",
    "RowCountInvariantViolation",
    "ExternalServiceUnavailable",
]
