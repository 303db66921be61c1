"""
STL Crime - Configuration Loader

Pydantic-based configuration management with:
- Environment-based configuration (dev/prod)
- YAML file loading with inheritance
- Environment variable overrides
- Type validation via Pydantic

Usage:
    from stl_crime.shared.config import get_config

    config = get_config()  # Uses STL_ENVIRONMENT env var
    config = get_config("dev")  # Explicit environment

    # Access config values
    years = config.pipeline.years
    threshold = config.geocoding.min_score
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# =============================================================================
# Configuration Models
# =============================================================================

CANONICAL_COLUMNS = [
    "Complaint",
    "CodedMonth",
    "DateOccur",
    "FlagCrime",
    "FlagUnfounded",
    "FlagAdministrative",
    "Count",
    "FlagCleanup",
    "Crime",
    "District",
    "Description",
    "ILEADSAddress",
    "ILEADSStreet",
    "Neighborhood",
    "LocationName",
    "LocationComment",
    "CADAddress",
    "CADStreet",
    "XCoord",
    "YCoord",
]


class ProjectConfig(BaseModel):
    """Project metadata configuration."""

    name: str = "stl-crime"
    version: str = "0.1.0"
    description: str = "SLMPD Part 1 crime cleaning and spatial reconciliation pipeline"


class StoragePathsConfig(BaseModel):
    """Local storage path configuration."""

    raw: str = "data/raw"
    clean: str = "data/clean"
    reference: str = "data/reference"
    figures: str = "data/figures"
    release_pattern: str = "{month_name}{year}.csv"
    output_pattern: str = "crime_{year}.csv"


class StorageConfig(BaseModel):
    """Storage configuration."""

    paths: StoragePathsConfig = Field(default_factory=StoragePathsConfig)


class PipelineConfig(BaseModel):
    """Per-year processing configuration."""

    years: list[int] = Field(default_factory=lambda: [2017, 2018, 2019])
    target_category: str = "Part 1"

    @field_validator("years")
    @classmethod
    def validate_years(cls, v: list[int]) -> list[int]:
        """Years must be unique."""
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate years in pipeline configuration: {v}")
        return sorted(v)


class RepairRuleConfig(BaseModel):
    """One declarative schema repair rule."""

    year: int
    month: int
    observed_columns: int
    rename: dict[str, str] = Field(default_factory=dict)
    drop: list[str] = Field(default_factory=list)
    pad: list[str] = Field(default_factory=list)


class SchemaRulesConfig(BaseModel):
    """Known-valid release layouts and repair rules."""

    canonical_columns: list[str] = Field(default_factory=lambda: list(CANONICAL_COLUMNS))
    repairs: list[RepairRuleConfig] = Field(default_factory=list)


class GeocodingConfig(BaseModel):
    """Composite geocoder configuration."""

    min_score: float = 90.0
    matchers: list[Literal["full", "short", "placename"]] = Field(
        default_factory=lambda: ["full", "short", "placename"]
    )
    provider: str = "arcgis"
    user_agent: str = "stl-crime"
    locality: str | None = "St. Louis, MO"
    score_field: str = "score"
    timeout: float = 10.0
    min_delay_seconds: float = 0.5
    max_retries: int = 2
    crs: str = "EPSG:4326"


class CRSConfig(BaseModel):
    """Coordinate reference systems used along the pipeline."""

    source: str = "ESRI:102696"
    common: str = "EPSG:4269"
    projected: str = "EPSG:26915"


class SpatialConfig(BaseModel):
    """Polygon layer configuration."""

    neighborhood_file: str = "neighborhoods.geojson"
    neighborhood_key: str = "NHD_NUM"
    region_file: str = "regions.geojson"
    region_key: str = "region"
    join_mode: Literal["independent", "chained"] = "independent"


class ReportingConfig(BaseModel):
    """Regional rate reporting configuration."""

    region_population: dict[str, int] = Field(default_factory=dict)
    rate_per: int = 1000
    plot_file: str = "region_rates.png"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """
    Main configuration class for the crime pipeline.

    Loads configuration from:
    1. YAML files in configs/environments/
    2. Environment variables

    Values passed from the YAML files take precedence; environment variables
    fill in sections the YAML files leave out.
    """

    model_config = SettingsConfigDict(
        env_prefix="STL_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment
    environment: Literal["dev", "prod"] = "dev"

    # Configuration sections
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    schema_rules: SchemaRulesConfig = Field(default_factory=SchemaRulesConfig)
    geocoding: GeocodingConfig = Field(default_factory=GeocodingConfig)
    crs: CRSConfig = Field(default_factory=CRSConfig)
    spatial: SpatialConfig = Field(default_factory=SpatialConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        valid_envs = {"dev", "prod"}
        if v not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of: {valid_envs}")
        return v


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _get_config_dir() -> Path:
    """Get the configuration directory path."""
    # Try relative path from the repository root
    config_dir = Path(__file__).parent.parent.parent / "configs"
    if config_dir.exists():
        return config_dir

    # Try from current working directory
    config_dir = Path.cwd() / "configs"
    if config_dir.exists():
        return config_dir

    raise FileNotFoundError(
        "Could not find configs directory. Ensure you're running from the project root."
    )


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_config_for_environment(environment: str) -> dict[str, Any]:
    """Load and merge configuration for a specific environment."""
    env_dir = _get_config_dir() / "environments"

    base_config = _load_yaml_file(env_dir / "base.yaml")
    env_config = _load_yaml_file(env_dir / f"{environment}.yaml")

    # Remove inheritance marker if present
    env_config.pop("_inherit", None)

    merged = _deep_merge(base_config, env_config)
    merged["environment"] = environment

    return merged


@lru_cache(maxsize=4)
def get_config(environment: str | None = None) -> Settings:
    """
    Get configuration for the specified environment.

    Args:
        environment: Environment name (dev, prod).
                    If None, uses STL_ENVIRONMENT env var, defaulting to "dev".

    Returns:
        Settings: Validated configuration object.
    """
    if environment is None:
        environment = os.getenv("STL_ENVIRONMENT", "dev")

    yaml_config = _load_config_for_environment(environment)

    # Create Settings object (also loads env vars)
    return Settings(**yaml_config)


def reload_config(environment: str | None = None) -> Settings:
    """
    Reload configuration, clearing the cache.

    Useful for testing or when config files have changed.
    """
    get_config.cache_clear()
    return get_config(environment)


# =============================================================================
# Convenience Functions
# =============================================================================


def get_data_path(layer: str, config: Settings | None = None) -> Path:
    """
    Get the local directory for a data layer.

    Args:
        layer: Data layer (raw, clean, reference, figures)
        config: Optional config object (uses default if not provided)

    Returns:
        Path like data/clean
    """
    if config is None:
        config = get_config()

    return Path(getattr(config.storage.paths, layer, layer))


def is_production() -> bool:
    """Check if running in production environment."""
    return get_config().environment == "prod"
