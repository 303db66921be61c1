"""
STL Crime - Polygon Layers

Neighborhood and region boundaries, loaded once per run and shared read-only
across years.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import geopandas as gpd

from stl_crime.shared.config import Settings, get_config
from stl_crime.shared.errors import ExternalServiceUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolygonLayer:
    """A polygon layer reduced to one label column plus geometry."""

    name: str
    key: str
    frame: gpd.GeoDataFrame

    @property
    def crs(self):
        return self.frame.crs

    def __len__(self) -> int:
        return len(self.frame)


def prepare_layer(
    gdf: gpd.GeoDataFrame,
    name: str,
    key: str,
    target_crs: str,
) -> PolygonLayer:
    """Keep the key column and geometry, enforce a CRS and reproject."""
    if key not in gdf.columns:
        raise KeyError(f"Polygon layer '{name}' has no '{key}' column")

    if gdf.crs is None:
        gdf = gdf.set_crs("EPSG:4326")

    frame = gdf[[key, "geometry"]].to_crs(target_crs).reset_index(drop=True)
    return PolygonLayer(name=name, key=key, frame=frame)


def load_polygon_layer(path: Path | str, name: str, key: str, target_crs: str) -> PolygonLayer:
    """
    Load and reproject a polygon layer.

    Raises:
        ExternalServiceUnavailable: If the source cannot be read
    """
    path = Path(path)
    if not path.exists():
        raise ExternalServiceUnavailable(f"Polygon source missing: {path}", stage="spatial_join")

    try:
        gdf = gpd.read_file(path)
    except Exception as e:
        logger.error(f"Could not load polygon layer: {path}")
        raise ExternalServiceUnavailable(
            f"Polygon source unreadable: {path} ({e})", stage="spatial_join"
        ) from e

    layer = prepare_layer(gdf, name, key, target_crs)
    logger.info(
        f"Loaded {len(layer)} {name} polygons from {path.name}",
        extra={"layer": name, "polygons": len(layer), "crs": str(target_crs)},
    )
    return layer


def load_reference_layers(
    config: Settings | None = None,
    reference_dir: Path | str | None = None,
) -> tuple[PolygonLayer, PolygonLayer]:
    """Load the configured neighborhood and region layers."""
    config = config or get_config()
    reference_dir = Path(reference_dir or config.storage.paths.reference)
    spatial = config.spatial

    neighborhoods = load_polygon_layer(
        reference_dir / spatial.neighborhood_file,
        "neighborhood",
        spatial.neighborhood_key,
        config.crs.projected,
    )
    regions = load_polygon_layer(
        reference_dir / spatial.region_file,
        "region",
        spatial.region_key,
        config.crs.projected,
    )
    return neighborhoods, regions
