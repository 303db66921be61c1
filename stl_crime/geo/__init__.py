"""
STL Crime - Geographic Processing

Components:
    - build_address_query: Geocoder query from SLMPD address fragments
    - BaseGeocoder / CompositeGeocoder / ProviderGeocoder: Batch geocoding
    - CoordinateCompleter: Partition, geocode and reconcile coordinates
    - PolygonLayer / load_reference_layers: Neighborhood and region polygons
    - SpatialJoiner: Point-in-polygon labelling and final ordering
"""

from stl_crime.geo.address import build_address_queries, build_address_query
from stl_crime.geo.completion import (
    CompletionResult,
    CompletionStats,
    CoordinateCompleter,
    partition,
    reconcile,
)
from stl_crime.geo.geocoder import (
    BaseGeocoder,
    BaseMatcher,
    CompositeGeocoder,
    GeopyMatcher,
    ProviderGeocoder,
)
from stl_crime.geo.polygons import PolygonLayer, load_polygon_layer, load_reference_layers
from stl_crime.geo.spatial_join import JoinResult, JoinStats, SpatialJoiner, partition_joined

__all__ = [
    "build_address_query",
    "build_address_queries",
    "BaseGeocoder",
    "BaseMatcher",
    "CompositeGeocoder",
    "GeopyMatcher",
    "ProviderGeocoder",
    "CoordinateCompleter",
    "CompletionResult",
    "CompletionStats",
    "partition",
    "reconcile",
    "PolygonLayer",
    "load_polygon_layer",
    "load_reference_layers",
    "SpatialJoiner",
    "JoinResult",
    "JoinStats",
    "partition_joined",
]
