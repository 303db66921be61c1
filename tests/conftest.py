"""
STL Crime - Pytest Configuration and Fixtures

Shared fixtures for all tests:
- Configuration fixtures
- Release and incident builders
- Synthetic polygon layers and a scripted geocoder
"""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box

# Set test environment
os.environ["STL_ENVIRONMENT"] = "dev"

from stl_crime.datasets.crime.releases import MonthlyRelease, YearReleases  # noqa: E402
from stl_crime.geo.geocoder import BaseGeocoder, empty_results  # noqa: E402
from stl_crime.geo.polygons import PolygonLayer, prepare_layer  # noqa: E402
from stl_crime.shared.config import CANONICAL_COLUMNS, CRSConfig  # noqa: E402

# Planar test CRS (UTM 15N, meters) so that test coordinates are never warped
PLANAR_CRS = "EPSG:26915"

# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def configs_dir(project_root: Path) -> Path:
    """Get the configs directory."""
    return project_root / "configs"


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def test_config() -> Any:
    """Get test configuration."""
    from stl_crime.shared.config import get_config, reload_config

    # Ensure fresh config for tests
    reload_config("dev")
    return get_config("dev")


@pytest.fixture
def planar_config(test_config: Any) -> Any:
    """Test configuration with every CRS set to the planar test CRS."""
    return test_config.model_copy(
        update={
            "crs": CRSConfig(source=PLANAR_CRS, common=PLANAR_CRS, projected=PLANAR_CRS),
        }
    )


# =============================================================================
# Release Builders
# =============================================================================


@pytest.fixture
def make_incident() -> Callable[..., dict[str, Any]]:
    """Factory for one raw incident row in the canonical release layout."""

    def _make(**overrides: Any) -> dict[str, Any]:
        row = {
            "Complaint": "17-000001",
            "CodedMonth": "2017-01",
            "DateOccur": "01/15/2017 10:30",
            "FlagCrime": "Y",
            "FlagUnfounded": None,
            "FlagAdministrative": None,
            "Count": "1",
            "FlagCleanup": None,
            "Crime": "31111",
            "District": "1",
            "Description": "ROBBERY-HIGHWAY-FIREARM",
            "ILEADSAddress": "123",
            "ILEADSStreet": "MAIN ST",
            "Neighborhood": "1",
            "LocationName": None,
            "LocationComment": None,
            "CADAddress": None,
            "CADStreet": None,
            "XCoord": "50",
            "YCoord": "75",
        }
        unknown = set(overrides) - set(row)
        if unknown:
            raise KeyError(f"Unknown release columns: {unknown}")
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def make_release(make_incident: Callable[..., dict[str, Any]]) -> Callable[..., MonthlyRelease]:
    """Factory for a MonthlyRelease in the canonical layout."""

    def _make(year: int, month: int, rows: list[dict[str, Any]] | None = None) -> MonthlyRelease:
        if rows is None:
            rows = [make_incident(CodedMonth=f"{year}-{month:02d}")]
        data = pd.DataFrame(rows, columns=list(CANONICAL_COLUMNS))
        return MonthlyRelease(year=year, month=month, data=data)

    return _make


@pytest.fixture
def make_year(make_release: Callable[..., MonthlyRelease]) -> Callable[..., YearReleases]:
    """Factory for a YearReleases; months default to a full year of one-row releases."""

    def _make(
        year: int,
        months: list[int] | None = None,
        rows_by_month: dict[int, list[dict[str, Any]]] | None = None,
    ) -> YearReleases:
        rows_by_month = rows_by_month or {}
        months = months or sorted(set(range(1, 13)) | set(rows_by_month))
        releases = tuple(make_release(year, m, rows_by_month.get(m)) for m in months)
        return YearReleases(year=year, releases=releases)

    return _make


# =============================================================================
# Spatial Fixtures
# =============================================================================


@pytest.fixture
def neighborhood_layer() -> PolygonLayer:
    """Two adjacent neighborhoods sharing the edge x=100."""
    gdf = gpd.GeoDataFrame(
        {"NHD_NUM": [1, 2]},
        geometry=[box(0, 0, 100, 100), box(100, 0, 200, 100)],
        crs=PLANAR_CRS,
    )
    return prepare_layer(gdf, "neighborhood", "NHD_NUM", PLANAR_CRS)


@pytest.fixture
def region_layer() -> PolygonLayer:
    """Two regions covering x < 150 of the neighborhoods; North also reaches past them to y=150."""
    gdf = gpd.GeoDataFrame(
        {"region": ["North", "South"]},
        geometry=[box(0, 50, 150, 150), box(0, 0, 150, 50)],
        crs=PLANAR_CRS,
    )
    return prepare_layer(gdf, "region", "region", PLANAR_CRS)


class ScriptedGeocoder(BaseGeocoder):
    """Geocoder that resolves a fixed address -> (x, y) table."""

    def __init__(self, known: dict[str, tuple[float, float]] | None = None, crs: str = PLANAR_CRS):
        self.known = known or {}
        self.crs = crs
        self.calls: list[pd.Series] = []

    def geocode(self, addresses: pd.Series) -> pd.DataFrame:
        self.calls.append(addresses.copy())
        results = empty_results(addresses.index)
        for idx, address in addresses.items():
            if address in self.known:
                x, y = self.known[address]
                results.loc[idx, ["x", "y", "score"]] = [x, y, 100.0]
                results.loc[idx, "source"] = "full"
                results.loc[idx, "matched_address"] = address
        return results


class UnreachableGeocoder(BaseGeocoder):
    """Geocoder whose service is down."""

    crs = PLANAR_CRS

    def geocode(self, addresses: pd.Series) -> pd.DataFrame:
        raise ConnectionError("geocoding service refused the connection")


@pytest.fixture
def scripted_geocoder() -> Callable[..., ScriptedGeocoder]:
    """Factory for a ScriptedGeocoder."""
    return ScriptedGeocoder


@pytest.fixture
def unreachable_geocoder() -> UnreachableGeocoder:
    return UnreachableGeocoder()


@pytest.fixture
def completed_table() -> pd.DataFrame:
    """A completed year table (output of coordinate completion) in the planar CRS."""
    return pd.DataFrame(
        {
            "year": pd.array([2017] * 5, dtype="Int64"),
            "complaint": ["17-4", "17-1", "17-3", "17-2", "17-5"],
            "date_occur": [
                "03/01/2017 08:00",
                "01/01/2017 09:15",
                "02/10/2017 23:59",
                "01/01/2017 09:15",
                "03/15/2017 12:00",
            ],
            "crime": ["31111", "61111", "51111", "41111", "71111"],
            "description": ["ROBBERY", "LARCENY", "BURGLARY", "ASSAULT", "VEHICLE THEFT"],
            "ileads_address": ["1", "2", "3", "4", "5"],
            "ileads_street": ["A ST", "B ST", "C ST", "D ST", "E ST"],
            "geocode_source": [None, "full", None, None, None],
            "geocode_address": [None, "2 B ST", None, None, None],
            "geocode_score": [np.nan, 100.0, np.nan, np.nan, np.nan],
            "x": [50.0, 175.0, 500.0, np.nan, 50.0],
            "y": [75.0, 25.0, 500.0, np.nan, 125.0],
        }
    )


# =============================================================================
# Cleanup Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def cleanup_env() -> Generator[None, None, None]:
    """Clean up environment variables after each test."""
    original_env = os.environ.copy()
    yield
    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)
