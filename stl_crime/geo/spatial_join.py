"""
STL Crime - Spatial Joiner

Attaches neighborhood and region labels to incidents by point-in-polygon
containment, then reunites matched and unmatched records into one table
ordered by occurrence time.

Each layer is looked up independently and the labels are merged by row
identifier, so a point outside the region layer keeps its neighborhood (and
vice versa). The "chained" mode reproduces sequential intersection, where a
point must fall inside both layers to keep any label.

Usage:
    neighborhoods, regions = load_reference_layers(config)
    joiner = SpatialJoiner(neighborhoods, regions, config)
    result = joiner.join(completed_table, year=2017)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import geopandas as gpd
import pandas as pd

from stl_crime.geo.completion import ROW_ID, assign_row_ids, reconcile
from stl_crime.geo.polygons import PolygonLayer
from stl_crime.shared.config import Settings, get_config
from stl_crime.shared.errors import check_row_count

logger = logging.getLogger(__name__)

NEIGHBORHOOD = "neighborhood"
REGION = "region"
OCCURRED_AT = "occurred_at"
HELPER_COLUMNS = [ROW_ID, OCCURRED_AT, "occurred_date", "occurred_time"]

OUTPUT_COLUMNS = [
    "year",
    "complaint",
    "date_occur",
    "crime",
    "description",
    "ileads_address",
    "ileads_street",
    NEIGHBORHOOD,
    REGION,
    "geocode_source",
    "geocode_address",
    "geocode_score",
    "x",
    "y",
]


@dataclass(frozen=True)
class JoinStats:
    """Counts captured at the spatial join boundary."""

    year: int | None
    rows_pre: int
    located: int
    joined: int
    rows_post: int

    @property
    def not_joined(self) -> int:
        """All records without any label (including unlocated ones)."""
        return self.rows_pre - self.joined

    @property
    def located_not_joined(self) -> int:
        """Coordinate-bearing records that fell outside every polygon."""
        return self.located - self.joined


@dataclass
class JoinResult:
    data: pd.DataFrame
    stats: JoinStats


def points_frame(
    df: pd.DataFrame,
    crs: str,
    x_col: str = "x",
    y_col: str = "y",
) -> gpd.GeoDataFrame:
    """Convert a DataFrame into a point GeoDataFrame."""
    for col in (x_col, y_col):
        if col not in df.columns:
            raise KeyError(f"Expected coordinate column '{col}' not found.")

    return gpd.GeoDataFrame(
        df,
        geometry=gpd.points_from_xy(df[x_col], df[y_col]),
        crs=crs,
    )


def containment_labels(points: gpd.GeoDataFrame, layer: PolygonLayer) -> pd.Series:
    """
    Label each point with the polygon that contains it.

    Returns a Series indexed by row identifier; points outside the layer are
    null. The predicate is "intersects", so a point lying exactly on a polygon
    edge is labelled rather than counted as not joined. A point on a shared
    edge (or inside overlapping polygons) takes the polygon that comes first
    in the layer.
    """
    if points.crs != layer.crs:
        points = points.to_crs(layer.crs)

    joined = gpd.sjoin(
        points[[ROW_ID, "geometry"]], layer.frame, how="left", predicate="intersects"
    )
    joined = joined.sort_values([ROW_ID, "index_right"], kind="mergesort")
    joined = joined[~joined[ROW_ID].duplicated(keep="first")]
    return joined.set_index(ROW_ID)[layer.key].rename(layer.name)


def partition_joined(
    table: pd.DataFrame, labels: pd.DataFrame
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split table into (joined, not_joined).

    A row is joined when it received at least one label. Not-joined rows carry
    null labels so both frames share one schema.
    """
    matched = labels[labels[NEIGHBORHOOD].notna() | labels[REGION].notna()]
    joined = table.merge(matched, on=ROW_ID, how="inner", validate="one_to_one")
    not_joined = table[~table[ROW_ID].isin(matched[ROW_ID])].assign(
        **{NEIGHBORHOOD: None, REGION: None}
    )
    return joined, not_joined


def tidy_labels(labels: pd.Series) -> pd.Series:
    """Return integer-valued labels as nullable Int64, anything else unchanged."""
    present = labels.notna()
    if not present.any():
        return labels
    numeric = pd.to_numeric(labels, errors="coerce")
    if numeric[present].notna().all() and (numeric[present] % 1 == 0).all():
        return numeric.astype("Int64")
    return labels


def order_by_occurrence(df: pd.DataFrame, date_col: str = "date_occur") -> pd.DataFrame:
    """Parse the occurrence date/time and sort ascending (stable)."""
    if df.empty:
        return df.assign(**{OCCURRED_AT: pd.Series(dtype="datetime64[ns]")})

    parts = df[date_col].astype("string").str.strip().str.split(" ", n=1, expand=True)
    if parts.shape[1] == 1:
        parts[1] = pd.NA
    df = df.assign(occurred_date=parts[0], occurred_time=parts[1].fillna("00:00"))
    df[OCCURRED_AT] = pd.to_datetime(
        df["occurred_date"] + " " + df["occurred_time"],
        format="%m/%d/%Y %H:%M",
        errors="coerce",
    )
    return df.sort_values(OCCURRED_AT, kind="mergesort", na_position="last").reset_index(drop=True)


class SpatialJoiner:
    """Labels incidents with neighborhood and region polygons."""

    def __init__(
        self,
        neighborhoods: PolygonLayer,
        regions: PolygonLayer,
        config: Settings | None = None,
        mode: str | None = None,
    ):
        self.config = config or get_config()
        self.neighborhoods = neighborhoods
        self.regions = regions
        self.common_crs = self.config.crs.common
        self.mode = mode or self.config.spatial.join_mode
        if self.mode not in ("independent", "chained"):
            raise ValueError(f"Unknown join mode: {self.mode}")

    def label(self, table: pd.DataFrame) -> pd.DataFrame:
        """
        Containment labels for the located rows of table.

        Returns:
            DataFrame with ROW_ID, neighborhood, region for every row that
            has coordinates (labels null where outside the layer)
        """
        located = table[table["x"].notna() & table["y"].notna()]
        labels = pd.DataFrame({ROW_ID: located[ROW_ID].to_numpy()})
        if located.empty:
            return labels.assign(**{NEIGHBORHOOD: None, REGION: None})

        points = points_frame(located[[ROW_ID, "x", "y"]], self.common_crs)
        points = points.to_crs(self.neighborhoods.crs)

        neighborhood = containment_labels(points, self.neighborhoods)
        region = containment_labels(points, self.regions)

        labels[NEIGHBORHOOD] = neighborhood.reindex(labels[ROW_ID]).to_numpy()
        labels[REGION] = region.reindex(labels[ROW_ID]).to_numpy()

        if self.mode == "chained":
            inside_both = labels[NEIGHBORHOOD].notna() & labels[REGION].notna()
            labels.loc[~inside_both, [NEIGHBORHOOD, REGION]] = None

        return labels

    def join(self, df: pd.DataFrame, year: int | None = None) -> JoinResult:
        """
        Join one completed year table against both layers.

        Raises:
            RowCountInvariantViolation: If joined and not-joined records are
                not a disjoint, total split of the input
        """
        rows_pre = len(df)
        table = assign_row_ids(df.drop(columns=[NEIGHBORHOOD, REGION], errors="ignore"))

        labels = self.label(table)
        joined, not_joined = partition_joined(table, labels)

        combined = reconcile(
            [joined, not_joined], table[ROW_ID], stage="spatial_join", year=year
        )
        check_row_count(rows_pre, len(combined), stage="spatial_join", year=year)
        combined[NEIGHBORHOOD] = tidy_labels(combined[NEIGHBORHOOD])

        ordered = order_by_occurrence(combined)
        ordered = ordered.drop(columns=[c for c in HELPER_COLUMNS if c in ordered.columns])
        output = ordered[[c for c in OUTPUT_COLUMNS if c in ordered.columns]]

        stats = JoinStats(
            year=year,
            rows_pre=rows_pre,
            located=len(labels),
            joined=len(joined),
            rows_post=len(output),
        )
        logger.info(
            f"{year}: spatial join labelled {stats.joined} of {stats.located} located records",
            extra={
                "year": year,
                "located": stats.located,
                "joined": stats.joined,
                "located_not_joined": stats.located_not_joined,
                "mode": self.mode,
            },
        )
        return JoinResult(data=output, stats=stats)
