"""
STL Crime - Coordinate Completer

Fills in coordinates for incidents published without them.

Records are partitioned by coordinate presence. Records that already have
state plane coordinates are reprojected to the common CRS; records without
them get an address query built from their address fragments and are
geocoded in one batch. Both partitions are then reconciled on a stable row
identifier into one table with the same output fields.

Completion never adds or drops rows: a failed geocode keeps null
coordinates and is only counted.

Usage:
    completer = CoordinateCompleter(geocoder, config)
    result = completer.complete(year_table, year=2017)
    completed = result.data
    print(result.stats.missing_pre, result.stats.missing_post)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd
from geopy.exc import GeocoderServiceError
from pyproj import Transformer

from stl_crime.geo.address import build_address_queries
from stl_crime.geo.geocoder import BaseGeocoder
from stl_crime.shared.config import Settings, get_config
from stl_crime.shared.errors import (
    ExternalServiceUnavailable,
    RowCountInvariantViolation,
    check_row_count,
)

logger = logging.getLogger(__name__)

ROW_ID = "row_id"
SOURCE_X = "x_coord"
SOURCE_Y = "y_coord"
GEO_COLUMNS = ["geocode_source", "geocode_address", "geocode_score", "x", "y"]


@dataclass(frozen=True)
class CompletionStats:
    """Counts captured at the completion boundary."""

    year: int | None
    rows_pre: int
    missing_pre: int
    rows_post: int
    missing_post: int
    geocode_requested: int = 0
    geocode_resolved: int = 0


@dataclass
class CompletionResult:
    data: pd.DataFrame
    stats: CompletionStats


# =============================================================================
# Partition / Reconcile
# =============================================================================


def has_coordinates(df: pd.DataFrame, x_col: str = SOURCE_X, y_col: str = SOURCE_Y) -> pd.Series:
    """True where both coordinates are present and non-zero (SLMPD writes 0 for unknown)."""
    x = pd.to_numeric(df[x_col], errors="coerce")
    y = pd.to_numeric(df[y_col], errors="coerce")
    return (x.notna() & y.notna() & (x != 0) & (y != 0)).astype(bool)


def assign_row_ids(df: pd.DataFrame, id_col: str = ROW_ID) -> pd.DataFrame:
    """Attach a stable 0..n-1 identifier column."""
    df = df.reset_index(drop=True)
    return df.assign(**{id_col: np.arange(len(df), dtype="int64")})


def partition(
    df: pd.DataFrame,
    x_col: str = SOURCE_X,
    y_col: str = SOURCE_Y,
    id_col: str = ROW_ID,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split a table into (has_xy, missing_xy).

    The two frames are disjoint on id_col and together cover every row.
    """
    if id_col not in df.columns:
        raise KeyError(f"Partition requires an identifier column '{id_col}'")
    if df[id_col].duplicated().any():
        raise ValueError(f"Identifier column '{id_col}' is not unique")

    mask = has_coordinates(df, x_col, y_col)
    return df[mask].copy(), df[~mask].copy()


def reconcile(
    parts: Sequence[pd.DataFrame],
    expected_ids: pd.Series,
    id_col: str = ROW_ID,
    stage: str = "reconcile",
    year: int | None = None,
) -> pd.DataFrame:
    """
    Recombine partitions by identifier.

    Rows are ordered by identifier, never by position within the parts.

    Raises:
        RowCountInvariantViolation: If a record is missing or duplicated, or
            the parts do not share one schema
    """
    columns = [set(part.columns) for part in parts]
    if any(c != columns[0] for c in columns[1:]):
        raise RowCountInvariantViolation(
            len(expected_ids),
            sum(len(p) for p in parts),
            stage=stage,
            year=year,
            detail="partitions do not share one schema",
        )

    combined = pd.concat(parts, ignore_index=True)
    ids = combined[id_col]

    if ids.duplicated().any():
        raise RowCountInvariantViolation(
            len(expected_ids),
            len(combined),
            stage=stage,
            year=year,
            detail=f"{int(ids.duplicated().sum())} duplicated identifiers",
        )

    expected = set(expected_ids)
    actual = set(ids)
    if actual != expected:
        raise RowCountInvariantViolation(
            len(expected),
            len(actual),
            stage=stage,
            year=year,
            detail=(
                f"{len(expected - actual)} missing, "
                f"{len(actual - expected)} unexpected identifiers"
            ),
        )

    return combined.sort_values(id_col, kind="mergesort").reset_index(drop=True)


def reproject_xy(
    x: pd.Series,
    y: pd.Series,
    source_crs: str,
    target_crs: str,
) -> tuple[pd.Series, pd.Series]:
    """Reproject coordinate columns; nulls stay null."""
    x = pd.to_numeric(x, errors="coerce").astype("float64")
    y = pd.to_numeric(y, errors="coerce").astype("float64")
    if source_crs == target_crs or len(x) == 0:
        return x, y

    transformer = Transformer.from_crs(source_crs, target_crs, always_xy=True)
    valid = x.notna() & y.notna()
    out_x = pd.Series(np.nan, index=x.index, dtype="float64")
    out_y = pd.Series(np.nan, index=y.index, dtype="float64")
    if valid.any():
        tx, ty = transformer.transform(x[valid].to_numpy(), y[valid].to_numpy())
        out_x[valid] = tx
        out_y[valid] = ty
    return out_x, out_y


# =============================================================================
# Completer
# =============================================================================


class CoordinateCompleter:
    """Completes missing coordinates through a batch geocoder."""

    def __init__(self, geocoder: BaseGeocoder, config: Settings | None = None):
        self.geocoder = geocoder
        self.config = config or get_config()
        self.source_crs = self.config.crs.source
        self.common_crs = self.config.crs.common

    def complete(self, df: pd.DataFrame, year: int | None = None) -> CompletionResult:
        """
        Complete coordinates for one year table.

        Args:
            df: Assembled year table with x_coord/y_coord and address fragments
            year: Year label for logging and errors

        Returns:
            CompletionResult with x, y and geocode_* fields in place of the
            raw coordinates

        Raises:
            RowCountInvariantViolation: If the output row count differs
            ExternalServiceUnavailable: If the geocoder cannot be reached
        """
        rows_pre = len(df)
        table = assign_row_ids(df)

        has_xy, missing_xy = partition(table)
        missing_pre = len(missing_xy)
        logger.info(
            f"{year}: {len(has_xy)} records with coordinates, {missing_pre} to geocode",
            extra={"year": year, "has_xy": len(has_xy), "missing_xy": missing_pre},
        )

        has_xy = self._reproject_known(has_xy)
        missing_xy = self._geocode_missing(missing_xy, year)

        completed = reconcile(
            [has_xy, missing_xy], table[ROW_ID], stage="coordinate_completion", year=year
        )
        check_row_count(rows_pre, len(completed), stage="coordinate_completion", year=year)

        completed = completed.drop(columns=[ROW_ID, SOURCE_X, SOURCE_Y])
        missing_post = int((completed["x"].isna() | completed["y"].isna()).sum())

        stats = CompletionStats(
            year=year,
            rows_pre=rows_pre,
            missing_pre=missing_pre,
            rows_post=len(completed),
            missing_post=missing_post,
            geocode_requested=missing_pre,
            geocode_resolved=missing_pre - missing_post,
        )
        logger.info(
            f"{year}: coordinate completion {missing_pre} -> {missing_post} missing",
            extra={"year": year, "missing_pre": missing_pre, "missing_post": missing_post},
        )
        return CompletionResult(data=completed, stats=stats)

    def _reproject_known(self, has_xy: pd.DataFrame) -> pd.DataFrame:
        x, y = reproject_xy(has_xy[SOURCE_X], has_xy[SOURCE_Y], self.source_crs, self.common_crs)
        return has_xy.assign(
            geocode_source=pd.Series(None, index=has_xy.index, dtype="object"),
            geocode_address=pd.Series(None, index=has_xy.index, dtype="object"),
            geocode_score=pd.Series(np.nan, index=has_xy.index, dtype="float64"),
            x=x,
            y=y,
        )

    def _geocode_missing(self, missing_xy: pd.DataFrame, year: int | None) -> pd.DataFrame:
        if missing_xy.empty:
            return missing_xy.assign(
                geocode_source=pd.Series(dtype="object"),
                geocode_address=pd.Series(dtype="object"),
                geocode_score=pd.Series(dtype="float64"),
                x=pd.Series(dtype="float64"),
                y=pd.Series(dtype="float64"),
            )

        queries = build_address_queries(missing_xy["ileads_address"], missing_xy["ileads_street"])

        try:
            results = self.geocoder.geocode(queries)
        except (OSError, GeocoderServiceError) as e:
            raise ExternalServiceUnavailable(
                f"Geocoding service unavailable: {e}", stage="geocode", year=year
            ) from e

        if not results.index.equals(queries.index):
            raise RowCountInvariantViolation(
                len(queries),
                len(results),
                stage="geocode",
                year=year,
                detail="geocoder results are not aligned with the request batch",
            )

        x, y = reproject_xy(results["x"], results["y"], self.geocoder.crs, self.common_crs)
        return missing_xy.assign(
            geocode_source=results["source"],
            geocode_address=results["matched_address"],
            geocode_score=results["score"].astype("float64"),
            x=x,
            y=y,
        )
