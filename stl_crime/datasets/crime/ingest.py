"""
STL Crime - Monthly Release Ingester

Loads the SLMPD monthly crime extracts that have already been downloaded to
the raw data directory. Files are laid out as:

    data/raw/{year}/{MonthName}{year}.csv

All cells are read as strings; type conversion happens after schema
validation so that a malformed month never fails at read time.

Usage:
    from stl_crime.datasets.crime import ReleaseIngester

    ingester = ReleaseIngester()
    releases = ingester.load_year(2017)
    releases_by_year = ingester.load_years([2017, 2018, 2019])
"""

from __future__ import annotations

import calendar
import logging
from pathlib import Path

import pandas as pd

from stl_crime.datasets.crime.releases import MonthlyRelease, YearReleases
from stl_crime.shared.config import Settings, get_config

logger = logging.getLogger(__name__)


class ReleaseIngester:
    """Reads monthly release files for one or more years."""

    def __init__(self, config: Settings | None = None, raw_dir: Path | str | None = None):
        """
        Initialize the ingester.

        Args:
            config: Configuration object (uses default if not provided)
            raw_dir: Override for the raw data directory
        """
        self.config = config or get_config()
        self.raw_dir = Path(raw_dir) if raw_dir is not None else Path(self.config.storage.paths.raw)
        self.pattern = self.config.storage.paths.release_pattern

    def release_path(self, year: int, month: int) -> Path:
        """Path of one month's release file."""
        filename = self.pattern.format(
            year=year, month=month, month_name=calendar.month_name[month]
        )
        return self.raw_dir / str(year) / filename

    def load_month(self, year: int, month: int) -> MonthlyRelease:
        """Load a single monthly release."""
        path = self.release_path(year, month)
        df = pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])
        logger.debug(
            f"Loaded {len(df)} rows from {path.name}",
            extra={"year": year, "month": month, "columns": len(df.columns)},
        )
        return MonthlyRelease(year=year, month=month, data=df)

    def load_year(self, year: int) -> YearReleases:
        """
        Load every available month for a release year.

        Missing months are skipped with a warning (the most recent year is
        often partial).

        Raises:
            FileNotFoundError: If no month of the year is present
        """
        releases = []
        for month in range(1, 13):
            path = self.release_path(year, month)
            if not path.exists():
                logger.warning(f"Release missing: {path}")
                continue
            releases.append(self.load_month(year, month))

        if not releases:
            raise FileNotFoundError(f"No monthly releases found for {year} in {self.raw_dir}")

        logger.info(
            f"Loaded {len(releases)} monthly releases for {year}",
            extra={"year": year, "months": [r.month for r in releases]},
        )
        return YearReleases(year=year, releases=tuple(releases))

    def load_years(self, years: list[int] | None = None) -> dict[int, YearReleases]:
        """Load the configured (or given) years."""
        years = years or self.config.pipeline.years
        return {year: self.load_year(year) for year in years}
