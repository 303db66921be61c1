"""
STL Crime - Pipeline Orchestration

Runs the per-year stages in order:

    validate/repair (every year) -> assemble (year + later years) ->
    complete coordinates -> spatial join -> metrics

Every configured year is validated and repaired before any assembly starts,
because a year's table also reads the releases of every later year.

Structural and row-count failures halt only the affected year. A year also
fails when a later year it reads failed validation. Later years never read
earlier releases, so they keep running. Once every year has been attempted the
failures are raised together as YearFailures, which carries the finished run.
An unreachable geocoder or polygon source stops the whole run.

Usage:
    config = get_config()
    neighborhoods, regions = load_reference_layers(config)
    geocoder = ProviderGeocoder.from_config(config)

    pipeline = CrimePipeline(config, geocoder, neighborhoods, regions)
    run = pipeline.run(ReleaseIngester(config).load_years())
    write_year_tables(run.tables, get_data_path("clean", config))
    run.metrics.render()
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd

from stl_crime.datasets.crime.assemble import YearAssembler
from stl_crime.datasets.crime.releases import YearReleases
from stl_crime.geo.completion import CoordinateCompleter
from stl_crime.geo.geocoder import BaseGeocoder
from stl_crime.geo.polygons import PolygonLayer
from stl_crime.geo.spatial_join import SpatialJoiner
from stl_crime.shared.config import Settings, get_config
from stl_crime.shared.errors import ExternalServiceUnavailable, PipelineError, YearFailures
from stl_crime.validation.metrics import PipelineMetrics, YearMetrics
from stl_crime.validation.schema_registry import SchemaRegistry
from stl_crime.validation.schema_repair import SchemaRepairer

logger = logging.getLogger(__name__)


def later_years(year: int, years: list[int]) -> list[int]:
    """Configured years strictly after year, ascending."""
    return sorted(y for y in years if y > year)


@dataclass
class PipelineRun:
    """Outputs of one pipeline run."""

    tables: dict[int, pd.DataFrame] = field(default_factory=dict)
    metrics: PipelineMetrics = field(default_factory=PipelineMetrics)
    failures: dict[int, PipelineError] = field(default_factory=dict)

    def summary(self) -> pd.DataFrame:
        return self.metrics.summary()


class CrimePipeline:
    """Wires the stages together for the configured years."""

    def __init__(
        self,
        config: Settings | None,
        geocoder: BaseGeocoder,
        neighborhoods: PolygonLayer,
        regions: PolygonLayer,
    ):
        self.config = config or get_config()
        self.years = list(self.config.pipeline.years)

        registry = SchemaRegistry(self.config)
        self.repairer = SchemaRepairer(self.config, registry)
        self.assembler = YearAssembler(self.config)
        self.completer = CoordinateCompleter(geocoder, self.config)
        self.joiner = SpatialJoiner(neighborhoods, regions, self.config)

    def prepare(
        self, releases_by_year: Mapping[int, YearReleases]
    ) -> tuple[dict[int, YearReleases], dict[int, PipelineError]]:
        """
        Validate and repair every configured year.

        Returns:
            Tuple of (repaired releases by year, repair failures by year)

        Raises:
            KeyError: If a configured year has no releases
        """
        missing = [y for y in self.years if y not in releases_by_year]
        if missing:
            raise KeyError(f"No releases supplied for configured years: {missing}")

        prepared = {}
        failures = {}
        for year in self.years:
            try:
                prepared[year] = self.repairer.validate_and_repair(releases_by_year[year], year)
            except PipelineError as e:
                logger.error(f"{year} releases could not be repaired: {str(e)}")
                failures[year] = e
        return prepared, failures

    def run_year(
        self, year: int, prepared: Mapping[int, YearReleases]
    ) -> tuple[pd.DataFrame, YearMetrics]:
        """Assemble, complete and join one year."""
        later = [prepared[y] for y in later_years(year, self.years)]

        assembled = self.assembler.assemble(prepared[year], later=later)
        completion = self.completer.complete(assembled, year=year)
        joined = self.joiner.join(completion.data, year=year)

        return joined.data, YearMetrics.from_stats(completion.stats, joined.stats)

    def run(self, releases_by_year: Mapping[int, YearReleases]) -> PipelineRun:
        """
        Run every configured year.

        Args:
            releases_by_year: Monthly releases keyed by year label

        Returns:
            PipelineRun with one final table per year and the metrics collector

        Raises:
            YearFailures: If any year failed repair or broke a row count invariant;
                the other years still run and are kept on the error
            ExternalServiceUnavailable: If the geocoder or polygons are unreachable
        """
        logger.info(f"Starting pipeline for years {self.years}")
        prepared, failures = self.prepare(releases_by_year)

        run = PipelineRun()
        for year in self.years:
            if year in failures:
                continue

            unreadable = [y for y in later_years(year, self.years) if y in failures]
            if unreadable:
                failures[year] = PipelineError(
                    f"Late-reported incidents come from {unreadable}, which failed repair",
                    stage="assemble",
                    year=year,
                )
                logger.error(str(failures[year]))
                continue

            try:
                table, metrics = self.run_year(year, prepared)
            except ExternalServiceUnavailable:
                raise
            except PipelineError as e:
                logger.error(f"{year} failed: {str(e)}")
                failures[year] = e
                continue

            run.tables[year] = table
            run.metrics = run.metrics.with_year(metrics)
            logger.info(
                f"{year}: {len(table)} records in final table",
                extra={"year": year, "rows": len(table), **metrics.to_dict()},
            )

        run.failures = dict(sorted(failures.items()))
        if run.failures:
            raise YearFailures(run.failures, run=run)

        logger.info("Pipeline complete")
        return run


def write_year_tables(
    tables: Mapping[int, pd.DataFrame],
    out_dir: Path | str,
    pattern: str = "crime_{year}.csv",
) -> list[Path]:
    """Write one CSV per year table; returns the written paths."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for year in sorted(tables):
        path = out_dir / pattern.format(year=year)
        tables[year].to_csv(path, index=False)
        logger.info(f"Wrote {len(tables[year])} records to {path}")
        written.append(path)
    return written
