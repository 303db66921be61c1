"""
STL Crime Pipeline Script
Builds the 2017-2019 Part 1 crime tables from the SLMPD monthly releases
"""

import logging
import sys

from stl_crime.datasets.crime.ingest import ReleaseIngester
from stl_crime.geo.geocoder import ProviderGeocoder
from stl_crime.geo.polygons import load_reference_layers
from stl_crime.pipeline import CrimePipeline, PipelineRun, write_year_tables
from stl_crime.reporting.region_rates import plot_region_rates, region_rates
from stl_crime.shared.config import Settings, get_config, get_data_path
from stl_crime.shared.errors import YearFailures

logger = logging.getLogger(__name__)


def write_outputs(run: PipelineRun, config: Settings, plot: bool = True) -> None:
    """Write the year tables, print the metrics and optionally plot region rates."""
    write_year_tables(
        run.tables,
        get_data_path("clean", config),
        pattern=config.storage.paths.output_pattern,
    )
    run.metrics.render()

    if plot and run.tables:
        rates = region_rates(
            run.tables,
            population=config.reporting.region_population,
            rate_per=config.reporting.rate_per,
        )
        plot_region_rates(
            rates,
            get_data_path("figures", config) / config.reporting.plot_file,
            rate_per=config.reporting.rate_per,
        )


def run_pipeline(environment: str | None = None, plot: bool = True) -> PipelineRun:
    """
    Run the full pipeline and write its outputs

    Years that finish are written even when other years fail.

    Args:
        environment: Config environment (defaults to STL_ENVIRONMENT)
        plot: Draw the region rate comparison

    Returns:
        PipelineRun with the year tables and metrics
    """
    config = get_config(environment)
    logging.basicConfig(level=config.logging.level, format=config.logging.format)

    try:
        releases = ReleaseIngester(config).load_years()
        neighborhoods, regions = load_reference_layers(config)
        geocoder = ProviderGeocoder.from_config(config)

        run = CrimePipeline(config, geocoder, neighborhoods, regions).run(releases)
    except YearFailures as e:
        logger.error(f"Pipeline failed for years {sorted(e.failures)}: {str(e)}")
        write_outputs(e.run, config, plot=plot)
        raise
    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}")
        raise

    write_outputs(run, config, plot=plot)
    return run


if __name__ == "__main__":
    run_pipeline(plot="--no-plot" not in sys.argv[1:])
