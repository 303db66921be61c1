"""
Tests for pipeline orchestration.
"""

import pandas as pd
import pytest

from stl_crime.datasets.crime.releases import MonthlyRelease
from stl_crime.geo.geocoder import BaseGeocoder, empty_results
from stl_crime.geo.spatial_join import OUTPUT_COLUMNS
from stl_crime.pipeline import CrimePipeline, PipelineRun, later_years, write_year_tables
from stl_crime.shared.config import CANONICAL_COLUMNS
from stl_crime.shared.errors import (
    ExternalServiceUnavailable,
    RowCountInvariantViolation,
    SchemaRepairError,
    YearFailures,
)
from stl_crime.validation.metrics import PipelineMetrics


class DroppingGeocoder(BaseGeocoder):
    """Loses the last address of every batch."""

    crs = "EPSG:26915"

    def geocode(self, addresses):
        return empty_results(addresses.index[:-1])


def with_years(config, years):
    return config.model_copy(
        update={"pipeline": config.pipeline.model_copy(update={"years": years})}
    )


@pytest.fixture
def config(planar_config):
    return with_years(planar_config, [2017, 2018])


@pytest.fixture
def releases(make_year, make_incident):
    """2017 (with a drifted May) and 2018 releases."""
    surplus = [
        "DateReported",
        "CrimeCategory",
        "NbhdName",
        "PoliceDistrict",
        "Latitude",
        "Longitude",
    ]
    may_row = make_incident(
        Complaint="17-MAY", CodedMonth="2017-05", DateOccur="05/01/2017 12:00", YCoord="25"
    )
    may = pd.DataFrame([may_row], columns=list(CANONICAL_COLUMNS)).assign(
        **{col: "x" for col in surplus}
    )

    releases_2017 = make_year(
        2017,
        months=[1, 5],
        rows_by_month={
            1: [
                make_incident(Complaint="17-A", DateOccur="01/02/2017 08:00"),
                make_incident(
                    Complaint="17-B",
                    DateOccur="01/01/2017 08:00",
                    ILEADSAddress="200",
                    ILEADSStreet="ELM ST",
                    XCoord=None,
                    YCoord=None,
                ),
                make_incident(
                    Complaint="17-C",
                    DateOccur="01/03/2017 08:00",
                    ILEADSAddress="0",
                    ILEADSStreet="NOWHERE AVE",
                    XCoord="0",
                    YCoord="0",
                ),
            ],
        },
    ).with_release(MonthlyRelease(2017, 5, may))

    releases_2018 = make_year(
        2018,
        months=[1],
        rows_by_month={
            1: [
                make_incident(
                    Complaint="17-LATE",
                    CodedMonth="2018-01",
                    DateOccur="12/31/2017 22:00",
                    XCoord="500",
                    YCoord="500",
                ),
                make_incident(Complaint="18-A", CodedMonth="2018-01", DateOccur="01/05/2018 10:00"),
            ]
        },
    )
    return {2017: releases_2017, 2018: releases_2018}


@pytest.fixture
def pipeline(config, scripted_geocoder, neighborhood_layer, region_layer):
    geocoder = scripted_geocoder({"200 ELM ST": (175.0, 25.0)})
    return CrimePipeline(config, geocoder, neighborhood_layer, region_layer)


def test_later_years():
    assert later_years(2017, [2017, 2018, 2019]) == [2018, 2019]
    assert later_years(2018, [2019, 2017, 2018]) == [2019]
    assert later_years(2019, [2017, 2018, 2019]) == []


class TestCrimePipeline:
    """Test cases for CrimePipeline.run."""

    def test_one_table_per_configured_year(self, pipeline, releases):
        run = pipeline.run(releases)

        assert isinstance(run, PipelineRun)
        assert sorted(run.tables) == [2017, 2018]
        for table in run.tables.values():
            assert list(table.columns) == OUTPUT_COLUMNS

    def test_year_table_contents(self, pipeline, releases):
        table = pipeline.run(releases).tables[2017]

        assert list(table["complaint"]) == ["17-B", "17-A", "17-C", "17-MAY", "17-LATE"]
        assert (table["year"] == 2017).all()
        labelled = table.set_index("complaint")
        assert labelled.loc["17-A", "neighborhood"] == 1
        assert labelled.loc["17-A", "region"] == "North"
        assert labelled.loc["17-B", "neighborhood"] == 2
        assert labelled.loc["17-B", "geocode_source"] == "full"
        assert labelled.loc["17-MAY", "region"] == "South"
        assert pd.isna(labelled.loc["17-C", "x"])

    def test_late_incident_stays_out_of_its_report_year(self, pipeline, releases):
        table = pipeline.run(releases).tables[2018]

        assert list(table["complaint"]) == ["18-A"]

    def test_metrics(self, pipeline, releases):
        run = pipeline.run(releases)

        metrics_2017 = run.metrics.get(2017)
        assert metrics_2017.rows_pre == 5
        assert metrics_2017.missing_pre == 2
        assert metrics_2017.missing_post == 1
        assert metrics_2017.located == 4
        assert metrics_2017.not_joined == 1
        assert list(run.summary()["year"]) == [2017, 2018]

    def test_input_releases_are_not_mutated(self, pipeline, releases):
        pipeline.run(releases)

        assert releases[2017].get(5).column_count == 26

    def test_missing_year_releases(self, pipeline, releases):
        with pytest.raises(KeyError, match="2018"):
            pipeline.run({2017: releases[2017]})

    def test_unrepairable_year_fails_the_years_that_read_it(
        self, pipeline, releases, make_release
    ):
        broken = make_release(2018, 1).data.assign(Mystery="x")
        releases[2018] = releases[2018].with_release(MonthlyRelease(2018, 1, broken))

        with pytest.raises(YearFailures) as exc_info:
            pipeline.run(releases)

        failures = exc_info.value.failures
        assert sorted(failures) == [2017, 2018]
        assert isinstance(failures[2018], SchemaRepairError)
        assert failures[2017].stage == "assemble"
        assert "2018" in str(failures[2017])
        assert exc_info.value.run.tables == {}

    def test_unrepairable_year_does_not_stop_later_years(
        self,
        planar_config,
        scripted_geocoder,
        neighborhood_layer,
        region_layer,
        releases,
        make_year,
        make_incident,
        make_release,
    ):
        config = with_years(planar_config, [2017, 2018, 2019])
        broken = make_release(2017, 1).data.assign(Mystery="x")
        releases[2017] = releases[2017].with_release(MonthlyRelease(2017, 1, broken))
        releases[2019] = make_year(
            2019,
            months=[1],
            rows_by_month={
                1: [
                    make_incident(
                        Complaint="19-A", CodedMonth="2019-01", DateOccur="02/01/2019 10:00"
                    )
                ]
            },
        )
        pipeline = CrimePipeline(config, scripted_geocoder(), neighborhood_layer, region_layer)

        with pytest.raises(YearFailures) as exc_info:
            pipeline.run(releases)

        error = exc_info.value
        assert list(error.failures) == [2017]
        assert error.year == 2017
        assert error.stage == "schema_repair"
        assert "[stage=schema_repair, year=2017]" in str(error)
        assert sorted(error.run.tables) == [2018, 2019]
        assert list(error.run.tables[2018]["complaint"]) == ["18-A"]
        assert list(error.run.tables[2019]["complaint"]) == ["19-A"]
        assert list(error.run.summary()["year"]) == [2018, 2019]

    def test_row_count_violation_halts_only_its_year(
        self, config, neighborhood_layer, region_layer, releases
    ):
        pipeline = CrimePipeline(config, DroppingGeocoder(), neighborhood_layer, region_layer)

        with pytest.raises(YearFailures) as exc_info:
            pipeline.run(releases)

        error = exc_info.value
        assert isinstance(error.failures[2017], RowCountInvariantViolation)
        assert error.stage == "geocode"
        assert sorted(error.run.tables) == [2018]

    def test_unreachable_geocoder_is_fatal(
        self, config, unreachable_geocoder, neighborhood_layer, region_layer, releases
    ):
        pipeline = CrimePipeline(config, unreachable_geocoder, neighborhood_layer, region_layer)

        with pytest.raises(ExternalServiceUnavailable) as exc_info:
            pipeline.run(releases)

        assert exc_info.value.year == 2017
        assert exc_info.value.stage == "geocode"


def test_missing_rates_scenario(
    planar_config, make_year, make_incident, scripted_geocoder, neighborhood_layer, region_layer
):
    """1000 records, 50 without coordinates, 40 of those geocoded."""
    rows = []
    known = {}
    for i in range(1000):
        if i < 950:
            rows.append(make_incident(Complaint=f"19-{i:04d}", DateOccur="06/01/2019 12:00"))
            continue
        house = str(1000 + i)
        rows.append(
            make_incident(
                Complaint=f"19-{i:04d}",
                DateOccur="06/01/2019 12:00",
                ILEADSAddress=house,
                XCoord=None,
                YCoord=None,
            )
        )
        if i < 990:
            known[f"{house} MAIN ST"] = (50.0, 75.0)

    config = with_years(planar_config, [2019])
    releases = {2019: make_year(2019, months=[6], rows_by_month={6: rows})}
    pipeline = CrimePipeline(config, scripted_geocoder(known), neighborhood_layer, region_layer)

    summary = pipeline.run(releases).summary()

    row = summary.iloc[0]
    assert row["year"] == 2019
    assert row["pct_missing_pre"] == 5.0
    assert row["pct_missing_post"] == 1.0
    assert row["delta"] == 4.0
    assert row["pct_not_joined"] == 0.0


def test_write_year_tables(tmp_path):
    tables = {
        2018: pd.DataFrame({"complaint": ["18-1"]}),
        2017: pd.DataFrame({"complaint": ["17-1", "17-2"]}),
    }

    written = write_year_tables(tables, tmp_path / "clean")

    assert [p.name for p in written] == ["crime_2017.csv", "crime_2018.csv"]
    assert len(pd.read_csv(written[0])) == 2


def test_pipeline_run_defaults():
    run = PipelineRun()

    assert run.tables == {}
    assert run.failures == {}
    assert isinstance(run.metrics, PipelineMetrics)
