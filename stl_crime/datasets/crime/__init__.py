"""
STL Crime - SLMPD Crime Dataset

Components:
    - ReleaseIngester: Loads downloaded monthly release files
    - MonthlyRelease / YearReleases: Raw release containers
    - YearAssembler: Builds Part 1 occurrence-year tables

Data Source:
    St. Louis Metropolitan Police Department monthly crime extracts
    https://www.slmpd.org/crime_stats.shtml

Usage:
    from stl_crime.datasets.crime import ReleaseIngester, YearAssembler

    releases = ReleaseIngester().load_years([2017, 2018, 2019])
    table = YearAssembler().assemble(releases[2017], later=[releases[2018], releases[2019]])
"""

from stl_crime.datasets.crime.assemble import CompstatPreprocessor, YearAssembler, categorize_crime
from stl_crime.datasets.crime.ingest import ReleaseIngester
from stl_crime.datasets.crime.releases import MonthlyRelease, YearReleases

__all__ = [
    "ReleaseIngester",
    "MonthlyRelease",
    "YearReleases",
    "YearAssembler",
    "CompstatPreprocessor",
    "categorize_crime",
]
