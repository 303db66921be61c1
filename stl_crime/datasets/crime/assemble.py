"""
STL Crime - Year Assembler

Builds one table per occurrence year from validated monthly releases.

SLMPD files incidents under the month they were reported, so a crime that
occurred in 2017 but was reported in 2018 only shows up in a 2018 release.
A year's table is therefore assembled from its own releases plus the releases
of every strictly later year, keeping rows whose occurrence year matches.

Transformations:
    - Column renaming to snake_case
    - Occurrence year attribution from DateOccur
    - Exact duplicate removal across overlapping releases
    - Zero-count filter (administrative/unfounded/cleanup rows carry zero count)
    - UCR category derivation and Part 1 filter

Usage:
    from stl_crime.datasets.crime.assemble import YearAssembler

    assembler = YearAssembler()
    table_2017 = assembler.assemble(releases[2017], later=[releases[2018], releases[2019]])
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import pandas as pd

from stl_crime.datasets.base import BasePreprocessor, PreprocessingResult
from stl_crime.datasets.crime.releases import YearReleases
from stl_crime.shared.config import Settings
from stl_crime.shared.errors import PipelineError

logger = logging.getLogger(__name__)

DATE_OCCUR_FORMAT = "%m/%d/%Y %H:%M"

PART_1 = "Part 1"
PART_2 = "Part 2"

# First digit of a five digit SLMPD crime code -> UCR Part 1 offense
UCR_PART_1 = {
    "1": "Homicide",
    "2": "Rape",
    "3": "Robbery",
    "4": "Aggravated Assault",
    "5": "Burglary",
    "6": "Larceny",
    "7": "Vehicle Theft",
    "8": "Arson",
}


def categorize_crime(codes: pd.Series) -> pd.DataFrame:
    """
    Derive the UCR part and Part 1 offense label from crime codes.

    Part 1 codes are five digits with a leading 1-8; everything else,
    including six digit codes and blanks, is Part 2.
    """
    codes = codes.astype("string").str.strip()
    is_part_1 = codes.str.fullmatch(r"[1-8]\d{4}").fillna(False).astype(bool)
    first_digit = codes.str[0]

    return pd.DataFrame(
        {
            "category": is_part_1.map({True: PART_1, False: PART_2}),
            "crime_category": first_digit.where(is_part_1).map(UCR_PART_1),
        },
        index=codes.index,
    )


class CompstatPreprocessor(BasePreprocessor):
    """
    Preprocessor for one occurrence year of SLMPD releases.

    Handles renaming, type conversion, year attribution and filtering for a
    concatenation of monthly releases.
    """

    dataset = "crime"

    COLUMN_MAPPINGS = {
        "Complaint": "complaint",
        "CodedMonth": "coded_month",
        "DateOccur": "date_occur",
        "FlagCrime": "flag_crime",
        "FlagUnfounded": "flag_unfounded",
        "FlagAdministrative": "flag_administrative",
        "Count": "count",
        "FlagCleanup": "flag_cleanup",
        "Crime": "crime",
        "District": "district",
        "Description": "description",
        "ILEADSAddress": "ileads_address",
        "ILEADSStreet": "ileads_street",
        "Neighborhood": "reported_neighborhood",
        "LocationName": "location_name",
        "LocationComment": "location_comment",
        "CADAddress": "cad_address",
        "CADStreet": "cad_street",
        "XCoord": "x_coord",
        "YCoord": "y_coord",
    }

    DTYPE_MAPPINGS = {
        "complaint": "string",
        "coded_month": "string",
        "date_occur": "string",
        "count": "int",
        "crime": "string",
        "description": "string",
        "ileads_address": "string",
        "ileads_street": "string",
        "x_coord": "float",
        "y_coord": "float",
    }

    REQUIRED_COLUMNS = [
        "year",
        "complaint",
        "date_occur",
        "crime",
        "count",
        "category",
        "ileads_address",
        "ileads_street",
        "x_coord",
        "y_coord",
    ]

    def __init__(self, target_year: int, config: Settings | None = None):
        super().__init__(config)
        self.target_year = target_year
        self.target_category = self.config.pipeline.target_category

    def get_required_columns(self) -> list[str]:
        return self.REQUIRED_COLUMNS

    def get_column_mappings(self) -> dict[str, str]:
        return self.COLUMN_MAPPINGS

    def get_dtype_mappings(self) -> dict[str, str]:
        return self.DTYPE_MAPPINGS

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Apply occurrence-year, count and category filters.

        Args:
            df: Concatenated releases with renamed columns

        Returns:
            Part 1 rows occurring in the target year
        """
        df = self._attribute_occurrence_year(df)
        df = self.drop_duplicates(df)
        df = self._filter_count(df)
        df = self._filter_category(df)
        return df.reset_index(drop=True)

    def _attribute_occurrence_year(self, df: pd.DataFrame) -> pd.DataFrame:
        """Keep rows whose occurrence (not report) year is the target year."""
        occurred = pd.to_datetime(df["date_occur"], format=DATE_OCCUR_FORMAT, errors="coerce")

        invalid = occurred.isna()
        if invalid.any():
            logger.warning(
                f"{int(invalid.sum())} rows have an unparseable DateOccur",
                extra={"year": self.target_year},
            )
        df = df.assign(year=occurred.dt.year.astype("Int64"))
        df = self.filter_rows(df, ~invalid, "invalid_occurrence_date")

        in_year = (df["year"] == self.target_year).fillna(False).astype(bool)
        df = self.filter_rows(df, in_year, "other_occurrence_year")
        self.log_transformation("attribute_occurrence_year")
        return df

    def _filter_count(self, df: pd.DataFrame) -> pd.DataFrame:
        """Drop zero-count rows; negative unfounded adjustments stay."""
        keep = (df["count"] != 0).fillna(True).astype(bool)
        return self.filter_rows(df, keep, "zero_count")

    def _filter_category(self, df: pd.DataFrame) -> pd.DataFrame:
        categories = categorize_crime(df["crime"])
        df = df.assign(category=categories["category"], crime_category=categories["crime_category"])
        self.log_transformation("categorize_crime")

        keep = (df["category"] == self.target_category).fillna(False).astype(bool)
        return self.filter_rows(df, keep, "category")


class YearAssembler:
    """Assembles occurrence-year tables from release collections."""

    def __init__(self, config: Settings | None = None):
        self.config = config
        self.last_result: PreprocessingResult | None = None

    def assemble(
        self,
        target: YearReleases,
        later: Sequence[YearReleases] = (),
    ) -> pd.DataFrame:
        """
        Assemble the table for target.year.

        Args:
            target: The target year's validated releases
            later: Validated releases of strictly later years

        Returns:
            Part 1 incidents that occurred in target.year

        Raises:
            ValueError: If a later collection is not for a later year
            PipelineError: If preprocessing fails
        """
        for releases in later:
            if releases.year <= target.year:
                raise ValueError(
                    f"Releases for {releases.year} cannot feed the {target.year} table; "
                    "only strictly later years are allowed"
                )

        frames = [release.data for collection in (target, *later) for release in collection]
        if not frames:
            raise PipelineError("No releases to assemble", stage="assemble", year=target.year)

        combined = pd.concat(frames, ignore_index=True)
        logger.info(
            f"Assembling {target.year} from {len(frames)} monthly releases ({len(combined)} rows)",
            extra={"year": target.year, "release_years": [target.year] + [r.year for r in later]},
        )

        preprocessor = CompstatPreprocessor(target.year, self.config)
        result = preprocessor.run(combined, label=str(target.year))
        self.last_result = result

        if not result.success:
            raise PipelineError(
                f"Assembly failed: {result.error_message}", stage="assemble", year=target.year
            )

        return result.data
