"""
STL Crime - Base Preprocessor

Abstract base class for table preprocessors: column renaming, dtype
conversion and row-drop bookkeeping around a subclass transform.

Usage:
    class CompstatPreprocessor(BasePreprocessor):
        dataset = "crime"

        def transform(self, df: pd.DataFrame) -> pd.DataFrame:
            ...
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import pandas as pd

from stl_crime.shared.config import Settings, get_config

logger = logging.getLogger(__name__)


@dataclass
class PreprocessingResult:
    """Outcome of one preprocessing run; data is None when it failed."""

    label: str
    rows_input: int
    rows_output: int
    success: bool = True
    error_message: str | None = None
    drop_reasons: dict[str, int] = field(default_factory=dict)
    data: pd.DataFrame | None = field(default=None, repr=False)

    @property
    def rows_dropped(self) -> int:
        return self.rows_input - self.rows_output


class BasePreprocessor(ABC):
    """
    Abstract base class for preprocessing.

    Subclasses must implement:
    - transform(): Apply dataset-specific transformations
    - get_required_columns(): Return list of required output columns
    """

    dataset: str = "table"

    def __init__(self, config: Settings | None = None):
        self.config = config or get_config()
        self._transformations: list[str] = []
        self._drop_reasons: dict[str, int] = {}

    @abstractmethod
    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Apply dataset-specific transformations.

        Args:
            df: DataFrame with renamed and converted columns

        Returns:
            Transformed DataFrame
        """
        pass

    @abstractmethod
    def get_required_columns(self) -> list[str]:
        pass

    def get_column_mappings(self) -> dict[str, str]:
        """Column renames (old -> new) applied before conversion."""
        return {}

    def get_dtype_mappings(self) -> dict[str, str]:
        """Target types by column: "int", "float", "string" or a pandas dtype."""
        return {}

    def run(self, df: pd.DataFrame, label: str) -> PreprocessingResult:
        """
        Run rename, conversion, transform and the required-column check.

        Errors are logged and returned as a failed result rather than raised.
        """
        rows_input = len(df)
        self._transformations = []
        self._drop_reasons = {}

        logger.info(
            f"Starting preprocessing for {self.dataset} ({label})",
            extra={"dataset": self.dataset, "label": label, "rows_input": rows_input},
        )

        try:
            df = df.rename(columns=self.get_column_mappings())
            df = self._apply_dtype_conversions(df)
            df = self.transform(df)

            missing = set(self.get_required_columns()) - set(df.columns)
            if missing:
                raise ValueError(f"Missing required columns: {missing}")
        except Exception as e:
            logger.error(
                f"Preprocessing failed for {self.dataset} ({label}): {e}",
                extra={"dataset": self.dataset, "error": str(e)},
                exc_info=True,
            )
            return PreprocessingResult(
                label=label,
                rows_input=rows_input,
                rows_output=0,
                success=False,
                error_message=str(e),
                drop_reasons=self._drop_reasons,
            )

        logger.info(
            f"Preprocessing complete for {self.dataset} ({label}): "
            f"{rows_input} -> {len(df)} rows",
            extra={
                "dataset": self.dataset,
                "drop_reasons": self._drop_reasons,
                "transformations": self._transformations,
            },
        )
        return PreprocessingResult(
            label=label,
            rows_input=rows_input,
            rows_output=len(df),
            drop_reasons=self._drop_reasons,
            data=df,
        )

    def _apply_dtype_conversions(self, df: pd.DataFrame) -> pd.DataFrame:
        for col, dtype in self.get_dtype_mappings().items():
            if col not in df.columns:
                continue
            if dtype == "int":
                df[col] = pd.to_numeric(df[col], errors="coerce").astype("Int64")
            elif dtype == "float":
                df[col] = pd.to_numeric(df[col], errors="coerce")
            elif dtype == "string":
                df[col] = df[col].astype("string").str.strip()
            else:
                df[col] = df[col].astype(dtype)
            self._transformations.append(f"converted_{col}_to_{dtype}")
        return df

    def log_transformation(self, name: str) -> None:
        self._transformations.append(name)

    def log_dropped_rows(self, reason: str, count: int) -> None:
        self._drop_reasons[reason] = self._drop_reasons.get(reason, 0) + count

    def drop_duplicates(self, df: pd.DataFrame) -> pd.DataFrame:
        """Drop exact duplicate rows."""
        deduped = df.drop_duplicates()
        dropped = len(df) - len(deduped)
        if dropped > 0:
            self.log_dropped_rows("duplicates", dropped)
            self.log_transformation("drop_duplicates")
        return deduped

    def filter_rows(self, df: pd.DataFrame, mask: pd.Series, reason: str) -> pd.DataFrame:
        """Keep rows where mask is True, logging the rest under reason."""
        dropped = int((~mask).sum())
        if dropped > 0:
            self.log_dropped_rows(reason, dropped)
        self.log_transformation(f"filter_{reason}")
        return df[mask].copy()
