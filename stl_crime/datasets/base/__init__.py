"""
STL Crime - Base Classes for Datasets

Abstract base classes that dataset implementations inherit from.

Usage:
    from stl_crime.datasets.base import BasePreprocessor

    class CompstatPreprocessor(BasePreprocessor):
        def transform(self, df: pd.DataFrame) -> pd.DataFrame:
            ...
"""

from stl_crime.datasets.base.preprocessor import BasePreprocessor, PreprocessingResult

__all__ = [
    "BasePreprocessor",
    "PreprocessingResult",
]
