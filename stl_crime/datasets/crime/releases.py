"""
STL Crime - Monthly Release Containers

A MonthlyRelease is one month's raw SLMPD extract kept exactly as published
(all cells as strings). A YearReleases groups the months filed under one
release year.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace

import pandas as pd


@dataclass(frozen=True)
class MonthlyRelease:
    """One month's raw incident table."""

    year: int
    month: int
    data: pd.DataFrame

    @property
    def columns(self) -> list[str]:
        return [str(c) for c in self.data.columns]

    @property
    def column_count(self) -> int:
        return len(self.data.columns)

    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d}"

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class YearReleases:
    """All monthly releases filed under one release year."""

    year: int
    releases: tuple[MonthlyRelease, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[MonthlyRelease]:
        return iter(self.releases)

    def __len__(self) -> int:
        return len(self.releases)

    @property
    def months(self) -> list[int]:
        return [r.month for r in self.releases]

    @property
    def row_count(self) -> int:
        return sum(len(r) for r in self.releases)

    def get(self, month: int) -> MonthlyRelease:
        """Return the release for a month."""
        for release in self.releases:
            if release.month == month:
                return release
        raise KeyError(f"No release for {self.year}-{month:02d}")

    def with_release(self, release: MonthlyRelease) -> YearReleases:
        """Return a copy with one month's release swapped in."""
        if release.month not in self.months:
            raise KeyError(f"No release for {self.year}-{release.month:02d}")
        releases = tuple(release if r.month == release.month else r for r in self.releases)
        return replace(self, releases=releases)
