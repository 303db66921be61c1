"""
STL Crime - Pipeline Metrics

Per-year missing-coordinate and join-failure rates, computed from the counts
captured at the completion and spatial join boundaries. Final output is never
re-scanned, so a silent change upstream shows up as a mismatch here.

The collector is immutable: each year's metrics are added with with_year(),
which returns a new collector.

Usage:
    metrics = PipelineMetrics()
    metrics = metrics.with_year(YearMetrics.from_stats(completion.stats, join.stats))
    print(metrics.summary())
    metrics.render()
"""

from __future__ import annotations

from dataclasses import dataclass, field

import pandas as pd
from rich.console import Console
from rich.table import Table

from stl_crime.geo.completion import CompletionStats
from stl_crime.geo.spatial_join import JoinStats

console = Console()

SUMMARY_COLUMNS = ["year", "pct_missing_pre", "pct_missing_post", "delta", "pct_not_joined"]


def _pct(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


@dataclass(frozen=True)
class YearMetrics:
    """Boundary counts for one year."""

    year: int
    rows_pre: int
    missing_pre: int
    rows_post: int
    missing_post: int
    located: int
    not_joined: int

    @classmethod
    def from_stats(cls, completion: CompletionStats, join: JoinStats) -> YearMetrics:
        return cls(
            year=completion.year if completion.year is not None else join.year,
            rows_pre=completion.rows_pre,
            missing_pre=completion.missing_pre,
            rows_post=completion.rows_post,
            missing_post=completion.missing_post,
            located=join.located,
            not_joined=join.located_not_joined,
        )

    @property
    def pct_missing_pre(self) -> float:
        return _pct(self.missing_pre, self.rows_pre)

    @property
    def pct_missing_post(self) -> float:
        return _pct(self.missing_post, self.rows_post)

    @property
    def delta(self) -> float:
        """Percentage points of missing coordinates recovered by geocoding."""
        return round(self.pct_missing_pre - self.pct_missing_post, 2)

    @property
    def pct_not_joined(self) -> float:
        """Share of coordinate-bearing records outside every polygon."""
        return _pct(self.not_joined, self.located)

    def to_dict(self) -> dict[str, float | int]:
        return {
            "year": self.year,
            "pct_missing_pre": self.pct_missing_pre,
            "pct_missing_post": self.pct_missing_post,
            "delta": self.delta,
            "pct_not_joined": self.pct_not_joined,
        }


@dataclass(frozen=True)
class PipelineMetrics:
    """Immutable collection of per-year metrics."""

    years: tuple[YearMetrics, ...] = field(default_factory=tuple)

    def with_year(self, metrics: YearMetrics) -> PipelineMetrics:
        """Return a collector with metrics for one more year (replacing any existing)."""
        others = tuple(m for m in self.years if m.year != metrics.year)
        return PipelineMetrics(years=tuple(sorted(others + (metrics,), key=lambda m: m.year)))

    def merge(self, other: PipelineMetrics) -> PipelineMetrics:
        merged = self
        for metrics in other.years:
            merged = merged.with_year(metrics)
        return merged

    def get(self, year: int) -> YearMetrics:
        for metrics in self.years:
            if metrics.year == year:
                return metrics
        raise KeyError(f"No metrics recorded for {year}")

    def summary(self) -> pd.DataFrame:
        """Report table: year, % missing pre, % missing post, delta, % not joined."""
        return pd.DataFrame([m.to_dict() for m in self.years], columns=SUMMARY_COLUMNS)

    def render(self) -> None:
        """Pretty-print the summary as a table."""
        if not self.years:
            console.print("[red]No pipeline metrics recorded yet.[/red]")
            return

        table = Table(title="Coordinate Completion and Spatial Join", show_lines=True)
        table.add_column("Year", style="cyan", no_wrap=True)
        table.add_column("% Missing (pre)", justify="right", style="red")
        table.add_column("% Missing (post)", justify="right", style="green")
        table.add_column("Delta (pts)", justify="right", style="blue")
        table.add_column("% Not Joined", justify="right", style="yellow")

        for m in self.years:
            table.add_row(
                str(m.year),
                f"{m.pct_missing_pre:.2f}",
                f"{m.pct_missing_post:.2f}",
                f"{m.delta:.2f}",
                f"{m.pct_not_joined:.2f}",
            )

        console.print(table)
