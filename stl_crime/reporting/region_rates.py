"""
STL Crime - Regional Rates

Compares Part 1 incident counts across regions and years. When region
populations are configured, counts are also expressed per `rate_per`
residents.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402

logger = logging.getLogger(__name__)

RATE_COLUMNS = ["year", "region", "incidents", "population", "rate"]


def region_rates(
    tables: Mapping[int, pd.DataFrame],
    population: Mapping[str, int] | None = None,
    rate_per: int = 1000,
) -> pd.DataFrame:
    """
    Count incidents per region for each year table.

    Args:
        tables: Final year tables keyed by year
        population: Residents per region; regions without one get a null rate
        rate_per: Denominator for the rate (incidents per N residents)

    Returns:
        DataFrame with year, region, incidents, population, rate; records
        without a region are left out
    """
    population = dict(population or {})
    frames = []

    for year in sorted(tables):
        table = tables[year]
        if "region" not in table.columns:
            raise KeyError(f"{year} table has no 'region' column")

        counts = (
            table["region"]
            .dropna()
            .astype(str)
            .value_counts()
            .rename_axis("region")
            .reset_index(name="incidents")
        )
        counts.insert(0, "year", year)
        frames.append(counts)

    if not frames:
        return pd.DataFrame(columns=RATE_COLUMNS)

    rates = pd.concat(frames, ignore_index=True)
    rates["population"] = rates["region"].map(population).astype("float64")
    rates["rate"] = (rates["incidents"] / rates["population"] * rate_per).round(2)

    unknown = sorted(set(rates["region"]) - set(population))
    if population and unknown:
        logger.warning(f"No population configured for regions: {unknown}")

    return rates.sort_values(["year", "region"]).reset_index(drop=True)[RATE_COLUMNS]


def plot_region_rates(rates: pd.DataFrame, path: Path | str, rate_per: int = 1000) -> Path:
    """
    Draw a grouped bar chart of regional rates (or counts, without populations).

    Returns:
        Path of the written image
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    value = "rate" if rates["rate"].notna().any() else "incidents"
    ylabel = f"Part 1 Crimes per {rate_per:,} Residents" if value == "rate" else "Part 1 Crimes"

    plt.figure(figsize=(10, 6))
    sns.barplot(data=rates, x="region", y=value, hue="year", palette="viridis")
    plt.title("Part 1 Crime by Region", fontsize=14, fontweight="bold")
    plt.xlabel("Region")
    plt.ylabel(ylabel)
    plt.xticks(rotation=45, ha="right")
    plt.tight_layout()
    plt.savefig(path, dpi=300)
    plt.close()

    logger.info(f"Region rate plot saved to {path}")
    return path
