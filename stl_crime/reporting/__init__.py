"""
STL Crime - Reporting

Components:
    - region_rates: Per-region incident counts and rates for each year
    - plot_region_rates: Grouped bar chart comparing regions across years
"""

from stl_crime.reporting.region_rates import plot_region_rates, region_rates

__all__ = ["region_rates", "plot_region_rates"]
