"""
Analysis package: maps and charts built from the processed GBPU data.
"""

from .map_gbpu_density import choropleth_map, interactive_map, plot_mortality_trend

__all__ = ["choropleth_map", "interactive_map", "plot_mortality_trend"]
