#!/usr/bin/env python3
"""
Grizzly Bear Population Unit maps

Static and interactive choropleths of population density per GBPU, plus a
simple mortality trend chart.

- ``choropleth_map``: minimalist matplotlib map, units without an estimate
  are hatched rather than coloured as zero.
- ``interactive_map``: folium choropleth in WGS84 with unit tooltips and
  optional classified query points.
- ``plot_mortality_trend``: seaborn line chart of record counts per year.
"""

from pathlib import Path
from typing import Optional, Union

import folium
import geopandas as gpd
import matplotlib as mpl

mpl.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402
from loguru import logger  # noqa: E402

from ops.config_loader import Config  # noqa: E402
from processing.data_utils import ensure_output_directory  # noqa: E402
from processing.spatial_join import CONTAINING_UNIT_FIELD  # noqa: E402


def choropleth_map(
    gdf: gpd.GeoDataFrame,
    column: str,
    fname: Union[str, Path],
    config: Config,
    cmap: Optional[str] = None,
    title: str = "",
    label: str = "",
    note: Optional[str] = None,
    points: Optional[gpd.GeoDataFrame] = None,
) -> Path:
    """
    Generates and saves a minimalist Tufte-style choropleth.

    Args:
        gdf: GeoDataFrame containing the data to plot.
        column: The name of the column in gdf to plot.
        fname: Filename (including path) to save the map.
        config: Configuration instance
        cmap: Colormap to use (uses config default if None).
        title: Title of the map.
        label: Label for the colorbar.
        note: Annotation note to display at the bottom of the map.
        points: Optional points drawn on top (reprojected to the map CRS).

    Returns:
        Path of the saved image
    """
    fname = ensure_output_directory(fname)
    final_cmap = cmap or config.get_visualization_setting("colormap_default")
    map_dpi = config.get_visualization_setting("map_dpi")
    figure_max_width = config.get_visualization_setting("figure_max_width")

    map_bounds = gdf.total_bounds
    data_width = map_bounds[2] - map_bounds[0]
    data_height = map_bounds[3] - map_bounds[1]
    aspect_ratio = data_width / data_height if data_width and data_height else 1.0

    # Set figure size to match data aspect ratio (max from config)
    if aspect_ratio > 1:
        fig_width = min(figure_max_width, 10 * aspect_ratio)
        fig_height = fig_width / aspect_ratio
    else:
        fig_height = min(figure_max_width, 10 / aspect_ratio)
        fig_width = fig_height * aspect_ratio

    fig, ax = plt.subplots(figsize=(fig_width, fig_height), dpi=map_dpi)

    values = pd.to_numeric(gdf[column], errors="coerce")
    data_values = values.dropna()
    if len(data_values) > 0:
        plot_vmin, plot_vmax = float(data_values.min()), float(data_values.max())
    else:
        plot_vmin, plot_vmax = 0.0, 1.0

    plot_gdf = gdf.assign(**{column: values})
    plot_gdf.plot(
        column=column,
        cmap=final_cmap,
        linewidth=0.25,
        edgecolor="#444444",
        ax=ax,
        legend=False,
        vmin=plot_vmin,
        vmax=plot_vmax,
        missing_kwds={
            "color": "#f8f8f8",
            "edgecolor": "#cccccc",
            "hatch": "///",
            "linewidth": 0.25,
        },
    )

    if points is not None and len(points) > 0:
        points.to_crs(gdf.crs).plot(ax=ax, markersize=8, color="#d7301f", zorder=3)

    x_margin = data_width * 0.01
    y_margin = data_height * 0.01
    ax.set_xlim(map_bounds[0] - x_margin, map_bounds[2] + x_margin)
    ax.set_ylim(map_bounds[1] - y_margin, map_bounds[3] + y_margin)
    ax.set_aspect("equal")
    ax.set_axis_off()

    if title:
        fig.suptitle(title, fontsize=16, fontweight="bold", x=0.02, y=0.95, ha="left", va="top")

    if plot_vmax > plot_vmin:
        sm = mpl.cm.ScalarMappable(
            norm=mpl.colors.Normalize(vmin=plot_vmin, vmax=plot_vmax), cmap=final_cmap
        )
        cbar_ax = fig.add_axes((0.92, 0.15, 0.02, 0.7))
        cbar = fig.colorbar(sm, cax=cbar_ax)
        cbar.ax.tick_params(labelsize=10, colors="#333333")
        cbar.outline.set_edgecolor("#666666")  # type: ignore
        cbar.outline.set_linewidth(0.5)  # type: ignore
        if label:
            cbar.set_label(label, rotation=90, labelpad=12, fontsize=11, color="#333333")

    if note:
        fig.text(
            0.02,
            0.02,
            note,
            ha="left",
            va="bottom",
            fontsize=9,
            color="#666666",
            style="italic",
            wrap=True,
        )

    plt.savefig(
        fname,
        bbox_inches="tight",
        dpi=map_dpi,
        facecolor="white",
        edgecolor="none",
        pad_inches=0.02,
    )
    plt.close(fig)
    logger.success(f"  🗺️ Map saved: {fname}")
    return fname


def interactive_map(
    gdf: gpd.GeoDataFrame,
    column: str,
    fname: Union[str, Path],
    name_field: str,
    status_field: Optional[str] = None,
    points: Optional[gpd.GeoDataFrame] = None,
    point_id_field: Optional[str] = None,
    legend_name: str = "Bears per 1000 km²",
) -> Path:
    """Save a folium choropleth of ``column`` keyed on ``name_field``."""
    fname = ensure_output_directory(fname)
    web_gdf = gdf.to_crs("EPSG:4326")

    bounds = web_gdf.total_bounds
    center = [(bounds[1] + bounds[3]) / 2, (bounds[0] + bounds[2]) / 2]
    m = folium.Map(location=center, zoom_start=5, tiles="CartoDB Positron")

    shapes = web_gdf[[name_field, web_gdf.geometry.name]]
    data = web_gdf[[name_field, column]].assign(**{column: pd.to_numeric(web_gdf[column], errors="coerce")})

    folium.Choropleth(
        geo_data=shapes.__geo_interface__,
        name=legend_name,
        data=data,
        columns=[name_field, column],
        key_on=f"feature.properties.{name_field}",
        fill_color="YlOrRd",
        fill_opacity=0.7,
        line_opacity=0.3,
        nan_fill_color="#f8f8f8",
        legend_name=legend_name,
    ).add_to(m)

    tooltip_fields = [name_field] + ([status_field] if status_field else [])
    labels = web_gdf[tooltip_fields + [web_gdf.geometry.name]].copy()
    labels[column] = data[column].map(lambda v: "No estimate" if pd.isna(v) else f"{v:.1f}")
    folium.GeoJson(
        labels.__geo_interface__,
        name="Units",
        style_function=lambda f: {"color": "#444444", "weight": 0.5, "fillOpacity": 0},
        tooltip=folium.GeoJsonTooltip(fields=tooltip_fields + [column]),
    ).add_to(m)

    if points is not None and len(points) > 0:
        web_points = points.to_crs("EPSG:4326")
        layer = folium.FeatureGroup(name="Query points")
        for _, row in web_points.iterrows():
            unit = row.get(CONTAINING_UNIT_FIELD) or "outside all units"
            point_id = row[point_id_field] if point_id_field else ""
            folium.CircleMarker(
                location=[row.geometry.y, row.geometry.x],
                radius=4,
                color="#d7301f",
                fill=True,
                popup=f"{point_id}: {unit}",
            ).add_to(layer)
        layer.add_to(m)

    folium.LayerControl().add_to(m)
    m.save(str(fname))
    logger.success(f"  🌐 Interactive map saved: {fname}")
    return fname


def plot_mortality_trend(
    counts: pd.DataFrame,
    year_column: str,
    fname: Union[str, Path],
    value_column: str = "records",
    title: str = "Grizzly bear mortality records per year",
) -> Path:
    """Line chart of record counts per year, summed across units."""
    fname = ensure_output_directory(fname)
    per_year = counts.groupby(year_column, sort=True)[value_column].sum().reset_index()

    sns.set_theme(style="whitegrid", context="talk", rc={"grid.linestyle": ":"})
    fig, ax = plt.subplots(figsize=(10, 6))
    sns.lineplot(data=per_year, x=year_column, y=value_column, marker="o", color="#D55E00", ax=ax)

    ax.set_title(title)
    ax.set_xlabel("Year")
    ax.set_ylabel("Records")
    sns.despine()
    plt.tight_layout()
    plt.savefig(fname, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.success(f"  📈 Trend chart saved: {fname}")
    return fname
