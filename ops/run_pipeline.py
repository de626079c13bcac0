#!/usr/bin/env python3
"""
Grizzly Bear Population Unit Pipeline with Click CLI

Runs the complete workflow:

    population CSV ──clean──> records ──aggregate──> units ─┐
                                                            ├─ reconcile & join ──> density map
    GBPU polygons ──latest version─────────────────────────┘
    query points ──classify against polygons──> containing unit per point
    mortality CSV ──clean──> records ──count per unit/year──> trend chart

Configuration comes from ops/config.yaml and can be overridden from the
command line without editing the file.

Usage:
    grizzly-pipeline                                  # full pipeline
    grizzly-pipeline download                         # fetch raw inputs
    grizzly-pipeline run --skip-maps                  # tables only
    grizzly-pipeline classify data/raw/sightings.csv  # classify a points file
    grizzly-pipeline --config naming_map.Foo=Bar run  # dot-notation override
    grizzly-pipeline --verbose                        # DEBUG level logging
"""

import os
import sys
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
import geopandas as gpd
import pandas as pd
import yaml
from loguru import logger

from analysis.map_gbpu_density import choropleth_map, interactive_map, plot_mortality_trend
from ops.config_loader import Config
from processing.aggregate_units import aggregate, count_records, density_summary
from processing.clean_records import clean, load_raw_table, placeholder_column_predicate, to_records
from processing.data_utils import clean_and_validate, ensure_output_directory
from processing.errors import PipelineError
from processing.fetch_data import fetch_inputs
from processing.fortify import fortify
from processing.models import CleanedTable, Record
from processing.spatial_join import (
    CONTAINING_UNIT_FIELD,
    classify,
    drop_unclassified,
    latest_version,
    load_polygons,
    load_query_points,
    reconcile_and_join,
)

SCRIPT_DIR = Path(__file__).parent

GROUP_FIELD = "unit_name"
VALUE_FIELDS = {"count": "estimate", "area": "total_area"}


class ConfigContext:
    """Click context object for config management."""

    def __init__(self, base_config_path: Optional[Path] = None):
        self.overrides: Dict[str, Any] = {}
        self.base_config_path = base_config_path or SCRIPT_DIR / "config.yaml"
        self.temp_config_path: Optional[Path] = None
        self.config: Optional[Config] = None

    def add_override(self, key: str, value: Any):
        """Add config override using dot notation."""
        keys = key.split(".")
        current = self.overrides
        for k in keys[:-1]:
            if k not in current:
                current[k] = {}
            current = current[k]
        current[keys[-1]] = value
        logger.debug(f"Added override: {key} = {value}")

    def get_config(self) -> Config:
        """Get config with overrides applied."""
        project_root = self.base_config_path.resolve().parent
        if project_root.name == "ops":
            project_root = project_root.parent

        if not self.overrides:
            return Config(str(self.base_config_path), project_root_override=project_root)

        with open(self.base_config_path) as f:
            config_data = yaml.safe_load(f) or {}

        self._apply_nested_override(config_data, self.overrides)

        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.dump(config_data, f)
            self.temp_config_path = Path(f.name)

        return Config(str(self.temp_config_path), project_root_override=project_root)

    def cleanup(self):
        """Clean up temporary config file."""
        if self.temp_config_path and self.temp_config_path.exists():
            self.temp_config_path.unlink()
            logger.debug(f"Cleaned up temporary config: {self.temp_config_path}")

    def _apply_nested_override(self, base_dict: Dict, override_dict: Dict):
        """Apply nested overrides."""
        for key, value in override_dict.items():
            if isinstance(value, dict) and key in base_dict and isinstance(base_dict[key], dict):
                self._apply_nested_override(base_dict[key], value)
            else:
                base_dict[key] = value


class ConfigOverride(click.ParamType):
    """Custom parameter type for config overrides."""

    name = "config_override"

    def convert(self, value, param, ctx) -> Tuple[str, Any]:
        if "=" not in value:
            self.fail(f"Invalid format: {value}. Use KEY=VALUE", param, ctx)

        key, val = value.split("=", 1)

        # Auto-parse value type
        if val.lower() in ("true", "false"):
            parsed_val: Any = val.lower() == "true"
        elif val.isdigit():
            parsed_val = int(val)
        elif "." in val and val.replace(".", "", 1).isdigit():
            parsed_val = float(val)
        else:
            parsed_val = val

        return key, parsed_val


# === Pipeline stages ===


def record_columns(config: Config) -> Dict[str, str]:
    """Record field -> cleaned table column, from the configured column names."""
    return {
        "unit_id": config.get_column_name("unit_id"),
        "unit_name": config.get_column_name("group_key"),
        "sub_unit": config.get_column_name("sub_unit"),
        "year": config.get_column_name("year"),
        "age_class": config.get_column_name("range"),
        "estimate": config.get_column_name("estimate"),
        "total_area": config.get_column_name("area"),
    }


def clean_population(config: Config) -> CleanedTable:
    """Clean the population estimates table, detaching its notes."""
    logger.info("📊 Cleaning population estimates...")
    raw = load_raw_table(config.get_input_path("population_csv"))
    return clean(
        raw,
        placeholder_column_predicate(config.get("cleaning.placeholder_columns")),
        None,
        int(config.get("cleaning.metadata_rows")),
        annotation_column=config.get_column_name("annotation"),
        numeric_columns=[config.get_column_name("estimate"), config.get_column_name("area")],
    )


def clean_mortality(config: Config) -> CleanedTable:
    """Clean the mortality history table, splitting its age classes."""
    logger.info("🐻 Cleaning mortality records...")
    raw = load_raw_table(config.get_input_path("mortality_csv"))
    return clean(
        raw,
        placeholder_column_predicate(config.get("cleaning.placeholder_columns")),
        config.get_column_name("range"),
        0,
        numeric_columns=[config.get_column_name("year")],
    )


def load_unit_polygons(config: Config) -> gpd.GeoDataFrame:
    return load_polygons(
        config.get_input_path("gbpu_polygons"), config.get_system_setting("analysis_crs")
    )


def join_population(config: Config, units: pd.DataFrame, polygons: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Reconcile unit names and merge the statistics onto the polygons."""
    return reconcile_and_join(
        units,
        polygons,
        config.get_naming_map(),
        group_key=GROUP_FIELD,
        name_field=config.get_polygon_field("name_field"),
        version_field=config.get_polygon_field("version_field"),
        status_field=config.get_polygon_field("status_field"),
        ignore_polygon_names=config.get_ignore_polygon_names(),
    )


def write_population_outputs(
    config: Config, table: CleanedTable, units: pd.DataFrame, merged: gpd.GeoDataFrame
) -> Dict[str, Path]:
    """Write the aggregate table, annotation, merged GeoJSON and fortified vertices."""
    processed_dir = config.get_output_dir("processed")
    outputs: Dict[str, Path] = {}

    outputs["units_csv"] = processed_dir / "gbpu_population_units.csv"
    units.to_csv(outputs["units_csv"], index=False)

    outputs["annotation_txt"] = processed_dir / "gbpu_population_annotation.txt"
    outputs["annotation_txt"].write_text(table.annotation + "\n", encoding="utf-8")

    export_gdf = clean_and_validate(merged, config.get_system_setting("output_crs"), "unit")
    outputs["units_geojson"] = processed_dir / "gbpu_density.geojson"
    if outputs["units_geojson"].exists():
        outputs["units_geojson"].unlink()
    export_gdf.to_file(outputs["units_geojson"], driver="GeoJSON")

    outputs["fortified_csv"] = processed_dir / "gbpu_fortified.csv"
    fortify(export_gdf, config.get_polygon_field("name_field")).to_csv(outputs["fortified_csv"], index=False)

    for key, path in outputs.items():
        logger.info(f"  💾 {key}: {path}")
    return outputs


def make_density_maps(
    config: Config,
    merged: gpd.GeoDataFrame,
    annotation: str,
    points: Optional[gpd.GeoDataFrame] = None,
) -> Dict[str, Path]:
    """Static and interactive density choropleths."""
    maps_dir = config.get_output_dir("maps")
    name_field = config.get_polygon_field("name_field")
    return {
        "density_png": choropleth_map(
            merged,
            "density",
            maps_dir / "gbpu_density.png",
            config,
            title="Grizzly bear density by population unit",
            label="Bears per 1000 km²",
            note=annotation or None,
            points=points,
        ),
        "density_html": interactive_map(
            merged,
            "density",
            maps_dir / "gbpu_density.html",
            name_field,
            status_field=config.get_polygon_field("status_field"),
            points=points,
            point_id_field=config.get("points.id_column"),
        ),
    }


def classify_points_file(
    config: Config,
    polygons: gpd.GeoDataFrame,
    points_path: Path,
    output_path: Optional[Path] = None,
    inside_only: bool = False,
) -> Tuple[gpd.GeoDataFrame, Path]:
    """Classify a CSV of query points and write the result as CSV."""
    id_column = config.get("points.id_column")
    points = load_query_points(
        points_path,
        x_column=config.get("points.x_column"),
        y_column=config.get("points.y_column"),
        id_column=id_column,
        crs=config.get("points.crs"),
    )
    classified = classify(points, polygons, config.get_polygon_field("name_field"))
    if inside_only:
        classified = drop_unclassified(classified)

    output_path = ensure_output_directory(
        output_path or config.get_output_dir("processed") / "query_points_classified.csv"
    )
    pd.DataFrame(classified.drop(columns=[classified.geometry.name])).to_csv(output_path, index=False)
    logger.info(f"  💾 classified points: {output_path}")
    return classified, output_path


def summarize_mortality(config: Config, make_chart: bool = True) -> Dict[str, Path]:
    """Mortality record counts per unit and year, with an optional trend chart."""
    table = clean_mortality(config)
    records: List[Record] = to_records(table, record_columns(config))
    counts = count_records(records, [GROUP_FIELD, "year"])

    outputs: Dict[str, Path] = {}
    outputs["mortality_csv"] = config.get_output_dir("processed") / "mortality_by_unit_year.csv"
    counts.to_csv(outputs["mortality_csv"], index=False)
    logger.info(f"  💾 mortality_csv: {outputs['mortality_csv']}")

    if make_chart and len(counts):
        outputs["mortality_png"] = plot_mortality_trend(
            counts, "year", config.get_output_dir("maps") / "mortality_trend.png"
        )
    return outputs


def run_full_pipeline(
    config: Config,
    *,
    make_maps: bool = True,
    include_points: bool = True,
    include_mortality: bool = True,
) -> Dict[str, Path]:
    """Clean, aggregate, join, classify and map. Returns every output path."""
    table = clean_population(config)
    records = to_records(table, record_columns(config))
    units = aggregate(records, GROUP_FIELD, VALUE_FIELDS)

    summary = density_summary(units)
    logger.info(
        f"  📈 {summary['units']} units, {summary['total_count']:,.0f} bears, "
        f"mean density {summary['mean_density']:.2f} per 1000 km²"
    )

    polygons = load_unit_polygons(config)
    merged = join_population(config, units, polygons)
    outputs = write_population_outputs(config, table, units, merged)

    classified = None
    if include_points and config.has_input("query_points_csv"):
        points_path = config.get_input_path("query_points_csv")
        if points_path.exists():
            classified, outputs["points_csv"] = classify_points_file(config, merged, points_path)
        else:
            logger.info(f"⏭️ Skipping point classification ({points_path.name} not found)")

    if make_maps:
        outputs.update(make_density_maps(config, merged, table.annotation, classified))

    if include_mortality and config.has_input("mortality_csv"):
        mortality_path = config.get_input_path("mortality_csv")
        if mortality_path.exists():
            outputs.update(summarize_mortality(config, make_chart=make_maps))
        else:
            logger.info(f"⏭️ Skipping mortality summary ({mortality_path.name} not found)")

    return outputs


# === CLI ===


@click.group(invoke_without_command=True)
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Base config.yaml (default: ops/config.yaml)",
)
@click.option(
    "--config",
    "config_overrides",
    multiple=True,
    type=ConfigOverride(),
    help="Set config values using dot notation (e.g., cleaning.metadata_rows=3)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable DEBUG level logging")
@click.option(
    "--trace", is_flag=True, help="Enable TRACE level logging for deep debugging (maximum detail)"
)
@click.option("--log-file", type=str, help="Also log to specified file")
@click.pass_context
def cli(ctx, config_file, config_overrides, verbose, trace, log_file):
    """
    Grizzly Bear Population Unit Pipeline

    Clean population and mortality tables, aggregate by GBPU, join onto the
    GBPU polygons, classify query points and draw density maps.
    """
    setup_logging(verbose=verbose, enable_trace=trace)

    if log_file:
        log_level = "TRACE" if trace else ("DEBUG" if verbose else "INFO")
        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )
        logger.info(f"📄 Also logging to file: {log_file}")

    config_ctx = ConfigContext(config_file)
    ctx.obj = config_ctx
    ctx.call_on_close(config_ctx.cleanup)

    if not config_ctx.base_config_path.exists():
        logger.critical(f"Base configuration file not found: {config_ctx.base_config_path}")
        ctx.exit(1)

    for key, value in config_overrides:
        config_ctx.add_override(key, value)

    try:
        config = config_ctx.get_config()
    except (OSError, ValueError, yaml.YAMLError) as e:
        handle_critical_error(e, "loading configuration")
        ctx.exit(1)

    logger.info(f"📋 Project: {config.get('project_name')}")
    logger.info(f"📋 Description: {config.get('description')}")
    config.print_config_summary()
    config_ctx.config = config

    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.option("--skip-maps", is_flag=True, help="Write tables only, no map images")
@click.option("--skip-points", is_flag=True, help="Skip query point classification")
@click.option("--skip-mortality", is_flag=True, help="Skip the mortality summary")
@click.pass_context
def run(ctx, skip_maps=False, skip_points=False, skip_mortality=False):
    """Run the full pipeline (default command)."""
    config = ctx.obj.config
    start = time.time()

    logger.info("🐻 Grizzly Bear Population Unit Pipeline")
    logger.info("=" * 45)

    try:
        outputs = run_full_pipeline(
            config,
            make_maps=not skip_maps,
            include_points=not skip_points,
            include_mortality=not skip_mortality,
        )
    except (PipelineError, FileNotFoundError, ValueError) as e:
        handle_critical_error(e, "running pipeline")
        ctx.exit(1)

    logger.info("=" * 60)
    logger.success("🎉 PIPELINE COMPLETE")
    logger.info(f"⏱️ Total time: {time.time() - start:.1f}s")
    logger.info(f"📁 {len(outputs)} outputs written")


@cli.command()
@click.option("--overwrite", is_flag=True, help="Download again even if files exist")
@click.pass_context
def download(ctx, overwrite):
    """Download the configured raw inputs."""
    config = ctx.obj.config
    try:
        fetched = fetch_inputs(config, overwrite=overwrite)
    except (ValueError, FileNotFoundError, OSError) as e:
        handle_critical_error(e, "downloading inputs")
        ctx.exit(1)
    logger.success(f"✅ {len(fetched)} inputs ready")


@cli.command("classify")
@click.argument("points_csv", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), help="Output CSV path")
@click.option("--inside-only", is_flag=True, help="Drop points outside every unit")
@click.pass_context
def classify_command(ctx, points_csv, output, inside_only):
    """Attach the containing GBPU name to each point in POINTS_CSV."""
    config = ctx.obj.config
    try:
        polygons = latest_version(
            load_unit_polygons(config),
            config.get_polygon_field("version_field"),
            config.get_polygon_field("name_field"),
        )
        classified, output_path = classify_points_file(config, polygons, points_csv, output, inside_only)
    except (PipelineError, FileNotFoundError, ValueError) as e:
        handle_critical_error(e, "classifying points")
        ctx.exit(1)

    inside = int(classified[CONTAINING_UNIT_FIELD].notna().sum())
    logger.success(f"✅ {inside}/{len(classified)} points inside a unit → {output_path}")


def setup_logging(verbose: bool = False, enable_trace: bool = False) -> None:
    """
    Configure loguru logging with appropriate levels.

    Args:
        verbose: If True, set log level to DEBUG
        enable_trace: If True, enable TRACE level logging for deep debugging
    """
    logger.remove()

    if enable_trace:
        log_level = "TRACE"
    elif verbose:
        log_level = "DEBUG"
    else:
        log_level = "INFO"

    if enable_trace or verbose:
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    else:
        log_format = (
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
        )

    logger.add(
        sys.stderr,
        format=log_format,
        level=log_level,
        colorize=True,
        backtrace=enable_trace,
        diagnose=enable_trace,
    )

    os.environ["LOGURU_LEVEL"] = log_level

    if verbose:
        logger.debug("🔧 Verbose logging enabled (DEBUG level)")
    if enable_trace:
        logger.trace("🔍 Trace logging enabled - maximum detail mode")


def handle_critical_error(error: Exception, context: str = "") -> None:
    """
    Log a fatal error with its context; full traceback only in TRACE mode.

    Args:
        error: The exception that occurred
        context: Additional context about where the error occurred
    """
    if os.environ.get("LOGURU_LEVEL", "INFO") == "TRACE":
        logger.opt(exception=error).trace(f"💥 Full context for failure while {context}")

    logger.critical(f"💥 CRITICAL ERROR while {context}")
    logger.critical(f"Exception: {type(error).__name__}: {error}")


if __name__ == "__main__":
    cli()
