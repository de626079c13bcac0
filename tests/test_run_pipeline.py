import geopandas as gpd
import pandas as pd
import pytest
import yaml
from click.testing import CliRunner
from loguru import logger

from ops.config_loader import Config
from ops.run_pipeline import ConfigContext, ConfigOverride, cli, run_full_pipeline


@pytest.fixture(autouse=True)
def reset_logging(monkeypatch):
    """The CLI reconfigures loguru and LOGURU_LEVEL; undo both after each test."""
    monkeypatch.setenv("LOGURU_LEVEL", "INFO")
    yield
    logger.remove()


def test_override_values_are_typed():
    override = ConfigOverride()

    assert override.convert("visualization.map_dpi=72", None, None) == ("visualization.map_dpi", 72)
    assert override.convert("a.b=0.5", None, None) == ("a.b", 0.5)
    assert override.convert("a.b=TRUE", None, None) == ("a.b", True)
    assert override.convert("naming_map.Foo=Foo Bar", None, None) == ("naming_map.Foo", "Foo Bar")


def test_nested_overrides_keep_sibling_keys(project):
    ctx = ConfigContext(project)
    ctx.add_override("naming_map.Alpha North", "Alpha")
    ctx.add_override("visualization.map_dpi", 10)
    try:
        config = ctx.get_config()
        assert config.get_naming_map() == {"Central Monashees": "Central Monashee", "Alpha North": "Alpha"}
        assert config.get_visualization_setting("map_dpi") == 10
        assert config.project_root == project.parent.resolve()
    finally:
        ctx.cleanup()
    assert not ctx.temp_config_path.exists()


def test_full_pipeline_outputs(project):
    config = Config(project)

    outputs = run_full_pipeline(config, make_maps=False)

    units = pd.read_csv(outputs["units_csv"]).set_index("unit_name")
    assert units.loc["Alpha", "density"] == pytest.approx(10.0)
    assert bool(units.loc["Gamma", "density_undefined"])

    annotation = outputs["annotation_txt"].read_text().strip()
    assert annotation == "Estimates from 2012; Areas in km2; Source: BC MFLNRO"

    merged = gpd.read_file(outputs["units_geojson"])
    assert merged.crs.to_epsg() == 4326
    assert sorted(merged["GBPU_NAME"]) == ["Alpha", "Beta", "Central Monashee", "Delta", "Gamma"]

    fortified = pd.read_csv(outputs["fortified_csv"])
    assert list(fortified.columns) == ["long", "lat", "order", "hole", "piece", "id", "group"]
    assert set(fortified["id"]) == set(merged["GBPU_NAME"])

    points = pd.read_csv(outputs["points_csv"])
    assert points["containing_unit_name"].fillna("").tolist() == ["Alpha", "Gamma", "Delta", ""]

    mortality = pd.read_csv(outputs["mortality_csv"])
    assert mortality.to_dict("records") == [
        {"unit_name": "Alpha", "year": 2001, "records": 2},
        {"unit_name": "Beta", "year": 2002, "records": 1},
        {"unit_name": "Beta", "year": 2003, "records": 1},
        {"unit_name": "Gamma", "year": 2003, "records": 1},
    ]
    assert "density_png" not in outputs


def test_cli_run_draws_maps(project):
    result = CliRunner().invoke(cli, ["--config-file", str(project), "run", "--skip-mortality"])

    assert result.exit_code == 0, result.output
    maps_dir = project.parent / "maps"
    assert (maps_dir / "gbpu_density.png").exists()
    assert (maps_dir / "gbpu_density.html").exists()
    assert not (maps_dir / "mortality_trend.png").exists()


def test_cli_fails_on_unresolved_names(project):
    result = CliRunner().invoke(
        cli,
        ["--config-file", str(project), "--config", "ignore_polygon_names=", "run", "--skip-maps"],
    )

    assert result.exit_code == 1
    assert not (project.parent / "data" / "processed" / "gbpu_density.geojson").exists()


def test_cli_classify_inside_only(project, tmp_path):
    output = tmp_path / "out" / "classified.csv"

    result = CliRunner().invoke(
        cli,
        [
            "--config-file",
            str(project),
            "classify",
            str(project.parent / "data" / "raw" / "points.csv"),
            "--output",
            str(output),
            "--inside-only",
        ],
    )

    assert result.exit_code == 0, result.output
    classified = pd.read_csv(output)
    assert classified["id"].tolist() == ["p1", "p2", "p3"]
    assert classified["containing_unit_name"].tolist() == ["Alpha", "Gamma", "Delta"]


def test_cli_classify_with_ambiguous_versions(project):
    raw_dir = project.parent / "data" / "raw"
    polygons = gpd.read_file(raw_dir / "gbpu.gpkg")
    polygons.loc[polygons["GBPU_VERS"] == 2008, "GBPU_VERS"] = 2012
    polygons.to_file(raw_dir / "gbpu.gpkg", driver="GPKG")

    result = CliRunner().invoke(
        cli, ["--config-file", str(project), "classify", str(raw_dir / "points.csv")]
    )

    assert result.exit_code == 1


def test_cli_download_without_urls_fails(project):
    config = yaml.safe_load(project.read_text())
    config["downloads"] = {"population_csv": {"url": None}}
    config["input_files"]["population_csv"] = "data/raw/not_yet_downloaded.csv"
    project.write_text(yaml.dump(config))

    result = CliRunner().invoke(cli, ["--config-file", str(project), "download"])

    assert result.exit_code == 1


def test_cli_single_ignored_polygon_override(project):
    config = yaml.safe_load(project.read_text())
    del config["ignore_polygon_names"]
    project.write_text(yaml.dump(config))

    result = CliRunner().invoke(
        cli,
        [
            "--config-file",
            str(project),
            "--config",
            "ignore_polygon_names=Delta",
            "run",
            "--skip-maps",
            "--skip-points",
            "--skip-mortality",
        ],
    )

    assert result.exit_code == 0, result.output
    merged = gpd.read_file(project.parent / "data" / "processed" / "gbpu_density.geojson")
    assert "Delta" in set(merged["GBPU_NAME"])
