from pathlib import Path

import pytest
import yaml

from ops.config_loader import Config


def test_values_and_defaults(project):
    config = Config(project)

    assert config.project_root == project.parent.resolve()
    assert config.get("project_name") == "Test GBPU"
    assert config.get_column_name("year") == "hunt_year"
    assert config.get_column_name("group_key") == "gbpu"
    assert config.get_polygon_field("name_field") == "GBPU_NAME"
    assert config.get_system_setting("analysis_crs") == "EPSG:3005"
    assert config.get_visualization_setting("map_dpi") == 30
    assert config.get("cleaning.placeholder_columns") == [r"^Unnamed: \d+$", r"^X\d*$"]
    assert config.get("does.not.exist", "fallback") == "fallback"


def test_naming_map_and_inputs(project):
    config = Config(project)

    assert config.get_naming_map() == {"Central Monashees": "Central Monashee"}
    assert config.get_input_path("population_csv") == config.project_root / "data/raw/population.csv"
    assert config.has_input("query_points_csv")
    assert not config.has_input("unknown_csv")
    assert all(config.validate_input_files().values())

    with pytest.raises(ValueError, match="unknown_csv"):
        config.get_input_path("unknown_csv")


def test_output_dirs_are_created_on_request(project):
    config = Config(project)
    assert not config.maps_dir.exists()

    maps_dir = config.get_output_dir("maps")

    assert maps_dir == config.project_root / "maps"
    assert maps_dir.is_dir()
    with pytest.raises(ValueError):
        config.get_output_dir("scratch")


def test_naming_map_must_be_a_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"naming_map": ["Alpha", "Beta"]}))

    with pytest.raises(ValueError, match="naming_map"):
        Config(path).get_naming_map()


def test_project_root_is_parent_of_ops_dir(tmp_path):
    ops_dir = tmp_path / "ops"
    ops_dir.mkdir()
    (ops_dir / "config.yaml").write_text("project_name: nested\n")

    config = Config(ops_dir / "config.yaml")

    assert config.project_root == tmp_path.resolve()
    assert config.processed_dir == tmp_path.resolve() / "data" / "processed"


def test_config_path_from_environment(project, monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path / "data")
    monkeypatch.setenv("PIPELINE_CONFIG_PATH", str(project))

    assert Config().get("project_name") == "Test GBPU"


def test_missing_config_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PIPELINE_CONFIG_PATH", raising=False)

    with pytest.raises(FileNotFoundError):
        Config()


def test_shipped_config_is_complete():
    shipped = Path(__file__).resolve().parents[1] / "ops" / "config.yaml"
    config = Config(shipped)

    assert config.get_polygon_field("version_field") == "GBPU_VERS"
    assert config.get_naming_map()
    for key in ("population_csv", "mortality_csv", "gbpu_polygons"):
        assert config.has_input(key)


def test_ignore_polygon_names_accepts_one_name_or_a_list(tmp_path):
    path = tmp_path / "config.yaml"

    path.write_text(yaml.dump({"ignore_polygon_names": "Delta"}))
    assert Config(path).get_ignore_polygon_names() == ["Delta"]

    path.write_text(yaml.dump({"ignore_polygon_names": ["Delta", "North Cascades"]}))
    assert Config(path).get_ignore_polygon_names() == ["Delta", "North Cascades"]

    path.write_text(yaml.dump({"ignore_polygon_names": None}))
    assert Config(path).get_ignore_polygon_names() == []

    path.write_text(yaml.dump({"ignore_polygon_names": {"Delta": True}}))
    with pytest.raises(ValueError, match="ignore_polygon_names"):
        Config(path).get_ignore_polygon_names()
