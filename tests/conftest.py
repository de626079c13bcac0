from pathlib import Path

import geopandas as gpd
import pandas as pd
import pytest
import yaml
from shapely.geometry import Point, box

ANALYSIS_CRS = "EPSG:3005"


@pytest.fixture
def raw_population() -> pd.DataFrame:
    """Population estimates as read from CSV: auto-index column, notes in the first rows."""
    return pd.DataFrame(
        {
            "Unnamed: 0": [1, 2, 3, 4, 5],
            "GBPU": ["Alpha", "Alpha", "Beta", "Central Monashees", "Gamma"],
            "MU": ["3-1", "3-2", "4-1", "4-2", "5-1"],
            "Estimate": ["10", "5", None, "30", "4"],
            "Total_Area": ["1,000", "500", "2000", "3000", "0"],
            "Notes": ["Estimates from 2012", "Areas in km2", None, "Source: BC MFLNRO", None],
        }
    )


@pytest.fixture
def raw_mortality() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "X1": [1, 2, 3, 4, 5, 6],
            "GBPU": ["Alpha", "Alpha", "Beta", "Beta", "Gamma", None],
            "HUNT_YEAR": [2001, 2001, 2002, 2003, 2003, 2003],
            "AGE_CLASS": ["10-14", "15+", "'2-4", "Unknown", None, "5-9"],
            "KILL_CODE": ["Hunter", "Hunter", "Animal control", "Road kill", "Hunter", "Hunter"],
        }
    )


@pytest.fixture
def polygons() -> gpd.GeoDataFrame:
    """Latest (2012) GBPU boundaries plus one superseded 2008 revision."""
    return gpd.GeoDataFrame(
        {
            "GBPU_NAME": ["Alpha", "Beta", "Central Monashee", "Gamma", "Delta", "Alpha"],
            "GBPU_VERS": [2012, 2012, 2012, 2012, 2012, 2008],
            "GBPU_STATUS": ["Viable", "Threatened", "Viable", "Viable", "Extirpated", "Viable"],
        },
        geometry=[
            box(0, 0, 10, 10),
            box(10, 0, 20, 10),
            box(0, 10, 10, 20),
            box(10, 10, 20, 20),
            box(20, 0, 30, 10),
            box(0, 0, 5, 5),
        ],
        crs=ANALYSIS_CRS,
    )


@pytest.fixture
def query_points() -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"id": ["p1", "p2", "p3", "p4"]},
        geometry=[Point(5, 5), Point(15, 15), Point(25, 5), Point(100, 100)],
        crs=ANALYSIS_CRS,
    )


@pytest.fixture
def project(tmp_path: Path, raw_population, raw_mortality, polygons, query_points) -> Path:
    """A project directory with raw inputs and a config.yaml; returns the config path."""
    raw_dir = tmp_path / "data" / "raw"
    raw_dir.mkdir(parents=True)

    raw_population.to_csv(raw_dir / "population.csv", index=False)
    raw_mortality.to_csv(raw_dir / "mortality.csv", index=False)
    polygons.to_file(raw_dir / "gbpu.gpkg", driver="GPKG")

    wgs84 = query_points.to_crs("EPSG:4326")
    pd.DataFrame(
        {"id": wgs84["id"], "longitude": wgs84.geometry.x, "latitude": wgs84.geometry.y}
    ).to_csv(raw_dir / "points.csv", index=False)

    config = {
        "project_name": "Test GBPU",
        "description": "Synthetic units",
        "input_files": {
            "population_csv": "data/raw/population.csv",
            "mortality_csv": "data/raw/mortality.csv",
            "gbpu_polygons": "data/raw/gbpu.gpkg",
            "query_points_csv": "data/raw/points.csv",
        },
        "columns": {"year": "hunt_year"},
        "cleaning": {"metadata_rows": 4},
        "naming_map": {"Central Monashees": "Central Monashee"},
        "ignore_polygon_names": ["Delta"],
        "visualization": {"map_dpi": 30},
    }
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump(config))
    return config_path
