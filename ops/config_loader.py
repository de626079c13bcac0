"""
Configuration Loader for the Grizzly Bear Population Unit Pipeline

This module provides a centralized way to load and access configuration
settings from the config.yaml file.

Usage:
    from ops.config_loader import Config

    config = Config()
    population_csv = config.get_input_path('population_csv')
    maps_dir = config.get_output_dir('maps')
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger


class Config:
    """Configuration manager for the GBPU pipeline."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "columns": {
            "group_key": "gbpu",
            "unit_id": "gbpu_id",
            "sub_unit": "mu",
            "year": "year",
            "range": "age_class",
            "annotation": "notes",
            "estimate": "estimate",
            "area": "total_area",
        },
        "polygons": {
            "name_field": "GBPU_NAME",
            "version_field": "GBPU_VERS",
            "status_field": "GBPU_STATUS",
        },
        "points": {
            "id_column": "id",
            "x_column": "longitude",
            "y_column": "latitude",
            "crs": "EPSG:4326",
        },
        "cleaning": {
            "placeholder_columns": [r"^Unnamed: \d+$", r"^X\d*$"],
            "metadata_rows": 4,
        },
        "visualization": {
            "map_dpi": 300,
            "figure_max_width": 14,
            "colormap_default": "viridis",
        },
        "system": {
            "analysis_crs": "EPSG:3005",
            "output_crs": "EPSG:4326",
            "download_timeout": 60,
        },
    }

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        project_root_override: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable PIPELINE_CONFIG_PATH
                        2. config.yaml in current directory
                        3. ops/config.yaml in current directory
            project_root_override: Override project root detection (useful for temp configs)
        """
        if config_file is None:
            env_config = os.environ.get("PIPELINE_CONFIG_PATH")
            if env_config and Path(env_config).exists():
                config_file = env_config
                logger.debug(f"Using config from environment: {config_file}")
            elif Path("config.yaml").exists():
                config_file = "config.yaml"
            elif Path("ops/config.yaml").exists():
                config_file = "ops/config.yaml"
                logger.debug("Using ops/config.yaml from project root")
            else:
                raise FileNotFoundError(
                    "No config.yaml found. Check current directory or set PIPELINE_CONFIG_PATH"
                )

        self.config_path = Path(config_file).resolve()

        if project_root_override:
            self.project_root = Path(project_root_override).resolve()
            logger.debug(f"Using project root override: {self.project_root}")
        elif os.environ.get("PROJECT_ROOT_OVERRIDE"):
            self.project_root = Path(os.environ["PROJECT_ROOT_OVERRIDE"]).resolve()
            logger.debug(f"Using project root from environment: {self.project_root}")
        else:
            self.project_root = self._find_project_root()

        logger.debug(f"Loading config from: {self.config_path}")
        logger.debug(f"Project root: {self.project_root}")

        with open(self.config_path, "r") as f:
            self.data = yaml.safe_load(f) or {}

        self._setup_paths()

    def _setup_paths(self) -> None:
        """Setup base directory paths relative to project root."""
        dirs = self.data.get("directories", {})

        self.data_dir = self.project_root / dirs.get("data", "data")
        self.raw_dir = self.project_root / dirs.get("raw", "data/raw")
        self.processed_dir = self.project_root / dirs.get("processed", "data/processed")
        self.maps_dir = self.project_root / dirs.get("maps", "maps")

    def _find_project_root(self) -> Path:
        """Simple project root detection."""
        # If config is in ops/, project root is parent
        if self.config_path.parent.name == "ops":
            return self.config_path.parent.parent
        return self.config_path.parent

    def get_input_path(self, filename_key: str) -> Path:
        """
        Get full path to an input file. The path is taken directly from config.yaml
        and joined with the project root.

        Args:
            filename_key: Key for the filename in input_files

        Returns:
            Full absolute path to the input file
        """
        relative_path_str = self.data.get("input_files", {}).get(filename_key)
        if not relative_path_str:
            raise ValueError(
                f"Input filename key '{filename_key}' not found in config: input_files"
            )
        return self.project_root / relative_path_str

    def has_input(self, filename_key: str) -> bool:
        """True if an input file is configured (not necessarily present on disk)."""
        return bool(self.data.get("input_files", {}).get(filename_key))

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation with intelligent defaults.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key_path.split(".")

        value: Any = self.data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                value = None
                break

        if value is None:
            value = self.DEFAULTS
            for key in keys:
                if isinstance(value, dict) and key in value:
                    value = value[key]
                else:
                    return default

        return value

    def get_output_dir(self, dir_key: str) -> Path:
        """
        Get full path to an output directory, creating it if needed.

        Args:
            dir_key: Directory key ('data', 'raw', 'processed', 'maps')

        Returns:
            Full path to the directory
        """
        if dir_key == "data":
            directory = self.data_dir
        elif dir_key == "raw":
            directory = self.raw_dir
        elif dir_key == "processed":
            directory = self.processed_dir
        elif dir_key == "maps":
            directory = self.maps_dir
        else:
            raise ValueError(f"Unknown directory key: {dir_key}")

        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def get_column_name(self, column_key: str) -> str:
        """Get column name with intelligent defaults."""
        result = self.get(f"columns.{column_key}")
        if isinstance(result, str):
            return result
        raise ValueError(f"Column name not found or not a string: {column_key}")

    def get_polygon_field(self, field_key: str) -> str:
        """Get a polygon attribute field name (name, version or status)."""
        result = self.get(f"polygons.{field_key}")
        if isinstance(result, str):
            return result
        raise ValueError(f"Polygon field not found or not a string: {field_key}")

    def get_naming_map(self) -> Dict[str, str]:
        """Get the aggregate key -> polygon name corrections."""
        mapping = self.get("naming_map", {}) or {}
        if not isinstance(mapping, dict):
            raise ValueError("naming_map must be a mapping of aggregate key -> polygon name")
        return {str(k): str(v) for k, v in mapping.items()}

    def get_ignore_polygon_names(self) -> List[str]:
        """Get the polygon names known to have no records; a single name is allowed."""
        names = self.get("ignore_polygon_names", []) or []
        if isinstance(names, str):
            names = [names]
        if not isinstance(names, (list, tuple)):
            raise ValueError("ignore_polygon_names must be a polygon name or a list of names")
        return [str(name) for name in names]

    def get_visualization_setting(self, setting_key: str) -> Any:
        """Get visualization setting with intelligent defaults."""
        return self.get(f"visualization.{setting_key}")

    def get_system_setting(self, setting_key: str) -> Any:
        """Get system setting with intelligent defaults."""
        return self.get(f"system.{setting_key}")

    def validate_input_files(self) -> Dict[str, bool]:
        """Validate that input files exist."""
        results: Dict[str, bool] = {}
        for filename_key in self.data.get("input_files", {}):
            results[filename_key] = self.get_input_path(filename_key).exists()
        return results

    def print_config_summary(self) -> None:
        """Log a summary of the current configuration."""
        logger.debug("📋 Configuration Summary")
        logger.debug("=" * 50)
        logger.debug(f"Project: {self.get('project_name', 'Unknown')}")
        logger.debug(f"Description: {self.get('description', 'No description')}")
        logger.debug(f"Config file: {self.config_path}")

        logger.debug("📊 Input Files:")
        for file_key, exists in self.validate_input_files().items():
            status = "✅" if exists else "❌"
            logger.debug(f"  {status} {file_key}")

