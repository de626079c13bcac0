#!/usr/bin/env python3
"""
data_utils.py - Shared Data Processing Utilities

Common functions used across all processing stages.
"""

import re
from pathlib import Path
from typing import Dict, Iterable, List, Union

import geopandas as gpd
import pandas as pd
from loguru import logger


def sanitize_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of ``df`` with clean snake_case column names.

    Args:
        df: DataFrame with potentially messy column names

    Returns:
        DataFrame with clean snake_case column names
    """
    logger.debug("🧹 Sanitizing column names...")

    original_cols = df.columns.tolist()

    clean_cols = []
    for col in original_cols:
        clean_col = str(col).strip()

        # Replace spaces and special chars with underscores
        clean_col = re.sub(r"[^\w\s]", "_", clean_col)
        clean_col = re.sub(r"\s+", "_", clean_col)
        clean_col = clean_col.lower()
        clean_col = re.sub(r"_+", "_", clean_col)
        clean_col = clean_col.strip("_")

        if not clean_col or clean_col.isdigit():
            clean_col = f"column_{len(clean_cols)}"

        clean_cols.append(clean_col)

    changed_cols = [(orig, new) for orig, new in zip(original_cols, clean_cols) if orig != new]
    if changed_cols:
        logger.debug(f"  📝 Cleaned {len(changed_cols)} column names:")
        for orig, new in changed_cols[:5]:
            logger.debug(f"    '{orig}' → '{new}'")
        if len(changed_cols) > 5:
            logger.debug(f"    ... and {len(changed_cols) - 5} more")

    result = df.copy()
    result.columns = clean_cols
    return result


def validate_required_columns(df: pd.DataFrame, required: Iterable[str], description: str) -> None:
    """Raise ValueError naming any required columns missing from ``df``."""
    missing_columns = [col for col in required if col not in df.columns]
    if missing_columns:
        logger.error(f"❌ Missing required {description} columns: {missing_columns}")
        logger.info(f"Available columns: {list(df.columns)}")
        raise ValueError(f"Missing required {description} columns: {missing_columns}")


def clean_numeric(series: pd.Series) -> pd.Series:
    """
    Cleans a pandas Series to numeric type, handling commas and percent signs.

    Unparseable values become NaN; they are not filled.
    """
    s = (
        series.astype("string")
        .str.replace(",", "", regex=False)
        .str.replace("%", "", regex=False)
        .str.strip()
    )
    return pd.to_numeric(s, errors="coerce")


def ensure_output_directory(output_path: Union[str, Path]) -> Path:
    """Ensure output directory exists and return Path object.

    Args:
        output_path: Output file path (string or Path)

    Returns:
        Path object with directory created
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    return output_path


def reproject(gdf: gpd.GeoDataFrame, target_crs: str, description: str = "geodata") -> gpd.GeoDataFrame:
    """Return ``gdf`` in ``target_crs``; a missing CRS is assumed to be the target."""
    if gdf.crs is None:
        logger.warning(f"  ⚠️ No CRS found on {description}, assuming {target_crs}")
        return gdf.set_crs(target_crs)
    if gdf.crs != target_crs:
        logger.info(f"  🔄 Reprojecting {description} from {gdf.crs.to_string()} to {target_crs}")
        return gdf.to_crs(target_crs)
    return gdf


def clean_and_validate(
    gdf: gpd.GeoDataFrame, output_crs: str = "EPSG:4326", data_type: str = "geodata"
) -> gpd.GeoDataFrame:
    """Reproject for export and repair invalid geometries.

    Args:
        gdf: GeoDataFrame to clean and validate
        output_crs: CRS of the exported file
        data_type: Type of data for context ("units", "points", etc.)

    Returns:
        Cleaned and validated copy of the GeoDataFrame
    """
    logger.info(f"🧹 Cleaning and validating {data_type} data...")

    gdf = reproject(gdf.copy(), output_crs, data_type)

    invalid_geom = gdf[gdf.geometry.notna() & ~gdf.geometry.is_valid]
    if len(invalid_geom) > 0:
        logger.warning(f"  ⚠️ Found {len(invalid_geom)} invalid geometries, fixing...")
        gdf.geometry = gdf.geometry.buffer(0)
        logger.info("  🔧 Fixed invalid geometries")

    logger.info(f"  ✅ {data_type.title()} data cleaned and validated")
    return gdf


def describe_columns(df: pd.DataFrame) -> Dict[str, List[str]]:
    """Group column names by dtype kind for logging."""
    groups: Dict[str, List[str]] = {}
    for col, dtype in df.dtypes.items():
        groups.setdefault(str(dtype), []).append(str(col))
    return groups
