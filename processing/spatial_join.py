#!/usr/bin/env python3
"""
spatial_join.py - Spatial Joiner

Attaches aggregate statistics to GBPU polygons and classifies query points by
the polygon that contains them.

Key Functionality:
1. Polygon loading:
   - Reads any vector format geopandas supports and reprojects to the
     analysis CRS (BC Albers by default).
   - Keeps only the latest boundary version; several rows for one name in
     that version, or unparseable version tags, are fatal.

2. Name reconciliation:
   - Symmetric difference between aggregate keys and polygon names.
   - An explicit naming map corrects the aggregate side; anything left over
     is fatal and reported by name.

3. Merge:
   - Left join from polygons, so units without estimates keep empty values.

4. Point-in-polygon classification:
   - Left spatial join using the ``within`` predicate. Points outside every
     polygon are kept with an empty unit name. A point lying exactly on a
     boundary is not ``within`` either neighbour under GEOS semantics, so it
     is also left unclassified.
"""

from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import geopandas as gpd
import pandas as pd
from loguru import logger

from .aggregate_units import combine_units, units_frame
from .data_utils import clean_numeric, reproject, validate_required_columns
from .errors import AmbiguousVersionError, UnresolvedNamesError
from .models import AggregateUnit, QueryPoint

CONTAINING_UNIT_FIELD = "containing_unit_name"


def load_polygons(path: Union[str, Path], target_crs: str) -> gpd.GeoDataFrame:
    """Load a polygon layer and reproject it to ``target_crs``."""
    path = Path(path)
    logger.info(f"🗺️ Loading polygons from {path}")

    if not path.exists():
        logger.critical(f"❌ Polygon file not found: {path}")
        raise FileNotFoundError(f"Polygon file not found: {path}")

    gdf = gpd.read_file(path)
    logger.success(f"  ✅ Loaded {len(gdf):,} polygons")

    gdf = reproject(gdf, target_crs, "polygons")

    empty = gdf.geometry.isna() | gdf.geometry.is_empty
    if empty.any():
        logger.warning(f"  ⚠️ Removed {int(empty.sum())} features with no geometry")
        gdf = gdf[~empty].copy()

    return gdf


def latest_version(polygons: gpd.GeoDataFrame, version_field: str, name_field: str) -> gpd.GeoDataFrame:
    """
    Keep only polygons carrying the maximum version tag.

    Raises:
        AmbiguousVersionError: version tags that are missing or cannot be ranked, or a name
            appearing more than once in the latest version
    """
    validate_required_columns(polygons, [version_field, name_field], "polygon")
    if polygons.empty:
        return polygons.copy()

    versions = clean_numeric(polygons[version_field])
    unranked = polygons.loc[versions.isna(), name_field]
    if len(unranked):
        logger.critical(f"❌ Missing or unparseable version tags in '{version_field}': {unranked.tolist()}")
        raise AmbiguousVersionError(
            f"Cannot rank polygon versions in '{version_field}'",
            names=unranked.astype(str).unique().tolist(),
        )

    latest = versions.max()
    current = polygons[versions == latest].copy()

    duplicated = current.loc[current[name_field].duplicated(keep=False), name_field]
    if len(duplicated):
        logger.critical(f"❌ {duplicated.nunique()} names occur more than once in version {latest:g}")
        raise AmbiguousVersionError(
            "Duplicate polygon names in latest version",
            version=f"{latest:g}",
            names=duplicated.astype(str).unique().tolist(),
        )

    logger.info(
        f"  🗂️ Kept {len(current):,}/{len(polygons):,} polygons from version {latest:g} "
        f"({versions.nunique()} versions present)"
    )
    return current


def name_mismatches(unit_keys: Iterable[str], polygon_names: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Symmetric difference as (keys without a polygon, polygons without a key)."""
    keys = {str(k) for k in unit_keys if pd.notna(k)}
    names = {str(n) for n in polygon_names if pd.notna(n)}
    return sorted(keys - names), sorted(names - keys)


def reconcile_names(
    units: pd.DataFrame,
    polygon_names: Iterable[str],
    naming_map: Mapping[str, str],
    *,
    group_key: str,
    ignore_polygon_names: Iterable[str] = (),
) -> pd.DataFrame:
    """
    Rename aggregate keys to match polygon names.

    Args:
        units: Aggregate frame keyed by ``group_key``
        polygon_names: Names of the polygons to join onto
        naming_map: Aggregate key -> polygon name corrections
        group_key: Key column of ``units``
        ignore_polygon_names: Polygons known to have no aggregate row (a single name may be a str)

    Returns:
        Aggregate frame with corrected keys (keys mapped onto the same name are summed)

    Raises:
        UnresolvedNamesError: names still differ after applying the map
    """
    logger.info("🔤 Reconciling unit names with polygon names...")

    polygon_names = list(polygon_names)
    only_units, only_polygons = name_mismatches(units[group_key], polygon_names)
    if only_units or only_polygons:
        logger.info(f"  📋 Before corrections: {len(only_units)} unit keys, {len(only_polygons)} polygon names unmatched")
        logger.debug(f"     Unit keys: {only_units}")
        logger.debug(f"     Polygon names: {only_polygons}")

    unused = sorted(set(naming_map) - set(units[group_key].astype(str)))
    if unused:
        logger.debug(f"  Naming map entries with no matching key: {unused}")

    renamed = units.copy()
    renamed[group_key] = renamed[group_key].astype(str).replace(dict(naming_map))
    if renamed[group_key].duplicated().any():
        merged_keys = renamed.loc[renamed[group_key].duplicated(keep=False), group_key].unique().tolist()
        logger.info(f"  🔗 Combining keys mapped onto the same polygon: {merged_keys}")
        renamed = combine_units([renamed], group_key)

    only_units, only_polygons = name_mismatches(renamed[group_key], polygon_names)
    if isinstance(ignore_polygon_names, str):
        ignore_polygon_names = [ignore_polygon_names]
    ignored = set(ignore_polygon_names)
    only_polygons = [name for name in only_polygons if name not in ignored]

    if only_units or only_polygons:
        logger.critical("❌ Names still unmatched after applying the naming map")
        if only_units:
            logger.critical(f"   Unit keys without a polygon: {only_units}")
        if only_polygons:
            logger.critical(f"   Polygons without a unit key: {only_polygons}")
        raise UnresolvedNamesError(only_units, only_polygons)

    logger.success(f"  ✅ All {len(renamed):,} unit keys match a polygon")
    return renamed


def reconcile_and_join(
    aggregate_units: Union[pd.DataFrame, Sequence[AggregateUnit]],
    polygons: gpd.GeoDataFrame,
    naming_map: Mapping[str, str],
    *,
    group_key: str,
    name_field: str,
    version_field: str,
    status_field: Optional[str] = None,
    ignore_polygon_names: Iterable[str] = (),
) -> gpd.GeoDataFrame:
    """
    Merge aggregate statistics onto the latest-version polygons.

    Returns:
        One row per latest-version polygon with count, area, density,
        density_undefined and has_estimate; polygons without a matching
        unit keep empty statistics
    """
    if not isinstance(aggregate_units, pd.DataFrame):
        aggregate_units = units_frame(aggregate_units, group_key)

    current = latest_version(polygons, version_field, name_field)
    units = reconcile_names(
        aggregate_units,
        current[name_field],
        naming_map,
        group_key=group_key,
        ignore_polygon_names=ignore_polygon_names,
    )

    logger.info("🔗 Merging unit statistics onto polygons...")
    if group_key == name_field:
        merged = current.merge(units, how="left", on=name_field)
    else:
        merged = current.merge(units, how="left", left_on=name_field, right_on=group_key)
        merged = merged.drop(columns=[group_key])

    merged["has_estimate"] = merged["count"].notna()
    merged["density_undefined"] = merged["density_undefined"].fillna(False).astype(bool)

    logger.success(f"  ✅ Merged: {int(merged['has_estimate'].sum())}/{len(merged)} polygons have estimates")
    if status_field and status_field in merged.columns:
        for status, n in merged[status_field].value_counts().sort_index().items():
            logger.info(f"     {status}: {n}")

    return merged


def points_from_frame(
    df: pd.DataFrame, x_column: str, y_column: str, id_column: str, crs: str
) -> gpd.GeoDataFrame:
    """Build a point GeoDataFrame; rows without both coordinates are skipped."""
    validate_required_columns(df, [x_column, y_column, id_column], "point")

    x = clean_numeric(df[x_column])
    y = clean_numeric(df[y_column])
    valid = x.notna() & y.notna()
    if not valid.all():
        logger.warning(f"  ⚠️ Skipping {int((~valid).sum())} points with missing coordinates")

    frame = df[valid].copy()
    frame[id_column] = frame[id_column].astype(str)
    return gpd.GeoDataFrame(
        frame, geometry=gpd.points_from_xy(x[valid], y[valid]), crs=crs
    )


def load_query_points(
    path: Union[str, Path], *, x_column: str, y_column: str, id_column: str, crs: str
) -> gpd.GeoDataFrame:
    """Load query points from a CSV of coordinates."""
    path = Path(path)
    logger.info(f"📍 Loading query points from {path}")
    if not path.exists():
        raise FileNotFoundError(f"Query points file not found: {path}")

    points = points_from_frame(pd.read_csv(path), x_column, y_column, id_column, crs)
    logger.success(f"  ✅ Loaded {len(points):,} query points")
    return points


def classify(
    points: gpd.GeoDataFrame,
    polygons: gpd.GeoDataFrame,
    name_field: str,
    output_field: str = CONTAINING_UNIT_FIELD,
) -> gpd.GeoDataFrame:
    """
    Attach the name of the containing polygon to each point.

    Args:
        points: Query points in any CRS
        polygons: Non-overlapping polygons
        name_field: Polygon name column
        output_field: Column added to the points

    Returns:
        Copy of ``points`` (same CRS, index and order) with ``output_field``;
        None for points outside every polygon
    """
    logger.info(f"🎯 Classifying {len(points):,} points against {len(polygons):,} polygons...")

    work = points.drop(columns=[output_field], errors="ignore").reset_index(drop=True)
    if polygons.crs is not None and work.crs != polygons.crs:
        work = work.to_crs(polygons.crs)

    right = polygons[[name_field, polygons.geometry.name]].rename(columns={name_field: output_field})
    joined = gpd.sjoin(work[[work.geometry.name]], right, how="left", predicate="within")

    if joined.index.duplicated().any():
        n_multi = int(joined.index.duplicated().sum())
        logger.warning(f"  ⚠️ {n_multi} points fall in overlapping polygons; keeping the first match")
        joined = joined[~joined.index.duplicated(keep="first")]

    names = joined[output_field].reindex(range(len(work)))

    result = points.copy()
    result[output_field] = [None if pd.isna(name) else str(name) for name in names]

    inside = sum(name is not None for name in result[output_field])
    logger.success(f"  ✅ {inside:,}/{len(result):,} points fall inside a polygon")
    return result


def drop_unclassified(points: gpd.GeoDataFrame, output_field: str = CONTAINING_UNIT_FIELD) -> gpd.GeoDataFrame:
    """Remove points that fell outside every polygon."""
    kept = points[points[output_field].notna()].copy()
    logger.info(f"  🧹 Dropped {len(points) - len(kept):,} points outside all polygons")
    return kept


def to_query_points(
    points: gpd.GeoDataFrame, id_column: str, output_field: str = CONTAINING_UNIT_FIELD
) -> List[QueryPoint]:
    """Typed view of classified points."""
    names = points[output_field] if output_field in points.columns else [None] * len(points)
    return [
        QueryPoint(
            point_id=str(point_id),
            x=float(geom.x),
            y=float(geom.y),
            containing_unit_name=None if name is None or pd.isna(name) else str(name),
        )
        for point_id, geom, name in zip(points[id_column], points.geometry, names)
    ]
