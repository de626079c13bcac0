"""
Flatten polygon geometries into boundary-vertex rows for external renderers.

Each ring (exterior or hole) is a ``piece``; ``group`` is "<id>.<piece>" so a
renderer can draw one path per group. ``order`` counts vertices within an id.
"""

from typing import Iterator, List, Tuple

import geopandas as gpd
import pandas as pd
from loguru import logger
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

FORTIFY_COLUMNS = ["long", "lat", "order", "hole", "piece", "id", "group"]


def _rings(geom: BaseGeometry) -> Iterator[Tuple[List[Tuple[float, ...]], bool]]:
    """(coords, is_hole) for every ring of a (multi)polygon."""
    if isinstance(geom, Polygon):
        parts = [geom]
    elif isinstance(geom, MultiPolygon):
        parts = list(geom.geoms)
    else:
        raise TypeError(f"Cannot fortify {geom.geom_type}; expected Polygon or MultiPolygon")

    for part in parts:
        if part.is_empty:
            continue
        yield list(part.exterior.coords), False
        for interior in part.interiors:
            yield list(interior.coords), True


def fortify(polygons: gpd.GeoDataFrame, id_field: str) -> pd.DataFrame:
    """
    One row per boundary vertex.

    Args:
        polygons: Polygon or MultiPolygon features
        id_field: Attribute used as the feature id

    Returns:
        DataFrame with columns long, lat, order, hole, piece, id, group
    """
    rows = []
    for feature_id, geom in zip(polygons[id_field], polygons.geometry):
        if geom is None or geom.is_empty:
            continue
        order = 0
        for piece, (coords, hole) in enumerate(_rings(geom), start=1):
            group = f"{feature_id}.{piece}"
            for coord in coords:
                order += 1
                rows.append((coord[0], coord[1], order, hole, piece, feature_id, group))

    fortified = pd.DataFrame(rows, columns=FORTIFY_COLUMNS)
    logger.debug(f"  Fortified {len(polygons):,} features into {len(fortified):,} vertices")
    return fortified
