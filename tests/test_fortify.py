import geopandas as gpd
import pytest
from shapely.geometry import MultiPolygon, Point, Polygon, box

from processing.fortify import FORTIFY_COLUMNS, fortify


def test_square_becomes_closed_ring_of_vertices():
    gdf = gpd.GeoDataFrame({"name": ["Alpha"]}, geometry=[box(0, 0, 1, 1)])

    vertices = fortify(gdf, "name")

    assert list(vertices.columns) == FORTIFY_COLUMNS
    assert len(vertices) == 5
    assert vertices["order"].tolist() == [1, 2, 3, 4, 5]
    assert set(vertices["group"]) == {"Alpha.1"}
    assert not vertices["hole"].any()
    first, last = vertices.iloc[0], vertices.iloc[-1]
    assert (first["long"], first["lat"]) == (last["long"], last["lat"])


def test_holes_and_parts_get_their_own_pieces():
    with_hole = Polygon(
        [(0, 0), (10, 0), (10, 10), (0, 10)],
        holes=[[(2, 2), (4, 2), (4, 4), (2, 4)]],
    )
    islands = MultiPolygon([box(20, 0, 21, 1), box(30, 0, 31, 1)])
    gdf = gpd.GeoDataFrame({"name": ["Lake", "Islands"]}, geometry=[with_hole, islands])

    vertices = fortify(gdf, "name")
    lake = vertices[vertices["id"] == "Lake"]
    islands_rows = vertices[vertices["id"] == "Islands"]

    assert sorted(lake["group"].unique()) == ["Lake.1", "Lake.2"]
    assert lake.loc[lake["piece"] == 2, "hole"].all()
    assert not lake.loc[lake["piece"] == 1, "hole"].any()

    assert sorted(islands_rows["group"].unique()) == ["Islands.1", "Islands.2"]
    assert not islands_rows["hole"].any()
    # order runs across all pieces of one feature
    assert islands_rows["order"].tolist() == list(range(1, len(islands_rows) + 1))


def test_empty_geometries_are_skipped():
    gdf = gpd.GeoDataFrame({"name": ["a", "b"]}, geometry=[box(0, 0, 1, 1), Polygon()])

    vertices = fortify(gdf, "name")

    assert set(vertices["id"]) == {"a"}


def test_points_cannot_be_fortified():
    gdf = gpd.GeoDataFrame({"name": ["p"]}, geometry=[Point(0, 0)])

    with pytest.raises(TypeError, match="Point"):
        fortify(gdf, "name")
