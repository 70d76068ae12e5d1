"""
Tests for mesoarch.spatial.polygon_filter — rasterised point-in-region filter.

The triangle fixture has its right angle at the origin and its hypotenuse on
x + y = 10, so a point is inside when x + y is comfortably below 10.
"""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import Polygon

from mesoarch.spatial.polygon_filter import (
    GRID_SIZE,
    filter_points_in_polygon,
    load_region_polygon,
    rasterize_polygon,
)


class TestRasterizePolygon:
    def test_grid_shape(self, triangle_polygon: Polygon) -> None:
        mask, _ = rasterize_polygon(triangle_polygon)
        assert mask.shape == (GRID_SIZE, GRID_SIZE)

    def test_roughly_half_the_cells_are_burnt(self, triangle_polygon: Polygon) -> None:
        mask, _ = rasterize_polygon(triangle_polygon)
        assert 0.45 < mask.mean() < 0.55

    def test_transform_spans_bounding_box(self, triangle_polygon: Polygon) -> None:
        _, transform = rasterize_polygon(triangle_polygon, size=10)
        assert transform.c == pytest.approx(0.0)   # west
        assert transform.f == pytest.approx(10.0)  # north
        assert transform.a == pytest.approx(1.0)   # cell width


class TestFilterPointsInPolygon:
    def test_keeps_inside_drops_outside(self, triangle_polygon: Polygon) -> None:
        df = pd.DataFrame(
            {
                "name": ["inside", "bbox_only", "far", "below"],
                "longitude": [1.0, 9.0, 20.0, 5.0],
                "latitude": [1.0, 9.0, 20.0, -1.0],
            }
        )
        out = filter_points_in_polygon(df, triangle_polygon)
        assert out["name"].tolist() == ["inside"]

    def test_missing_coordinates_are_dropped(self, triangle_polygon: Polygon) -> None:
        df = pd.DataFrame({"longitude": [1.0, np.nan], "latitude": [1.0, 2.0]})
        assert len(filter_points_in_polygon(df, triangle_polygon)) == 1

    def test_never_returns_points_outside_bounding_extent(self, triangle_polygon: Polygon) -> None:
        rng = np.random.default_rng(1)
        df = pd.DataFrame({"longitude": rng.uniform(-5, 15, 500), "latitude": rng.uniform(-5, 15, 500)})
        out = filter_points_in_polygon(df, triangle_polygon)
        minx, miny, maxx, maxy = triangle_polygon.bounds
        assert not out.empty
        assert out["longitude"].between(minx, maxx).all()
        assert out["latitude"].between(miny, maxy).all()

    def test_empty_table_passes_through(self, triangle_polygon: Polygon) -> None:
        df = pd.DataFrame({"longitude": [], "latitude": []})
        assert filter_points_in_polygon(df, triangle_polygon).empty


class TestLoadRegionPolygon:
    def test_dissolves_and_reprojects(self, tmp_path: Path) -> None:
        # Two adjacent squares stored in Web Mercator, covering lon 0–2, lat 0–1
        gdf = gpd.GeoDataFrame(
            geometry=[
                Polygon([(0, 0), (1, 0), (1, 1), (0, 1)]),
                Polygon([(1, 0), (2, 0), (2, 1), (1, 1)]),
            ],
            crs="EPSG:4326",
        ).to_crs("EPSG:3857")
        p = tmp_path / "region.gpkg"
        gdf.to_file(p, driver="GPKG")

        polygon = load_region_polygon(p)
        minx, miny, maxx, maxy = polygon.bounds
        assert polygon.geom_type == "Polygon"
        assert minx == pytest.approx(0.0, abs=1e-6)
        assert maxx == pytest.approx(2.0, abs=1e-6)
        assert miny == pytest.approx(0.0, abs=1e-6)
        assert maxy == pytest.approx(1.0, abs=1e-6)

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_region_polygon(tmp_path / "nowhere.gpkg")
