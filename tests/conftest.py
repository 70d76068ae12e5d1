"""
Shared pytest fixtures for the MesoArch test suite.

All fixtures are synthetic — no real dataset files required. Rasters are
written to tmp_path with rasterio and vector layers with geopandas, on grids
small enough that expected values can be worked out by hand.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import Point, Polygon, box

# ---------------------------------------------------------------------------
# Site database (loader input shape)
# ---------------------------------------------------------------------------

_SITE_ROWS = [
    # SiteName, Latitude, Longitude, Country, CalBP_max, CalBP_min, Error
    ("Cueva de la Cocina", 39.5, -0.9, "Spain", 9000, 8800, 50),
    ("Cueva de la Cocina", 39.5, -0.9, "Spain", 8500, 8300, 40),      # second date, same spot
    ("Cocina (Cueva de la)", 39.5001, -0.9001, "Spain", 8600, 8400, 40),  # same cave, other spelling
    ("Cova Fosca", 40.3, 0.1, "spain", 9500, 9300, 60),               # lower-case country
    ("Grotta dell'Orso", 44.1, 8.2, "Italy", 9200, 9000, 50),
    ("Villa romana", 39.0, -1.0, "Spain", 2000, 1900, 30),            # too young
    ("Offshore", 30.0, -5.0, "Spain", 9000, 8800, 50),                # outside bbox
    ("Abrigo del Borde", 38.0, -2.0, "Spain", 7020, 6950, 40),        # reaches the window via its error
    ("Abrigo Tardio", 38.5, -2.5, "Spain", 6960, 6900, 30),           # just too young even with error
    ("Sin coordenadas", None, None, "Spain", 9000, 8800, 50),
]

SPAIN_BBOX = {"lat_min": 35.9, "lat_max": 43.8, "lon_min": -9.4, "lon_max": 3.4}

SITE_COLUMN_MAP = {
    "site_name": "SiteName",
    "latitude": "Latitude",
    "longitude": "Longitude",
    "country": "Country",
    "date_from": "CalBP_max",
    "date_to": "CalBP_min",
    "date_error": "Error",
}


@pytest.fixture()
def site_database_csv(tmp_path: Path) -> Path:
    """Ten dated rows covering every filter branch. Written as a real CSV."""
    df = pd.DataFrame(
        _SITE_ROWS,
        columns=["SiteName", "Latitude", "Longitude", "Country", "CalBP_max", "CalBP_min", "Error"],
    )
    p = tmp_path / "radiocarbon_sites.csv"
    df.to_csv(p, index=False)
    return p


# ---------------------------------------------------------------------------
# Toy sites and caves (joiner input shape)
# ---------------------------------------------------------------------------

@pytest.fixture()
def toy_sites() -> pd.DataFrame:
    """Four Mesolithic sites with distinct canonical names."""
    return pd.DataFrame(
        {
            "site_name": ["Cueva de la Cocina", "Cova Fosca", "Grotta dell'Orso", "Abric de la Falguera"],
            "latitude": [39.5, 40.3, 44.1, 38.7],
            "longitude": [-0.9, 0.1, 8.2, -0.5],
            "canonical_name": ["Cocina", "Fosca", "Orso", "Falguera"],
        }
    )


@pytest.fixture()
def toy_caves() -> pd.DataFrame:
    """
    Six cave rows:
      - two share a key with a site (Cocina, Orso)
      - the other four carry only two distinct keys (Negra x2, Blanca x2)
    """
    return pd.DataFrame(
        {
            "cave_name": [
                "Cova de la Cocina", "GROTTA DELL ORSO",
                "Cueva Negra", "Cova Negra 2",
                "Cueva Blanca", "Cueva Blanca (la)",
            ],
            "latitude": [39.51, 44.11, 38.0, 38.01, 37.5, 37.51],
            "longitude": [-0.91, 8.21, -1.0, -1.01, -2.0, -2.01],
            "canonical_name": ["Cocina", "Orso", "Negra", "Negra", "Blanca", "Blanca"],
        }
    )


# ---------------------------------------------------------------------------
# Vector and raster writers
# ---------------------------------------------------------------------------

@pytest.fixture()
def triangle_polygon() -> Polygon:
    """Right triangle with the right angle at the origin; bbox is (0, 0, 10, 10)."""
    return Polygon([(0.0, 0.0), (10.0, 0.0), (0.0, 10.0)])


@pytest.fixture()
def write_raster(tmp_path: Path) -> Callable[..., Path]:
    """
    Return a function writing a single-band GeoTIFF under tmp_path.

    write_raster(name, array, west, north, res, crs="EPSG:4326", nodata=None)
    """

    def _write(
        name: str,
        array: np.ndarray,
        west: float,
        north: float,
        res: float,
        crs: str = "EPSG:4326",
        nodata: float | None = None,
    ) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        with rasterio.open(
            path,
            "w",
            driver="GTiff",
            height=array.shape[0],
            width=array.shape[1],
            count=1,
            dtype="float32",
            crs=crs,
            transform=from_origin(west, north, res, res),
            nodata=nodata,
        ) as dst:
            dst.write(array.astype("float32"), 1)
        return path

    return _write


@pytest.fixture()
def spike_array() -> np.ndarray:
    """
    100 x 100 grid at 0.001° (~111 m) covering lon 0–0.1, lat 0–0.1.

    All zeros except:
      - 50 at row 49, col 55   (~550 m east of the test point)
      - 100 at row 49, col 90  (~4.4 km east of the test point)
    The test point (0.0505, 0.0505) lands on row 49, col 50.
    """
    arr = np.zeros((100, 100))
    arr[49, 55] = 50.0
    arr[49, 90] = 100.0
    return arr


@pytest.fixture()
def geology_file(tmp_path: Path) -> Path:
    """Two lithology polygons split at lon 0.05."""
    gdf = gpd.GeoDataFrame(
        {"LITHO": ["limestone", "granite"]},
        geometry=[box(0.0, 0.0, 0.05, 0.1), box(0.05, 0.0, 0.1, 0.1)],
        crs="EPSG:4326",
    )
    p = tmp_path / "geology.geojson"
    gdf.to_file(p, driver="GeoJSON")
    return p


@pytest.fixture()
def cave_file(tmp_path: Path) -> Path:
    """
    Cave inventory with the problems clean_caves() must handle:
    unnamed entries, a spelling duplicate, a name that is only stopwords,
    and a cave mapped as a polygon.
    """
    gdf = gpd.GeoDataFrame(
        {
            "name": ["Cueva de la Cocina", None, "", "Cova Fosca", "Cova Fosca 2", "Cueva", "Cueva Negra"],
            "description": ["rock shelter", None, None, "cave", "cave", None, "large hall"],
            "historic": ["archaeological_site", None, None, "no", None, None, "yes"],
        },
        geometry=[
            Point(-0.9, 39.5),
            Point(-1.0, 39.0),
            Point(-1.1, 39.1),
            Point(0.1, 40.3),
            Point(0.11, 40.31),
            Point(-2.0, 38.0),
            box(-1.01, 38.0, -1.0, 38.01),
        ],
        crs="EPSG:4326",
    )
    p = tmp_path / "caves.geojson"
    gdf.to_file(p, driver="GeoJSON")
    return p


# ---------------------------------------------------------------------------
# Observation table (trainer input shape)
# ---------------------------------------------------------------------------

@pytest.fixture()
def observation_table() -> pd.DataFrame:
    """
    20 sites and 100 caves, separable on elevation alone.

    Sites sit at 500–600 m, caves at 100–200 m; every other predictor is
    noise drawn from the same distribution for both classes.
    """
    rng = np.random.default_rng(0)
    n_pos, n_neg = 20, 100
    n = n_pos + n_neg
    label = np.array([True] * n_pos + [False] * n_neg)
    return pd.DataFrame(
        {
            "canonical_name": [f"Cave{i}" for i in range(n)],
            "latitude": rng.uniform(38.0, 42.0, n),
            "longitude": rng.uniform(-5.0, 0.0, n),
            "source": np.where(label, "site", "cave"),
            "meso_arch": label,
            "elevation": np.where(label, rng.uniform(500, 600, n), rng.uniform(100, 200, n)),
            "slope": rng.uniform(0, 30, n),
            "mobility": rng.uniform(0, 1, n),
            "river_distance": rng.uniform(0, 120, n),
            "coast_distance": rng.uniform(0, 600, n),
            "viewshed": rng.uniform(0, 1, n),
            "geology": rng.choice(["limestone", "granite", "marl"], n),
        }
    )
