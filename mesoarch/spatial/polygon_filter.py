"""
Region-of-interest filter for point tables.

Sites and caves are kept only when they fall inside the study region. The
test is done on a coarse raster rather than with exact point-in-polygon
geometry: the region polygon is burnt into a fixed 180 x 180 grid covering
its bounding box, and each point reads the cell it lands on. Points landing
on an unburnt cell, or off the grid entirely, are dropped.

The result is resolution-bounded. A point close to the coastline may be kept
or dropped depending on which side of the cell centre the boundary passes.

Usage:

    from mesoarch.spatial.polygon_filter import filter_points_in_polygon, load_region_polygon

    spain = load_region_polygon("data/raw/regions/spain.gpkg")
    sites = filter_points_in_polygon(sites, spain)
"""

from __future__ import annotations

import logging
from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
from affine import Affine
from rasterio.features import rasterize
from rasterio.transform import from_bounds, rowcol
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

GRID_SIZE = 180
GEOGRAPHIC_CRS = "EPSG:4326"


def load_region_polygon(path: Path | str) -> BaseGeometry:
    """
    Read a region boundary file and return it as one geometry in EPSG:4326.

    Multi-feature files (provinces, islands) are dissolved into one shape.

    Raises:
        FileNotFoundError: If the path does not exist.
        ValueError: If the file holds no features.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Region polygon not found: {path}")

    gdf = gpd.read_file(path)
    if gdf.empty:
        raise ValueError(f"Region polygon file has no features: {path}")
    if gdf.crs is not None:
        gdf = gdf.to_crs(GEOGRAPHIC_CRS)

    # buffer(0) repairs self-intersections common in hand-digitised borders
    return gdf.geometry.buffer(0).union_all()


def rasterize_polygon(polygon: BaseGeometry, size: int = GRID_SIZE) -> tuple[np.ndarray, Affine]:
    """
    Burn a polygon into a size x size grid spanning its bounding box.

    Returns:
        (mask, transform) where mask is a uint8 array with 1 inside the
        polygon and 0 elsewhere, and transform maps (col, row) to (lon, lat).
    """
    minx, miny, maxx, maxy = polygon.bounds
    transform = from_bounds(minx, miny, maxx, maxy, size, size)
    mask = rasterize(
        [(polygon, 1)],
        out_shape=(size, size),
        transform=transform,
        fill=0,
        dtype="uint8",
    )
    return mask, transform


def points_in_mask(
    lon: np.ndarray,
    lat: np.ndarray,
    mask: np.ndarray,
    transform: Affine,
) -> np.ndarray:
    """Boolean array: True where (lon, lat) lands on a burnt cell of the mask."""
    lon = np.asarray(lon, dtype=float)
    lat = np.asarray(lat, dtype=float)
    inside = np.zeros(lon.shape, dtype=bool)

    valid = np.isfinite(lon) & np.isfinite(lat)
    if not valid.any():
        return inside

    rows, cols = rowcol(transform, lon[valid], lat[valid])
    rows = np.asarray(rows)
    cols = np.asarray(cols)
    n_rows, n_cols = mask.shape
    on_grid = (rows >= 0) & (rows < n_rows) & (cols >= 0) & (cols < n_cols)

    hits = np.zeros(rows.shape, dtype=bool)
    hits[on_grid] = mask[rows[on_grid], cols[on_grid]] > 0
    inside[np.flatnonzero(valid)] = hits
    return inside


def filter_points_in_polygon(
    df: pd.DataFrame,
    polygon: BaseGeometry,
    size: int = GRID_SIZE,
    lon_col: str = "longitude",
    lat_col: str = "latitude",
) -> pd.DataFrame:
    """
    Keep the rows of df whose coordinates fall inside the rasterised polygon.

    Args:
        df: Any table with longitude/latitude columns in EPSG:4326.
        polygon: Region geometry in EPSG:4326.
        size: Grid resolution (cells per side).

    Returns:
        The matching subset of df with a fresh index.
    """
    if df.empty:
        return df.copy()

    mask, transform = rasterize_polygon(polygon, size=size)
    keep = points_in_mask(df[lon_col].to_numpy(), df[lat_col].to_numpy(), mask, transform)

    out = df[keep].reset_index(drop=True)
    logger.info("Polygon filter: kept %d of %d points", len(out), len(df))
    return out
