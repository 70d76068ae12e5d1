"""
Environmental predictor extraction for the labelled observation table.

Each observation receives one value per predictor layer:

    mobility        (score) — summed least-cost-path mobility surface
    elevation       (m)     — merged DEM
    slope           (deg)
    river_distance  (min)   — walking time to the nearest river
    coast_distance  (min)   — walking time to the palaeo-coastline
    viewshed        (score) — visibility from topographic summits
    geology         (class) — lithology of the enclosing polygon

All rasters are brought to the common geographic CRS (EPSG:4326) before
sampling. Most layers are read at the point itself. Mobility and viewshed are
rough surfaces where the exact cell under a cave entrance says little, so
they take the maximum value inside a 1000 m disc around the point instead.
The disc is drawn in the local UTM zone so its radius is in metres whatever
the raster CRS.

Missing values are not an error here: a point off a raster, or on a nodata
cell, gets NaN and the row is dropped later, right before modelling.

Usage:

    from mesoarch.spatial.predictors import assemble_predictors, load_geology, load_region_layers

    layers = load_region_layers(cfg["regions"]["spain"]["layers"])
    geology = load_geology(cfg["geology"]["path"], cfg["geology"]["category_field"])
    observations = assemble_predictors(observations, layers, geology, buffer_radius_m=1000)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, NamedTuple

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
from affine import Affine
from rasterio.crs import CRS
from rasterio.features import geometry_mask
from rasterio.transform import array_bounds, rowcol
from rasterio.warp import Resampling, calculate_default_transform, reproject
from rasterio.warp import transform as warp_transform

logger = logging.getLogger(__name__)

GEOGRAPHIC_CRS = "EPSG:4326"
BUFFERED_LAYERS = ("mobility", "viewshed")


class RasterLayer(NamedTuple):
    """Single-band raster held in memory; nodata cells are NaN."""

    array: np.ndarray
    transform: Affine
    crs: CRS


def read_raster(path: Path | str) -> RasterLayer:
    """
    Read band 1 of a raster as float with nodata replaced by NaN.

    Raises:
        FileNotFoundError: If the path does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster not found: {path}")

    with rasterio.open(path) as src:
        array = src.read(1, masked=True).astype("float64").filled(np.nan)
        layer = RasterLayer(array, src.transform, src.crs)

    logger.debug("Read %s (%d x %d, %s)", path.name, array.shape[1], array.shape[0], layer.crs)
    return layer


def sum_rasters(paths: Iterable[Path | str]) -> RasterLayer:
    """
    Cell-wise sum of rasters sharing one grid.

    Used for the mobility surface, which is delivered as one raster per
    least-cost-path batch. A cell is NaN only where every input is NaN.

    Raises:
        ValueError: If no paths are given or the grids differ.
    """
    paths = [Path(p) for p in paths]
    if not paths:
        raise ValueError("No rasters to sum")

    first = read_raster(paths[0])
    total = np.nan_to_num(first.array, nan=0.0)
    seen = np.isfinite(first.array)

    for path in paths[1:]:
        layer = read_raster(path)
        if layer.array.shape != first.array.shape or layer.transform != first.transform or layer.crs != first.crs:
            raise ValueError(f"{path.name} is not on the same grid as {paths[0].name}")
        total += np.nan_to_num(layer.array, nan=0.0)
        seen |= np.isfinite(layer.array)

    total[~seen] = np.nan
    logger.info("Summed %d rasters into one surface", len(paths))
    return RasterLayer(total, first.transform, first.crs)


def reproject_raster(layer: RasterLayer, dst_crs: str = GEOGRAPHIC_CRS) -> RasterLayer:
    """Warp a layer to dst_crs with bilinear resampling. No-op if already there."""
    dst = CRS.from_user_input(dst_crs)
    if layer.crs is not None and CRS.from_user_input(layer.crs) == dst:
        return layer

    height, width = layer.array.shape
    bounds = array_bounds(height, width, layer.transform)
    dst_transform, dst_width, dst_height = calculate_default_transform(
        layer.crs, dst, width, height, *bounds
    )
    out = np.full((dst_height, dst_width), np.nan, dtype="float64")
    reproject(
        source=layer.array,
        destination=out,
        src_transform=layer.transform,
        src_crs=layer.crs,
        src_nodata=np.nan,
        dst_transform=dst_transform,
        dst_crs=dst,
        dst_nodata=np.nan,
        resampling=Resampling.bilinear,
    )
    return RasterLayer(out, dst_transform, dst)


def _to_layer_crs(layer: RasterLayer, lon: np.ndarray, lat: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    if layer.crs is None or CRS.from_user_input(layer.crs) == CRS.from_user_input(GEOGRAPHIC_CRS):
        return lon, lat
    xs, ys = warp_transform(CRS.from_user_input(GEOGRAPHIC_CRS), layer.crs, lon.tolist(), lat.tolist())
    return np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)


def sample_points(layer: RasterLayer, df: pd.DataFrame) -> np.ndarray:
    """Value of the cell under each (longitude, latitude); NaN off the grid."""
    lon = df["longitude"].to_numpy(dtype=float)
    lat = df["latitude"].to_numpy(dtype=float)
    values = np.full(len(df), np.nan)

    valid = np.isfinite(lon) & np.isfinite(lat)
    if not valid.any():
        return values

    xs, ys = _to_layer_crs(layer, lon[valid], lat[valid])
    rows, cols = rowcol(layer.transform, xs, ys)
    rows = np.asarray(rows)
    cols = np.asarray(cols)
    n_rows, n_cols = layer.array.shape
    on_grid = (rows >= 0) & (rows < n_rows) & (cols >= 0) & (cols < n_cols)

    sampled = np.full(rows.shape, np.nan)
    sampled[on_grid] = layer.array[rows[on_grid], cols[on_grid]]
    values[np.flatnonzero(valid)] = sampled
    return values


def _disc_max(layer: RasterLayer, disc) -> float:
    minx, miny, maxx, maxy = disc.bounds
    r_a, c_a = rowcol(layer.transform, minx, maxy)
    r_b, c_b = rowcol(layer.transform, maxx, miny)
    r0, r1 = sorted((int(r_a), int(r_b)))
    c0, c1 = sorted((int(c_a), int(c_b)))

    n_rows, n_cols = layer.array.shape
    if r1 < 0 or c1 < 0 or r0 >= n_rows or c0 >= n_cols:
        return np.nan
    r0, c0 = max(r0, 0), max(c0, 0)
    r1, c1 = min(r1, n_rows - 1), min(c1, n_cols - 1)

    window = layer.array[r0 : r1 + 1, c0 : c1 + 1]
    window_transform = layer.transform * Affine.translation(c0, r0)
    inside = geometry_mask(
        [disc],
        out_shape=window.shape,
        transform=window_transform,
        all_touched=True,
        invert=True,
    )
    values = window[inside]
    values = values[np.isfinite(values)]
    return float(values.max()) if values.size else np.nan


def sample_buffer_max(layer: RasterLayer, df: pd.DataFrame, radius_m: float) -> np.ndarray:
    """
    Maximum non-NaN value among cells touched by a radius_m disc around each point.

    Falls back to a direct point sample when radius_m <= 0.
    """
    if radius_m <= 0:
        return sample_points(layer, df)

    values = np.full(len(df), np.nan)
    valid = (df["longitude"].notna() & df["latitude"].notna()).to_numpy()
    if not valid.any():
        return values

    sub = df[valid]
    points = gpd.GeoSeries(gpd.points_from_xy(sub["longitude"], sub["latitude"]), crs=GEOGRAPHIC_CRS)
    metric_crs = points.estimate_utm_crs()
    layer_crs = layer.crs.to_wkt() if layer.crs is not None else GEOGRAPHIC_CRS
    discs = points.to_crs(metric_crs).buffer(radius_m).to_crs(layer_crs)

    values[np.flatnonzero(valid)] = [_disc_max(layer, disc) for disc in discs]
    return values


def load_geology(path: Path | str, category_field: str) -> gpd.GeoDataFrame:
    """
    Read the geology polygon layer with one 'geology' category column.

    Raises:
        FileNotFoundError: If the path does not exist.
        ValueError: If category_field is not an attribute of the layer.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Geology layer not found: {path}")

    gdf = gpd.read_file(path)
    if category_field not in gdf.columns:
        raise ValueError(f"{path.name}: category field '{category_field}' not found. Available: {list(gdf.columns)}")
    if gdf.crs is not None:
        gdf = gdf.to_crs(GEOGRAPHIC_CRS)

    gdf = gdf.rename(columns={category_field: "geology"})[["geology", "geometry"]]
    gdf["geology"] = gdf["geology"].astype(str)
    logger.info("%s: %d geology polygons, %d categories", path.name, len(gdf), gdf["geology"].nunique())
    return gdf


def overlay_geology(geology: gpd.GeoDataFrame, df: pd.DataFrame) -> pd.Series:
    """
    Geology category of the polygon containing each point.

    Overlapping polygons resolve to the first match; points outside every
    polygon get NaN.
    """
    points = gpd.GeoDataFrame(
        index=df.index,
        geometry=gpd.points_from_xy(df["longitude"], df["latitude"]),
        crs=GEOGRAPHIC_CRS,
    )
    joined = gpd.sjoin(points, geology, how="left", predicate="within")
    joined = joined[~joined.index.duplicated(keep="first")]
    return joined["geology"].reindex(df.index)


def assemble_predictors(
    df: pd.DataFrame,
    layers: Mapping[str, RasterLayer],
    geology: gpd.GeoDataFrame | None = None,
    buffer_radius_m: float = 1000.0,
    buffered: Iterable[str] = BUFFERED_LAYERS,
) -> pd.DataFrame:
    """
    Return a copy of df with one column per predictor layer.

    Args:
        df: Observation table with longitude/latitude in EPSG:4326.
        layers: Predictor name -> raster layer.
        geology: Geology polygons from load_geology(); adds a 'geology' column.
        buffer_radius_m: Disc radius for the buffered layers.
        buffered: Layer names sampled with the disc maximum instead of the
                  point value.
    """
    buffered = set(buffered)
    out = df.copy()

    for name, layer in layers.items():
        if name in buffered:
            out[name] = sample_buffer_max(layer, out, buffer_radius_m)
        else:
            out[name] = sample_points(layer, out)
        n_missing = int(out[name].isna().sum())
        if n_missing:
            logger.warning("%s: %d of %d points have no value", name, n_missing, len(out))

    if geology is not None:
        out["geology"] = overlay_geology(geology, out)
        n_missing = int(out["geology"].isna().sum())
        if n_missing:
            logger.warning("geology: %d of %d points outside every polygon", n_missing, len(out))

    logger.info("Assembled %d predictors for %d observations", len(layers) + (geology is not None), len(out))
    return out


def load_region_layers(layers_cfg: Mapping[str, Any]) -> dict[str, RasterLayer]:
    """
    Build the named raster layers for one region from its config block.

    Expects 'mobility_dir' (a directory of rasters to sum) and a 'rasters'
    mapping of predictor name -> raster path. Every layer is reprojected to
    EPSG:4326.
    """
    layers: dict[str, RasterLayer] = {}

    mobility_dir = Path(layers_cfg["mobility_dir"])
    if not mobility_dir.is_dir():
        raise FileNotFoundError(f"Mobility raster directory not found: {mobility_dir}")
    mobility_paths = sorted(mobility_dir.glob(layers_cfg.get("mobility_glob", "*.tif")))
    layers["mobility"] = reproject_raster(sum_rasters(mobility_paths))

    for name, path in layers_cfg.get("rasters", {}).items():
        layers[name] = reproject_raster(read_raster(path))

    logger.info("Loaded layers: %s", ", ".join(layers))
    return layers
