"""
Loader for open-data cave location inventories.

Cave positions come from open vector exports (OpenStreetMap cave_entrance
extracts, regional speleological cadastres). Each file is read with
geopandas, brought to EPSG:4326 and flattened to the cave record:

    cave_name, latitude, longitude, description, historic

Many entries in these inventories are unnamed ("cave entrance" points added
while mapping trails) or repeat the same cave under several spellings. Those
can't be matched against the site database, so clean_caves() removes them.

Usage:

    from mesoarch.data.caves import clean_caves, load_caves

    caves = load_caves(["data/raw/caves/spain_osm.geojson"], name_field="name")
    caves = clean_caves(caves)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

import geopandas as gpd
import pandas as pd

from mesoarch.features.names import add_canonical_names, deduplicate_by_canonical_name

logger = logging.getLogger(__name__)

CAVE_FIELDS = ["cave_name", "latitude", "longitude", "description", "historic"]

_FALSY = {"", "no", "false", "0", "none", "nan"}


def _historic_flag(value: object) -> bool:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return False
    return str(value).strip().casefold() not in _FALSY


def _read_cave_file(
    path: Path,
    name_field: str,
    description_field: str | None,
    historic_field: str | None,
) -> pd.DataFrame:
    gdf = gpd.read_file(path)
    if name_field not in gdf.columns:
        raise ValueError(f"{path.name}: name field '{name_field}' not found. Available: {list(gdf.columns)}")

    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
    if gdf.crs is not None:
        gdf = gdf.to_crs("EPSG:4326")

    # Points map to themselves; cave polygons and entrance lines to a point on them
    points = gdf.geometry.representative_point()

    df = pd.DataFrame(
        {
            "cave_name": gdf[name_field].to_numpy(),
            "latitude": points.y.to_numpy(),
            "longitude": points.x.to_numpy(),
        }
    )
    if description_field and description_field in gdf.columns:
        df["description"] = gdf[description_field].to_numpy()
    else:
        df["description"] = pd.NA
    if historic_field and historic_field in gdf.columns:
        df["historic"] = [_historic_flag(v) for v in gdf[historic_field]]
    else:
        df["historic"] = False

    logger.info("%s: %d cave features", path.name, len(df))
    return df


def load_caves(
    paths: Iterable[Path | str],
    name_field: str = "name",
    description_field: str | None = "description",
    historic_field: str | None = "historic",
) -> pd.DataFrame:
    """
    Read one or more cave vector files into a single cave table.

    Args:
        paths: Vector files readable by geopandas.
        name_field: Attribute holding the cave name.
        description_field: Attribute holding a free-text description, if any.
        historic_field: Attribute marking historic/archaeological caves. Any
                        value other than empty/no/false/0 counts as True.

    Returns:
        DataFrame with the CAVE_FIELDS columns, coordinates in EPSG:4326.

    Raises:
        FileNotFoundError: If any path does not exist.
        ValueError: If a file has no name field, or no paths are given.
    """
    paths = [Path(p) for p in paths]
    if not paths:
        raise ValueError("No cave files given")
    for p in paths:
        if not p.exists():
            raise FileNotFoundError(f"Cave file not found: {p}")

    frames = [_read_cave_file(p, name_field, description_field, historic_field) for p in paths]
    df = pd.concat(frames, ignore_index=True)
    return df[CAVE_FIELDS]


def clean_caves(df: pd.DataFrame, stopwords: Iterable[str] | None = None) -> pd.DataFrame:
    """
    Drop unnamed caves and collapse caves sharing a canonical name.

    Caves whose name reduces to an empty key ("Cueva", "Grotta 2") are
    dropped too: they would otherwise all collide on the same empty key.

    Returns:
        Copy of df with a canonical_name column and unique canonical names.
    """
    total = len(df)
    named = df[df["cave_name"].notna() & (df["cave_name"].astype(str).str.strip() != "")]
    logger.info("Caves: dropped %d unnamed of %d", total - len(named), total)

    named = add_canonical_names(named, "cave_name", stopwords=stopwords)
    named = named[named["canonical_name"] != ""]
    return deduplicate_by_canonical_name(named)
