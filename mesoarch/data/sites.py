"""
Loader and filters for the radiocarbon-dated site database.

The database is a delimited export with one row per radiocarbon date, so a
single site usually appears many times (one row per dated sample). Column
names differ between releases, which is why the loader takes a column map
from configs/pipeline.yaml instead of hard-coding them.

After loading, every row is described by the same fields:

    site_name, latitude, longitude, country, date_from, date_to, date_error

date_from is the older calibrated bound and date_to the younger one, both in
years cal BP.

Usage:

    from mesoarch.data.sites import deduplicate_sites, filter_sites, load_site_database

    sites = load_site_database("data/raw/radiocarbon_sites.csv", column_map=cfg["sites"]["columns"])
    sites = filter_sites(sites, date_min=7000, date_max=11700, countries=["Spain"],
                         bbox={"lat_min": 36.0, "lat_max": 43.8, "lon_min": -9.3, "lon_max": 3.3})
    sites = deduplicate_sites(sites)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

SITE_FIELDS = [
    "site_name",
    "latitude",
    "longitude",
    "country",
    "date_from",
    "date_to",
    "date_error",
]
_NUMERIC_FIELDS = ["latitude", "longitude", "date_from", "date_to", "date_error"]


def load_site_database(
    path: Path | str,
    column_map: Mapping[str, str] | None = None,
    sep: str = ",",
) -> pd.DataFrame:
    """
    Read the site database and rename its columns to the site record fields.

    Args:
        path: Delimited text file.
        column_map: Maps record field -> source column name. Fields missing
                    from the map are expected under their own name.
        sep: Field delimiter.

    Returns:
        DataFrame with exactly the SITE_FIELDS columns. Numeric fields are
        coerced; unparseable values become NaN. A missing date_error column
        in the map is tolerated and filled with 0.

    Raises:
        FileNotFoundError: If the path does not exist.
        ValueError: If a required source column is absent.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Site database not found: {path}")

    column_map = dict(column_map or {})
    raw = pd.read_csv(path, sep=sep, low_memory=False)

    sources = {field: column_map.get(field, field) for field in SITE_FIELDS}
    missing = [src for field, src in sources.items() if src not in raw.columns and field != "date_error"]
    if missing:
        raise ValueError(f"{path.name}: missing columns {missing}. Available: {list(raw.columns)}")

    df = pd.DataFrame({field: raw[src] for field, src in sources.items() if src in raw.columns})
    if "date_error" not in df.columns:
        df["date_error"] = 0.0

    for col in _NUMERIC_FIELDS:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["date_error"] = df["date_error"].fillna(0.0)
    df["site_name"] = df["site_name"].astype("string").str.strip()
    df["country"] = df["country"].astype("string").str.strip()

    logger.info("%s: loaded %d dated rows", path.name, len(df))
    return df[SITE_FIELDS]


def filter_sites(
    df: pd.DataFrame,
    date_min: float,
    date_max: float,
    countries: Iterable[str],
    bbox: Mapping[str, float],
) -> pd.DataFrame:
    """
    Keep rows inside the date window, the listed countries and the bounding box.

    A row passes the date filter when its calibrated interval, widened by its
    error margin on both sides, overlaps [date_min, date_max] (years cal BP).
    Country names are compared case-insensitively. Rows without coordinates
    are dropped.

    Args:
        df: Output of load_site_database().
        date_min: Younger limit of the window (cal BP).
        date_max: Older limit of the window (cal BP).
        countries: Country names to keep.
        bbox: Dict with lat_min, lat_max, lon_min, lon_max (inclusive).
    """
    if date_min > date_max:
        raise ValueError(f"date_min ({date_min}) is older than date_max ({date_max})")

    total = len(df)
    older = df[["date_from", "date_to"]].max(axis=1) + df["date_error"]
    younger = df[["date_from", "date_to"]].min(axis=1) - df["date_error"]
    in_window = (older >= date_min) & (younger <= date_max)

    wanted = {c.casefold() for c in countries}
    in_country = df["country"].fillna("").str.casefold().isin(wanted)

    in_box = (
        df["latitude"].between(bbox["lat_min"], bbox["lat_max"])
        & df["longitude"].between(bbox["lon_min"], bbox["lon_max"])
    )

    out = df[in_window & in_country & in_box].reset_index(drop=True)
    logger.info(
        "Site filter: %d -> %d rows (date window %g-%g cal BP, countries %s)",
        total,
        len(out),
        date_min,
        date_max,
        sorted(wanted),
    )
    return out


def deduplicate_sites(df: pd.DataFrame) -> pd.DataFrame:
    """
    Collapse repeated dates of the same site into one row.

    Drops repeated coordinate pairs first, then repeated site names, keeping
    the first occurrence each time.
    """
    before = len(df)
    out = df.drop_duplicates(subset=["latitude", "longitude"], keep="first")
    out = out.drop_duplicates(subset="site_name", keep="first").reset_index(drop=True)
    logger.info("Site deduplication: %d -> %d rows", before, len(out))
    return out


def write_site_table(df: pd.DataFrame, path: Path | str) -> Path:
    """Write a site table as CSV, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info("Wrote %d rows -> %s", len(df), path)
    return path
