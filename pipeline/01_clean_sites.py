"""
01_clean_sites.py — Clean the radiocarbon site database, one table per region.

Filters the database to the Mesolithic date window, the region's country and
its bounding box, collapses repeated dates of the same site, keeps only sites
inside the region polygon, and adds the canonical name used to match caves.

Usage:
    python -m pipeline.01_clean_sites

Input:
    data/raw/radiocarbon_sites.csv
    data/raw/regions/<region>.gpkg
Output:
    data/processed/sites/<region>_sites.csv
"""

from __future__ import annotations

import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from mesoarch.config import load_config  # noqa: E402
from mesoarch.data.sites import (  # noqa: E402
    deduplicate_sites,
    filter_sites,
    load_site_database,
    write_site_table,
)
from mesoarch.features.names import add_canonical_names, deduplicate_by_canonical_name  # noqa: E402
from mesoarch.logging_utils import get_logger  # noqa: E402
from mesoarch.spatial.polygon_filter import filter_points_in_polygon, load_region_polygon  # noqa: E402

logger = get_logger(__name__)

_cfg = load_config("pipeline")
_site_cfg = _cfg["sites"]

DATABASE_CSV: str = _site_cfg["database_csv"]
COLUMN_MAP: dict = _site_cfg["columns"]
SEPARATOR: str = _site_cfg.get("separator", ",")
DATE_MIN: float = _site_cfg["date_min"]
DATE_MAX: float = _site_cfg["date_max"]
GRID_SIZE: int = _cfg["polygon_filter"]["grid_size"]
REGIONS: dict = _cfg["regions"]
OUTPUT_DIR = Path(_cfg["outputs"]["clean_sites_dir"])


def main() -> None:
    logger.info("Cleaning site database %s", DATABASE_CSV)

    database_csv = Path(DATABASE_CSV)
    if not database_csv.exists():
        logger.error("Site database not found: %s", database_csv)
        return

    sites = load_site_database(database_csv, column_map=COLUMN_MAP, sep=SEPARATOR)

    for region, region_cfg in REGIONS.items():
        logger.info("Region: %s", region)
        region_sites = filter_sites(
            sites,
            date_min=DATE_MIN,
            date_max=DATE_MAX,
            countries=region_cfg["countries"],
            bbox=region_cfg["bbox"],
        )
        region_sites = deduplicate_sites(region_sites)

        polygon = load_region_polygon(region_cfg["polygon"])
        region_sites = filter_points_in_polygon(region_sites, polygon, size=GRID_SIZE)

        region_sites = add_canonical_names(region_sites, "site_name")
        region_sites = deduplicate_by_canonical_name(region_sites)

        write_site_table(region_sites, OUTPUT_DIR / f"{region}_sites.csv")
        logger.info("%s: %d Mesolithic sites", region, len(region_sites))


if __name__ == "__main__":
    main()
