"""
02_build_observations.py — Build the labelled, predictor-annotated table per region.

For each region: loads the cave inventories, keeps caves inside the region
polygon, strips unnamed and duplicate caves, labels caves against the cleaned
sites on the canonical name, and samples every predictor layer at each row.

Usage:
    python -m pipeline.02_build_observations

Input:
    data/processed/sites/<region>_sites.csv   (from 01_clean_sites)
    cave files, raster layers and the geology layer listed in configs/pipeline.yaml
Output:
    data/processed/observations/<region>_observations.csv
"""

from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd

_PROJECT_ROOT = Path(__file__).parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from mesoarch.config import load_config  # noqa: E402
from mesoarch.data.caves import clean_caves, load_caves  # noqa: E402
from mesoarch.features.presence import label_presence  # noqa: E402
from mesoarch.logging_utils import get_logger  # noqa: E402
from mesoarch.spatial.polygon_filter import filter_points_in_polygon, load_region_polygon  # noqa: E402
from mesoarch.spatial.predictors import (  # noqa: E402
    assemble_predictors,
    load_geology,
    load_region_layers,
)

logger = get_logger(__name__)

_cfg = load_config("pipeline")
_mcfg = load_config("model_training")
_cave_cfg = _cfg["caves"]

GRID_SIZE: int = _cfg["polygon_filter"]["grid_size"]
REGIONS: dict = _cfg["regions"]
SITES_DIR = Path(_cfg["outputs"]["clean_sites_dir"])
OUTPUT_DIR = Path(_cfg["outputs"]["observations_dir"])
BUFFER_RADIUS_M: float = _mcfg["extraction"]["buffer_radius_m"]
BUFFERED_LAYERS: list[str] = _mcfg["extraction"]["buffered_layers"]


def _build_region(region: str, region_cfg: dict, geology) -> pd.DataFrame | None:
    sites_csv = SITES_DIR / f"{region}_sites.csv"
    if not sites_csv.exists():
        logger.error("Clean sites not found: %s — run 01_clean_sites first.", sites_csv)
        return None

    sites = pd.read_csv(sites_csv, keep_default_na=False, na_values=[""])
    sites["canonical_name"] = sites["canonical_name"].astype(str)

    polygon = load_region_polygon(region_cfg["polygon"])
    caves = load_caves(
        region_cfg["cave_files"],
        name_field=_cave_cfg["name_field"],
        description_field=_cave_cfg.get("description_field"),
        historic_field=_cave_cfg.get("historic_field"),
    )
    caves = filter_points_in_polygon(caves, polygon, size=GRID_SIZE)
    caves = clean_caves(caves)

    observations = label_presence(sites, caves)

    layers = load_region_layers(region_cfg["layers"])
    return assemble_predictors(
        observations,
        layers,
        geology=geology,
        buffer_radius_m=BUFFER_RADIUS_M,
        buffered=BUFFERED_LAYERS,
    )


def main() -> None:
    geology = load_geology(_cfg["geology"]["path"], _cfg["geology"]["category_field"])

    for region, region_cfg in REGIONS.items():
        logger.info("Region: %s", region)
        observations = _build_region(region, region_cfg, geology)
        if observations is None:
            continue

        output_csv = OUTPUT_DIR / f"{region}_observations.csv"
        output_csv.parent.mkdir(parents=True, exist_ok=True)
        observations.to_csv(output_csv, index=False)
        logger.info(
            "%s: %d observations (%d positive) → %s",
            region,
            len(observations),
            int(observations["meso_arch"].sum()),
            output_csv,
        )


if __name__ == "__main__":
    main()
