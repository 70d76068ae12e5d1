"""
04_predict_sites.py — Apply the Spanish model to every region and export outcomes.

For each region the observation table is encoded with the training geology
codebook, incomplete rows are dropped, and the forest predicts Mesolithic
presence. Rows get an outcome category; caves without recorded archaeology
that the model rates positive are also written out as survey candidates.

Usage:
    python -m pipeline.04_predict_sites

Input:
    models/rf_mesoarch_spain.pkl
    data/processed/observations/<region>_observations.csv
Output:
    data/analysis_results/<region>_predictions.csv
    data/analysis_results/<region>_survey_candidates.csv
"""

from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd

_PROJECT_ROOT = Path(__file__).parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from mesoarch.config import load_config  # noqa: E402
from mesoarch.logging_utils import get_logger  # noqa: E402
from mesoarch.model.prediction import (  # noqa: E402
    label_outcomes,
    predict_presence,
    survey_candidates,
    write_predictions,
)
from mesoarch.model.training import drop_incomplete, encode_geology, load_model_bundle  # noqa: E402

logger = get_logger(__name__)

_cfg = load_config("pipeline")
_mcfg = load_config("model_training")

LABEL: str = _mcfg["features"]["label"]
MODEL_PATH = Path(_mcfg["random_forest"]["output_model"])
REGIONS: list[str] = list(_cfg["regions"])
OBSERVATIONS_DIR = Path(_cfg["outputs"]["observations_dir"])
OUTPUT_DIR = Path(_cfg["outputs"]["predictions_dir"])


def main() -> None:
    if not MODEL_PATH.exists():
        logger.error("Model not found: %s — run 03_train_random_forest first.", MODEL_PATH)
        return

    bundle = load_model_bundle(MODEL_PATH)
    model = bundle["model"]
    features: list[str] = bundle["features"]

    for region in REGIONS:
        observations_csv = OBSERVATIONS_DIR / f"{region}_observations.csv"
        if not observations_csv.exists():
            logger.warning("Skipping %s: %s not found", region, observations_csv)
            continue

        logger.info("Region: %s", region)
        df = pd.read_csv(observations_csv)
        df = encode_geology(df, bundle["geology_categories"])
        df = drop_incomplete(df, features)

        scored = predict_presence(model, df, features)
        scored = label_outcomes(scored, label=LABEL)

        write_predictions(scored, OUTPUT_DIR / f"{region}_predictions.csv")
        write_predictions(survey_candidates(scored), OUTPUT_DIR / f"{region}_survey_candidates.csv")


if __name__ == "__main__":
    main()
