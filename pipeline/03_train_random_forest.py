"""
03_train_random_forest.py — Random Forest on the Spanish observation table.

Drops rows with missing predictors, encodes geology with a fixed codebook,
bootstraps both classes to four times the number of known sites, splits
70/30, fits the forest and reports test accuracy, out-of-bag AUC, test AUC
and Gini variable importance.

The forest, its feature list, the geology codebook and the report are saved
together in one dict so 04_predict_sites can rebuild the same design matrix
for Liguria.

Usage:
    python -m pipeline.03_train_random_forest

Input:
    data/processed/observations/spain_observations.csv
Output:
    models/rf_mesoarch_spain.pkl
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
from mesoarch.model.training import (  # noqa: E402
    balance_classes,
    drop_incomplete,
    encode_geology,
    evaluate_model,
    geology_codebook,
    save_model_bundle,
    split_train_test,
    train_random_forest,
)

logger = get_logger(__name__)

_cfg = load_config("model_training")
_rf_cfg = _cfg["random_forest"]

SEED: int = _cfg["seed"]
LABEL: str = _cfg["features"]["label"]
FEATURES: list[str] = _cfg["features"]["columns"]
BALANCE_FACTOR: int = _cfg["balancing"]["factor"]
TRAIN_FRACTION: float = _cfg["split"]["train_fraction"]
STRATIFY: bool = _cfg["split"].get("stratify", False)
N_TREES: int = _rf_cfg["n_trees"]
TRAINING_REGION: str = _rf_cfg["training_region"]
OUTPUT_MODEL: str = _rf_cfg["output_model"]

OBSERVATIONS_DIR = Path(load_config("pipeline")["outputs"]["observations_dir"])


def main() -> None:
    logger.info("Random Forest training on %s", TRAINING_REGION)

    observations_csv = OBSERVATIONS_DIR / f"{TRAINING_REGION}_observations.csv"
    if not observations_csv.exists():
        logger.error("Observation table not found: %s — run 02_build_observations first.", observations_csv)
        return

    df = pd.read_csv(observations_csv)
    categories = geology_codebook(df["geology"])
    df = encode_geology(df, categories)
    df = drop_incomplete(df, FEATURES + [LABEL])
    df[LABEL] = df[LABEL].astype(bool)

    if df[LABEL].nunique() < 2:
        logger.error("Only one class left after dropping incomplete rows: %s", df[LABEL].unique().tolist())
        return

    logger.info(
        "Data loaded: %d rows | positives=%d (%.1f%%)",
        len(df),
        int(df[LABEL].sum()),
        100 * df[LABEL].mean(),
    )

    balanced = balance_classes(df, LABEL, factor=BALANCE_FACTOR, random_state=SEED)
    train, test = split_train_test(
        balanced,
        train_fraction=TRAIN_FRACTION,
        random_state=SEED,
        stratify_by=LABEL if STRATIFY else None,
    )

    model = train_random_forest(train, FEATURES, LABEL, n_trees=N_TREES, random_state=SEED)
    report = evaluate_model(model, train, test, FEATURES, LABEL)
    logger.info(
        "[%s] accuracy=%.3f  OOB AUC=%.3f  test AUC=%.3f  (train=%d, test=%d)",
        TRAINING_REGION,
        report["accuracy"],
        report["oob_auc"],
        report["test_auc"],
        report["n_train"],
        report["n_test"],
    )
    logger.info("[%s] Top predictor: %s", TRAINING_REGION, report["importance"].iloc[0]["feature"])

    save_model_bundle(OUTPUT_MODEL, model, FEATURES, categories, report)


if __name__ == "__main__":
    main()
