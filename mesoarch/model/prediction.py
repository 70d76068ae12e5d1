"""
Applying the trained cave model to observation tables.

The forest trained on Spain is applied unchanged to the full Spanish table
and to the Ligurian one. Each row gets a predicted label, the positive vote
share, and an outcome category comparing the prediction with the known
label:

    true_positive   known Mesolithic site, predicted as such
    false_negative  known Mesolithic site the model misses
    true_negative   cave without archaeology, predicted empty
    false_positive  cave without archaeology the model rates as a likely
                    Mesolithic site: a survey candidate

Usage:

    from mesoarch.model.prediction import label_outcomes, predict_presence, survey_candidates

    scored = predict_presence(bundle["model"], table, bundle["features"])
    scored = label_outcomes(scored, label="meso_arch")
    candidates = survey_candidates(scored)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.base import ClassifierMixin

logger = logging.getLogger(__name__)

OUTCOMES = ("true_positive", "false_positive", "true_negative", "false_negative")


def predict_presence(
    model: ClassifierMixin,
    df: pd.DataFrame,
    features: Sequence[str],
) -> pd.DataFrame:
    """
    Add prediction (bool) and probability (positive vote share) columns.

    df must already be free of missing predictors; see
    mesoarch.model.training.drop_incomplete.

    Raises:
        ValueError: If a feature column is missing or holds NaN.
    """
    features = list(features)
    missing = [f for f in features if f not in df.columns]
    if missing:
        raise ValueError(f"Feature columns not in table: {missing}")
    if df[features].isna().any().any():
        raise ValueError("Predictor table contains missing values; drop incomplete rows first")

    out = df.copy()
    if out.empty:
        out["prediction"] = pd.Series(dtype=bool)
        out["probability"] = pd.Series(dtype=float)
        return out

    positive = list(model.classes_).index(True)
    out["probability"] = model.predict_proba(out[features])[:, positive]
    out["prediction"] = np.asarray(model.predict(out[features])).astype(bool)

    logger.info("Predicted %d of %d rows as Mesolithic presence", int(out["prediction"].sum()), len(out))
    return out


def label_outcomes(df: pd.DataFrame, label: str = "meso_arch", prediction: str = "prediction") -> pd.DataFrame:
    """Add an outcome column with one of OUTCOMES per row."""
    out = df.copy()
    actual = out[label].astype(bool).to_numpy()
    predicted = out[prediction].astype(bool).to_numpy()

    out["outcome"] = np.select(
        [actual & predicted, ~actual & predicted, ~actual & ~predicted],
        ["true_positive", "false_positive", "true_negative"],
        default="false_negative",
    )
    counts = out["outcome"].value_counts().reindex(OUTCOMES, fill_value=0)
    logger.info("Outcomes: %s", ", ".join(f"{k}={v}" for k, v in counts.items()))
    return out


def survey_candidates(df: pd.DataFrame) -> pd.DataFrame:
    """Caves without recorded archaeology that the model rates positive, most confident first."""
    return (
        df[df["outcome"] == "false_positive"]
        .sort_values("probability", ascending=False)
        .reset_index(drop=True)
    )


def write_predictions(df: pd.DataFrame, path: Path | str) -> Path:
    """Write a prediction table as CSV, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info("Wrote %d predictions -> %s", len(df), path)
    return path
