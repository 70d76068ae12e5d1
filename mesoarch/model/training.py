"""
Random Forest training for the Mesolithic cave presence model.

Known Mesolithic sites are rare next to the caves with no recorded
archaeology, so the table is rebalanced before training: both classes are
bootstrapped (sampled with replacement) to four times the size of the
smaller class. This inflates the table with duplicate rows, which the
out-of-bag estimate then partly sees twice; it's accepted as the price of
getting any positive signal out of a 1:20 imbalance.

The trained forest is saved together with its feature list, the geology
codebook and the evaluation report, in a single dict, so prediction on the
other region can rebuild exactly the same design matrix.

Usage:

    from mesoarch.model.training import (
        balance_classes, drop_incomplete, evaluate_model, split_train_test, train_random_forest,
    )

    table = drop_incomplete(observations, FEATURES)
    balanced = balance_classes(table, "meso_arch", factor=4, random_state=SEED)
    train, test = split_train_test(balanced, train_fraction=0.7, random_state=SEED)
    model = train_random_forest(train, FEATURES, "meso_arch", n_trees=500, random_state=SEED)
    report = evaluate_model(model, train, test, FEATURES, "meso_arch")
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import joblib
import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import accuracy_score, roc_auc_score
from sklearn.model_selection import train_test_split
from sklearn.utils import resample

logger = logging.getLogger(__name__)

GEOLOGY_CODE_COLUMN = "geology_code"


def drop_incomplete(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """Remove rows with a missing value in any of columns, logging how many went."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"Columns not in table: {missing}")

    out = df.dropna(subset=list(columns)).reset_index(drop=True)
    dropped = len(df) - len(out)
    if dropped:
        logger.warning("Dropped %d of %d rows with missing predictors", dropped, len(df))
    return out


def geology_codebook(values: pd.Series) -> list[str]:
    """Sorted list of the distinct geology categories present in values."""
    return sorted(values.dropna().astype(str).unique().tolist())


def encode_geology(
    df: pd.DataFrame,
    categories: Sequence[str],
    column: str = "geology",
) -> pd.DataFrame:
    """
    Add an integer geology_code column from a fixed codebook.

    Training and prediction must share the codebook, otherwise the same
    lithology gets a different code in each region. Categories absent from
    the codebook get -1; missing geology stays missing.
    """
    df = df.copy()
    as_str = df[column].where(df[column].isna(), df[column].astype(str))
    codes = pd.Categorical(as_str, categories=list(categories)).codes.astype("float64")

    unknown = as_str.notna().to_numpy() & (codes == -1)
    if unknown.any():
        logger.warning(
            "%d rows have geology categories not seen in training: %s",
            int(unknown.sum()),
            sorted(as_str[unknown].unique().tolist()),
        )
    codes[as_str.isna().to_numpy()] = np.nan
    df[GEOLOGY_CODE_COLUMN] = codes
    return df


def balance_classes(
    df: pd.DataFrame,
    label: str,
    factor: int = 4,
    random_state: int | None = None,
) -> pd.DataFrame:
    """
    Bootstrap every class to factor x the size of the smallest class.

    Args:
        df: Table with a two-valued label column.
        label: Name of the label column.
        factor: Multiple of the minority count drawn for each class.
        random_state: Seed for the resampling draws.

    Returns:
        Shuffled table with exactly factor * minority rows per class.

    Raises:
        ValueError: If the label has fewer than two classes.
    """
    counts = df[label].value_counts()
    if len(counts) < 2:
        raise ValueError(f"Label '{label}' needs two classes to balance, found {counts.to_dict()}")

    n_per_class = int(factor * counts.min())
    rng = np.random.RandomState(random_state)

    parts = [
        resample(group, replace=True, n_samples=n_per_class, random_state=rng)
        for _, group in df.groupby(label, sort=True)
    ]
    out = pd.concat(parts).sample(frac=1.0, random_state=rng).reset_index(drop=True)
    logger.info(
        "Balanced classes %s -> %d rows per class (factor %d)",
        counts.to_dict(),
        n_per_class,
        factor,
    )
    return out


def split_train_test(
    df: pd.DataFrame,
    train_fraction: float,
    random_state: int | None = None,
    stratify_by: str | None = None,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Random train/test partition of the rows.

    Unstratified unless stratify_by names the label column.
    """
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be between 0 and 1, got {train_fraction}")

    train, test = train_test_split(
        df,
        train_size=train_fraction,
        random_state=random_state,
        stratify=df[stratify_by] if stratify_by else None,
    )
    logger.info("Split %d rows -> %d train / %d test", len(df), len(train), len(test))
    return train.reset_index(drop=True), test.reset_index(drop=True)


def train_random_forest(
    train: pd.DataFrame,
    features: Sequence[str],
    label: str,
    n_trees: int = 500,
    random_state: int | None = None,
) -> RandomForestClassifier:
    """
    Fit a Random Forest with out-of-bag scoring on the training partition.

    Rows with a missing predictor are dropped first rather than imputed.

    Raises:
        ValueError: If fewer than two label classes remain.
    """
    train = drop_incomplete(train, list(features) + [label])
    y = train[label].astype(bool)
    if y.nunique() < 2:
        raise ValueError(f"Training partition has a single class for '{label}'")

    rf = RandomForestClassifier(
        n_estimators=n_trees,
        oob_score=True,
        random_state=random_state,
        n_jobs=-1,
    )
    rf.fit(train[list(features)], y)
    logger.info("Random Forest fitted: %d trees, %d rows, OOB accuracy %.3f", n_trees, len(train), rf.oob_score_)
    return rf


def variable_importance(model: RandomForestClassifier, features: Sequence[str]) -> pd.DataFrame:
    """Mean decrease in Gini impurity per feature, most important first."""
    return (
        pd.DataFrame({"feature": list(features), "gini_decrease": model.feature_importances_})
        .sort_values("gini_decrease", ascending=False)
        .reset_index(drop=True)
    )


def evaluate_model(
    model: RandomForestClassifier,
    train: pd.DataFrame,
    test: pd.DataFrame,
    features: Sequence[str],
    label: str,
) -> dict[str, Any]:
    """
    Score the fitted forest.

    accuracy is exact-match accuracy on the held-out partition. oob_auc is the
    ROC AUC of the out-of-bag positive-class votes against the training
    labels. test_auc is the ROC AUC on the held-out partition; it's reported
    next to oob_auc because the bootstrapped duplicates that cross the split
    tend to make both optimistic in different ways.

    Returns:
        Dict with accuracy, oob_auc, test_auc (NaN when the test partition
        holds a single class), n_train, n_test and the importance table.
    """
    features = list(features)
    train = drop_incomplete(train, features + [label])
    test = drop_incomplete(test, features + [label])

    y_train = train[label].astype(bool)
    y_test = test[label].astype(bool)
    positive = list(model.classes_).index(True)

    test_pred = model.predict(test[features])
    accuracy = float(accuracy_score(y_test, test_pred))

    oob_votes = model.oob_decision_function_[:, positive]
    finite = np.isfinite(oob_votes)
    oob_auc = float(roc_auc_score(y_train[finite], oob_votes[finite]))

    if y_test.nunique() == 2:
        test_auc = float(roc_auc_score(y_test, model.predict_proba(test[features])[:, positive]))
    else:
        logger.warning("Test partition holds a single class; test AUC undefined")
        test_auc = float("nan")

    importance = variable_importance(model, features)
    logger.info("Accuracy (test) = %.3f | AUC (OOB) = %.3f | AUC (test) = %.3f", accuracy, oob_auc, test_auc)
    for row in importance.itertuples():
        logger.info("  %-16s %.4f", row.feature, row.gini_decrease)

    return {
        "accuracy": accuracy,
        "oob_auc": oob_auc,
        "test_auc": test_auc,
        "n_train": len(train),
        "n_test": len(test),
        "importance": importance,
    }


def save_model_bundle(
    path: Path | str,
    model: RandomForestClassifier,
    features: Sequence[str],
    geology_categories: Sequence[str],
    report: dict[str, Any],
) -> Path:
    """Save the forest and everything prediction needs in one joblib dict."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(
        {
            "model": model,
            "features": list(features),
            "geology_categories": list(geology_categories),
            "report": report,
        },
        path,
    )
    logger.info("Model bundle saved to %s", path)
    return path


def load_model_bundle(path: Path | str) -> dict[str, Any]:
    """
    Load a bundle written by save_model_bundle().

    Raises:
        FileNotFoundError: If the path does not exist.
        KeyError: If the file is missing one of the expected keys.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model bundle not found: {path}")

    bundle = joblib.load(path)
    for key in ("model", "features", "geology_categories"):
        if key not in bundle:
            raise KeyError(f"Model bundle {path.name} has no '{key}' entry. Got: {list(bundle)}")
    return bundle
