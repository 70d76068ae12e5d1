"""
Presence labels for the cave model.

Positive examples are the cleaned Mesolithic sites. Negative examples are
caves from the open inventories that do not appear in the site database
under the same canonical name: a cave nobody has reported Mesolithic
material from.

The label is only as good as the name match. A cave recorded under a
different toponym in the two sources becomes a false negative, which is
why both sides are normalised with the same stopword list before joining.

Usage:

    from mesoarch.features.presence import label_presence

    observations = label_presence(sites, caves)
    # columns: canonical_name, latitude, longitude, source, meso_arch
"""

from __future__ import annotations

import logging

import pandas as pd

from mesoarch.features.names import deduplicate_by_canonical_name

logger = logging.getLogger(__name__)

OBSERVATION_COLUMNS = ["canonical_name", "latitude", "longitude", "source", "meso_arch"]


def label_presence(sites: pd.DataFrame, caves: pd.DataFrame) -> pd.DataFrame:
    """
    Build the labelled observation table for one region.

    Args:
        sites: Site table with canonical_name, latitude, longitude.
        caves: Cave table with canonical_name, latitude, longitude.

    Returns:
        One row per distinct site key (meso_arch=True, source="site") followed
        by one row per distinct cave key absent from the sites
        (meso_arch=False, source="cave").
    """
    for name, df in (("sites", sites), ("caves", caves)):
        if "canonical_name" not in df.columns:
            raise ValueError(f"{name} table has no canonical_name column. Run add_canonical_names first.")

    positives = deduplicate_by_canonical_name(sites)
    negatives = deduplicate_by_canonical_name(caves)

    # Anti-join: a cave sharing a key with a site is the site itself
    matched = negatives["canonical_name"].isin(set(positives["canonical_name"]))
    negatives = negatives[~matched]

    positives = positives[["canonical_name", "latitude", "longitude"]].assign(source="site", meso_arch=True)
    negatives = negatives[["canonical_name", "latitude", "longitude"]].assign(source="cave", meso_arch=False)

    out = pd.concat([positives, negatives], ignore_index=True)[OBSERVATION_COLUMNS]
    logger.info(
        "Presence table: %d rows (%d sites, %d caves without archaeology, %d caves matched a site)",
        len(out),
        len(positives),
        len(negatives),
        int(matched.sum()),
    )
    return out
