"""
Canonical place-name keys for joining cave inventories against site databases.

The site database and the cave inventories spell the same place in many ways:
"Cueva de la Cocina", "COCINA (Cueva de la)", "Cova de la Cocina 1". None of
the sources share an identifier, so the only join key available is the name
itself, reduced to its distinctive part.

normalize_name() strips everything that varies between sources and keeps the
toponym:

    "Grotta dell'Orso"   -> "Orso"
    "GROTTA DELL ORSO"   -> "Orso"
    "Cova de Santa Maira" -> "Santamaira"
    "Abri du Poisson 2"   -> "Poisson"

Usage:

    from mesoarch.features.names import add_canonical_names, deduplicate_by_canonical_name

    caves = add_canonical_names(caves, "cave_name")
    caves = deduplicate_by_canonical_name(caves)
"""

from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Iterable
from functools import lru_cache

import pandas as pd

logger = logging.getLogger(__name__)

# Articles, prepositions and generic cave nouns. Matched as whole words,
# case-insensitively, after accents and apostrophes are gone.
_ITALIAN = [
    "il", "lo", "la", "i", "gli", "le", "l", "di", "del", "dello", "della",
    "dell", "dei", "degli", "delle", "da", "dal", "dalla", "in", "a", "al",
    "alla", "grotta", "grotte", "grotticella", "riparo", "caverna", "arma",
    "tana", "buca", "buco", "pertuso",
]
_SPANISH = [
    "el", "los", "las", "de", "y", "cueva", "cuevas", "covacho", "abrigo",
    "abrigos", "sima", "cavidad", "cingle",
]
_FRENCH = [
    "du", "des", "d", "grotte", "abri", "aven", "baume", "balme",
]
_CATALAN = [
    "els", "les", "es", "sa", "cova", "coves", "covassa", "abric", "balma",
    "avenc", "forat",
]

DEFAULT_STOPWORDS: tuple[str, ...] = tuple(dict.fromkeys(_ITALIAN + _SPANISH + _FRENCH + _CATALAN))

_APOSTROPHES = re.compile(r"['‘’ʼ`]")
_PARENTHESES = re.compile(r"[()]")
_WHITESPACE = re.compile(r"\s+")
_DIGITS = re.compile(r"\d")


@lru_cache(maxsize=8)
def _stopword_pattern(stopwords: tuple[str, ...]) -> re.Pattern:
    # Longest first so "della" wins over "del" inside the alternation
    words = sorted({w.lower() for w in stopwords if w}, key=len, reverse=True)
    if not words:
        return re.compile(r"(?!x)x")
    return re.compile(r"\b(?:" + "|".join(map(re.escape, words)) + r")\b", re.IGNORECASE)


_DEFAULT_PATTERN = _stopword_pattern(DEFAULT_STOPWORDS)


def _transliterate(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def _reduce(text: str, pattern: re.Pattern) -> str:
    text = _transliterate(text)
    text = _PARENTHESES.sub("", text)
    text = _APOSTROPHES.sub(" ", text)
    text = pattern.sub(" ", text)
    text = text.replace(".", "")
    text = _DIGITS.sub("", text)
    text = _WHITESPACE.sub("", text)
    return text.title()


def normalize_name(name: object, stopwords: Iterable[str] | None = None) -> str:
    """
    Reduce a raw place name to its canonical join key.

    Steps, in order:
        1. transliterate to a diacritic-free form
        2. remove the parenthesis characters themselves
        3. turn apostrophes into spaces (dell'Orso -> dell Orso)
        4. remove stopword tokens (whole words, any case)
        5. remove periods
        6. remove digits
        7. remove all whitespace
        8. title-case

    Dropping digits or whitespace can expose a new stopword ("Abri 3d" -> "D",
    "Cueva De1" -> "De"), so the steps are repeated until the key no longer
    changes. The result is therefore its own canonical key.

    Args:
        name: Raw place name. None and NaN are treated as the empty string.
        stopwords: Tokens to strip. Defaults to DEFAULT_STOPWORDS.

    Returns:
        The canonical key. May be empty when the name consisted only of
        stopwords, digits and punctuation.
    """
    if name is None or (not isinstance(name, str) and pd.isna(name)):
        return ""

    pattern = _DEFAULT_PATTERN if stopwords is None else _stopword_pattern(tuple(stopwords))

    key = _reduce(str(name), pattern)
    # Each pass only removes characters once the key is ASCII, so this stops
    while True:
        again = _reduce(key, pattern)
        if again == key:
            return key
        key = again


def add_canonical_names(
    df: pd.DataFrame,
    name_column: str,
    stopwords: Iterable[str] | None = None,
) -> pd.DataFrame:
    """Return a copy of df with a canonical_name column derived from name_column."""
    if name_column not in df.columns:
        raise ValueError(f"Column '{name_column}' not found. Available: {list(df.columns)}")

    stopwords = None if stopwords is None else tuple(stopwords)
    df = df.copy()
    df["canonical_name"] = df[name_column].map(lambda n: normalize_name(n, stopwords))

    empty = int((df["canonical_name"] == "").sum())
    if empty:
        logger.warning("%d names reduced to an empty canonical key", empty)
    return df


def deduplicate_by_canonical_name(df: pd.DataFrame) -> pd.DataFrame:
    """
    Keep the first row for every canonical name.

    Different places that reduce to the same key collapse into one record.
    The number of rows lost is logged so the collapse is visible.
    """
    before = len(df)
    out = df.drop_duplicates(subset="canonical_name", keep="first").reset_index(drop=True)
    collapsed = before - len(out)
    if collapsed:
        logger.warning("Collapsed %d rows sharing a canonical name (%d -> %d)", collapsed, before, len(out))
    return out
