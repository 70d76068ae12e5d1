"""
Tests for mesoarch.data.sites — site database loading, filtering and deduplication.

Uses the ten-row site_database_csv fixture from conftest.py.
"""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from conftest import SITE_COLUMN_MAP, SPAIN_BBOX
from mesoarch.data.sites import (
    SITE_FIELDS,
    deduplicate_sites,
    filter_sites,
    load_site_database,
    write_site_table,
)


def _spanish_sites(path: Path) -> pd.DataFrame:
    df = load_site_database(path, column_map=SITE_COLUMN_MAP)
    return filter_sites(df, date_min=7000, date_max=11700, countries=["Spain"], bbox=SPAIN_BBOX)


class TestLoadSiteDatabase:
    def test_renames_to_record_fields(self, site_database_csv: Path) -> None:
        df = load_site_database(site_database_csv, column_map=SITE_COLUMN_MAP)
        assert list(df.columns) == SITE_FIELDS
        assert len(df) == 10

    def test_coordinates_are_numeric(self, site_database_csv: Path) -> None:
        df = load_site_database(site_database_csv, column_map=SITE_COLUMN_MAP)
        assert df["latitude"].dtype == float
        assert df["latitude"].isna().sum() == 1

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_site_database(tmp_path / "nope.csv", column_map=SITE_COLUMN_MAP)

    def test_missing_column_raises(self, site_database_csv: Path) -> None:
        bad_map = {**SITE_COLUMN_MAP, "country": "Nation"}
        with pytest.raises(ValueError, match="Nation"):
            load_site_database(site_database_csv, column_map=bad_map)

    def test_missing_error_column_defaults_to_zero(self, tmp_path: Path) -> None:
        p = tmp_path / "no_error.csv"
        p.write_text(
            "site_name,latitude,longitude,country,date_from,date_to\n"
            "Cova Fosca,40.3,0.1,Spain,9500,9300\n",
            encoding="utf-8",
        )
        df = load_site_database(p)
        assert df.loc[0, "date_error"] == 0.0


class TestFilterSites:
    def test_keeps_only_spanish_mesolithic_rows_in_bbox(self, site_database_csv: Path) -> None:
        df = _spanish_sites(site_database_csv)
        assert set(df["site_name"]) == {
            "Cueva de la Cocina",
            "Cocina (Cueva de la)",
            "Cova Fosca",
            "Abrigo del Borde",
        }

    def test_country_match_is_case_insensitive(self, site_database_csv: Path) -> None:
        df = _spanish_sites(site_database_csv)
        assert "Cova Fosca" in set(df["site_name"])

    def test_error_margin_widens_the_date_interval(self, site_database_csv: Path) -> None:
        names = set(_spanish_sites(site_database_csv)["site_name"])
        assert "Abrigo del Borde" in names
        assert "Abrigo Tardio" not in names

    def test_never_returns_points_outside_bbox(self, site_database_csv: Path) -> None:
        df = _spanish_sites(site_database_csv)
        assert df["latitude"].between(SPAIN_BBOX["lat_min"], SPAIN_BBOX["lat_max"]).all()
        assert df["longitude"].between(SPAIN_BBOX["lon_min"], SPAIN_BBOX["lon_max"]).all()

    def test_inverted_window_raises(self, site_database_csv: Path) -> None:
        df = load_site_database(site_database_csv, column_map=SITE_COLUMN_MAP)
        with pytest.raises(ValueError):
            filter_sites(df, date_min=11700, date_max=7000, countries=["Spain"], bbox=SPAIN_BBOX)


class TestDeduplicateSites:
    def test_collapses_repeated_coordinates(self, site_database_csv: Path) -> None:
        df = deduplicate_sites(_spanish_sites(site_database_csv))
        assert len(df) == 4
        assert (df["site_name"] == "Cueva de la Cocina").sum() == 1

    def test_collapses_repeated_names_at_different_coordinates(self) -> None:
        df = pd.DataFrame(
            {
                "site_name": ["Cova Fosca", "Cova Fosca"],
                "latitude": [40.3, 40.31],
                "longitude": [0.1, 0.11],
            }
        )
        assert len(deduplicate_sites(df)) == 1


def test_write_site_table_creates_parent_dirs(tmp_path: Path) -> None:
    out = write_site_table(pd.DataFrame({"site_name": ["Cova Fosca"]}), tmp_path / "a" / "b" / "sites.csv")
    assert out.exists()
    assert pd.read_csv(out)["site_name"].tolist() == ["Cova Fosca"]
