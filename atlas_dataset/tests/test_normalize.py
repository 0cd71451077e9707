"""
Tests for record normalization and the drop rules.
"""

from __future__ import annotations

import pytest

from atlas_dataset.models import CityAttributes, CountryAttributes
from atlas_dataset.normalize import (
    CityNormalizer,
    CountryNormalizer,
    initialism,
    parse_coordinate,
)

from conftest import country_row

BRAZIL = {"id": 31, "name": "Brazil", "iso2": "BR"}


class TestInitialism:
    def test_multi_word(self):
        assert initialism("New York City") == "nyc"
        assert initialism("Los Angeles") == "la"

    def test_single_word(self):
        assert initialism("Paris") is None

    def test_too_many_words(self):
        assert initialism("Santa Cruz de la Sierra") is None

    def test_initials_without_letters(self):
        assert initialism("1st 2nd") is None


class TestParseCoordinate:
    @pytest.mark.parametrize("raw,expected", [
        ("-23.5475", -23.5475),
        (40.4, 40.4),
        (0, 0.0),
    ])
    def test_parsable(self, raw, expected):
        assert parse_coordinate(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "n/a", "nan", "inf", True, [1.0]])
    def test_unknown(self, raw):
        assert parse_coordinate(raw) is None


class TestCountryNormalizer:
    def test_record_fields(self):
        out = CountryNormalizer().normalize(
            country_row("CIV", "Ivory Coast", "Republic of Côte d'Ivoire", ["CI", "Côte d'Ivoire"], region="Africa")
        )
        record = out.record
        assert record.id == "CIV"
        assert record.display_name == "Ivory Coast"
        assert record.canonical_key == "ivorycoast"
        assert record.first_letter == "i"
        assert record.last_letter == "t"
        assert isinstance(record.attributes, CountryAttributes)
        assert record.attributes.region == "Africa"
        assert record.attributes.name_official == "Republic of Côte d'Ivoire"

    def test_alias_candidates(self):
        out = CountryNormalizer().normalize(
            country_row("CIV", "Ivory Coast", "Republic of Côte d'Ivoire", ["CI", "Côte d'Ivoire"])
        )
        assert out.aliases[0] == "Ivory Coast"
        assert set(out.aliases) == {
            "Ivory Coast", "Republic of Côte d'Ivoire", "CI", "Côte d'Ivoire", "ic",
        }

    def test_missing_cca3_dropped(self):
        normalizer = CountryNormalizer()
        row = country_row("ESP", "Spain")
        del row["cca3"]
        assert normalizer.normalize(row) is None
        assert normalizer.stats.dropped_invalid == 1

    def test_missing_name_dropped(self):
        normalizer = CountryNormalizer()
        row = country_row("ESP", "Spain")
        row["name"] = None
        assert normalizer.normalize(row) is None
        assert normalizer.stats.dropped_missing_name == 1

    def test_non_dict_row_dropped(self):
        normalizer = CountryNormalizer()
        assert normalizer.normalize("Spain") is None
        assert normalizer.stats.dropped_invalid == 1


class TestCityNormalizer:
    def test_joined_to_country(self):
        normalizer = CityNormalizer([BRAZIL])
        out = normalizer.normalize({
            "id": 133024, "name": "São Paulo", "country_id": 31, "state_id": 2021,
            "latitude": "-23.5475", "longitude": "bad",
        })
        record = out.record
        assert record.id == "133024"
        assert record.canonical_key == "saopaulo"
        assert (record.first_letter, record.last_letter) == ("s", "o")
        assert isinstance(record.attributes, CityAttributes)
        assert record.attributes.country == "Brazil"
        assert record.attributes.country_code == "BR"
        assert record.attributes.state_id == "2021"
        assert record.attributes.latitude == pytest.approx(-23.5475)
        assert record.attributes.longitude is None
        assert out.aliases == ("São Paulo", "sp")

    def test_unknown_country(self):
        out = CityNormalizer([BRAZIL]).normalize({"id": 1, "name": "Lima", "country_id": 999})
        assert out.record.attributes.country is None
        assert out.record.attributes.country_code is None

    def test_drop_rules_counted(self):
        normalizer = CityNormalizer([BRAZIL])
        rows = [
            {"id": 1, "name": "Recife", "country_id": 31},
            {"id": 2, "name": "12345"},
            {"id": 3, "name": "北京"},
            {"id": 4, "name": "A"},
            {"id": 5, "name": None},
            {"name": "No Id"},
            {"id": 1, "name": "Recife Again"},
        ]
        out = normalizer.normalize_all(rows)
        assert [n.record.id for n in out] == ["1"]

        stats = normalizer.stats
        assert stats.seen == 7
        assert stats.kept == 1
        assert stats.dropped_no_letters == 2
        assert stats.dropped_missing_name == 2
        assert stats.dropped_invalid == 1
        assert stats.dropped_duplicate_id == 1
        assert stats.dropped == 6

    def test_rejected_row_does_not_reserve_id(self):
        normalizer = CityNormalizer([])
        out = normalizer.normalize_all([{"id": 7, "name": "???"}, {"id": 7, "name": "Quito"}])
        assert [n.record.display_name for n in out] == ["Quito"]
        assert normalizer.stats.dropped_duplicate_id == 0
