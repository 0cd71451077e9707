"""Shared synthetic source rows and built artifacts. No network required."""

from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest

from atlas_dataset.pipeline import build_countries
from atlas_dataset.query import AtlasQueryService

BUILT_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)


def country_row(cca3, common, official=None, alt=(), region="Europe"):
    return {
        "cca3": cca3,
        "cca2": cca3[:2],
        "name": {"common": common, "official": official or common, "nativeName": {}},
        "altSpellings": list(alt),
        "region": region,
        "subregion": None,
        "independent": True,
        "unMember": True,
        "flags": {"png": "https://example.test/flag.png"},
    }


@pytest.fixture
def country_rows():
    return [
        country_row("ESP", "Spain", "Kingdom of Spain", ["ES", "Kingdom of Spain", "Reino de España"]),
        country_row("FRA", "France", "French Republic", ["FR", "République française"]),
        country_row("DEU", "Germany", "Federal Republic of Germany", ["DE", "Deutschland"]),
        country_row("CIV", "Ivory Coast", "Republic of Côte d'Ivoire", ["CI", "Côte d'Ivoire"], region="Africa"),
        country_row("BHS", "Bahamas", "Commonwealth of the Bahamas", ["BS"], region="Americas"),
        country_row("RUS", "Russia", "Russian Federation", ["RU", "Rossiya"]),
        country_row("GEO", "Georgia", "Georgia", ["GE", "Sakartvelo"], region="Asia"),
        country_row("MMR", "Myanmar", "Republic of the Union of Myanmar", ["MM"], region="Asia"),
    ]


@pytest.fixture
def countries_artifact(country_rows):
    return build_countries(country_rows, version="test", built_at=BUILT_AT)


@pytest.fixture
def service(countries_artifact):
    return AtlasQueryService(countries_artifact, rng=random.Random(42))
