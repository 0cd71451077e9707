"""
Central configuration loaded from environment variables with sensible defaults.
Nothing here is consulted for lookup correctness; it only steers where data
comes from, where artifacts go, and how the services run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

_PACKAGE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class SourceConfig:
    countries_url: str = os.getenv(
        "ATLAS_COUNTRIES_URL",
        "https://restcountries.com/v3.1/all"
        "?fields=name,cca2,cca3,altSpellings,independent,unMember,region,subregion,flags",
    )
    cities_url: str = os.getenv(
        "ATLAS_CITIES_URL",
        "https://raw.githubusercontent.com/dr5hn/countries-states-cities-database/master/json/cities.json",
    )
    city_countries_url: str = os.getenv(
        "ATLAS_CITY_COUNTRIES_URL",
        "https://raw.githubusercontent.com/dr5hn/countries-states-cities-database/master/json/countries.json",
    )
    request_timeout: int = int(os.getenv("ATLAS_SOURCE_TIMEOUT", "60"))
    max_retries: int = int(os.getenv("ATLAS_SOURCE_MAX_RETRIES", "3"))
    backoff_base: float = float(os.getenv("ATLAS_SOURCE_BACKOFF_BASE", "2.0"))
    # Upper bound on any single wait, including server-sent Retry-After
    max_backoff: float = float(os.getenv("ATLAS_SOURCE_MAX_BACKOFF", "60"))


@dataclass(frozen=True)
class BuildConfig:
    output_dir: str = os.getenv("ATLAS_OUTPUT_DIR", "data/atlas")
    # Bump when the artifact layout or canonicalization changes
    version: str = os.getenv("ATLAS_DATASET_VERSION", "v1")
    overrides_dir: str = os.getenv("ATLAS_OVERRIDES_DIR", str(_PACKAGE_DIR / "overrides"))
    encoding: str = os.getenv("ATLAS_ARTIFACT_ENCODING", "base64")  # base64 | json


@dataclass(frozen=True)
class QueryConfig:
    # Candidates inspected by the fuzzy containment fallback
    fuzzy_top_k: int = int(os.getenv("ATLAS_FUZZY_TOP_K", "5"))
    search_max_results: int = int(os.getenv("ATLAS_SEARCH_MAX_RESULTS", "100"))


@dataclass(frozen=True)
class APIConfig:
    host: str = os.getenv("API_HOST", "0.0.0.0")
    port: int = int(os.getenv("API_PORT", "8000"))


@dataclass(frozen=True)
class Settings:
    sources: SourceConfig = field(default_factory=SourceConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    env: str = os.getenv("APP_ENV", "development")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
