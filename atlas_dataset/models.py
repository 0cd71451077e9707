"""
Pydantic models used across the pipeline for validation and serialization.
These are pure data objects: raw source rows, the typed Record, the manual
override table, the published artifact and the API responses.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from atlas_dataset.canonical import canonicalize


# ── Enums ──────────────────────────────────────────────────────────────

class DatasetKind(str, Enum):
    COUNTRIES = "countries"
    CITIES = "cities"


# ── Raw source models ─────────────────────────────────────────────────

def _coerce_id(v: Any) -> Any:
    """Source ids arrive as ints or strings; keep them as trimmed strings."""
    if isinstance(v, (int, str)) and not isinstance(v, bool):
        text = str(v).strip()
        return text or None
    return v


class RawCountryName(BaseModel):
    common: Optional[str] = None
    official: Optional[str] = None

    model_config = {"extra": "allow"}


class RawCountry(BaseModel):
    """A country as returned by the REST Countries API."""
    cca3: Optional[str] = None
    cca2: Optional[str] = None
    name: Optional[RawCountryName] = None
    alt_spellings: list[str] = Field(default_factory=list, alias="altSpellings")
    region: Optional[str] = None
    subregion: Optional[str] = None
    independent: Optional[bool] = None
    un_member: Optional[bool] = Field(None, alias="unMember")

    model_config = {"populate_by_name": True, "extra": "allow"}

    @field_validator("alt_spellings", mode="before")
    @classmethod
    def keep_string_spellings(cls, v):
        """altSpellings is sometimes null or holds non-string junk."""
        if not isinstance(v, list):
            return []
        return [a for a in v if isinstance(a, str) and a]


class RawCity(BaseModel):
    """A city row from the countries-states-cities database."""
    id: str
    name: Optional[str] = None
    country_id: Optional[str] = None
    state_id: Optional[str] = None
    # Parsed later; anything unparsable becomes "unknown"
    latitude: Optional[Any] = None
    longitude: Optional[Any] = None

    model_config = {"extra": "allow"}

    @field_validator("id", "country_id", "state_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        return _coerce_id(v)


class RawCityCountry(BaseModel):
    """Country row cross-referenced by RawCity.country_id."""
    id: str
    name: Optional[str] = None
    iso2: Optional[str] = None

    model_config = {"extra": "allow"}

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return _coerce_id(v)


# ── Records ───────────────────────────────────────────────────────────

class CountryAttributes(BaseModel):
    kind: Literal["country"] = "country"
    cca2: Optional[str] = None
    name_official: Optional[str] = None
    region: Optional[str] = None
    subregion: Optional[str] = None
    independent: Optional[bool] = None
    un_member: Optional[bool] = None

    model_config = {"frozen": True}


class CityAttributes(BaseModel):
    kind: Literal["city"] = "city"
    country: Optional[str] = None
    country_code: Optional[str] = None
    state_id: Optional[str] = None
    # None means "unknown", never an error
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    model_config = {"frozen": True}


RecordAttributes = Annotated[
    Union[CountryAttributes, CityAttributes], Field(discriminator="kind")
]


class Record(BaseModel):
    """One published geographic entity."""
    id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=2)
    canonical_key: str = Field(..., pattern=r"^[a-z]+$")
    first_letter: str = Field(..., pattern=r"^[a-z]$")
    last_letter: str = Field(..., pattern=r"^[a-z]$")
    attributes: RecordAttributes

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def letters_match_key(self) -> "Record":
        if self.first_letter != self.canonical_key[0] or self.last_letter != self.canonical_key[-1]:
            raise ValueError(
                f"letters {self.first_letter!r}/{self.last_letter!r} "
                f"do not match key {self.canonical_key!r}"
            )
        return self


# ── Manual overrides ──────────────────────────────────────────────────

class ManualOverride(BaseModel):
    """
    A hand-curated alias. Exactly one target:
      target_id  - resolve straight to a record id ("burma" -> "MMR")
      target_key - resolve to the record whose canonical key matches
                   ("bombay" -> "mumbai")
    """
    alias: str = Field(..., min_length=1)
    target_id: Optional[str] = None
    target_key: Optional[str] = None
    note: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one_target(self) -> "ManualOverride":
        if (self.target_id is None) == (self.target_key is None):
            raise ValueError(f"override {self.alias!r} needs exactly one of target_id or target_key")
        return self


class OverrideTable(BaseModel):
    version: str
    kind: DatasetKind
    overrides: list[ManualOverride] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_aliases(self) -> "OverrideTable":
        seen: set[str] = set()
        for entry in self.overrides:
            key = canonicalize(entry.alias)
            if not key:
                raise ValueError(f"override alias {entry.alias!r} has no letters")
            if key in seen:
                raise ValueError(f"duplicate override alias {key!r}")
            seen.add(key)
        return self


# ── Artifact ──────────────────────────────────────────────────────────

class ManifestCounts(BaseModel):
    records: int = 0
    aliases: int = 0
    letters: int = 0
    ambiguous_aliases: int = 0
    dropped_records: int = 0
    overrides_applied: int = 0
    overrides_skipped: int = 0


class Manifest(BaseModel):
    """Descriptive metadata. Never consulted by lookups."""
    version: str
    kind: DatasetKind
    built_at: datetime
    sources: dict[str, str] = Field(default_factory=dict)
    counts: ManifestCounts = Field(default_factory=ManifestCounts)
    license: dict[str, str] = Field(default_factory=dict)
    notes: str = ""


class AtlasArtifact(BaseModel):
    """The complete published output of one build."""
    version: str
    kind: DatasetKind
    records: tuple[Record, ...]
    aliases: dict[str, str]
    letter_index: dict[str, tuple[str, ...]]
    ambiguous_aliases: tuple[str, ...] = ()
    manifest: Manifest

    model_config = {"frozen": True}


# ── API response models ───────────────────────────────────────────────

class RecordSummary(BaseModel):
    id: str
    display_name: str
    first_letter: str
    last_letter: str


class LetterListResponse(BaseModel):
    letter: str
    total: int
    records: list[RecordSummary]


class RandomLetterResponse(BaseModel):
    letter: str


class ResolveResponse(BaseModel):
    query: str
    id: Optional[str] = None
    match: Optional[Literal["exact", "fuzzy"]] = None
    record: Optional[Record] = None


class SearchResponse(BaseModel):
    query: str
    total: int
    records: list[RecordSummary]


class HealthResponse(BaseModel):
    status: str = "ok"
    datasets: dict[str, Manifest] = Field(default_factory=dict)
