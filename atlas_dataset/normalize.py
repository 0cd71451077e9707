"""
Record normalization: raw source rows -> typed Records plus alias candidates.

A raw row is dropped (counted, not logged per row) when:
  - it fails raw model validation or has no id
  - its display name is missing or shorter than 2 characters
  - its canonical key has no letters
  - its id was already taken by an earlier row
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError

from atlas_dataset.canonical import canonicalize, first_letter, last_letter
from atlas_dataset.models import (
    CityAttributes,
    CountryAttributes,
    RawCity,
    RawCityCountry,
    RawCountry,
    Record,
)

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
MAX_INITIALISM_WORDS = 3


@dataclass
class NormalizeStats:
    seen: int = 0
    kept: int = 0
    dropped_invalid: int = 0
    dropped_missing_name: int = 0
    dropped_no_letters: int = 0
    dropped_duplicate_id: int = 0

    @property
    def dropped(self) -> int:
        return self.seen - self.kept

    def as_dict(self) -> dict[str, int]:
        out = asdict(self)
        out["dropped"] = self.dropped
        return out


@dataclass(frozen=True)
class NormalizedRecord:
    record: Record
    # Raw alias candidates; the display name is always first
    aliases: tuple[str, ...]


def initialism(name: str) -> Optional[str]:
    """'New York City' -> 'nyc'. Only for 2-3 word names."""
    words = name.split()
    if not 2 <= len(words) <= MAX_INITIALISM_WORDS:
        return None
    initials = "".join(w[0] for w in words).lower()
    return initials if len(canonicalize(initials)) >= 2 else None


def parse_coordinate(value: Any) -> Optional[float]:
    """Parse a latitude/longitude; None stands for unknown geometry."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _raw_id(raw: Any, field: str) -> Any:
    return raw.get(field, "unknown") if isinstance(raw, dict) else "unknown"


class _Normalizer:
    def __init__(self) -> None:
        self.stats = NormalizeStats()
        self._taken_ids: set[str] = set()

    def _finish(
        self,
        record_id: Optional[str],
        name: Optional[str],
        attributes: Union[CountryAttributes, CityAttributes],
        extra_aliases: Iterable[Optional[str]] = (),
    ) -> Optional[NormalizedRecord]:
        if not record_id:
            self.stats.dropped_invalid += 1
            return None

        display_name = name.strip() if isinstance(name, str) else ""
        if len(display_name) < MIN_NAME_LENGTH:
            self.stats.dropped_missing_name += 1
            return None

        key = canonicalize(display_name)
        first, last = first_letter(key), last_letter(key)
        if not key or first is None or last is None:
            self.stats.dropped_no_letters += 1
            return None

        if record_id in self._taken_ids:
            self.stats.dropped_duplicate_id += 1
            return None

        record = Record(
            id=record_id,
            display_name=display_name,
            canonical_key=key,
            first_letter=first,
            last_letter=last,
            attributes=attributes,
        )
        self._taken_ids.add(record_id)
        self.stats.kept += 1

        aliases: list[str] = [display_name]
        for alias in (*extra_aliases, initialism(display_name)):
            if alias and alias not in aliases:
                aliases.append(alias)
        return NormalizedRecord(record=record, aliases=tuple(aliases))

    def _log_summary(self, label: str) -> None:
        s = self.stats
        logger.info(
            "Normalized %d/%d %s (invalid=%d, missing name=%d, no letters=%d, duplicate id=%d)",
            s.kept, s.seen, label, s.dropped_invalid, s.dropped_missing_name,
            s.dropped_no_letters, s.dropped_duplicate_id,
        )


class CountryNormalizer(_Normalizer):
    """REST Countries rows -> country Records."""

    def normalize(self, raw: dict) -> Optional[NormalizedRecord]:
        self.stats.seen += 1
        try:
            country = RawCountry.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping invalid country row %s: %s", _raw_id(raw, "cca3"), e)
            self.stats.dropped_invalid += 1
            return None

        name = country.name
        common = name.common if name else None
        official = name.official if name else None
        attributes = CountryAttributes(
            cca2=country.cca2,
            name_official=official,
            region=country.region or None,
            subregion=country.subregion or None,
            independent=country.independent,
            un_member=country.un_member,
        )
        return self._finish(country.cca3, common, attributes, (official, *country.alt_spellings))

    def normalize_all(self, raws: Iterable[dict]) -> list[NormalizedRecord]:
        out = [n for n in (self.normalize(r) for r in raws) if n is not None]
        self._log_summary("countries")
        return out


class CityNormalizer(_Normalizer):
    """Countries-states-cities rows -> city Records, joined to their country."""

    def __init__(self, countries: Iterable[dict]) -> None:
        super().__init__()
        self._countries: dict[str, RawCityCountry] = {}
        for raw in countries:
            try:
                country = RawCityCountry.model_validate(raw)
            except ValidationError as e:
                logger.warning("Skipping invalid city-country row %s: %s", _raw_id(raw, "id"), e)
                continue
            self._countries.setdefault(country.id, country)

    def normalize(self, raw: dict) -> Optional[NormalizedRecord]:
        self.stats.seen += 1
        try:
            city = RawCity.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping invalid city row %s: %s", _raw_id(raw, "id"), e)
            self.stats.dropped_invalid += 1
            return None

        country = self._countries.get(city.country_id) if city.country_id else None
        attributes = CityAttributes(
            country=country.name if country else None,
            country_code=country.iso2 if country else None,
            state_id=city.state_id,
            latitude=parse_coordinate(city.latitude),
            longitude=parse_coordinate(city.longitude),
        )
        return self._finish(city.id, city.name, attributes)

    def normalize_all(self, raws: Iterable[dict]) -> list[NormalizedRecord]:
        out = [n for n in (self.normalize(r) for r in raws) if n is not None]
        self._log_summary("cities")
        return out
