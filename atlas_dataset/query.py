"""
Read-only query service over a loaded AtlasArtifact.

The service holds no state besides the artifact it was given, so any number
of readers can share one instance. Unknown ids, aliases and letters are
answered with None or an empty sequence, never an exception.

Name resolution is two-pass:
  1. ExactMatch - canonicalize the input and look it up in the alias table
  2. FuzzyContainmentMatch (opt-in) - accept the first record, in display
     order, whose key contains or is contained in the query's key. Lower
     confidence; callers see which pass answered. Keys the build marked
     ambiguous are never resolved by this pass either.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from atlas_dataset.canonical import canonicalize, is_letter
from atlas_dataset.config import get_settings
from atlas_dataset.models import AtlasArtifact, DatasetKind, Manifest, Record
from atlas_dataset.store import read_artifact

logger = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2


@dataclass(frozen=True)
class ExactMatch:
    record_id: str
    key: str


@dataclass(frozen=True)
class FuzzyContainmentMatch:
    record_id: str
    key: str
    candidate_key: str


Resolution = Union[ExactMatch, FuzzyContainmentMatch]


class AtlasQueryService:
    def __init__(
        self,
        artifact: AtlasArtifact,
        rng: Optional[random.Random] = None,
        fuzzy_top_k: Optional[int] = None,
        search_max_results: Optional[int] = None,
    ):
        settings = get_settings().query
        self._artifact = artifact
        self._rng = rng or random.Random()
        self.fuzzy_top_k = fuzzy_top_k if fuzzy_top_k is not None else settings.fuzzy_top_k
        self.search_max_results = (
            search_max_results if search_max_results is not None else settings.search_max_results
        )
        self._by_id: dict[str, Record] = {r.id: r for r in artifact.records}
        self._letters: tuple[str, ...] = tuple(
            sorted(letter for letter, ids in artifact.letter_index.items() if ids)
        )
        self._ambiguous = frozenset(artifact.ambiguous_aliases)

    @classmethod
    def from_file(cls, path: Path, **kwargs) -> "AtlasQueryService":
        artifact = read_artifact(path)
        logger.info("Loaded %s artifact %s (%d records, %d aliases)",
                    artifact.kind.value, artifact.version,
                    len(artifact.records), len(artifact.aliases))
        return cls(artifact, **kwargs)

    # ── Metadata ──────────────────────────────────────────────────────

    @property
    def kind(self) -> DatasetKind:
        return self._artifact.kind

    @property
    def version(self) -> str:
        return self._artifact.version

    @property
    def manifest(self) -> Manifest:
        return self._artifact.manifest

    # ── Lookups ───────────────────────────────────────────────────────

    def get_by_id(self, record_id: str) -> Optional[Record]:
        if not isinstance(record_id, str):
            return None
        return self._by_id.get(record_id)

    def resolve_alias(self, raw_name: str) -> Optional[str]:
        """Exact alias lookup: canonical key -> record id, or None."""
        key = canonicalize(raw_name)
        if not key:
            return None
        return self._artifact.aliases.get(key)

    def resolve(self, raw_name: str, fuzzy: bool = False) -> Optional[Resolution]:
        key = canonicalize(raw_name)
        if not key:
            return None

        record_id = self._artifact.aliases.get(key)
        if record_id is not None:
            return ExactMatch(record_id=record_id, key=key)
        if not fuzzy or key in self._ambiguous or len(key) < MIN_SEARCH_LENGTH:
            return None

        candidates = self._containment_candidates(key, self.fuzzy_top_k)
        if not candidates:
            return None
        best = candidates[0]
        logger.debug("Fuzzy resolution %r -> %s (%s), lower confidence",
                     raw_name, best.id, best.canonical_key)
        return FuzzyContainmentMatch(record_id=best.id, key=key, candidate_key=best.canonical_key)

    def _containment_candidates(self, key: str, limit: int) -> list[Record]:
        """Records whose key contains the query key or is contained in it."""
        hits: list[Record] = []
        for r in self._artifact.records:
            if len(hits) >= limit:
                break
            ckey = r.canonical_key
            if key in ckey or ckey in key:
                hits.append(r)
        return hits

    def search(self, query: str, limit: Optional[int] = None) -> list[Record]:
        """Records whose canonical key contains the query's, in display order."""
        key = canonicalize(query)
        if len(key) < MIN_SEARCH_LENGTH:
            return []
        cap = self.search_max_results if limit is None else max(0, min(limit, self.search_max_results))

        hits: list[Record] = []
        for r in self._artifact.records:
            if len(hits) >= cap:
                break
            if key in r.canonical_key:
                hits.append(r)
        return hits

    def list_by_first_letter(self, letter: str) -> tuple[str, ...]:
        if not isinstance(letter, str):
            return ()
        letter = letter.lower()
        if not is_letter(letter):
            return ()
        return self._artifact.letter_index.get(letter, ())

    def records_by_first_letter(self, letter: str) -> list[Record]:
        return [self._by_id[i] for i in self.list_by_first_letter(letter)]

    def available_letters(self) -> tuple[str, ...]:
        return self._letters

    def random_available_letter(self) -> Optional[str]:
        """Uniform choice among letters with at least one record."""
        if not self._letters:
            return None
        return self._rng.choice(self._letters)
