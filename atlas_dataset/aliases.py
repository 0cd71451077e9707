"""
Alias table construction.

Every alias candidate is canonicalized and recorded as a claim by its
record. A key claimed by two or more distinct records is ambiguous and never
enters the table: an unresolved alias is a better outcome for the game than
one that resolves to the wrong place. Because claims are collected as sets,
the result does not depend on the order records are fed in.

Manual overrides only fill gaps afterwards. They never replace an automatic
mapping and never bring an ambiguous key back.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from atlas_dataset.canonical import canonicalize
from atlas_dataset.config import get_settings
from atlas_dataset.errors import OverrideConfigError
from atlas_dataset.models import DatasetKind, ManualOverride, OverrideTable, Record
from atlas_dataset.normalize import NormalizedRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AliasTableResult:
    table: dict[str, str]
    ambiguous: frozenset[str]
    overrides_applied: int = 0
    overrides_skipped: int = 0


class AliasTableBuilder:
    def __init__(self) -> None:
        self._claims: dict[str, set[str]] = {}

    def add(self, record_id: str, alias: str) -> None:
        key = canonicalize(alias)
        if not key:
            return
        self._claims.setdefault(key, set()).add(record_id)

    def add_record(self, normalized: NormalizedRecord) -> None:
        for alias in normalized.aliases:
            self.add(normalized.record.id, alias)

    @property
    def ambiguous(self) -> frozenset[str]:
        return frozenset(k for k, ids in self._claims.items() if len(ids) > 1)

    def automatic_table(self) -> dict[str, str]:
        return {k: next(iter(ids)) for k, ids in self._claims.items() if len(ids) == 1}

    def build(
        self,
        records: Iterable[Record],
        overrides: Optional[OverrideTable] = None,
    ) -> AliasTableResult:
        table = self.automatic_table()
        ambiguous = self.ambiguous
        applied = skipped = 0

        if overrides is not None and overrides.overrides:
            ids: set[str] = set()
            owners_by_key: dict[str, set[str]] = {}
            for r in records:
                ids.add(r.id)
                owners_by_key.setdefault(r.canonical_key, set()).add(r.id)

            for entry in overrides.overrides:
                alias_key = canonicalize(entry.alias)
                target = _override_target(entry, ids, owners_by_key)
                if target is None:
                    logger.debug("Override %r: target not found or not unique", entry.alias)
                    skipped += 1
                elif alias_key in ambiguous or alias_key in table:
                    logger.debug("Override %r: key already taken or ambiguous", entry.alias)
                    skipped += 1
                else:
                    table[alias_key] = target
                    applied += 1

        logger.info(
            "Alias table: %d aliases, %d ambiguous discarded, overrides %d applied / %d skipped",
            len(table), len(ambiguous), applied, skipped,
        )
        return AliasTableResult(
            table=dict(sorted(table.items())),
            ambiguous=ambiguous,
            overrides_applied=applied,
            overrides_skipped=skipped,
        )


def _override_target(
    entry: ManualOverride,
    ids: set[str],
    owners_by_key: dict[str, set[str]],
) -> Optional[str]:
    if entry.target_id is not None:
        return entry.target_id if entry.target_id in ids else None
    # Homonyms make a target key itself ambiguous
    owners = owners_by_key.get(canonicalize(entry.target_key), set())
    return next(iter(owners)) if len(owners) == 1 else None


def build_alias_table(
    normalized: Iterable[NormalizedRecord],
    overrides: Optional[OverrideTable] = None,
) -> AliasTableResult:
    builder = AliasTableBuilder()
    records: list[Record] = []
    for n in normalized:
        builder.add_record(n)
        records.append(n.record)
    return builder.build(records, overrides)


# ── Override table loading ────────────────────────────────────────────

def default_override_path(kind: DatasetKind) -> Path:
    return Path(get_settings().build.overrides_dir) / f"{kind.value}.json"


def load_override_table(path: Path, kind: Optional[DatasetKind] = None) -> OverrideTable:
    """Read and validate a manual override file."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise OverrideConfigError(f"Cannot read override table {path}: {e}") from e

    try:
        table = OverrideTable.model_validate(data)
    except ValidationError as e:
        raise OverrideConfigError(f"Invalid override table {path}: {e}") from e

    if kind is not None and table.kind != kind:
        raise OverrideConfigError(
            f"Override table {path} is for {table.kind.value}, expected {kind.value}"
        )
    logger.info("Loaded %d manual overrides (%s, version %s)",
                len(table.overrides), table.kind.value, table.version)
    return table
