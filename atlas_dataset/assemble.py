"""
Dataset assembly: records + alias table + letter index + manifest -> one
frozen AtlasArtifact. Only counting and sorting happens here; the
invariants are checked before anything is handed out.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from atlas_dataset.aliases import AliasTableResult
from atlas_dataset.canonical import display_sort_key
from atlas_dataset.errors import ArtifactIntegrityError
from atlas_dataset.models import (
    AtlasArtifact,
    DatasetKind,
    Manifest,
    ManifestCounts,
    Record,
)

logger = logging.getLogger(__name__)

DEFAULT_LICENSES: dict[DatasetKind, dict[str, str]] = {
    DatasetKind.COUNTRIES: {"countries": "REST Countries (public API)"},
    DatasetKind.CITIES: {
        "cities": "Countries States Cities Database - Open Source",
        "note": "Compiled from open sources including GeoNames",
    },
}

DEFAULT_NOTES = "Prebuilt offline dataset for atlas gameplay."


def assemble_artifact(
    kind: DatasetKind,
    records: Iterable[Record],
    aliases: AliasTableResult,
    letter_index: dict[str, tuple[str, ...]],
    *,
    version: str,
    sources: Optional[dict[str, str]] = None,
    dropped_records: int = 0,
    built_at: Optional[datetime] = None,
    license: Optional[dict[str, str]] = None,
    notes: str = DEFAULT_NOTES,
) -> AtlasArtifact:
    ordered = tuple(sorted(records, key=lambda r: display_sort_key(r.display_name)))

    manifest = Manifest(
        version=version,
        kind=kind,
        built_at=built_at or datetime.now(timezone.utc),
        sources=dict(sources or {}),
        counts=ManifestCounts(
            records=len(ordered),
            aliases=len(aliases.table),
            letters=len(letter_index),
            ambiguous_aliases=len(aliases.ambiguous),
            dropped_records=dropped_records,
            overrides_applied=aliases.overrides_applied,
            overrides_skipped=aliases.overrides_skipped,
        ),
        license=dict(license if license is not None else DEFAULT_LICENSES.get(kind, {})),
        notes=notes,
    )

    artifact = AtlasArtifact(
        version=version,
        kind=kind,
        records=ordered,
        aliases=dict(aliases.table),
        letter_index=dict(letter_index),
        ambiguous_aliases=tuple(sorted(aliases.ambiguous)),
        manifest=manifest,
    )
    verify_artifact(artifact)
    logger.info("Assembled %s artifact %s: %s", kind.value, version, manifest.counts.model_dump())
    return artifact


def verify_artifact(artifact: AtlasArtifact) -> None:
    """Raise ArtifactIntegrityError if any cross-table invariant is broken."""
    by_id: dict[str, Record] = {}
    for r in artifact.records:
        if r.id in by_id:
            raise ArtifactIntegrityError(f"duplicate record id {r.id!r}")
        by_id[r.id] = r

    indexed: set[str] = set()
    for letter, ids in artifact.letter_index.items():
        if not ids:
            raise ArtifactIntegrityError(f"empty letter bucket {letter!r}")
        if list(ids) != sorted(ids):
            raise ArtifactIntegrityError(f"letter bucket {letter!r} is not sorted")
        for record_id in ids:
            record = by_id.get(record_id)
            if record is None:
                raise ArtifactIntegrityError(f"letter {letter!r} references unknown id {record_id!r}")
            if record.first_letter != letter:
                raise ArtifactIntegrityError(
                    f"record {record_id!r} starts with {record.first_letter!r}, indexed under {letter!r}"
                )
            if record_id in indexed:
                raise ArtifactIntegrityError(f"record {record_id!r} indexed more than once")
            indexed.add(record_id)

    missing = by_id.keys() - indexed
    if missing:
        raise ArtifactIntegrityError(f"{len(missing)} records missing from letter index, e.g. {min(missing)!r}")

    for key, record_id in artifact.aliases.items():
        if record_id not in by_id:
            raise ArtifactIntegrityError(f"alias {key!r} points at unknown id {record_id!r}")

    leaked = set(artifact.ambiguous_aliases) & artifact.aliases.keys()
    if leaked:
        raise ArtifactIntegrityError(f"ambiguous aliases present in table: {sorted(leaked)[:5]}")
