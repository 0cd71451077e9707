from __future__ import annotations

from typing import Iterable

from atlas_dataset.models import Record


def build_letter_index(records: Iterable[Record]) -> dict[str, tuple[str, ...]]:
    """
    First letter -> record ids starting with it. Ids are string-sorted so the
    index is identical whatever order the source listed records in.
    """
    buckets: dict[str, list[str]] = {}
    for r in records:
        buckets.setdefault(r.first_letter, []).append(r.id)
    return {letter: tuple(sorted(ids)) for letter, ids in sorted(buckets.items())}
