"""
Chain-game rules built on the query service.

A move names a place whose first letter equals the letter the previous
place ended with; each place can be used once per game.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Optional

from atlas_dataset.models import Record
from atlas_dataset.query import AtlasQueryService


class MoveOutcome(str, Enum):
    ACCEPTED = "accepted"
    UNKNOWN = "unknown"
    ALREADY_USED = "already_used"
    WRONG_LETTER = "wrong_letter"


@dataclass(frozen=True)
class MoveCheck:
    outcome: MoveOutcome
    record: Optional[Record] = None
    next_letter: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is MoveOutcome.ACCEPTED


def next_letter(record: Record) -> str:
    return record.last_letter


def check_move(
    service: AtlasQueryService,
    raw_name: str,
    required_letter: str,
    used_ids: AbstractSet[str],
) -> MoveCheck:
    record_id = service.resolve_alias(raw_name)
    record = service.get_by_id(record_id) if record_id else None
    if record is None:
        return MoveCheck(MoveOutcome.UNKNOWN)
    if record.id in used_ids:
        return MoveCheck(MoveOutcome.ALREADY_USED, record)
    if record.first_letter != required_letter.lower():
        return MoveCheck(MoveOutcome.WRONG_LETTER, record)
    return MoveCheck(MoveOutcome.ACCEPTED, record, next_letter(record))


def pick_computer_move(
    service: AtlasQueryService,
    letter: str,
    used_ids: AbstractSet[str],
    rng: Optional[random.Random] = None,
) -> Optional[Record]:
    candidates = [r for r in service.records_by_first_letter(letter) if r.id not in used_ids]
    if not candidates:
        return None
    return (rng or random).choice(candidates)
