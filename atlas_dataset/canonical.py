"""
Name canonicalization shared by the dataset build and the query service.

Every name that is ever compared (display names, alternate spellings,
override aliases, player input) goes through canonicalize() and nothing
else. Rules, in order:
  1. Non-string or empty input -> ""
  2. Lowercase and strip surrounding whitespace
  3. Drop a leading "the " article
  4. NFD decomposition, then remove combining marks (diacritics)
  5. Keep only a-z (digits, spaces, punctuation, other scripts are dropped)

So "Côte d'Ivoire", "COTE D IVOIRE" and "cote-divoire" all become
"cotedivoire", and "The Bahamas" becomes "bahamas".
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

_ARTICLE = "the "
_NON_LETTERS = re.compile(r"[^a-z]")
_FIRST_LETTER = re.compile(r"[a-z]")
_LAST_LETTER = re.compile(r"[a-z](?=[^a-z]*$)")


def canonicalize(raw: object) -> str:
    """Turn any human-entered or source name into its matching key."""
    if not isinstance(raw, str) or not raw:
        return ""

    text = raw.lower().strip()
    if text.startswith(_ARTICLE):
        text = text[len(_ARTICLE):]

    decomposed = unicodedata.normalize("NFD", text)
    without_marks = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_LETTERS.sub("", without_marks)


def first_letter(key: str) -> Optional[str]:
    m = _FIRST_LETTER.search(key)
    return m.group(0) if m else None


def last_letter(key: str) -> Optional[str]:
    m = _LAST_LETTER.search(key)
    return m.group(0) if m else None


def is_letter(value: object) -> bool:
    """True for exactly one lowercase a-z character."""
    return isinstance(value, str) and len(value) == 1 and "a" <= value <= "z"


def display_sort_key(name: str) -> tuple[str, str]:
    """
    Collation key approximating an English locale compare: accents and case
    are ignored first, the raw name breaks ties so ordering stays total.
    """
    decomposed = unicodedata.normalize("NFKD", name)
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()
    return folded, name
