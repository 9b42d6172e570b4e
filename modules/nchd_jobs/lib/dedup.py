"""
Intra-run deduplication.

Two postings are the same job when their normalized title, hospital name and
deadline day agree. Cross-run reconciliation (stale deactivation) uses the same
normalized title and lives in the job store.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from .hospitals import REF_CODE_RE
from .models import NormalizedPosting

_REF_FRAGMENT_RE = re.compile(r"\bref(?:erence)?(?:\s*(?:no\.?|number|code))?\s*[:#.]\s*\S+", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")


@dataclass
class DedupResult:
    unique: list[NormalizedPosting] = field(default_factory=list)
    duplicates: int = 0


def normalize_title(title: str | None) -> str:
    """Drop reference codes and "ref: ..." fragments, lower-case, collapse whitespace."""
    text = REF_CODE_RE.sub(" ", title or "")
    text = _REF_FRAGMENT_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip().lower()


def dedup_key(posting: NormalizedPosting) -> str:
    deadline_day = posting.application_deadline.date().isoformat()
    return f"{normalize_title(posting.title)}|{posting.hospital_name.strip().lower()}|{deadline_day}"


def deduplicate(postings: Iterable[NormalizedPosting]) -> DedupResult:
    """
    Keep the first occurrence per key, in input order.
    duplicates == len(input) - len(unique), and deduplicate(unique) is a no-op.
    """
    result = DedupResult()
    seen: set[str] = set()
    for p in postings:
        key = dedup_key(p)
        if key in seen:
            result.duplicates += 1
            continue
        seen.add(key)
        result.unique.append(p)
    return result
