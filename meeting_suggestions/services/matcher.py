"""Duplicate detection between short task labels.

Layered heuristics, applied case-insensitively to whitespace-trimmed labels:

1. exact match;
2. containment, when the shorter label covers enough of the longer one;
3. token overlap, when enough content tokens are shared *and* the two
   labels carry a similar amount of content.

This is approximate by nature. The thresholds below are module constants so
they can be tuned (and tested) independently.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence, Set

# Shorter label must be at least this fraction of the longer one (characters).
CONTAINMENT_MIN_RATIO = 0.7
# Shared tokens / max(token counts) must exceed this.
TOKEN_OVERLAP_THRESHOLD = 0.6
# min(content length) / max(content length) must exceed this.
LENGTH_SIMILARITY_THRESHOLD = 0.7
# Tokens of this many characters or fewer are ignored.
MAX_IGNORED_TOKEN_LENGTH = 2

_STOPWORDS = {
    "the", "and", "for", "with", "from", "into", "onto", "that", "this", "about",
    "our", "your", "their", "its", "are", "was", "were", "been", "being", "will",
    "should", "could", "would", "can", "may", "might", "have", "has", "had",
    "all", "any", "some", "via", "per",
}


def normalize_label(label: str) -> str:
    return " ".join((label or "").strip().lower().split())


def content_tokens(label: str) -> List[str]:
    """Lowercased word tokens with punctuation, short tokens and stopwords removed."""
    s = re.sub(r"[^a-z0-9\s]", " ", (label or "").lower())
    return [
        t for t in s.split()
        if len(t) > MAX_IGNORED_TOKEN_LENGTH and t not in _STOPWORDS
    ]


def _is_contained(a: str, b: str) -> bool:
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if not shorter or shorter not in longer:
        return False
    return len(shorter) / len(longer) >= CONTAINMENT_MIN_RATIO


def token_overlap(a: Sequence[str], b: Sequence[str]) -> float:
    sa, sb = set(a), set(b)
    if not sa or not sb:
        return 0.0
    return len(sa & sb) / max(len(sa), len(sb))


def length_similarity(a: Sequence[str], b: Sequence[str]) -> float:
    # Measured on retained content so filler words don't skew the ratio.
    la = len(" ".join(a))
    lb = len(" ".join(b))
    if not la or not lb:
        return 0.0
    return min(la, lb) / max(la, lb)


def _is_near_paraphrase(a: str, b: str) -> bool:
    ta, tb = content_tokens(a), content_tokens(b)
    if not ta or not tb:
        return False
    return (
        token_overlap(ta, tb) > TOKEN_OVERLAP_THRESHOLD
        and length_similarity(ta, tb) > LENGTH_SIMILARITY_THRESHOLD
    )


def is_duplicate(candidate_label: str, known_labels: Iterable[str]) -> bool:
    cand = normalize_label(candidate_label)
    for known in known_labels:
        other = normalize_label(known)
        if cand == other:
            return True
        if not cand or not other:
            continue
        if _is_contained(cand, other):
            return True
        if _is_near_paraphrase(cand, other):
            return True
    return False


def filter_novel(labels: Iterable[str], known_labels: Iterable[str]) -> List[int]:
    """Return indexes of labels that duplicate neither the known set nor an earlier label.

    Each surviving label joins the known set, so near-identical candidates in
    one batch collapse to the first occurrence.
    """
    known: List[str] = [k for k in known_labels if normalize_label(k)]
    seen: Set[str] = set()
    keep: List[int] = []
    for idx, label in enumerate(labels):
        norm = normalize_label(label)
        if norm in seen or is_duplicate(label, known):
            continue
        seen.add(norm)
        known.append(label)
        keep.append(idx)
    return keep
