"""
Token and normalization helpers shared by the fingerprint and similarity code.
"""

import math
import re
from typing import Iterable, List, Set

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_scalar(value: str) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value.strip().lower())


def normalize_list(items: Iterable[str]) -> List[str]:
    """Normalize every item, drop empties and duplicates, sort alphabetically."""
    seen = set()
    out = []
    for item in items or []:
        item = normalize_scalar(item)
        if not item or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return sorted(out)


def tokenize(text: str) -> List[str]:
    """Split text into case-folded alphanumeric tokens, in order of appearance."""
    if not text:
        return []
    return _TOKEN_RE.findall(text.lower())


def token_set(*texts: str) -> Set[str]:
    tokens = set()
    for text in texts:
        tokens.update(tokenize(text))
    return tokens


def normalize_token(text: str) -> str:
    """Keep only lower-case letters and digits: "Node.js" -> "nodejs"."""
    return "".join(tokenize(text))


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """
    Jaccard similarity of two collections treated as sets.

    Two empty collections score 0, not 1: nothing in common is not a match.
    """
    set_a = set(a)
    set_b = set(b)
    if not set_a and not set_b:
        return 0.0
    union = len(set_a | set_b)
    if union == 0:
        return 0.0
    return len(set_a & set_b) / union


def clamp01(value: float) -> float:
    if math.isnan(value) or value < 0:
        return 0.0
    if value > 1:
        return 1.0
    return value


def truncate(text: str, limit: int) -> str:
    text = (text or "").strip()
    return text[:limit]
