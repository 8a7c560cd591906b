"""Text normalization and token-set similarity.

Titles written by different upstream tools describe the same change with
slightly different wording ("Add user dashboard", "Added a user dashboard").
Token sets are normalized before comparison: lower-cased, punctuation removed,
filler words dropped and common English suffixes stripped, so such variants
compare as near-identical while unrelated titles stay far apart.
"""

from __future__ import annotations

import re

_TOKEN_RE = re.compile(r"[a-z0-9]+")

STOPWORDS = frozenset(
    {
        "a",
        "an",
        "the",
        "to",
        "of",
        "for",
        "and",
        "or",
        "in",
        "on",
        "at",
        "by",
        "with",
        "from",
        "is",
        "are",
        "be",
    }
)

# Stems shorter than this are left alone ("used" must not become "us").
_MIN_STEM = 3


def normalize_title(title: str | None) -> str:
    """Lower-case and trim a title."""
    return (title or "").lower().strip()


def stem(token: str) -> str:
    """Strip one inflectional suffix, then a trailing 'e'."""
    for suffix in ("ing", "ed", "es"):
        if token.endswith(suffix) and len(token) - len(suffix) >= _MIN_STEM:
            token = token[: -len(suffix)]
            break
    else:
        if token.endswith("s") and not token.endswith("ss") and len(token) - 1 >= _MIN_STEM:
            token = token[:-1]
    if token.endswith("e") and len(token) - 1 >= _MIN_STEM:
        token = token[:-1]
    return token


def tokenize(text: str | None) -> frozenset[str]:
    """Normalized token set of a text."""
    words = _TOKEN_RE.findall((text or "").lower())
    return frozenset(stem(word) for word in words if word not in STOPWORDS)


def jaccard(left: frozenset[str], right: frozenset[str]) -> float:
    """|A & B| / |A | B|; two empty sets are identical."""
    if not left and not right:
        return 1.0
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def text_similarity(left: str | None, right: str | None) -> float:
    """Token-Jaccard similarity of two texts in [0, 1]."""
    return jaccard(tokenize(left), tokenize(right))
