"""Keyword matching shared by gap suggestions and the finding mapper."""
from __future__ import annotations

import re

_WORD = re.compile(r"\W+")


def keywords(*texts: str | None, min_length: int = 4) -> list[str]:
    """Lowercased distinct words of at least ``min_length`` chars, in order."""
    seen: dict[str, None] = {}
    for text in texts:
        for word in _WORD.split((text or "").lower()):
            if len(word) >= min_length and "_" not in word:
                seen.setdefault(word, None)
    return list(seen)


def keyword_similarity(words: list[str], *texts: str | None) -> tuple[float, list[str]]:
    """Share of ``words`` found in the given texts, plus the matched words."""
    if not words:
        return 0.0, []
    haystack = " ".join(t for t in texts if t).lower()
    matched = [w for w in words if w in haystack]
    return len(matched) / len(words), matched
