"""
Text normalization and fingerprinting for answer tracking.

Known answers are tracked by a cheap 32-bit hash instead of their full text,
so memory grows with the number of distinct answers, not with poll count.
"""

from __future__ import annotations

import re
from typing import Iterable, Iterator, Set

from ..config import LIKELY_SAME_MIN_LENGTH

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """Collapse whitespace runs to a single space and trim."""
    return _WHITESPACE_RE.sub(" ", value or "").strip()


def is_likely_same_answer(candidate: str, expected: str) -> bool:
    """
    Whether two texts are the same answer, tolerating truncation.

    Long texts (both >= 80 chars) match when one contains the other; short
    texts must match exactly after normalization.
    """
    a = normalize_text(candidate)
    b = normalize_text(expected)
    if not a or not b:
        return False
    if a == b:
        return True
    if len(a) >= LIKELY_SAME_MIN_LENGTH and len(b) >= LIKELY_SAME_MIN_LENGTH:
        return a in b or b in a
    return False


def hash_string(value: str) -> int:
    """
    Rolling ``h * 31 + code`` hash wrapped to signed 32 bits.

    Iterates UTF-16 code units so the result equals the in-page
    ``charCodeAt`` implementation for the same string.
    """
    h = 0
    data = value.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        code = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + code) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def fingerprint(text: str) -> int:
    return hash_string(normalize_text(text))


class KnownResponses:
    """
    Set of fingerprints for texts that must not be reported as new.

    Collisions count as known; texts are never compared in full.
    ``container_count`` only counts fingerprints of texts read from answer
    containers; texts seen elsewhere (a question echo) do not stand in for
    a container.
    """

    def __init__(self, texts: Iterable[str] = ()):
        self._hashes: Set[int] = set()
        self._container_hashes: Set[int] = set()
        for text in texts:
            if isinstance(text, str) and text.strip():
                self.add_text(text)

    def add(self, value: int) -> None:
        self._hashes.add(value)

    def add_text(self, text: str, from_container: bool = True) -> int:
        value = fingerprint(text)
        self._hashes.add(value)
        if from_container:
            self._container_hashes.add(value)
        return value

    def has_text(self, text: str) -> bool:
        return fingerprint(text) in self._hashes

    def __contains__(self, value: object) -> bool:
        return value in self._hashes

    @property
    def container_count(self) -> int:
        return len(self._container_hashes)

    def __len__(self) -> int:
        return len(self._hashes)

    def __iter__(self) -> Iterator[int]:
        return iter(self._hashes)
