"""
Context extraction around a match span.

The context of a match is the sentence that encloses it. A sentence
terminator is '.', '!' or '?' followed by whitespace or the end of the text,
so the dots inside emails, domains and IP addresses never split a sentence.
When no sentence can be resolved the context falls back to a window of
words around the match.

Two modes return byte-identical output:
- extract_context(): scans the text from the match outwards
- ContextCache: precomputes terminator and word offsets once per text,
  for texts with many matches
"""

from __future__ import annotations

import bisect
import logging
import re
from typing import List, Optional, Tuple

from .constants import CONTEXT_WORD_WINDOW, SENTENCE_TERMINATORS

__all__ = [
    "extract_context",
    "ContextCache",
]

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\S+")


def _is_terminator(text: str, i: int) -> bool:
    if text[i] not in SENTENCE_TERMINATORS:
        return False
    return i + 1 == len(text) or text[i + 1].isspace()


def _finish_sentence(text: str, sentence_start: int, sentence_end: int) -> str:
    while sentence_start < sentence_end and text[sentence_start].isspace():
        sentence_start += 1
    if sentence_start >= sentence_end:
        return ""
    return text[sentence_start:sentence_end].strip()


def _word_window(text: str, words: List[Tuple[int, int]], start: int, end: int) -> str:
    """
    Join the words around [start, end): the words the span touches plus
    CONTEXT_WORD_WINDOW on each side. A span between words takes
    CONTEXT_WORD_WINDOW words from either side of the gap.
    """
    # first: first word ending after start; last: last word starting before end
    first = bisect.bisect_right([w_end for _, w_end in words], start)
    last = bisect.bisect_left([w_start for w_start, _ in words], end) - 1

    lo = max(0, first - CONTEXT_WORD_WINDOW)
    hi = min(len(words), last + 1 + CONTEXT_WORD_WINDOW)
    return " ".join(text[a:b] for a, b in words[lo:hi])


def extract_context(text: str, start: int, end: int) -> str:
    """
    Return the sentence enclosing text[start:end], or a word window.

    Args:
        text: Full source text
        start: Match start (inclusive)
        end: Match end (exclusive)
    """
    if not 0 <= start <= end <= len(text):
        raise ValueError(f"Invalid span ({start}, {end}) for text of length {len(text)}")

    sentence_start = 0
    for i in range(start - 1, -1, -1):
        if _is_terminator(text, i):
            sentence_start = i + 1
            break

    sentence_end = len(text)
    for i in range(end, len(text)):
        if _is_terminator(text, i):
            sentence_end = i + 1
            break

    sentence = _finish_sentence(text, sentence_start, sentence_end)
    if sentence:
        return sentence

    words = [m.span() for m in _WORD_RE.finditer(text)]
    return _word_window(text, words, start, end)


class ContextCache:
    """
    Amortized context extraction for one text.

    Sentence terminator offsets are computed once; each lookup is a pair of
    binary searches instead of a rescan of the text. Output is identical to
    extract_context() for every span.

    Usage:
        cache = ContextCache(text)
        for start, end in spans:
            context = cache.extract(start, end)
    """

    def __init__(self, text: str):
        self.text = text
        self._terminators = [i for i in range(len(text)) if _is_terminator(text, i)]
        self._words: Optional[List[Tuple[int, int]]] = None

    @property
    def terminator_count(self) -> int:
        return len(self._terminators)

    def extract(self, start: int, end: int) -> str:
        text = self.text
        if not 0 <= start <= end <= len(text):
            raise ValueError(f"Invalid span ({start}, {end}) for text of length {len(text)}")

        idx = bisect.bisect_left(self._terminators, start) - 1
        sentence_start = self._terminators[idx] + 1 if idx >= 0 else 0

        idx = bisect.bisect_left(self._terminators, end)
        sentence_end = self._terminators[idx] + 1 if idx < len(self._terminators) else len(text)

        sentence = _finish_sentence(text, sentence_start, sentence_end)
        if sentence:
            return sentence

        if self._words is None:
            self._words = [m.span() for m in _WORD_RE.finditer(text)]
        return _word_window(text, self._words, start, end)
