"""Line feature extraction used by heuristic scoring."""

from __future__ import annotations

import re
from dataclasses import dataclass

_ARABIC_CHAR = re.compile(r"[\u0600-\u06FF]")
_LETTER = re.compile(r"[^\W\d_]", flags=re.UNICODE)
_PUNCTUATION = re.compile(r"[.!?،؟؛…]")
_SENTENCE_SPLIT = re.compile(r"[.!?؟]+")
_DIGIT = re.compile(r"\d")
_SPECIAL = re.compile(r"[^\w\s\u0600-\u06FF]", flags=re.UNICODE)


@dataclass(frozen=True, slots=True)
class LineFeatures:
    length: int
    arabic_ratio: float
    punctuation_count: int
    colon_count: int
    paren_count: int
    digit_count: int
    capital_ratio: float
    word_count: int
    sentence_count: int
    special_char_count: int


def extract_features(text: str) -> LineFeatures:
    """Derive the feature vector for an already-trimmed line.

    Arabic letters have no case, so they count toward `capital_ratio`
    together with uppercase Latin letters.
    """

    length = len(text)
    if length == 0:
        return LineFeatures(0, 0.0, 0, 0, 0, 0, 0.0, 0, 0, 0)

    arabic = len(_ARABIC_CHAR.findall(text))
    letters = _LETTER.findall(text)
    capitals = sum(1 for ch in letters if ch.isupper() or _ARABIC_CHAR.match(ch))
    sentences = [part for part in _SENTENCE_SPLIT.split(text) if part.strip()]

    return LineFeatures(
        length=length,
        arabic_ratio=arabic / length,
        punctuation_count=len(_PUNCTUATION.findall(text)),
        colon_count=text.count(":") + text.count("："),
        paren_count=text.count("(") + text.count(")"),
        digit_count=len(_DIGIT.findall(text)),
        capital_ratio=capitals / max(1, len(letters)),
        word_count=len(text.split()),
        sentence_count=len(sentences),
        special_char_count=len(_SPECIAL.findall(text)),
    )
