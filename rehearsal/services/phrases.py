"""Phrase chunking and chunk-level performance tracking.

A script is cut once into short recall units (phrases) bounded by
punctuation or by length. Phrases are never regenerated afterwards; their
counters are carried forward session by session.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from fractions import Fraction
from typing import AbstractSet, Iterable

from rehearsal.config import settings

_PHRASE_END = (",", ";", ":", ".", "!", "?")

MISS_WEIGHT = Fraction(1)
HESITATION_WEIGHT = Fraction(1, 2)
MIN_CORRECT_TO_HIDE = 3


@dataclass(frozen=True)
class PhraseChunk:
    start_index: int
    end_index: int  # inclusive
    text: str = ""
    correct_count: int = 0
    missed_weight: Fraction = Fraction(0)
    hidden: bool = False

    @property
    def indices(self) -> range:
        return range(self.start_index, self.end_index + 1)

    def contains_any(self, indices: AbstractSet[int]) -> bool:
        return any(i in indices for i in self.indices)


def chunk_words(
    words: list[str],
    max_words: int | None = None,
    min_trailing: int | None = None,
) -> list[PhraseChunk]:
    """Split *words* into contiguous, non-overlapping phrases covering all of it."""
    max_words = max_words or settings.phrase_max_words
    min_trailing = min_trailing or settings.phrase_min_trailing_words

    spans: list[tuple[int, int]] = []
    start = 0
    for i, word in enumerate(words):
        length = i - start + 1
        if word.endswith(_PHRASE_END) or length >= max_words:
            spans.append((start, i))
            start = i + 1

    if start < len(words):
        remainder = len(words) - start
        if remainder >= min_trailing or not spans:
            spans.append((start, len(words) - 1))
        else:
            prev_start, _ = spans.pop()
            spans.append((prev_start, len(words) - 1))

    return [
        PhraseChunk(start_index=s, end_index=e, text=" ".join(words[s:e + 1]))
        for s, e in spans
    ]


def needs_recovery(
    chunk: PhraseChunk, missed: AbstractSet[int], hesitated: AbstractSet[int]
) -> bool:
    """A phrase with a miss, or a hesitation on top of past struggle, is shown in full."""
    if chunk.contains_any(missed):
        return True
    return chunk.contains_any(hesitated) and chunk.missed_weight >= 1


def can_hide(chunk: PhraseChunk) -> bool:
    if chunk.correct_count < MIN_CORRECT_TO_HIDE:
        return False
    return chunk.correct_count >= MIN_CORRECT_TO_HIDE * math.ceil(chunk.missed_weight)


def record_phrase_session(
    chunk: PhraseChunk,
    missed: AbstractSet[int],
    hesitated: AbstractSet[int],
    hidden_at_start: AbstractSet[int],
) -> PhraseChunk:
    """Fold one practice session into the phrase counters.

    Every missed word adds a full miss; every hesitation on a word that was
    hidden (and not also missed) adds half a miss. A phrase with neither
    counts as one correct reading.
    """
    members = set(chunk.indices)
    misses = members & set(missed)
    shaky = (members & set(hesitated) & set(hidden_at_start)) - misses
    if not misses and not shaky:
        return replace(chunk, correct_count=chunk.correct_count + 1)
    added = MISS_WEIGHT * len(misses) + HESITATION_WEIGHT * len(shaky)
    return replace(chunk, missed_weight=chunk.missed_weight + added)


def forced_visible(
    chunks: Iterable[PhraseChunk],
    missed: AbstractSet[int],
    hesitated: AbstractSet[int],
) -> set[int]:
    indices: set[int] = set()
    for chunk in chunks:
        if needs_recovery(chunk, missed, hesitated):
            indices.update(chunk.indices)
    return indices


# --- Storage helpers (missed weight is persisted in half-units) ---


def weight_to_half_units(weight: Fraction) -> int:
    halves = weight * 2
    if halves.denominator != 1:
        raise ValueError(f"Missed weight {weight} is not a multiple of 1/2")
    return int(halves)


def weight_from_half_units(half_units: int) -> Fraction:
    return Fraction(half_units or 0, 2)
