"""Word classification for hiding order.

Every token of a script falls into one of three buckets:

  - junk   : grammatical filler ("the", "and", "of") that carries little
             meaning and can disappear first.
  - medium : ordinary short words.
  - hard   : content-heavy words (long, accented, capitalised, numeric) and
             words that close a sentence. These disappear last.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

JUNK = "junk"
MEDIUM = "medium"
HARD = "hard"

# Hiding priority: lower hides first.
PRIORITY = {JUNK: 1, MEDIUM: 2, HARD: 3}

_NON_WORD = re.compile(r"[\W_]+")
_SEGMENT_END = (".", "!", "?")

STOP_WORDS: dict[str, frozenset[str]] = {
    "en": frozenset({
        # conjunctions
        "and", "or", "but", "so", "yet", "nor",
        # short prepositions
        "in", "on", "at", "to", "of", "by", "for",
        # articles
        "a", "an", "the",
        # copulas
        "is", "are", "was", "were", "be",
        # pronouns / demonstratives
        "it", "its", "this", "that",
    }),
    "sv": frozenset({
        "och", "eller", "men", "så", "som", "att",
        "i", "på", "av", "för", "till", "med", "om",
        "en", "ett", "den", "det", "de",
        "är", "var", "har", "kan", "ska", "vill",
        "jag", "du", "vi", "ni", "han", "hon",
    }),
}


@dataclass(frozen=True)
class WordClass:
    normalized: str
    is_junk: bool
    is_content_heavy: bool
    ends_segment: bool

    @property
    def classification(self) -> str:
        if self.is_junk:
            return JUNK
        if self.is_content_heavy or self.ends_segment:
            return HARD
        return MEDIUM


def normalize(token: str) -> str:
    """Lower-case and strip everything but letters and digits."""
    return _NON_WORD.sub("", token.lower())


def stop_words_for(language: str | None) -> frozenset[str]:
    """Return the curated stop-word set for *language* (English fallback)."""
    if language in STOP_WORDS:
        return STOP_WORDS[language]
    logger.warning("No stop words for language %r – falling back to English", language)
    return STOP_WORDS["en"]


def is_content_heavy(token: str, normalized: str | None = None) -> bool:
    if normalized is None:
        normalized = normalize(token)
    if len(normalized) > 5:
        return True
    # accented / non-latin letters
    if any(not ch.isascii() for ch in normalized):
        return True
    # proper nouns and sentence starts
    if token[:1].isupper():
        return True
    return any(ch.isdigit() for ch in token)


def ends_segment(token: str) -> bool:
    return token.rstrip().endswith(_SEGMENT_END)


def classify(token: str, stop_words: frozenset[str]) -> WordClass:
    """Classify a raw script token against *stop_words*."""
    normalized = normalize(token)
    heavy = is_content_heavy(token, normalized)
    closing = ends_segment(token)
    return WordClass(
        normalized=normalized,
        is_junk=normalized in stop_words and not heavy and not closing,
        is_content_heavy=heavy,
        ends_segment=closing,
    )
