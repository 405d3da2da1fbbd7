"""Annotated-text rendering and visibility figures."""

from __future__ import annotations

from typing import AbstractSet

from rehearsal.config import settings


def tokenize(text: str | None) -> list[str]:
    """Split a script into word tokens (whitespace separated)."""
    return (text or "").split()


def render_annotated(words: list[str], hidden: AbstractSet[int]) -> str:
    """Wrap every hidden token in the hidden-word delimiters."""
    open_, close = settings.hidden_open, settings.hidden_close
    return " ".join(
        f"{open_}{word}{close}" if i in hidden else word
        for i, word in enumerate(words)
    )


def parse_hidden_indices(annotated: str | None) -> set[int]:
    """Recover the hidden index set from previously rendered text."""
    open_, close = settings.hidden_open, settings.hidden_close
    return {
        i
        for i, token in enumerate(tokenize(annotated))
        if len(token) > len(open_) + len(close)
        and token.startswith(open_)
        and token.endswith(close)
    }


def visibility_percent(word_count: int, hidden_count: int) -> float:
    if word_count <= 0:
        return 0.0
    return 100 * (word_count - hidden_count) / word_count


def review_delay_minutes(percent: float) -> int:
    """Local re-review delay for a segment, from its visibility percent."""
    for at_most, minutes in settings.review_delay_tiers:
        if percent <= at_most:
            return minutes
    return settings.review_delay_default
