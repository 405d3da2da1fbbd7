"""How many new words may disappear in one session."""

from __future__ import annotations

import math

from rehearsal.config import settings


def hide_budget(total_sessions: int, word_count: int) -> int:
    """
    Number of *new* words that may be hidden this session.

    Early sessions hide one word at a time, then two; once a script has
    been rehearsed often the budget grows with its length.
    """
    for below, budget in settings.pace_tiers:
        if total_sessions < below:
            return max(1, budget)
    return max(settings.pace_floor, math.ceil(settings.pace_rate * word_count), 1)
