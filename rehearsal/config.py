"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


@dataclass(frozen=True)
class Settings:
    # --- Database ---
    database_url: str = os.getenv(
        "REHEARSAL_DB_URL", f"sqlite+aiosqlite:///{DATA_DIR / 'rehearsal.db'}"
    )

    # --- Language ---
    default_language: str = os.getenv("REHEARSAL_DEFAULT_LANGUAGE", "en")

    # --- Anchors ---
    anchor_miss_threshold: int = 2  # misses while hidden before pinning
    anchor_hesitate_threshold: int = 3  # hesitations while hidden before pinning
    # None keeps anchors pinned forever
    anchor_release_streak: int | None = _optional_int("REHEARSAL_ANCHOR_RELEASE_STREAK")

    # --- Hiding pace (new words hidden per session) ---
    # (sessions strictly below, words per session)
    pace_tiers: tuple[tuple[int, int], ...] = ((11, 1), (21, 2))
    pace_floor: int = 3
    pace_rate: float = 0.03  # fraction of the script once past the tiers

    # --- Segment re-review delay, minutes ---
    # (visibility percent at or below, delay)
    review_delay_tiers: tuple[tuple[float, int], ...] = field(default_factory=lambda: (
        (20.0, 240),
        (50.0, 120),
        (80.0, 60),
    ))
    review_delay_default: int = 30
    mastered_visibility: float = 20.0

    # --- Phrases ---
    phrase_max_words: int = 5
    phrase_min_trailing_words: int = 4

    # --- Annotated text ---
    hidden_open: str = "["
    hidden_close: str = "]"

    # --- Reports ---
    mastery_report_limit: int = 50


settings = Settings()

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
