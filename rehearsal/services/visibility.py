"""Adaptive word-visibility selection.

Given one finished practice session, decide which words of the script are
hidden next time. The function is pure: it takes snapshots of the ledger
and phrase state and returns new ones, leaving persistence to the caller.

Order of precedence:
  1. Phrases containing a miss (or a hesitation on an already-shaky
     phrase) are shown in full this session, whatever the word state.
  2. Previously hidden words come back when they are recovering or pinned.
  3. Remaining previously hidden words stay hidden.
  4. A limited number of eligible words are newly hidden, filler words
     first, then medium words, then content words, in reading order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import AbstractSet, Iterable, Mapping

from rehearsal.services.classifier import PRIORITY, WordClass, classify, stop_words_for
from rehearsal.services.mastery import (
    CORRECT,
    HESITATED,
    MISSED,
    AnchorPolicy,
    WordRecord,
    eligible_for_hiding,
    is_recovering,
    record_attempt,
)
from rehearsal.services.pacing import hide_budget
from rehearsal.services.phrases import (
    PhraseChunk,
    can_hide,
    forced_visible,
    needs_recovery,
    record_phrase_session,
)
from rehearsal.services.rendering import render_annotated, visibility_percent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisibilityResult:
    hidden: frozenset[int]
    annotated_text: str
    visibility_percent: float
    total_words: int
    records: dict[str, WordRecord] = field(default_factory=dict)
    chunks: list[PhraseChunk] = field(default_factory=list)
    newly_hidden: tuple[int, ...] = ()
    revealed: tuple[int, ...] = ()
    forced_visible: frozenset[int] = frozenset()
    newly_anchored: tuple[int, ...] = ()
    anchor_indices: tuple[int, ...] = ()
    budget: int = 0


def classify_words(words: list[str], language: str | None) -> list[WordClass]:
    stop_words = stop_words_for(language)
    return [classify(word, stop_words) for word in words]


def seed_records(
    classes: list[WordClass], records: Mapping[str, WordRecord]
) -> dict[str, WordRecord]:
    """Return a record for every normalised word, creating missing ones.

    A word's classification is the easiest one among its occurrences, so a
    sentence-initial "The" shares the filler status of "the".
    """
    easiest: dict[str, WordClass] = {}
    for wc in classes:
        if not wc.normalized:
            continue
        current = easiest.get(wc.normalized)
        if current is None or PRIORITY[wc.classification] < PRIORITY[current.classification]:
            easiest[wc.normalized] = wc

    seeded: dict[str, WordRecord] = dict(records)
    for word, wc in easiest.items():
        base = seeded.get(word) or WordRecord(word=word)
        seeded[word] = replace(
            base, classification=wc.classification, ends_segment=wc.ends_segment
        )
    return seeded


def select_visibility(
    words: list[str],
    previous_hidden: Iterable[int],
    missed: Iterable[int],
    hesitated: Iterable[int],
    records: Mapping[str, WordRecord],
    chunks: list[PhraseChunk],
    total_sessions: int,
    language: str | None = "en",
    policy: AnchorPolicy | None = None,
    exercised: AbstractSet[int] | None = None,
) -> VisibilityResult:
    """
    Apply one practice session and choose the new hidden set.

    *exercised* limits which indices were practised (a segment); by default
    the whole script was read. Returns a ``VisibilityResult`` holding the new
    hidden set, the updated ledger and phrases, and the rendered text.
    """
    word_count = len(words)
    if word_count == 0:
        return VisibilityResult(
            hidden=frozenset(),
            annotated_text="",
            visibility_percent=0.0,
            total_words=0,
            records=dict(records),
            chunks=list(chunks),
        )

    policy = policy or AnchorPolicy()
    classes = classify_words(words, language)
    in_range = set(range(word_count))
    practised = set(in_range if exercised is None else exercised) & in_range

    missed_set = set(missed) & practised
    hesitated_set = (set(hesitated) & practised) - missed_set
    previous = {
        i for i in previous_hidden if i in in_range and classes[i].normalized
    }

    practised_chunks = [c for c in chunks if c.contains_any(practised)]
    forced = forced_visible(practised_chunks, missed_set, hesitated_set) & in_range

    # --- Ledger ---
    ledger = seed_records(classes, records)
    before = {word: rec.is_anchor for word, rec in ledger.items()}
    for i in sorted(practised):
        word = classes[i].normalized
        if not word:
            continue
        if i in missed_set:
            outcome = MISSED
        elif i in hesitated_set:
            outcome = HESITATED
        else:
            outcome = CORRECT
        ledger[word] = record_attempt(ledger[word], outcome, i in previous, policy)

    promoted = {
        word for word, rec in ledger.items() if rec.is_anchor and not before.get(word)
    }

    # --- Previously hidden words ---
    hidden: set[int] = set()
    revealed: list[int] = []
    for i in sorted(previous):
        record = ledger[classes[i].normalized]
        if i in forced or record.is_anchor or is_recovering(record):
            revealed.append(i)
        else:
            hidden.add(i)

    # --- New candidates ---
    candidates = sorted(
        (PRIORITY[ledger[classes[i].normalized].classification], i)
        for i in practised
        if classes[i].normalized
        and i not in hidden
        and i not in forced
        and eligible_for_hiding(ledger[classes[i].normalized])
    )
    budget = hide_budget(total_sessions, word_count)
    newly_hidden = tuple(sorted(i for _, i in candidates[:budget]))
    hidden.update(newly_hidden)

    # --- Phrases ---
    updated_chunks: list[PhraseChunk] = []
    for chunk in chunks:
        if not chunk.contains_any(practised):
            updated_chunks.append(chunk)
            continue
        recovering = needs_recovery(chunk, missed_set, hesitated_set)
        updated = record_phrase_session(chunk, missed_set, hesitated_set, previous)
        updated_chunks.append(
            replace(updated, hidden=can_hide(updated) and not recovering)
        )

    anchor_indices = tuple(
        i for i, wc in enumerate(classes) if wc.normalized and ledger[wc.normalized].is_anchor
    )
    newly_anchored = tuple(
        i for i, wc in enumerate(classes) if wc.normalized in promoted
    )

    logger.debug(
        "Selection: %d candidates, budget %d, %d kept, %d revealed, %d forced visible",
        len(candidates),
        budget,
        len(hidden) - len(newly_hidden),
        len(revealed),
        len(forced),
    )

    frozen_hidden = frozenset(hidden)
    return VisibilityResult(
        hidden=frozen_hidden,
        annotated_text=render_annotated(words, frozen_hidden),
        visibility_percent=visibility_percent(word_count, len(frozen_hidden)),
        total_words=word_count,
        records=ledger,
        chunks=updated_chunks,
        newly_hidden=newly_hidden,
        revealed=tuple(revealed),
        forced_visible=frozenset(forced),
        newly_anchored=newly_anchored,
        anchor_indices=anchor_indices,
        budget=budget,
    )
