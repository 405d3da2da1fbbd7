"""Unit tests for the visibility selector.

HOW: Every test drives ``select_visibility`` directly with in-memory
ledger and phrase snapshots; no database is involved. Tests are grouped by
behaviour:
  - TestWorkedExamples: first session, a hidden word missed once, twice
  - TestPhraseRecovery: whole-phrase reveal on a miss or shaky hesitation
  - TestBudget: new words per session never exceed the pace budget
  - TestProperties: visibility formula, idempotence, empty script
  - TestSegments: practice limited to part of the script
"""

from __future__ import annotations

from fractions import Fraction

import pytest

from rehearsal.services.mastery import WordRecord, is_recovering
from rehearsal.services.pacing import hide_budget
from rehearsal.services.phrases import PhraseChunk, chunk_words
from rehearsal.services.visibility import select_visibility


def _run(words, previous=(), missed=(), hesitated=(), records=None, chunks=None,
         total_sessions=0, **kwargs):
    return select_visibility(
        words=words,
        previous_hidden=set(previous),
        missed=set(missed),
        hesitated=set(hesitated),
        records=records or {},
        chunks=chunk_words(words) if chunks is None else chunks,
        total_sessions=total_sessions,
        **kwargs,
    )


def _seasoned(words, streak=10) -> dict[str, WordRecord]:
    """Records for every word with a long clean history."""
    records = {}
    for word in words:
        key = "".join(ch for ch in word.lower() if ch.isalnum())
        records[key] = WordRecord(word=key, correct_count=streak, consecutive_correct=streak)
    return records


# ---------------------------------------------------------------------------
# TestWorkedExamples
# ---------------------------------------------------------------------------


class TestWorkedExamples:

    def test_first_session_hides_only_the_first_filler_word(self, fox_words):
        result = _run(fox_words)
        assert result.hidden == {0}
        assert result.newly_hidden == (0,)
        assert result.annotated_text == "[The] quick brown fox jumps over the lazy dog."
        # "the" was read twice in one session
        assert result.records["the"].correct_count == 2
        assert result.records["the"].classification == "junk"

    def test_nothing_else_is_eligible_on_first_exposure(self, fox_words):
        result = _run(fox_words)
        for word, record in result.records.items():
            if word != "the":
                assert record.correct_count == 1

    def test_hidden_word_missed_once_stays_visible_until_repaid(self, fox_words):
        result = _run(fox_words, previous={3}, missed={3})
        fox = result.records["fox"]
        assert fox.hidden_miss_count == 1
        assert not fox.is_anchor
        assert 3 not in result.hidden
        assert 3 in result.revealed

        previous = result.hidden
        records = result.records
        for session in range(1, 4):
            result = _run(fox_words, previous=previous, records=records, total_sessions=session)
            previous, records = result.hidden, result.records
            fox = records["fox"]
            assert fox.correct_count == session
            if session < 3:
                assert is_recovering(fox)
                assert 3 not in result.hidden
        assert not is_recovering(records["fox"])

    def test_two_hidden_misses_pin_the_word_forever(self, fox_words):
        first = _run(fox_words, previous={3}, missed={3})
        second = _run(
            fox_words, previous={3}, missed={3}, records=first.records, total_sessions=1
        )
        assert second.records["fox"].is_anchor
        assert second.newly_anchored == (3,)
        assert 3 in second.anchor_indices

        previous, records = second.hidden, second.records
        for session in range(2, 40):
            result = _run(
                fox_words,
                previous=previous | {3},
                records=records,
                total_sessions=session,
            )
            assert result.records["fox"].is_anchor
            assert 3 not in result.hidden
            previous, records = result.hidden, result.records

    def test_hidden_hesitations_pin_on_the_third(self, fox_words):
        records = {"fox": WordRecord(word="fox", correct_count=10, hidden_hesitate_count=2)}
        result = _run(fox_words, previous={3}, hesitated={3}, records=records)
        assert result.records["fox"].is_anchor
        assert 3 in result.newly_anchored


# ---------------------------------------------------------------------------
# TestPhraseRecovery
# ---------------------------------------------------------------------------


class TestPhraseRecovery:

    def test_miss_reveals_whole_phrase_regardless_of_budget(self, fox_words):
        result = _run(
            fox_words,
            previous={0, 2},
            missed={1},
            records=_seasoned(fox_words),
            total_sessions=100,
        )
        assert result.forced_visible == {0, 1, 2, 3, 4}
        assert not result.hidden & {0, 1, 2, 3, 4}
        assert set(result.revealed) == {0, 2}
        assert set(result.newly_hidden) <= {5, 6, 7, 8}

    def test_hesitation_on_shaky_phrase_reveals_it(self, fox_words):
        chunks = [
            PhraseChunk(0, 4, missed_weight=Fraction(1)),
            PhraseChunk(5, 8),
        ]
        result = _run(
            fox_words,
            previous={2},
            hesitated={2},
            records=_seasoned(fox_words),
            chunks=chunks,
        )
        assert result.forced_visible == {0, 1, 2, 3, 4}
        assert 2 not in result.hidden

    def test_hesitation_on_steady_phrase_keeps_word_hidden(self, fox_words):
        result = _run(
            fox_words,
            previous={2},
            hesitated={2},
            records=_seasoned(fox_words),
        )
        assert result.forced_visible == frozenset()
        assert 2 in result.hidden
        assert result.chunks[0].missed_weight == Fraction(1, 2)

    def test_phrase_hidden_flag_follows_counters(self, fox_words):
        chunks = [
            PhraseChunk(0, 4, correct_count=2),
            PhraseChunk(5, 8, correct_count=3, missed_weight=Fraction(3, 2)),
        ]
        result = _run(fox_words, chunks=chunks)
        assert result.chunks[0].hidden
        assert result.chunks[0].correct_count == 3
        assert not result.chunks[1].hidden

    def test_recovering_phrase_is_not_marked_hidden(self, fox_words):
        chunks = [PhraseChunk(0, 4, correct_count=9), PhraseChunk(5, 8)]
        result = _run(fox_words, missed={1}, chunks=chunks)
        assert not result.chunks[0].hidden


# ---------------------------------------------------------------------------
# TestBudget
# ---------------------------------------------------------------------------


class TestBudget:

    @pytest.mark.parametrize("sessions", [0, 5, 12, 25, 40])
    def test_new_words_never_exceed_budget(self, fox_words, sessions):
        result = _run(fox_words, records=_seasoned(fox_words), total_sessions=sessions)
        budget = hide_budget(sessions, len(fox_words))
        assert len(result.newly_hidden) == min(budget, len(fox_words))
        assert result.budget == budget

    def test_filler_words_go_first_then_reading_order(self, fox_words):
        result = _run(fox_words, records=_seasoned(fox_words), total_sessions=100)
        assert result.newly_hidden == (0, 1, 6)

    def test_kept_words_do_not_use_budget(self, fox_words):
        result = _run(
            fox_words,
            previous={0, 6},
            records=_seasoned(fox_words),
            total_sessions=0,
        )
        assert {0, 6} <= result.hidden
        assert len(result.newly_hidden) == 1


# ---------------------------------------------------------------------------
# TestProperties
# ---------------------------------------------------------------------------


class TestProperties:

    def test_visibility_percent_formula(self, fox_words):
        previous, records = set(), {}
        for session in range(30):
            result = _run(fox_words, previous=previous, records=records, total_sessions=session)
            expected = 100 * (len(fox_words) - len(result.hidden)) / len(fox_words)
            assert result.visibility_percent == expected
            previous, records = result.hidden, result.records

    def test_same_inputs_give_same_hidden_set(self, fox_words):
        records = _seasoned(fox_words, streak=3)
        first = _run(fox_words, previous={0}, records=records, total_sessions=12)
        second = _run(fox_words, previous={0}, records=records, total_sessions=12)
        assert first.hidden == second.hidden
        assert first.records == second.records

    def test_inputs_are_not_mutated(self, fox_words):
        records = _seasoned(fox_words)
        snapshot = dict(records)
        _run(fox_words, missed={3}, records=records)
        assert records == snapshot

    def test_empty_script(self):
        result = _run([])
        assert result.visibility_percent == 0.0
        assert result.hidden == frozenset()
        assert result.annotated_text == ""

    def test_punctuation_tokens_are_never_hidden(self):
        words = ["the", "—", "the", "the"]
        result = _run(words, previous={1}, records=_seasoned(["the"]))
        assert 1 not in result.hidden


# ---------------------------------------------------------------------------
# TestSegments
# ---------------------------------------------------------------------------


class TestSegments:

    def test_only_practised_words_are_recorded(self, fox_words):
        result = _run(fox_words, exercised={5, 6, 7, 8})
        assert result.records["quick"].correct_count == 0
        assert result.records["the"].correct_count == 1

    def test_new_words_come_from_the_segment(self, fox_words):
        result = _run(
            fox_words,
            records=_seasoned(fox_words),
            exercised={5, 6, 7, 8},
            total_sessions=100,
        )
        assert result.newly_hidden
        assert set(result.newly_hidden) <= {5, 6, 7, 8}

    def test_untouched_phrases_keep_their_counters(self, fox_words):
        chunks = [PhraseChunk(0, 4, correct_count=1), PhraseChunk(5, 8)]
        result = _run(fox_words, chunks=chunks, exercised={5, 6, 7, 8})
        assert result.chunks[0].correct_count == 1
        assert result.chunks[1].correct_count == 1
