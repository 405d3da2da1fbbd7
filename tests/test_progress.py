"""Tests for the word mastery report."""

from __future__ import annotations

import pytest

from rehearsal.services.mastery import WordRecord
from rehearsal.services.progress import describe_word, difficulty_score, mastery_report
from rehearsal.services.session_update import SpeechNotFoundError, apply_session


class TestDescribeWord:

    def test_unseen_word_is_easy(self):
        assert difficulty_score(WordRecord(word="fox")) == 0.0

    def test_hidden_misses_raise_difficulty(self):
        visible = WordRecord(word="fox", correct_count=2, missed_count=1)
        hidden = WordRecord(word="fox", correct_count=2, missed_count=1, hidden_miss_count=1)
        assert difficulty_score(hidden) > difficulty_score(visible)

    def test_recovering_word_is_struggling(self):
        info = describe_word(WordRecord(word="fox", correct_count=5, missed_count=1, hidden_miss_count=2))
        assert info["is_recovering"]
        assert info["recovery_remaining"] == 1
        assert info["struggling"]


class TestMasteryReport:

    async def test_limit_trims_word_list(self, db, fox_speech_id):
        await apply_session(db, fox_speech_id, missed_indices=[3])
        report = await mastery_report(db, fox_speech_id, limit=2)
        assert [w["word"] for w in report["words"]][:1] == ["fox"]
        assert len(report["words"]) == 2
        assert report["word_count"] == 8

    @pytest.mark.parametrize("limit", [0, -1])
    async def test_non_positive_limit_is_rejected(self, db, fox_speech_id, limit):
        with pytest.raises(ValueError):
            await mastery_report(db, fox_speech_id, limit=limit)

    async def test_unknown_speech(self, db):
        with pytest.raises(SpeechNotFoundError):
            await mastery_report(db, 9999)
