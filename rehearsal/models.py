"""SQLAlchemy ORM models for the rehearsal engine."""

from __future__ import annotations

import datetime as dt
import json
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rehearsal.database import Base
from rehearsal.services.mastery import WordRecord
from rehearsal.services.phrases import (
    PhraseChunk,
    weight_from_half_units,
    weight_to_half_units,
)


def _load_indices(raw: Optional[str]) -> list[int]:
    return [int(i) for i in json.loads(raw)] if raw else []


def _dump_indices(indices) -> str:
    return json.dumps(sorted(int(i) for i in indices))


# ---------------------------------------------------------------------------
# Speeches
# ---------------------------------------------------------------------------


class Speech(Base):
    __tablename__ = "speeches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    language: Mapped[str] = mapped_column(String(10), nullable=False, default="en")
    text_original: Mapped[str] = mapped_column(Text, nullable=False)
    text_current: Mapped[str] = mapped_column(Text, nullable=False)
    # JSON list of hidden word indices; text_current is rendered from it
    hidden_indices_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    visibility_percent: Mapped[float] = mapped_column(Float, default=100.0)
    total_sessions: Mapped[int] = mapped_column(Integer, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)

    __mapper_args__ = {"version_id_col": version}

    segments: Mapped[list["SpeechSegment"]] = relationship(
        back_populates="speech",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SpeechSegment.segment_order",
    )
    words: Mapped[list["WordMastery"]] = relationship(
        back_populates="speech", cascade="all, delete-orphan", passive_deletes=True
    )
    phrases: Mapped[list["SpeechPhrase"]] = relationship(
        back_populates="speech",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SpeechPhrase.start_word_index",
    )
    sessions: Mapped[list["PracticeSession"]] = relationship(
        back_populates="speech", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def hidden_indices(self) -> Optional[set[int]]:
        if self.hidden_indices_json is None:
            return None
        return set(_load_indices(self.hidden_indices_json))

    @hidden_indices.setter
    def hidden_indices(self, indices) -> None:
        self.hidden_indices_json = _dump_indices(indices)


class SpeechSegment(Base):
    __tablename__ = "speech_segments"
    __table_args__ = (UniqueConstraint("speech_id", "segment_order"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    speech_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("speeches.id", ondelete="CASCADE")
    )
    segment_order: Mapped[int] = mapped_column(Integer, nullable=False)
    start_word_index: Mapped[int] = mapped_column(Integer, nullable=False)
    end_word_index: Mapped[int] = mapped_column(Integer, nullable=False)  # inclusive
    visibility_percent: Mapped[float] = mapped_column(Float, default=100.0)
    anchor_indices_json: Mapped[str] = mapped_column(Text, default="[]")
    times_practiced: Mapped[int] = mapped_column(Integer, default=0)
    is_mastered: Mapped[bool] = mapped_column(Boolean, default=False)
    next_review_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime, nullable=True)
    last_practiced_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime, nullable=True
    )

    speech: Mapped["Speech"] = relationship(back_populates="segments")

    @property
    def anchor_indices(self) -> list[int]:
        return _load_indices(self.anchor_indices_json)

    @property
    def indices(self) -> range:
        return range(self.start_word_index, self.end_word_index + 1)


# ---------------------------------------------------------------------------
# Word mastery ledger
# ---------------------------------------------------------------------------


class WordMastery(Base):
    __tablename__ = "word_mastery"
    __table_args__ = (UniqueConstraint("speech_id", "word"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    speech_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("speeches.id", ondelete="CASCADE")
    )
    word: Mapped[str] = mapped_column(String(100), nullable=False)  # normalised
    classification: Mapped[str] = mapped_column(String(10), nullable=False)  # junk | medium | hard
    ends_segment: Mapped[bool] = mapped_column(Boolean, default=False)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    missed_count: Mapped[int] = mapped_column(Integer, default=0)
    hesitated_count: Mapped[int] = mapped_column(Integer, default=0)
    hidden_miss_count: Mapped[int] = mapped_column(Integer, default=0)
    hidden_hesitate_count: Mapped[int] = mapped_column(Integer, default=0)
    consecutive_correct: Mapped[int] = mapped_column(Integer, default=0)
    is_anchor: Mapped[bool] = mapped_column(Boolean, default=False)
    last_practiced_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime, nullable=True
    )

    speech: Mapped["Speech"] = relationship(back_populates="words")

    def to_record(self) -> WordRecord:
        return WordRecord(
            word=self.word,
            classification=self.classification,
            ends_segment=bool(self.ends_segment),
            correct_count=self.correct_count or 0,
            missed_count=self.missed_count or 0,
            hesitated_count=self.hesitated_count or 0,
            hidden_miss_count=self.hidden_miss_count or 0,
            hidden_hesitate_count=self.hidden_hesitate_count or 0,
            consecutive_correct=self.consecutive_correct or 0,
            is_anchor=bool(self.is_anchor),
        )

    def apply_record(self, record: WordRecord) -> None:
        self.classification = record.classification
        self.ends_segment = record.ends_segment
        self.correct_count = record.correct_count
        self.missed_count = record.missed_count
        self.hesitated_count = record.hesitated_count
        self.hidden_miss_count = record.hidden_miss_count
        self.hidden_hesitate_count = record.hidden_hesitate_count
        self.consecutive_correct = record.consecutive_correct
        self.is_anchor = record.is_anchor


# ---------------------------------------------------------------------------
# Phrase chunks
# ---------------------------------------------------------------------------


class SpeechPhrase(Base):
    __tablename__ = "speech_phrases"
    __table_args__ = (UniqueConstraint("speech_id", "start_word_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    speech_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("speeches.id", ondelete="CASCADE")
    )
    phrase_text: Mapped[str] = mapped_column(Text, nullable=False)
    start_word_index: Mapped[int] = mapped_column(Integer, nullable=False)
    end_word_index: Mapped[int] = mapped_column(Integer, nullable=False)  # inclusive
    times_correct: Mapped[int] = mapped_column(Integer, default=0)
    # missed weight in halves: +2 per miss, +1 per qualifying hesitation
    missed_half_units: Mapped[int] = mapped_column(Integer, default=0)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)

    speech: Mapped["Speech"] = relationship(back_populates="phrases")

    def to_chunk(self) -> PhraseChunk:
        return PhraseChunk(
            start_index=self.start_word_index,
            end_index=self.end_word_index,
            text=self.phrase_text,
            correct_count=self.times_correct or 0,
            missed_weight=weight_from_half_units(self.missed_half_units),
            hidden=bool(self.is_hidden),
        )

    def apply_chunk(self, chunk: PhraseChunk) -> None:
        self.times_correct = chunk.correct_count
        self.missed_half_units = weight_to_half_units(chunk.missed_weight)
        self.is_hidden = chunk.hidden

    @classmethod
    def from_chunk(cls, speech_id: int, chunk: PhraseChunk) -> "SpeechPhrase":
        phrase = cls(
            speech_id=speech_id,
            phrase_text=chunk.text,
            start_word_index=chunk.start_index,
            end_word_index=chunk.end_index,
        )
        phrase.apply_chunk(chunk)
        return phrase


# ---------------------------------------------------------------------------
# Practice session log
# ---------------------------------------------------------------------------


class PracticeSession(Base):
    __tablename__ = "practice_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    speech_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("speeches.id", ondelete="CASCADE")
    )
    segment_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("speech_segments.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    missed_json: Mapped[str] = mapped_column(Text, default="[]")
    hesitated_json: Mapped[str] = mapped_column(Text, default="[]")
    hidden_at_start_json: Mapped[str] = mapped_column(Text, default="[]")
    newly_hidden_json: Mapped[str] = mapped_column(Text, default="[]")
    newly_anchored_json: Mapped[str] = mapped_column(Text, default="[]")
    visibility_percent: Mapped[float] = mapped_column(Float, nullable=False)

    speech: Mapped["Speech"] = relationship(back_populates="sessions")
