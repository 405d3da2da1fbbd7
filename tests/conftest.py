"""Shared test fixtures for the rehearsal test suite.

Each test gets its own SQLite database file under ``tmp_path`` so tests
never share ledger state. Route tests talk to the FastAPI app through an
in-process ASGI transport with the ``get_db`` dependency pointed at the
per-test database.
"""

from __future__ import annotations

from typing import Sequence

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from main import app
from rehearsal.database import get_db, init_db, make_engine
from rehearsal.models import Speech, SpeechSegment
from rehearsal.services import session_update
from rehearsal.services.rendering import tokenize
from rehearsal.services.session_update import ensure_phrases

FOX_TEXT = "The quick brown fox jumps over the lazy dog."


@pytest.fixture(autouse=True)
def _fresh_speech_locks():
    """Locks are bound to an event loop once contended; start each test clean."""
    session_update._speech_locks.clear()
    yield
    session_update._speech_locks.clear()


@pytest.fixture
def fox_words() -> list[str]:
    return FOX_TEXT.split()


@pytest_asyncio.fixture
async def engine(tmp_path):
    test_engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def create_speech(
    db: AsyncSession,
    text: str = FOX_TEXT,
    language: str = "en",
    segments: Sequence[tuple[int, int]] = (),
) -> int:
    """Insert a speech (with segments and phrases) and return its id."""
    words = tokenize(text)
    speech = Speech(
        title="Test speech",
        language=language,
        text_original=text,
        text_current=" ".join(words),
        visibility_percent=100.0 if words else 0.0,
        total_sessions=0,
    )
    speech.hidden_indices = set()
    db.add(speech)
    await db.flush()
    for order, (start, end) in enumerate(segments):
        db.add(
            SpeechSegment(
                speech_id=speech.id,
                segment_order=order,
                start_word_index=start,
                end_word_index=end,
            )
        )
    await ensure_phrases(db, speech, words)
    await db.commit()
    return speech.id


@pytest_asyncio.fixture
async def fox_speech_id(session_factory) -> int:
    async with session_factory() as session:
        return await create_speech(session)


@pytest_asyncio.fixture
async def client(session_factory):
    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def speech_factory():
    """The ``create_speech`` helper, for tests that need custom speeches."""
    return create_speech
