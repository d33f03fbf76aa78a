from datetime import datetime
from unittest.mock import AsyncMock, Mock

import jwt
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from coach.assistant import CoachAssistant
from coach.history import SessionHistory
from coach.models import EmotionRecord, User
from coach.store import CoachStore
from coach.tasks import TaskTracker

JWT_SECRET = "coach-test-secret-0123456789abcdef"


class FakeModel:
    """Scripted stand-in for ChatModelClient."""

    def __init__(self, chunks=("a", "b", "c"), error=None, summary="新的摘要"):
        self.chunks = list(chunks)
        self.error = error
        self.summary = summary
        self.calls = []

    async def generate(self, messages, on_chunk=None):
        self.calls.append(messages)
        if on_chunk is None:
            return self.summary
        for chunk in self.chunks:
            await on_chunk(chunk)
        if self.error is not None:
            raise self.error
        return "".join(self.chunks)


@pytest.fixture
def auth_header():
    def _header(user_id="u1", secret=JWT_SECRET):
        return {"Authorization": jwt.encode({"user_id": user_id}, secret, algorithm="HS256")}
    return _header


@pytest.fixture
def pg_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(pg_engine):
    return CoachStore(pg_engine)


@pytest.fixture
def add_user(pg_engine):
    def _add(user_id="u1", energy=20):
        with Session(pg_engine) as session:
            session.add(User(id=user_id, username=user_id, energy=energy))
            session.commit()
        return user_id
    return _add


@pytest.fixture
def add_emotion(pg_engine):
    def _add(emotion_id, record_date, user_id="u1", status=0, **fields):
        with Session(pg_engine) as session:
            session.add(EmotionRecord(
                id=emotion_id, user_id=user_id, status=status, record_date=record_date, **fields
            ))
            session.commit()
    return _add


@pytest.fixture
def metrics():
    return Mock()


@pytest.fixture
def redis():
    redis_mock = AsyncMock()
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.set = AsyncMock(return_value=True)
    return redis_mock


@pytest.fixture
def model():
    return FakeModel()


@pytest.fixture
def tracker():
    return TaskTracker()


@pytest.fixture
def assistant(metrics, store, redis, model, tracker):
    return CoachAssistant(
        metrics=metrics,
        store=store,
        history=SessionHistory(redis, metrics),
        llm=model,
        tracker=tracker,
    )


@pytest.fixture
def day_window():
    return datetime(2024, 3, 25, 0, 0), datetime(2024, 3, 25, 23, 59, 59)
