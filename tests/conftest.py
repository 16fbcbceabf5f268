"""
Pytest configuration and fixtures for QuizRush tests.
"""
import sys
import os

# Never point the import-time engine at a real database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./quizrush-test.db")

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models import Base
from services.quiz_service import QuizService

CREATOR = "0x" + "c" * 40
TOKEN = "0x" + "a" * 40
START_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z


class FakeClock:
    """Injectable server clock in epoch ms."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def wallet(n: int) -> str:
    return "0x" + f"{n:040x}"


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'quizrush.db'}",
        connect_args={"timeout": 30},
    )

    # Serialize writers the way row locks do on PostgreSQL
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def sample_questions():
    """Sample quiz questions in the creator's camelCase shape"""
    return [
        {"id": "q1", "text": "What is 2+2?", "options": ["3", "4", "5", "6"], "correctIndex": 1},
        {"id": "q2", "text": "Capital of France?", "options": ["Paris", "Rome", "Oslo"], "correctIndex": 0},
        {"id": "q3", "text": "Largest planet?", "options": ["Earth", "Mars", "Jupiter", "Saturn"], "correctIndex": 2},
    ]


@pytest.fixture
def quiz_payload(sample_questions):
    def build(**overrides):
        payload = {
            "title": "Speed Round",
            "description": "Three quick ones",
            "questions": sample_questions,
            "rewardToken": TOKEN,
            "rewardAmount": "100",
            "winnerLimit": 2,
            "timePerQuestion": 15,
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def make_quiz(session_factory, quiz_payload, clock):
    """Create a quiz in its own committed session."""
    async def create(**overrides):
        async with session_factory() as session:
            return await QuizService(session, clock=clock).create_quiz(CREATOR, quiz_payload(**overrides))
    return create


def correct_index(questions, question_id):
    return next(q["correctIndex"] for q in questions if q["id"] == question_id)
