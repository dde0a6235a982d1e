"""
Shared fixtures: a throw-away SQLite database per test, seeded with users,
one chain of two establishments, a standalone establishment (42), the
canonical allergens and the default question bank.
"""

from __future__ import annotations

import asyncio
import os

# Settings are read at import time; configure before importing the package.
os.environ.setdefault("SERVICE_TOKEN", "test-token")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from trustdiner.models import Allergen, Base, Chain, Establishment, Question, User
from trustdiner.services.reference_data import SqlReferenceRepository
from trustdiner.services.review_engine import ReviewMutationEngine
from trustdiner.services.review_reader import ReviewReader
from trustdiner.services.unit_of_work import UnitOfWork
from trustdiner.utils.allergy_data import CANONICAL_ALLERGENS, DEFAULT_QUESTIONS

STANDALONE_ID = 42
CHAIN_ID = 1


async def _seed(session_factory: async_sessionmaker[AsyncSession]) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                User(id=7, email="ada@example.com", display_name="Ada"),
                User(id=8, email="grace@example.com", display_name="Grace"),
                User(id=9, email="alan@example.com", display_name="Alan"),
                Chain(id=CHAIN_ID, name="Pizza Planet", slug="pizza-planet", category="pizza"),
            ])
            await session.flush()
            session.add_all([
                Establishment(
                    id=10, uuid="uuid-10", place_id="place-10",
                    name="Pizza Planet Soho", chain_id=CHAIN_ID,
                ),
                Establishment(
                    id=11, uuid="uuid-11", place_id="place-11",
                    name="Pizza Planet Camden", chain_id=CHAIN_ID,
                ),
                Establishment(
                    id=STANDALONE_ID, uuid="uuid-42", place_id="place-42",
                    name="Corner Bistro", address="1 High Street",
                ),
            ])
            session.add_all([
                Allergen(code=code, name=code.title(), sort_order=position)
                for position, code in enumerate(CANONICAL_ALLERGENS, start=1)
            ])
            session.add_all([
                Question(question_code=code, version=1, prompt=prompt, is_active=True)
                for code, prompt in DEFAULT_QUESTIONS.items()
            ])
            session.add(Question(
                question_code="retired_question", version=1,
                prompt="No longer asked", is_active=False,
            ))


@pytest.fixture
def session_factory(tmp_path):
    db_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'reviews.db'}",
        poolclass=NullPool,
    )

    async def setup() -> async_sessionmaker[AsyncSession]:
        async with db_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
        await _seed(factory)
        return factory

    yield asyncio.run(setup())
    asyncio.run(db_engine.dispose())


@pytest.fixture
def uow(session_factory) -> UnitOfWork:
    return UnitOfWork(session_factory)


@pytest.fixture
def reference(session_factory) -> SqlReferenceRepository:
    return SqlReferenceRepository(session_factory, ttl_seconds=0)


@pytest.fixture
def reader(uow) -> ReviewReader:
    return ReviewReader(uow)


@pytest.fixture
def review_engine(uow, reference, reader) -> ReviewMutationEngine:
    return ReviewMutationEngine(uow, reference, reader)
