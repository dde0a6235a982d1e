"""
Read-only access to reference data the review engine depends on but never
writes: the allergens table (storage code → id) and the question bank
(active code → version).

Two implementations share one interface:
  SqlReferenceRepository    : reads the database, cached in a TTLCache
  StaticReferenceRepository : fixed in-memory fixtures
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Mapping, Optional

from cachetools import TTLCache
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trustdiner.database import AsyncSessionLocal
from trustdiner.models import Allergen, Question

logger = logging.getLogger(__name__)

_ALLERGENS_KEY = "allergens"
_QUESTIONS_KEY = "questions"


class ReferenceRepository(ABC):
    """Interface: reference lookups used by the engine and the question bank validator."""

    @abstractmethod
    async def allergen_ids(self) -> dict[str, int]:
        """Return storage allergen code → allergen id."""
        raise NotImplementedError

    @abstractmethod
    async def active_questions(self) -> dict[str, int]:
        """Return active question code → active version."""
        raise NotImplementedError


class StaticReferenceRepository(ReferenceRepository):
    """Reference data fixed at construction time."""

    def __init__(
        self,
        allergens: Mapping[str, int],
        questions: Mapping[str, int],
    ):
        self._allergens = dict(allergens)
        self._questions = dict(questions)

    async def allergen_ids(self) -> dict[str, int]:
        return dict(self._allergens)

    async def active_questions(self) -> dict[str, int]:
        return dict(self._questions)


class SqlReferenceRepository(ReferenceRepository):
    """
    Reads reference tables through the shared session factory.
    Results are cached for ttl_seconds; ttl_seconds=0 reads through every time.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        ttl_seconds: int = 300,
    ):
        self._session_factory = session_factory or AsyncSessionLocal
        self._cache: Optional[TTLCache] = (
            TTLCache(maxsize=4, ttl=ttl_seconds) if ttl_seconds > 0 else None
        )

    def invalidate(self) -> None:
        """Drop cached reference data so the next call re-reads the database."""
        if self._cache is not None:
            self._cache.clear()

    async def allergen_ids(self) -> dict[str, int]:
        if self._cache is not None and _ALLERGENS_KEY in self._cache:
            return dict(self._cache[_ALLERGENS_KEY])

        async with self._session_factory() as session:
            result = await session.execute(select(Allergen.code, Allergen.id))
            allergens = {row.code: row.id for row in result}

        if self._cache is not None:
            self._cache[_ALLERGENS_KEY] = allergens
        return dict(allergens)

    async def active_questions(self) -> dict[str, int]:
        if self._cache is not None and _QUESTIONS_KEY in self._cache:
            return dict(self._cache[_QUESTIONS_KEY])

        async with self._session_factory() as session:
            result = await session.execute(
                select(Question.question_code, Question.version)
                .where(Question.is_active.is_(True))
                .order_by(Question.version)
            )
            # Highest active version wins if several are active at once
            questions = {row.question_code: row.version for row in result}

        logger.debug("Loaded %d active questions", len(questions))
        if self._cache is not None:
            self._cache[_QUESTIONS_KEY] = questions
        return dict(questions)
