"""
Unit of work: the transaction scope the review engine writes through.

    async with uow.transaction() as store:
        ...ordered writes...

Commits when the block exits normally, rolls back every statement in the
block on any exception. Reads that need no transaction use uow.reader().
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trustdiner.database import AsyncSessionLocal
from trustdiner.services.review_store import ReviewStore


class UnitOfWork:
    """Hands out ReviewStores bound to sessions from one session factory."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ReviewStore]:
        """One atomic transaction: commit on success, roll back on any exception."""
        async with self.session_factory() as session:
            async with session.begin():
                yield ReviewStore(session)

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[ReviewStore]:
        """A session for reads; nothing is committed."""
        async with self.session_factory() as session:
            yield ReviewStore(session)
