"""
FastAPI dependencies: service-token auth, caller identity, and the engine
objects every router shares.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from trustdiner.config import settings
from trustdiner.exceptions import ValidationFailedError
from trustdiner.services.reference_data import ReferenceRepository, SqlReferenceRepository
from trustdiner.services.review_engine import ReviewMutationEngine
from trustdiner.services.review_reader import ReviewReader
from trustdiner.services.unit_of_work import UnitOfWork


# ── Auth ─────────────────────────────────────────────────────────────────────


async def verify_service_token(
    x_service_token: str = Header(..., alias="X-Service-Token"),
) -> None:
    """Verify that the inter-service token matches the configured secret."""
    if x_service_token != settings.service_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_owner_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> Optional[int]:
    """Parse the caller's user id from X-User-ID; None when the header is absent."""
    if x_user_id is None or not x_user_id.strip():
        return None
    try:
        owner_id = int(x_user_id)
    except ValueError:
        raise ValidationFailedError("Invalid user ID format: must be an integer", x_user_id=x_user_id)
    if owner_id <= 0:
        raise ValidationFailedError("Invalid user ID format: must be positive", x_user_id=x_user_id)
    return owner_id


# ── Engine wiring ────────────────────────────────────────────────────────────


@lru_cache(maxsize=1)
def get_unit_of_work() -> UnitOfWork:
    """Process-wide UnitOfWork over the shared session factory."""
    return UnitOfWork()


@lru_cache(maxsize=1)
def get_reference_repository() -> ReferenceRepository:
    """Process-wide reference repository; its TTL cache is shared by every request."""
    return SqlReferenceRepository(ttl_seconds=settings.reference_cache_ttl_seconds)


def get_review_reader(uow: UnitOfWork = Depends(get_unit_of_work)) -> ReviewReader:
    return ReviewReader(uow, max_page_size=settings.max_page_size)


def get_review_engine(
    uow: UnitOfWork = Depends(get_unit_of_work),
    reference: ReferenceRepository = Depends(get_reference_repository),
    reader: ReviewReader = Depends(get_review_reader),
) -> ReviewMutationEngine:
    return ReviewMutationEngine(uow, reference, reader)
