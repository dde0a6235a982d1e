"""
Review endpoints: all protected by X-Service-Token header.
Called by the Backend on behalf of an authenticated user, whose id arrives in
the X-User-ID header.

Endpoints:
  POST   /reviews                                        create (201)
  GET    /reviews                                        administrative listing
  GET    /reviews/user/{user_id}                         a user's reviews
  GET    /reviews/establishment/{id}/user/{user_id}      user's venue + chain reviews
  GET    /reviews/place/{identifier}/user/{user_id}      legacy place lookup
  GET    /reviews/{review_id}                            one review
  PUT    /reviews/{review_id}                            partial update (owner only)
  DELETE /reviews/{review_id}                            delete (owner only)
  PUT    /reviews/{review_id}/moderate                   approve or reject
  GET    /establishments/{identifier}/reviews            establishment page
  GET    /establishments/{establishment_id}/reviews/stats
  GET    /chains/{chain_id}/reviews                      chain page + allergen averages
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from trustdiner.config import settings
from trustdiner.dependencies import (
    get_owner_id,
    get_review_engine,
    get_review_reader,
    verify_service_token,
)
from trustdiner.exceptions import ReviewNotFoundError, ValidationFailedError
from trustdiner.schemas.review import (
    ChainReviewsPage,
    DeletedReview,
    EstablishmentReviewsPage,
    ModerationRequest,
    ReviewCreate,
    ReviewListPage,
    ReviewStats,
    ReviewUpdate,
    ReviewView,
)
from trustdiner.services.review_engine import ReviewMutationEngine
from trustdiner.services.review_reader import ReviewFilters, ReviewReader

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reviews"], dependencies=[Depends(verify_service_token)])


def _require_owner(owner_id: Optional[int]) -> int:
    if owner_id is None:
        raise ValidationFailedError("X-User-ID header is required")
    return owner_id


# ── /reviews ─────────────────────────────────────────────────────────────────


@router.post("/reviews", response_model=ReviewView, status_code=status.HTTP_201_CREATED)
async def create_review(
    body: ReviewCreate,
    owner_id: Optional[int] = Depends(get_owner_id),
    engine: ReviewMutationEngine = Depends(get_review_engine),
) -> ReviewView:
    """
    Create a review with allergen scores and yes/no answers.
    The reviewer is the X-User-ID caller; body userId is used only when the
    header is absent.
    """
    payload = body.model_dump(exclude_unset=True)
    if owner_id is not None:
        payload["user_id"] = owner_id
    return await engine.create_review(payload)


@router.get("/reviews", response_model=ReviewListPage)
async def list_reviews(
    review_status: Optional[Literal["pending", "approved", "rejected"]] = Query(
        default=None, alias="status"
    ),
    user_id: Optional[int] = Query(default=None, alias="userId", ge=1),
    establishment_id: Optional[int] = Query(default=None, alias="establishmentId", ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    sort_by: Literal["created_at", "updated_at", "overall_rating"] = Query(
        default="created_at", alias="sortBy"
    ),
    sort_order: Literal["ASC", "DESC", "asc", "desc"] = Query(default="DESC", alias="sortOrder"),
    reader: ReviewReader = Depends(get_review_reader),
) -> ReviewListPage:
    """Administrative listing with filters, sorting and offset pagination."""
    return await reader.list_reviews(
        ReviewFilters(
            status=review_status,
            user_id=user_id,
            establishment_id=establishment_id,
            limit=limit,
            offset=offset,
            sort_by=sort_by,
            sort_order=sort_order.upper(),
        )
    )


@router.get("/reviews/user/{user_id}", response_model=list[ReviewView])
async def reviews_for_user(
    user_id: int,
    reader: ReviewReader = Depends(get_review_reader),
) -> list[ReviewView]:
    """Every review a user has written, newest first."""
    return await reader.get_reviews_for_user(user_id)


@router.get(
    "/reviews/establishment/{establishment_id}/user/{user_id}",
    response_model=list[ReviewView],
)
async def reviews_for_establishment_and_user(
    establishment_id: int,
    user_id: int,
    reader: ReviewReader = Depends(get_review_reader),
) -> list[ReviewView]:
    """The user's reviews of this establishment (venue) and of its chain siblings (chain)."""
    return await reader.get_reviews_for_establishment_and_user(establishment_id, user_id)


@router.get("/reviews/place/{identifier}/user/{user_id}", response_model=list[ReviewView])
async def reviews_for_place_and_user(
    identifier: str,
    user_id: int,
    reader: ReviewReader = Depends(get_review_reader),
) -> list[ReviewView]:
    """Legacy lookup by place id, uuid or numeric id."""
    return await reader.get_reviews_for_place_and_user(identifier, user_id)


@router.get("/reviews/{review_id}", response_model=ReviewView)
async def get_review(
    review_id: int,
    reader: ReviewReader = Depends(get_review_reader),
) -> ReviewView:
    """Return one review with scores, answers and display metadata."""
    review = await reader.get_review(review_id)
    if review is None:
        raise ReviewNotFoundError(review_id)
    return review


@router.put("/reviews/{review_id}", response_model=ReviewView)
async def update_review(
    review_id: int,
    body: ReviewUpdate,
    owner_id: Optional[int] = Depends(get_owner_id),
    engine: ReviewMutationEngine = Depends(get_review_engine),
) -> ReviewView:
    """
    Partial update. Empty objects and empty strings are treated as "not sent";
    a present allergenScores / yesNoAnswers map replaces that category.
    """
    return await engine.update_review(review_id, body, owner_id=_require_owner(owner_id))


@router.delete("/reviews/{review_id}", response_model=DeletedReview)
async def delete_review(
    review_id: int,
    owner_id: Optional[int] = Depends(get_owner_id),
    engine: ReviewMutationEngine = Depends(get_review_engine),
) -> DeletedReview:
    """Delete a review and all of its scores and answers."""
    return await engine.delete_review(review_id, owner_id=_require_owner(owner_id))


@router.put("/reviews/{review_id}/moderate", response_model=ReviewView)
async def moderate_review(
    review_id: int,
    body: ModerationRequest = Body(...),
    owner_id: Optional[int] = Depends(get_owner_id),
    engine: ReviewMutationEngine = Depends(get_review_engine),
) -> ReviewView:
    """Approve or reject a review. The moderator is body moderatorId, else the caller."""
    moderator_id = body.moderator_id or owner_id
    if moderator_id is None:
        raise ValidationFailedError("moderatorId or X-User-ID header is required")
    return await engine.moderate_review(review_id, body.status, moderator_id)


# ── /establishments, /chains ─────────────────────────────────────────────────


@router.get("/establishments/{identifier}/reviews", response_model=EstablishmentReviewsPage)
async def establishment_reviews(
    identifier: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
    reader: ReviewReader = Depends(get_review_reader),
) -> EstablishmentReviewsPage:
    """Paginated reviews of one establishment, by numeric id, uuid or place id."""
    return await reader.get_reviews_for_establishment(identifier, page=page, page_size=limit)


@router.get("/establishments/{establishment_id}/reviews/stats", response_model=ReviewStats)
async def establishment_review_stats(
    establishment_id: int,
    reader: ReviewReader = Depends(get_review_reader),
) -> ReviewStats:
    """Review count, average rating and pending count for one establishment."""
    return await reader.get_review_stats(establishment_id)


@router.get("/chains/{chain_id}/reviews", response_model=ChainReviewsPage)
async def chain_reviews(
    chain_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=settings.chain_page_size, ge=1, le=settings.max_page_size),
    reader: ReviewReader = Depends(get_review_reader),
) -> ChainReviewsPage:
    """Paginated reviews across every establishment of a chain, with per-allergen averages."""
    return await reader.get_reviews_for_chain(chain_id, page=page, page_size=limit)
