"""
Review read layer: rebuilds the denormalized review view from the header,
allergen-score and answer tables plus joined establishment/user/chain data.

Allergen scores leave this module in client codes and display order.
Chain-level averages are folded at read time from per-review scores; they are
never stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Sequence

from sqlalchemy import Row, case, or_

from trustdiner.exceptions import ChainNotFoundError, EstablishmentNotFoundError
from trustdiner.models import Establishment, Review
from trustdiner.schemas.review import (
    ChainInfo,
    ChainReviewsPage,
    ChainSummary,
    EstablishmentInfo,
    EstablishmentReviewsPage,
    EstablishmentSummary,
    Pagination,
    ReviewListPage,
    ReviewStats,
    ReviewView,
    UserSummary,
)
from trustdiner.services.code_translator import scores_to_client, sort_client_codes
from trustdiner.services.review_store import ReviewStore
from trustdiner.services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SortField = Literal["created_at", "updated_at", "overall_rating"]

_SORT_COLUMNS = {
    "created_at": Review.created_at,
    "updated_at": Review.updated_at,
    "overall_rating": Review.overall_rating,
}


@dataclass
class ReviewFilters:
    """Filters for the administrative review listing."""

    status: Optional[str] = None
    user_id: Optional[int] = None
    establishment_id: Optional[int] = None
    limit: int = 20
    offset: int = 0
    sort_by: SortField = "created_at"
    sort_order: Literal["ASC", "DESC"] = "DESC"


def chain_allergen_averages(reviews: Iterable[ReviewView]) -> dict[str, float]:
    """Fold per-review allergen scores into a per-allergen average, in display order."""
    totals: dict[str, list[int]] = {}
    for review in reviews:
        for code, score in review.allergen_scores.items():
            totals.setdefault(code, []).append(score)
    return {
        code: round(sum(totals[code]) / len(totals[code]), 2)
        for code in sort_client_codes(list(totals))
    }


def _build_view(
    row: Row,
    scores: dict[str, int],
    answers: dict[str, Optional[bool]],
    review_type: Optional[str] = None,
) -> ReviewView:
    chain = None
    if row.chain_id is not None and row.chain_name is not None:
        chain = ChainSummary(id=row.chain_id, name=row.chain_name, logo_url=row.chain_logo_url)
    return ReviewView(
        id=row.id,
        user_id=row.user_id,
        establishment_id=row.establishment_id,
        overall_rating=row.overall_rating,
        general_comment=row.general_comment,
        visit_date=row.visit_date,
        status=row.status,
        moderated_by=row.moderated_by,
        moderated_at=row.moderated_at,
        allergen_scores=scores_to_client(scores),
        yes_no_answers=answers,
        created_at=row.created_at,
        updated_at=row.updated_at,
        review_type=review_type,
        establishment=EstablishmentSummary(
            id=row.establishment_id,
            uuid=row.establishment_uuid,
            place_id=row.place_id,
            name=row.establishment_name,
            address=row.establishment_address,
            image_url=row.establishment_image,
            chain_id=row.chain_id,
        ),
        user=UserSummary(
            id=row.user_id,
            display_name=row.user_display_name,
            avatar_url=row.user_avatar_url,
        ),
        chain=chain,
    )


async def _assemble(
    store: ReviewStore,
    rows: Sequence[Row],
    review_types: Optional[dict[int, str]] = None,
) -> list[ReviewView]:
    """Attach scores and answers to header rows with two batched queries."""
    review_ids = [row.id for row in rows]
    scores = await store.fetch_allergen_scores(review_ids)
    answers = await store.fetch_answers(review_ids)
    review_types = review_types or {}
    return [
        _build_view(row, scores.get(row.id, {}), answers.get(row.id, {}), review_types.get(row.id))
        for row in rows
    ]


def _clamp_page(page: int, page_size: int, max_page_size: int) -> tuple[int, int]:
    return max(page, 1), min(max(page_size, 1), max_page_size)


class ReviewReader:
    """Read-side operations over reviews. Reads are not transactional."""

    def __init__(self, uow: UnitOfWork, max_page_size: int = 100):
        self._uow = uow
        self._max_page_size = max_page_size

    async def get_review(self, review_id: int) -> Optional[ReviewView]:
        """Return the full review view, or None if it does not exist."""
        async with self._uow.reader() as store:
            rows = await store.fetch_reviews(Review.id == review_id)
            if not rows:
                return None
            return (await _assemble(store, rows))[0]

    async def get_reviews_for_establishment(
        self,
        identifier: str,
        page: int = 1,
        page_size: int = 10,
    ) -> EstablishmentReviewsPage:
        """
        Paginated reviews for one establishment, newest first.
        identifier is a numeric id, uuid or place id.
        """
        page, page_size = _clamp_page(page, page_size, self._max_page_size)
        async with self._uow.reader() as store:
            establishment = await store.find_establishment_by_identifier(str(identifier))
            if establishment is None:
                raise EstablishmentNotFoundError(identifier)

            condition = Review.establishment_id == establishment.id
            total = await store.count_reviews(condition)
            rows = await store.fetch_reviews(
                condition,
                order_by=(Review.created_at.desc(), Review.id.desc()),
                limit=page_size,
                offset=(page - 1) * page_size,
            )
            reviews = await _assemble(
                store, rows, {row.id: "venue" for row in rows}
            )

        logger.info(
            "Found %d reviews for establishment %s (page %d)",
            len(reviews), establishment.id, page,
        )
        return EstablishmentReviewsPage(
            establishment=EstablishmentInfo(
                id=establishment.id,
                uuid=establishment.uuid,
                name=establishment.name,
                place_id=establishment.place_id,
                chain_id=establishment.chain_id,
                chain_name=establishment.chain_name,
            ),
            reviews=reviews,
            pagination=Pagination.build(page, page_size, total),
        )

    async def get_reviews_for_chain(
        self,
        chain_id: int,
        page: int = 1,
        page_size: int = 50,
    ) -> ChainReviewsPage:
        """Paginated reviews across every establishment of a chain, newest first."""
        page, page_size = _clamp_page(page, page_size, self._max_page_size)
        async with self._uow.reader() as store:
            chain = await store.fetch_chain(chain_id)
            if chain is None:
                raise ChainNotFoundError(chain_id)

            condition = Establishment.chain_id == chain_id
            total = await store.count_reviews(condition)
            rows = await store.fetch_reviews(
                condition,
                order_by=(Review.created_at.desc(), Review.id.desc()),
                limit=page_size,
                offset=(page - 1) * page_size,
            )
            reviews = await _assemble(store, rows, {row.id: "chain" for row in rows})

        return ChainReviewsPage(
            chain=ChainInfo(
                id=chain.id,
                name=chain.name,
                slug=chain.slug,
                logo_url=chain.logo_url,
                category=chain.category,
                location_count=chain.location_count,
            ),
            reviews=reviews,
            pagination=Pagination.build(page, page_size, total),
            allergen_averages=chain_allergen_averages(reviews),
        )

    async def get_reviews_for_user(self, user_id: int) -> list[ReviewView]:
        """Every review written by a user, newest first (profile page)."""
        async with self._uow.reader() as store:
            rows = await store.fetch_reviews(
                Review.user_id == user_id,
                order_by=(Review.created_at.desc(), Review.id.desc()),
            )
            reviews = await _assemble(store, rows)
        logger.info("Found %d reviews for user %s", len(reviews), user_id)
        return reviews

    async def get_reviews_for_establishment_and_user(
        self,
        establishment_id: int,
        user_id: int,
    ) -> list[ReviewView]:
        """
        The user's reviews of an establishment and of its chain siblings.
        Reviews of the establishment itself come first, tagged 'venue';
        sibling reviews are tagged 'chain'.
        """
        async with self._uow.reader() as store:
            target = await store.find_establishment(establishment_id)
            if target is None:
                return []

            scope = Review.establishment_id == target.id
            if target.chain_id is not None:
                scope = or_(scope, Establishment.chain_id == target.chain_id)

            rows = await store.fetch_reviews(
                Review.user_id == user_id,
                scope,
                order_by=(
                    case((Review.establishment_id == target.id, 0), else_=1),
                    Review.created_at.desc(),
                ),
            )
            review_types = {
                row.id: "venue" if row.establishment_id == target.id else "chain"
                for row in rows
            }
            return await _assemble(store, rows, review_types)

    async def get_reviews_for_place_and_user(
        self,
        identifier: str,
        user_id: int,
    ) -> list[ReviewView]:
        """Legacy lookup by place id / uuid / id; unknown identifiers yield an empty list."""
        async with self._uow.reader() as store:
            establishment = await store.find_establishment_by_identifier(str(identifier))
        if establishment is None:
            logger.info("No establishment found for place %s", identifier)
            return []
        return await self.get_reviews_for_establishment_and_user(establishment.id, user_id)

    async def list_reviews(self, filters: ReviewFilters) -> ReviewListPage:
        """Administrative listing with filters, sorting and offset pagination."""
        conditions = []
        if filters.status:
            conditions.append(Review.status == filters.status)
        if filters.user_id:
            conditions.append(Review.user_id == filters.user_id)
        if filters.establishment_id:
            conditions.append(Review.establishment_id == filters.establishment_id)

        column = _SORT_COLUMNS.get(filters.sort_by, Review.created_at)
        ordering = column.asc() if filters.sort_order.upper() == "ASC" else column.desc()
        limit = min(max(filters.limit, 1), self._max_page_size)
        offset = max(filters.offset, 0)

        async with self._uow.reader() as store:
            total = await store.count_reviews(*conditions)
            rows = await store.fetch_reviews(
                *conditions,
                order_by=(ordering, Review.id.desc()),
                limit=limit,
                offset=offset,
            )
            reviews = await _assemble(store, rows)

        return ReviewListPage(
            reviews=reviews,
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + limit < total,
        )

    async def get_review_stats(self, establishment_id: int) -> ReviewStats:
        """Review count, average overall rating and pending count for one establishment."""
        async with self._uow.reader() as store:
            stats = await store.review_stats(establishment_id)
        return ReviewStats(
            establishment_id=establishment_id,
            total_reviews=stats.total_reviews or 0,
            average_rating=round(float(stats.average_rating or 0), 2),
            pending_reviews=int(stats.pending_reviews or 0),
        )
