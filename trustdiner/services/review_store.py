"""
ReviewStore: every SQL statement the review engine and read layer issue,
bound to one AsyncSession.

The store never commits or rolls back; the UnitOfWork that created it owns
the transaction boundary.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import Row, case, delete, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trustdiner.models import (
    Allergen,
    Chain,
    Establishment,
    Review,
    ReviewAllergenScore,
    ReviewAnswer,
    User,
)
from trustdiner.services.question_bank import ValidatedAnswer

# Header plus joined display metadata, one row per review
_REVIEW_COLUMNS = (
    Review.id,
    Review.user_id,
    Review.establishment_id,
    Review.overall_rating,
    Review.comment.label("general_comment"),
    Review.visit_date,
    Review.status,
    Review.moderated_by,
    Review.moderated_at,
    Review.created_at,
    Review.updated_at,
    Establishment.name.label("establishment_name"),
    Establishment.address.label("establishment_address"),
    Establishment.uuid.label("establishment_uuid"),
    Establishment.place_id.label("place_id"),
    Establishment.primary_image_ref.label("establishment_image"),
    Establishment.chain_id.label("chain_id"),
    User.display_name.label("user_display_name"),
    User.avatar_url.label("user_avatar_url"),
    Chain.name.label("chain_name"),
    Chain.logo_url.label("chain_logo_url"),
)


def _review_query():
    return (
        select(*_REVIEW_COLUMNS)
        .select_from(Review)
        .outerjoin(Establishment, Review.establishment_id == Establishment.id)
        .outerjoin(User, Review.user_id == User.id)
        .outerjoin(Chain, Establishment.chain_id == Chain.id)
    )


class ReviewStore:
    """SQL access for reviews and the reference rows they join to."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Establishment resolution ─────────────────────────────────────────────

    async def find_establishment(self, establishment_id: int) -> Optional[Row]:
        """Return (id, chain_id) for an establishment id, or None."""
        result = await self.session.execute(
            select(Establishment.id, Establishment.chain_id)
            .where(Establishment.id == establishment_id)
        )
        return result.first()

    async def first_establishment_in_chain(self, chain_id: int) -> Optional[int]:
        """Return the earliest-inserted establishment of a chain, or None."""
        result = await self.session.execute(
            select(Establishment.id)
            .where(Establishment.chain_id == chain_id)
            .order_by(Establishment.id)
            .limit(1)
        )
        return result.scalar()

    async def find_establishment_by_identifier(self, identifier: str) -> Optional[Row]:
        """
        Look an establishment up by numeric id, uuid or place id.
        Returns id, uuid, name, place_id, chain_id, chain_name.
        """
        conditions = [Establishment.uuid == identifier, Establishment.place_id == identifier]
        if identifier.isdigit():
            conditions.append(Establishment.id == int(identifier))
        result = await self.session.execute(
            select(
                Establishment.id,
                Establishment.uuid,
                Establishment.name,
                Establishment.place_id,
                Establishment.chain_id,
                Chain.name.label("chain_name"),
            )
            .outerjoin(Chain, Establishment.chain_id == Chain.id)
            .where(or_(*conditions))
            .order_by(Establishment.id)
            .limit(1)
        )
        return result.first()

    # ── Review header writes ─────────────────────────────────────────────────

    async def find_review_id(self, user_id: int, establishment_id: int) -> Optional[int]:
        """Return the id of the user's review of this establishment, or None."""
        result = await self.session.execute(
            select(Review.id).where(
                Review.user_id == user_id,
                Review.establishment_id == establishment_id,
            )
        )
        return result.scalar()

    async def insert_review(self, values: dict[str, Any]) -> int:
        """Insert a review header row and return its id."""
        result = await self.session.execute(insert(Review).values(**values))
        return result.inserted_primary_key[0]

    async def update_review(self, review_id: int, values: dict[str, Any]) -> None:
        """Set the given header columns on one review."""
        await self.session.execute(
            update(Review).where(Review.id == review_id).values(**values)
        )

    async def delete_review(self, review_id: int) -> Optional[int]:
        """Delete a review and its children; return the id if a row was removed."""
        await self.delete_allergen_scores(review_id)
        await self.delete_answers(review_id)
        result = await self.session.execute(delete(Review).where(Review.id == review_id))
        return review_id if result.rowcount else None

    # ── Child rows ───────────────────────────────────────────────────────────

    async def delete_allergen_scores(self, review_id: int) -> None:
        await self.session.execute(
            delete(ReviewAllergenScore).where(ReviewAllergenScore.review_id == review_id)
        )

    async def add_allergen_scores(
        self,
        review_id: int,
        scores: Iterable[tuple[int, int]],
        now: datetime,
    ) -> int:
        """Insert (allergen_id, score) rows; return how many were written."""
        rows = [
            {
                "review_id": review_id,
                "allergen_id": allergen_id,
                "score": score,
                "created_at": now,
                "updated_at": now,
            }
            for allergen_id, score in scores
        ]
        if rows:
            await self.session.execute(insert(ReviewAllergenScore), rows)
        return len(rows)

    async def delete_answers(self, review_id: int) -> None:
        await self.session.execute(
            delete(ReviewAnswer).where(ReviewAnswer.review_id == review_id)
        )

    async def add_answers(
        self,
        review_id: int,
        answers: Iterable[ValidatedAnswer],
        now: datetime,
    ) -> int:
        """Insert validated answers; return how many were written."""
        rows = [
            {
                "review_id": review_id,
                "question_code": answer.code,
                "question_version": answer.version,
                "answer": answer.value,
                "created_at": now,
                "updated_at": now,
            }
            for answer in answers
        ]
        if rows:
            await self.session.execute(insert(ReviewAnswer), rows)
        return len(rows)

    # ── Reads ────────────────────────────────────────────────────────────────

    async def fetch_reviews(
        self,
        *conditions: Any,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[Row]:
        """Review headers with establishment, user and chain metadata."""
        query = _review_query().where(*conditions)
        if order_by:
            query = query.order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        result = await self.session.execute(query)
        return list(result.all())

    async def count_reviews(self, *conditions: Any) -> int:
        result = await self.session.execute(
            select(func.count(Review.id))
            .select_from(Review)
            .outerjoin(Establishment, Review.establishment_id == Establishment.id)
            .where(*conditions)
        )
        return result.scalar() or 0

    async def fetch_allergen_scores(self, review_ids: Sequence[int]) -> dict[int, dict[str, int]]:
        """review id → {storage allergen code: score}."""
        if not review_ids:
            return {}
        result = await self.session.execute(
            select(ReviewAllergenScore.review_id, Allergen.code, ReviewAllergenScore.score)
            .join(Allergen, ReviewAllergenScore.allergen_id == Allergen.id)
            .where(ReviewAllergenScore.review_id.in_(review_ids))
            .order_by(Allergen.sort_order, Allergen.id)
        )
        scores: dict[int, dict[str, int]] = {rid: {} for rid in review_ids}
        for row in result:
            scores[row.review_id][row.code] = row.score
        return scores

    async def fetch_answers(self, review_ids: Sequence[int]) -> dict[int, dict[str, Optional[bool]]]:
        """review id → {question code: answer}."""
        if not review_ids:
            return {}
        result = await self.session.execute(
            select(ReviewAnswer.review_id, ReviewAnswer.question_code, ReviewAnswer.answer)
            .where(ReviewAnswer.review_id.in_(review_ids))
            .order_by(ReviewAnswer.id)
        )
        answers: dict[int, dict[str, Optional[bool]]] = {rid: {} for rid in review_ids}
        for row in result:
            answers[row.review_id][row.question_code] = row.answer
        return answers

    async def fetch_chain(self, chain_id: int) -> Optional[Row]:
        """Chain row with its number of establishments, or None."""
        result = await self.session.execute(
            select(
                Chain.id,
                Chain.name,
                Chain.slug,
                Chain.logo_url,
                Chain.category,
                func.count(Establishment.id).label("location_count"),
            )
            .outerjoin(Establishment, Establishment.chain_id == Chain.id)
            .where(Chain.id == chain_id)
            .group_by(Chain.id, Chain.name, Chain.slug, Chain.logo_url, Chain.category)
        )
        return result.first()

    async def review_stats(self, establishment_id: int) -> Row:
        """total_reviews, average_rating, pending_reviews for one establishment."""
        result = await self.session.execute(
            select(
                func.count(Review.id).label("total_reviews"),
                func.avg(Review.overall_rating).label("average_rating"),
                func.coalesce(
                    func.sum(case((Review.status == "pending", 1), else_=0)), 0
                ).label("pending_reviews"),
            ).where(Review.establishment_id == establishment_id)
        )
        return result.one()
