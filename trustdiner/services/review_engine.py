"""
Review mutation engine: create, update, delete and moderate a review that
lives in three tables (header, allergen scores, answers).

Each operation is one transaction through the injected UnitOfWork; any
failing step rolls back all of them.

Write rules:
  1. Client allergen codes are translated to storage codes before they touch
     the database; codes with no allergen row are skipped.
  2. Answers go through the question bank validator; unknown/stale codes and
     None answers are dropped, never stored, never an error.
  3. Updates are sanitized first. `{}` / `""` mean "leave it alone".
  4. A category present in an update (allergen scores or answers) replaces the
     stored category wholesale: delete every row, reinsert from the payload.
  5. Only header columns whose value actually changes are written; an update
     that changes nothing opens no transaction at all.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from trustdiner.exceptions import (
    AlreadyReviewedError,
    EstablishmentNotFoundError,
    ForbiddenError,
    ReviewError,
    ReviewNotFoundError,
    TransactionFailedError,
    ValidationFailedError,
)
from trustdiner.schemas.review import DeletedReview, ReviewCreate, ReviewUpdate, ReviewView
from trustdiner.services.code_translator import scores_to_canonical
from trustdiner.services.question_bank import QuestionBankValidator
from trustdiner.services.reference_data import ReferenceRepository
from trustdiner.services.review_reader import ReviewReader
from trustdiner.services.review_store import ReviewStore
from trustdiner.services.sanitizer import (
    HEADER_FIELDS,
    has_meaningful_content,
    is_blank,
    sanitize,
    stripped_fields,
)
from trustdiner.services.unit_of_work import UnitOfWork
from trustdiner.utils.allergy_data import MODERATION_STATUSES

logger = logging.getLogger(__name__)

CHAIN_PREFIX = "chain-"

# View field → reviews column
_HEADER_COLUMNS = {
    "overall_rating": "overall_rating",
    "general_comment": "comment",
    "visit_date": "visit_date",
    "status": "status",
    "moderated_by": "moderated_by",
    "moderated_at": "moderated_at",
}

_DUPLICATE_REVIEW_MARKERS = (
    "uq_reviews_user_establishment",
    "reviews.user_id, reviews.establishment_id",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_duplicate_review(exc: IntegrityError) -> bool:
    """True if the integrity error is the one-review-per-user-per-establishment constraint."""
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in _DUPLICATE_REVIEW_MARKERS)


def _payload(
    data: Union[BaseModel, Mapping[str, Any]],
    model: type[BaseModel],
) -> dict[str, Any]:
    """
    Fields the caller actually sent, keyed by snake_case name.
    Plain mappings are validated against model first.
    """
    if not isinstance(data, model):
        try:
            data = model.model_validate(
                data.model_dump(exclude_unset=True) if isinstance(data, BaseModel) else data
            )
        except ValidationError as exc:
            raise ValidationFailedError(
                "Invalid review payload", errors=exc.errors(include_url=False)
            ) from exc
    return data.model_dump(exclude_unset=True)


@asynccontextmanager
async def _database_errors(message: str, **context: Any) -> AsyncIterator[None]:
    """Re-raise any SQLAlchemyError inside the block as a retryable TransactionFailedError."""
    try:
        yield
    except ReviewError:
        raise
    except SQLAlchemyError as exc:
        logger.error("%s %s", message, context, exc_info=True)
        raise TransactionFailedError(message, **context) from exc


class ReviewMutationEngine:
    """Owns every write to reviews, review_allergen_scores and review_answers."""

    def __init__(
        self,
        uow: UnitOfWork,
        reference: ReferenceRepository,
        reader: Optional[ReviewReader] = None,
    ):
        self._uow = uow
        self._reference = reference
        self._validator = QuestionBankValidator(reference)
        self._reader = reader or ReviewReader(uow)

    # ── Create ───────────────────────────────────────────────────────────────

    async def create_review(self, data: Union[ReviewCreate, Mapping[str, Any]]) -> ReviewView:
        """
        Create a review with its allergen scores and answers in one transaction.

        Raises:
            ValidationFailedError: no user id, or no establishment reference at all
            EstablishmentNotFoundError: establishment/chain/place reference resolves to nothing
            AlreadyReviewedError: the user already reviewed the resolved establishment
            TransactionFailedError: any database failure (rolled back, retryable)
        """
        payload = sanitize(_payload(data, ReviewCreate))
        user_id = payload.get("user_id")
        if not user_id:
            raise ValidationFailedError("userId is required")

        if payload.get("establishment_id") is None and payload.get("place_id") is None:
            raise ValidationFailedError("Establishment ID is required")

        async with _database_errors("Failed to create review", user_id=user_id):
            return await self._create(user_id, payload)

    async def _create(self, user_id: int, payload: Mapping[str, Any]) -> ReviewView:
        reference = payload.get("establishment_id")
        place_id = payload.get("place_id")
        canonical_scores = scores_to_canonical(payload.get("allergen_scores") or {})
        answers = await self._validator.validate_answers(payload.get("yes_no_answers") or {})
        allergen_ids = await self._reference.allergen_ids() if canonical_scores else {}

        now = _utcnow()
        establishment_id: Optional[int] = None
        try:
            async with self._uow.transaction() as store:
                establishment_id = await self._resolve_establishment(store, reference, place_id)

                if await store.find_review_id(user_id, establishment_id) is not None:
                    raise AlreadyReviewedError(user_id, establishment_id)

                review_id = await store.insert_review({
                    "user_id": user_id,
                    "establishment_id": establishment_id,
                    "overall_rating": payload.get("overall_rating"),
                    "comment": payload.get("general_comment"),
                    "visit_date": payload.get("visit_date") or date.today(),
                    "status": "pending",
                    "created_at": now,
                    "updated_at": now,
                })
                written = await store.add_allergen_scores(
                    review_id, self._score_rows(canonical_scores, allergen_ids), now
                )
                await store.add_answers(review_id, answers, now)
        except IntegrityError as exc:
            if not _is_duplicate_review(exc):
                raise
            logger.info(
                "Concurrent create lost the race for user %s, establishment %s",
                user_id, establishment_id,
            )
            raise AlreadyReviewedError(user_id, establishment_id) from exc

        logger.info(
            "Created review %s for user %s, establishment %s (%d scores, %d answers)",
            review_id, user_id, establishment_id, written, len(answers),
        )
        return await self._require_review(review_id)

    async def _resolve_establishment(
        self,
        store: ReviewStore,
        reference: Optional[Union[int, str]],
        place_id: Optional[str],
    ) -> int:
        """
        Turn an establishment reference into a concrete establishment id.

        "chain-<id>" resolves to the chain's first establishment by insertion
        order; a chain review is stored against that representative venue.
        """
        if reference is None:
            found = await store.find_establishment_by_identifier(str(place_id))
            if found is None:
                raise EstablishmentNotFoundError(place_id)
            return found.id

        if isinstance(reference, str) and reference.startswith(CHAIN_PREFIX):
            raw_chain_id = reference[len(CHAIN_PREFIX):]
            if not raw_chain_id.isdigit():
                raise EstablishmentNotFoundError(reference)
            establishment_id = await store.first_establishment_in_chain(int(raw_chain_id))
            if establishment_id is None:
                raise EstablishmentNotFoundError(reference)
            logger.info("Using establishment %s to represent chain %s", establishment_id, raw_chain_id)
            return establishment_id

        if isinstance(reference, int) or str(reference).isdigit():
            found = await store.find_establishment(int(reference))
        else:
            found = await store.find_establishment_by_identifier(str(reference))
        if found is None:
            raise EstablishmentNotFoundError(reference)
        return found.id

    # ── Update ───────────────────────────────────────────────────────────────

    async def update_review(
        self,
        review_id: int,
        data: Union[ReviewUpdate, Mapping[str, Any]],
        owner_id: Optional[int] = None,
    ) -> ReviewView:
        """
        Apply a partial update. Blank fields are ignored; unchanged header
        fields are not written; present categories are replaced wholesale.

        Raises:
            ReviewNotFoundError, ForbiddenError, TransactionFailedError
        """
        payload = _payload(data, ReviewUpdate)
        payload.pop("user_id", None)
        async with _database_errors("Failed to update review", review_id=review_id):
            return await self._apply_update(review_id, payload, owner_id)

    async def _apply_update(
        self,
        review_id: int,
        payload: dict[str, Any],
        owner_id: Optional[int],
    ) -> ReviewView:
        existing = await self._load_owned(review_id, owner_id)

        cleaned = sanitize(payload)
        self._log_protected_fields(existing, payload, owner_id)
        if not has_meaningful_content(payload):
            logger.info("Update for review %s is empty after sanitizing", review_id)
            return existing

        header_changes = self._diff_header(existing, cleaned)
        scores = cleaned.get("allergen_scores")
        raw_answers = cleaned.get("yes_no_answers")

        if not header_changes and not scores and not raw_answers:
            logger.info(
                "No fields to update for review %s; all fields unchanged or protected",
                review_id,
            )
            return existing

        canonical_scores = scores_to_canonical(scores) if scores else None
        answers = await self._validator.validate_answers(raw_answers) if raw_answers else None
        allergen_ids = await self._reference.allergen_ids() if canonical_scores else {}

        now = _utcnow()
        async with self._uow.transaction() as store:
            columns = {_HEADER_COLUMNS[field]: value for field, value in header_changes.items()}
            columns["updated_at"] = now
            await store.update_review(review_id, columns)

            if canonical_scores is not None:
                await store.delete_allergen_scores(review_id)
                await store.add_allergen_scores(
                    review_id, self._score_rows(canonical_scores, allergen_ids), now
                )
            if answers is not None:
                await store.delete_answers(review_id)
                await store.add_answers(review_id, answers, now)

        logger.info(
            "Updated review %s: header=%s scores=%s answers=%s",
            review_id,
            sorted(header_changes),
            canonical_scores is not None,
            answers is not None,
        )
        return await self._require_review(review_id)

    @staticmethod
    def _diff_header(existing: ReviewView, cleaned: Mapping[str, Any]) -> dict[str, Any]:
        """Header fields whose new value differs (deep equality) from the stored one."""
        changes: dict[str, Any] = {}
        for field in HEADER_FIELDS:
            if field not in cleaned:
                continue
            if cleaned[field] != getattr(existing, field):
                changes[field] = cleaned[field]
        return changes

    @staticmethod
    def _log_protected_fields(
        existing: ReviewView,
        payload: Mapping[str, Any],
        owner_id: Optional[int],
    ) -> None:
        """Warn when a blank value would have wiped a stored one."""
        for field in stripped_fields(payload):
            stored = getattr(existing, field, None)
            if stored is not None and not is_blank(stored):
                logger.warning(
                    "Field clearing blocked: review=%s user=%s field=%s",
                    existing.id, owner_id, field,
                )

    # ── Delete ───────────────────────────────────────────────────────────────

    async def delete_review(self, review_id: int, owner_id: Optional[int] = None) -> DeletedReview:
        """
        Hard-delete a review and its children.

        Raises:
            ReviewNotFoundError, ForbiddenError, TransactionFailedError
        """
        async with _database_errors("Failed to delete review", review_id=review_id):
            await self._load_owned(review_id, owner_id)
            async with self._uow.transaction() as store:
                deleted = await store.delete_review(review_id)

        if deleted is None:
            # Removed by someone else between the load and the delete
            raise ReviewNotFoundError(review_id)
        logger.info("Deleted review %s", review_id)
        return DeletedReview(id=deleted)

    # ── Moderate ─────────────────────────────────────────────────────────────

    async def moderate_review(self, review_id: int, status: str, moderator_id: int) -> ReviewView:
        """Set moderation status with moderator attribution. Administrative; no owner check."""
        if status not in MODERATION_STATUSES:
            raise ValidationFailedError(
                'Status must be either "approved" or "rejected"', status=status
            )
        async with _database_errors("Failed to moderate review", review_id=review_id):
            return await self._apply_update(
                review_id,
                {"status": status, "moderated_by": moderator_id, "moderated_at": _utcnow()},
                owner_id=None,
            )

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _load_owned(self, review_id: int, owner_id: Optional[int]) -> ReviewView:
        existing = await self._reader.get_review(review_id)
        if existing is None:
            raise ReviewNotFoundError(review_id)
        if owner_id is not None and existing.user_id != int(owner_id):
            logger.warning(
                "User %s attempted to modify review %s owned by %s",
                owner_id, review_id, existing.user_id,
            )
            raise ForbiddenError(review_id, owner_id)
        return existing

    async def _require_review(self, review_id: int) -> ReviewView:
        review = await self._reader.get_review(review_id)
        if review is None:
            raise ReviewNotFoundError(review_id)
        return review

    @staticmethod
    def _score_rows(
        canonical_scores: Mapping[str, int],
        allergen_ids: Mapping[str, int],
    ) -> list[tuple[int, int]]:
        """(allergen_id, score) for every code with an allergen row; the rest are logged and skipped."""
        rows: list[tuple[int, int]] = []
        for code, score in canonical_scores.items():
            allergen_id = allergen_ids.get(code)
            if allergen_id is None:
                logger.info("Skipping unknown allergen code: %s", code)
                continue
            rows.append((allergen_id, score))
        return rows
