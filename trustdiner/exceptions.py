"""Typed failures raised by the review engine and translated to HTTP at the boundary."""

from __future__ import annotations

from typing import Any, Optional


class ReviewError(Exception):
    """Base exception for review engine failures."""

    status_code: int = 500
    code: str = "REVIEW_ERROR"
    retryable: bool = False

    def __init__(self, message: str, **context: Any):
        """
        Args:
            message: Human-readable error message
            **context: Identifiers relevant to the failure, kept for logging
        """
        self.message = message
        self.context = context
        super().__init__(message)


class NotFoundError(ReviewError):
    """A review, establishment or chain does not exist (404)."""

    status_code = 404
    code = "NOT_FOUND"


class ReviewNotFoundError(NotFoundError):
    """Review not found (404)."""

    code = "REVIEW_NOT_FOUND"

    def __init__(self, review_id: int):
        self.review_id = review_id
        super().__init__(f"Review {review_id} not found", review_id=review_id)


class EstablishmentNotFoundError(NotFoundError):
    """Establishment reference (id, chain pseudo-id, uuid or place id) resolves to nothing (404)."""

    code = "ESTABLISHMENT_NOT_FOUND"

    def __init__(self, reference: Any):
        self.reference = reference
        super().__init__(f"Establishment not found for {reference!r}", reference=reference)


class ChainNotFoundError(NotFoundError):
    """Chain not found (404)."""

    code = "CHAIN_NOT_FOUND"

    def __init__(self, chain_id: int):
        self.chain_id = chain_id
        super().__init__(f"Chain {chain_id} not found", chain_id=chain_id)


class ForbiddenError(ReviewError):
    """Caller does not own the review (403)."""

    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, review_id: int, owner_id: Any):
        self.review_id = review_id
        self.owner_id = owner_id
        super().__init__(
            "You can only modify your own reviews",
            review_id=review_id,
            owner_id=owner_id,
        )


class AlreadyReviewedError(ReviewError):
    """The user already has a review for this establishment (409)."""

    status_code = 409
    code = "ALREADY_REVIEWED"

    def __init__(self, user_id: int, establishment_id: Optional[int]):
        self.user_id = user_id
        self.establishment_id = establishment_id
        super().__init__(
            "You have already reviewed this establishment",
            user_id=user_id,
            establishment_id=establishment_id,
        )


class ValidationFailedError(ReviewError):
    """Malformed input: missing required field, out-of-range value, bad status (400)."""

    status_code = 400
    code = "VALIDATION_FAILED"


class TransactionFailedError(ReviewError):
    """
    A multi-step write failed and was rolled back; no partial state persisted.
    Safe to retry.
    """

    status_code = 500
    code = "TRANSACTION_FAILED"
    retryable = True
