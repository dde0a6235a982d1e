"""Pydantic schemas package."""

from trustdiner.schemas.review import (
    ChainInfo,
    ChainReviewsPage,
    ChainSummary,
    DeletedReview,
    EstablishmentInfo,
    EstablishmentReviewsPage,
    EstablishmentSummary,
    ModerationRequest,
    Pagination,
    ReviewCreate,
    ReviewListPage,
    ReviewStats,
    ReviewUpdate,
    ReviewView,
    UserSummary,
)

__all__ = [
    "ReviewCreate", "ReviewUpdate", "ModerationRequest",
    "ReviewView", "EstablishmentSummary", "UserSummary", "ChainSummary",
    "DeletedReview", "Pagination", "EstablishmentInfo", "EstablishmentReviewsPage",
    "ChainInfo", "ChainReviewsPage", "ReviewListPage", "ReviewStats",
]
