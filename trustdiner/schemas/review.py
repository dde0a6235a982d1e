"""Pydantic schemas for review payloads and the denormalized review view."""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from trustdiner.utils.allergy_data import MAX_SCORE, MIN_SCORE

Score = Annotated[int, Field(ge=MIN_SCORE, le=MAX_SCORE)]
Rating = Annotated[int, Field(ge=1, le=5)]


class _CamelModel(BaseModel):
    """Accepts both camelCase (frontend) and snake_case (internal) field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _fold_legacy_comment(data: Any) -> Any:
    """Older clients send `generalComments`; use it when `generalComment` is missing or blank."""
    if not isinstance(data, dict) or "generalComments" not in data:
        return data
    data = dict(data)
    legacy = data.pop("generalComments")
    current = data.get("generalComment", data.get("general_comment"))
    if current is None or (isinstance(current, str) and not current.strip()):
        data.pop("general_comment", None)
        data["generalComment"] = legacy
    return data


class ReviewCreate(_CamelModel):
    """
    Body for POST /reviews.
    establishment_id may be a numeric id, a "chain-<id>" pseudo-id, or an
    establishment uuid / place id; place_id is the fallback when it is absent.
    """

    user_id: Optional[int] = Field(default=None, gt=0)
    establishment_id: Optional[Union[int, str]] = None
    place_id: Optional[str] = None
    overall_rating: Optional[Rating] = None
    general_comment: Optional[str] = None
    visit_date: Optional[date] = None
    allergen_scores: dict[str, Score] = Field(default_factory=dict)
    yes_no_answers: dict[str, Optional[bool]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_comment(cls, data: Any) -> Any:
        return _fold_legacy_comment(data)


class ReviewUpdate(_CamelModel):
    """
    Body for PUT /reviews/{id}.
    Every field is optional; only fields actually sent are considered, and
    blank values are ignored rather than written.
    """

    user_id: Optional[int] = Field(default=None, gt=0)
    overall_rating: Optional[Rating] = None
    general_comment: Optional[str] = None
    visit_date: Optional[date] = None
    allergen_scores: Optional[dict[str, Score]] = None
    yes_no_answers: Optional[dict[str, Optional[bool]]] = None

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_comment(cls, data: Any) -> Any:
        return _fold_legacy_comment(data)


class ModerationRequest(_CamelModel):
    """Body for PUT /reviews/{id}/moderate."""

    status: Literal["approved", "rejected"]
    moderator_id: Optional[int] = Field(default=None, gt=0)


class EstablishmentSummary(BaseModel):
    """Establishment display metadata joined onto a review."""

    id: int
    uuid: Optional[str] = None
    place_id: Optional[str] = None
    name: Optional[str] = None
    address: Optional[str] = None
    image_url: Optional[str] = None
    chain_id: Optional[int] = None


class UserSummary(BaseModel):
    """Reviewer display metadata joined onto a review."""

    id: int
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class ChainSummary(BaseModel):
    """Chain display metadata joined onto a review."""

    id: int
    name: str
    logo_url: Optional[str] = None


class ReviewView(BaseModel):
    """
    Denormalized review returned by every read and every create/update.
    allergen_scores uses client codes in display order.
    """

    id: int
    user_id: int
    establishment_id: int
    overall_rating: Optional[int] = None
    general_comment: Optional[str] = None
    visit_date: Optional[date] = None
    status: str = "pending"
    moderated_by: Optional[int] = None
    moderated_at: Optional[datetime] = None
    allergen_scores: dict[str, int] = Field(default_factory=dict)
    yes_no_answers: dict[str, Optional[bool]] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
    review_type: Optional[Literal["venue", "chain"]] = None

    establishment: Optional[EstablishmentSummary] = None
    user: Optional[UserSummary] = None
    chain: Optional[ChainSummary] = None


class DeletedReview(BaseModel):
    """Response for DELETE /reviews/{id}."""

    id: int
    message: str = "Review deleted successfully"


class Pagination(BaseModel):
    """Page-number pagination block."""

    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        """Derive total_pages/has_more from page, limit and total."""
        offset = (page - 1) * limit
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=-(-total // limit),
            has_more=offset + limit < total,
        )


class EstablishmentInfo(BaseModel):
    """Establishment header for GET /establishments/{identifier}/reviews."""

    id: int
    uuid: Optional[str] = None
    name: str
    place_id: Optional[str] = None
    chain_id: Optional[int] = None
    chain_name: Optional[str] = None


class EstablishmentReviewsPage(BaseModel):
    """Paginated reviews of one establishment."""

    establishment: EstablishmentInfo
    reviews: list[ReviewView]
    pagination: Pagination


class ChainInfo(BaseModel):
    """Chain header for GET /chains/{chain_id}/reviews."""

    id: int
    name: str
    slug: Optional[str] = None
    logo_url: Optional[str] = None
    category: Optional[str] = None
    location_count: int = 0


class ChainReviewsPage(BaseModel):
    """
    Paginated reviews across every establishment of a chain. Scores stay
    per-review; allergen_averages is a read-time fold over this page.
    """

    chain: ChainInfo
    reviews: list[ReviewView]
    pagination: Pagination
    allergen_averages: dict[str, float] = Field(default_factory=dict)


class ReviewListPage(BaseModel):
    """Offset-paginated administrative listing."""

    reviews: list[ReviewView]
    total: int
    limit: int
    offset: int
    has_more: bool


class ReviewStats(BaseModel):
    """Aggregate review statistics for one establishment."""

    establishment_id: int
    total_reviews: int
    average_rating: float
    pending_reviews: int
