"""SQLAlchemy ORM models package."""

from trustdiner.database import Base
from trustdiner.models.user import User
from trustdiner.models.establishment import Chain, Establishment
from trustdiner.models.reference import Allergen, Question
from trustdiner.models.review import Review, ReviewAllergenScore, ReviewAnswer

__all__ = [
    "Base", "User", "Chain", "Establishment", "Allergen", "Question",
    "Review", "ReviewAllergenScore", "ReviewAnswer",
]
