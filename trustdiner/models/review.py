"""Review ORM models: one header row plus per-allergen scores and per-question answers."""

from sqlalchemy import (
    Boolean, Column, Date, DateTime, ForeignKey, Integer, SmallInteger,
    String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship

from trustdiner.database import Base


class Review(Base):
    """
    A user's review of one establishment.
    At most one row per (user_id, establishment_id); the engine checks before
    inserting and the unique constraint catches the race.
    """

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "establishment_id", name="uq_reviews_user_establishment"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    establishment_id = Column(
        Integer,
        ForeignKey("establishments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    overall_rating = Column(SmallInteger, nullable=True)   # 1–5
    comment = Column(Text, nullable=True)
    visit_date = Column(Date, nullable=True)

    # Moderation
    status = Column(String(20), nullable=False, server_default="pending")  # 'pending' | 'approved' | 'rejected'
    moderated_by = Column(Integer, nullable=True)
    moderated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    # Relationships
    allergen_scores = relationship(
        "ReviewAllergenScore", back_populates="review", cascade="all, delete-orphan"
    )
    answers = relationship(
        "ReviewAnswer", back_populates="review", cascade="all, delete-orphan"
    )


class ReviewAllergenScore(Base):
    """Score 1–5 for one allergen within a review. Always references a canonical allergen."""

    __tablename__ = "review_allergen_scores"
    __table_args__ = (
        UniqueConstraint("review_id", "allergen_id", name="uq_review_allergen"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_id = Column(
        Integer,
        ForeignKey("reviews.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    allergen_id = Column(Integer, ForeignKey("allergens.id"), nullable=False)
    score = Column(SmallInteger, nullable=False)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    review = relationship("Review", back_populates="allergen_scores")


class ReviewAnswer(Base):
    """
    Yes/no answer to a question-bank question, pinned to the question version
    that was active when the answer was written.
    """

    __tablename__ = "review_answers"
    __table_args__ = (
        UniqueConstraint(
            "review_id", "question_code", "question_version", name="uq_review_answer"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_id = Column(
        Integer,
        ForeignKey("reviews.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_code = Column(String(100), nullable=False)
    question_version = Column(Integer, nullable=False)
    answer = Column(Boolean, nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    review = relationship("Review", back_populates="answers")
