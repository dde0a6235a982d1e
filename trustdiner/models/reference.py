"""Reference data owned outside the review engine: allergens and the question bank."""

from sqlalchemy import Boolean, Column, Integer, String, Text, UniqueConstraint

from trustdiner.database import Base


class Allergen(Base):
    """Allergen reference row. `code` is the storage (canonical) code, e.g. 'nuts'."""

    __tablename__ = "allergens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    sort_order = Column(Integer, nullable=False, server_default="0")
    is_active = Column(Boolean, nullable=False, server_default="1")


class Question(Base):
    """
    A versioned yes/no review question. Only one version of a code is expected
    to be active at a time; answers record the version they were given against.
    """

    __tablename__ = "question_bank"
    __table_args__ = (
        UniqueConstraint("question_code", "version", name="uq_question_code_version"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_code = Column(String(100), nullable=False)
    version = Column(Integer, nullable=False, server_default="1")
    prompt = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default="1")
