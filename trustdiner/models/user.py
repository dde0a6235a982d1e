"""User account ORM model: display metadata only; accounts are managed by the auth service."""

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from trustdiner.database import Base


class User(Base):
    """Reviewer account as seen by the review service."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=True, unique=True)
    display_name = Column(String(100), nullable=True)
    avatar_url = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
