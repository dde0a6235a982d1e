"""Establishment and chain ORM models: read by the review engine, owned by the venues service."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from trustdiner.database import Base


class Chain(Base):
    """A restaurant chain grouping several establishments."""

    __tablename__ = "chains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    slug = Column(String(200), nullable=True, unique=True)
    logo_url = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)

    establishments = relationship("Establishment", back_populates="chain")


class Establishment(Base):
    """
    A single venue. Reviews are always attached to an establishment, never to
    a chain directly.
    """

    __tablename__ = "establishments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=True, unique=True)
    place_id = Column(String(255), nullable=True, index=True)   # Google place id when imported
    name = Column(Text, nullable=False)
    address = Column(Text, nullable=True)
    primary_image_ref = Column(Text, nullable=True)
    chain_id = Column(
        Integer,
        ForeignKey("chains.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    chain = relationship("Chain", back_populates="establishments")
