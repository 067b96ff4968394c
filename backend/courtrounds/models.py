from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from .config import DEFAULT_RATING
from .db import Base


class Player(Base):
    __tablename__ = "player"
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, default="")
    rating = Column(Integer, nullable=False, default=DEFAULT_RATING)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    tournament_history = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class Tournament(Base):
    """A tournament stored as a single versioned document."""

    __tablename__ = "tournament"
    id = Column(String, primary_key=True)
    version = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False, index=True)
    document = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )
