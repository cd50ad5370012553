"""Refresh session storage: one row per logged-in browser."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.database import Base
from models.common import as_utc, utcnow


class AuthSession(Base):
    """
    Makes a refresh token revocable.

    The signed refresh token string itself is the lookup key. Deleting the row
    invalidates the token immediately, whatever its remaining signed lifetime.
    """

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(Text, nullable=False, unique=True)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("ix_sessions_expires_at", "expires_at"),
    )

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= now

    def __repr__(self):
        return f"<AuthSession(id={self.id}, user_id={self.user_id})>"
