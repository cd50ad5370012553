"""One row per successful text generation, used for the daily quota."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.sql import func

from db.database import Base
from models.common import utcnow


class GenerationUsage(Base):
    __tablename__ = "generation_usage"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    text_session_id = Column(
        String(36), ForeignKey("text_sessions.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_generation_usage_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<GenerationUsage(id={self.id}, user_id={self.user_id})>"
