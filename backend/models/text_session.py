"""Persisted text editing sessions and their revision history."""

from db.database import Base
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from models.common import new_id, utcnow


class TextSession(Base):
    """An original/final text pair with the prompt that produced it."""
    __tablename__ = "text_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String(200), nullable=True)
    original_text = Column(Text, nullable=False)
    final_text = Column(Text, nullable=True)
    prompt = Column(Text, nullable=False)
    language = Column(String(10), nullable=False)
    temperature = Column(Float, nullable=False, default=0.7)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    user = relationship("User", back_populates="text_sessions")
    revisions = relationship(
        "TextRevision",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="TextRevision.revision_number",
    )

    __table_args__ = (
        Index("ix_text_sessions_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<TextSession(id={self.id}, title='{self.title}')>"


class TextRevision(Base):
    """One selection rewrite applied inside a text session."""
    __tablename__ = "text_revisions"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(
        String(36), ForeignKey("text_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    revision_number = Column(Integer, nullable=False)
    selected_text = Column(Text, nullable=False)
    transformed_text = Column(Text, nullable=False)
    transform_prompt = Column(Text, nullable=False)
    start_position = Column(Integer, nullable=False)
    end_position = Column(Integer, nullable=False)
    preset = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    __table_args__ = (
        CheckConstraint("revision_number > 0", name="check_revision_number_positive"),
    )

    session = relationship("TextSession", back_populates="revisions")

    def __repr__(self):
        return f"<TextRevision(id={self.id}, session_id={self.session_id}, number={self.revision_number})>"
