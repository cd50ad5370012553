from db.database import Base
from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from models.common import new_id, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    # Stored exactly as submitted; lookups are case-sensitive.
    email = Column(String(320), nullable=False, unique=True, index=True)
    # bcrypt hash, never returned by the API
    password_hash = Column(String(100), nullable=False)
    name = Column(String(200), nullable=False)
    is_pro = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow)

    # Relationships
    sessions = relationship(
        "AuthSession", back_populates="user", cascade="all, delete-orphan"
    )
    text_sessions = relationship(
        "TextSession", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', is_pro={self.is_pro})>"
