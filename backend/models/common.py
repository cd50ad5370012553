"""Column defaults shared by the models."""

from datetime import datetime, timezone
from uuid import uuid4


def new_id() -> str:
    """Opaque primary key for user-facing records."""
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything is written in UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
