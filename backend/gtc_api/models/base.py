"""
Base model with common fields.
"""
import re
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import DateTime, String, inspect
from sqlalchemy.orm import Mapped, mapped_column
from gtc_api.db.base import Base

ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")


def generate_id() -> str:
    """Generate a 24-character hex ID, shaped like a document-store ObjectId."""
    return uuid.uuid4().hex[:24]


def is_valid_id(value: Optional[str]) -> bool:
    return bool(value) and ID_PATTERN.match(value) is not None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin for created/last-updated timestamps.

    Both columns are nullable: records imported from older systems may not
    carry a creation date, and the record store backfills it on update.
    """
    created_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=True
    )
    last_updated_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=True
    )


class BaseModel(Base, TimestampMixin):
    """Abstract base model with id and timestamps."""
    __abstract__ = True

    id: Mapped[str] = mapped_column(
        String(24),
        primary_key=True,
        default=generate_id
    )

    def clone(self):
        """Return a transient copy carrying every column value, id included."""
        values = {
            attr.key: getattr(self, attr.key)
            for attr in inspect(type(self)).column_attrs
        }
        return type(self)(**values)
