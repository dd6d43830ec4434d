"""
Declarative base and shared mixins for all database models.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Declarative base holding the shared metadata."""


class BaseModel(Base):
    """Abstract model with a dict helper."""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        """Column values keyed by column name."""
        return {column.name: getattr(self, column.key) for column in self.__mapper__.columns}


class TimestampMixin:
    """Created/updated timestamps maintained by the ORM."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now(),
        comment="Row creation time (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        comment="Last update time (UTC)"
    )
