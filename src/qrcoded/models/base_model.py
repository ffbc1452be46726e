"""Standard column definitions for consistency."""
from datetime import datetime, timezone

from sqlalchemy import Column
from sqlalchemy.types import DateTime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_created():
    # Python-side default keeps microsecond precision on every backend,
    # which the stable list order relies on.
    return Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )


def timestamp_nullable():
    return Column(
        DateTime(timezone=True),
        nullable=True,
    )
