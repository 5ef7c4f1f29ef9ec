"""KWPilot: UTC clock helpers shared by models and stores."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def expires_in(seconds: float) -> datetime:
    return utcnow() + timedelta(seconds=seconds)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware column type.

    SQLite drops tzinfo on storage, so values are normalised to UTC on the
    way in and UTC is re-attached on the way out. Every datetime read from
    the database compares cleanly with ``utcnow()`` on either backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return as_utc(value)
