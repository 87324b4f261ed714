import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSON_TYPE = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class CustomBase:
    def __repr__(self) -> str:
        columns = ", ".join(
            f"{c.name}={getattr(self, c.name)!r}" for c in self.__table__.columns
        )
        return f"{self.__class__.__name__}({columns})"


Base = declarative_base(cls=CustomBase)
