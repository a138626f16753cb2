from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    # Stored timestamps are naive UTC so SQLite and PostgreSQL compare alike
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
