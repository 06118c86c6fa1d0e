"""Shared utilities for schema validation."""

from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_mongo_datetime(v: Any) -> Any:
    """Normalize datetimes read back from MongoDB.

    MongoDB stores UTC without tzinfo, so naive values are tagged as UTC.
    Extended JSON values ({'$date': '2024-11-01T08:00:00Z'}) are parsed as well.
    """
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    if isinstance(v, dict) and "$date" in v:
        return datetime.fromisoformat(v["$date"].replace("Z", "+00:00"))
    return v
