"""Freshness rules for stored retrospectives."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import settings
from .models import CURRENT_SCHEMA_VERSION, GitHubUser

DEFAULT_TTL = timedelta(days=settings.cache_ttl_days)


def is_complete(record: GitHubUser) -> bool:
    """Whether the record was written by the current document layout."""
    return (
        record.schema_version == CURRENT_SCHEMA_VERSION
        and record.metrics.contribution_calendar is not None
    )


def is_fresh(
    record: GitHubUser,
    now: Optional[datetime] = None,
    ttl: timedelta = DEFAULT_TTL,
) -> bool:
    """
    A record may be served without refreshing only when it is younger than
    the TTL and complete. Time-fresh but incomplete records count as stale.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    return (now - record.fetched_at) < ttl and is_complete(record)
