import asyncpg
import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from .config import settings
from .domain import AverageStats
from .models import CURRENT_SCHEMA_VERSION, GitHubMetrics, GitHubUser

logger = logging.getLogger(__name__)

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS github_user (
    username TEXT PRIMARY KEY,
    fetched_at TIMESTAMPTZ NOT NULL,
    schema_version INT NOT NULL DEFAULT 1,
    metrics JSONB NOT NULL
)
"""


def _round_half_up(value) -> int:
    if value is None:
        return 0
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


class UserStore:
    """
    Persistence for retrospectives, one row per lowercase GitHub login.

    Upserts replace the whole metrics document. Nothing serializes concurrent
    refreshes of the same login: the last writer wins.
    """

    def __init__(self, dsn: str = settings.database_url):
        self.dsn = dsn
        self.pool = None

    async def __aenter__(self):
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @retry(
        retry=retry_if_exception_type((OSError,
                                     asyncpg.exceptions.InterfaceError,
                                     asyncpg.exceptions.CannotConnectNowError)),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def init(self):
        """Create the connection pool and the github_user table."""
        self.pool = await asyncpg.create_pool(
            self.dsn,
            min_size=1,
            max_size=10,
            command_timeout=settings.request_timeout_seconds,
        )
        async with self.pool.acquire() as conn:
            await conn.execute(CREATE_TABLE_SQL)
        logger.info("✅ User store ready")

    async def close(self):
        """Close the database connection pool."""
        if self.pool:
            await self.pool.close()

    async def get(self, username: str) -> Optional[GitHubUser]:
        """Stored record for a login, or None when absent."""
        sql = """
        SELECT username, fetched_at, schema_version, metrics
          FROM github_user
         WHERE username = $1
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(sql, username.lower())

        if row is None:
            return None

        metrics = row["metrics"]
        if isinstance(metrics, str):
            parsed = GitHubMetrics.model_validate_json(metrics)
        else:
            parsed = GitHubMetrics.model_validate(metrics)

        return GitHubUser(
            username=row["username"],
            fetched_at=row["fetched_at"],
            schema_version=row["schema_version"],
            metrics=parsed,
        )

    async def upsert(self, username: str, metrics: GitHubMetrics) -> GitHubUser:
        """
        Insert or fully replace the record for a login.

        fetched_at is set to the current time and the schema version to the
        current layout.
        """
        normalized = username.lower()
        now = datetime.now(timezone.utc)

        sql = """
        INSERT INTO github_user (username, fetched_at, schema_version, metrics)
          VALUES ($1, $2, $3, $4::jsonb)
        ON CONFLICT (username) DO UPDATE SET
          fetched_at = EXCLUDED.fetched_at,
          schema_version = EXCLUDED.schema_version,
          metrics = EXCLUDED.metrics
        """

        async with self.pool.acquire() as conn:
            await conn.execute(
                sql,
                normalized,
                now,
                CURRENT_SCHEMA_VERSION,
                metrics.model_dump_json(by_alias=True),
            )

        return GitHubUser(
            username=normalized,
            fetched_at=now,
            schema_version=CURRENT_SCHEMA_VERSION,
            metrics=metrics,
        )

    async def average_stats(self) -> AverageStats:
        """Per-field mean across all stored users, rounded to integers."""
        sql = """
        SELECT COUNT(*) AS user_count,
               AVG((metrics->>'totalCommits')::numeric) AS total_commits,
               AVG((metrics->>'longestStreak')::numeric) AS longest_streak,
               AVG((metrics->>'totalPRs')::numeric) AS total_prs,
               AVG((metrics->>'totalIssues')::numeric) AS total_issues,
               AVG((metrics->>'starsReceived')::numeric) AS stars_received
          FROM github_user
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(sql)

        if row is None or not row["user_count"]:
            return AverageStats()

        return AverageStats(
            total_commits=_round_half_up(row["total_commits"]),
            longest_streak=_round_half_up(row["longest_streak"]),
            total_prs=_round_half_up(row["total_prs"]),
            total_issues=_round_half_up(row["total_issues"]),
            stars_received=_round_half_up(row["stars_received"]),
            user_count=row["user_count"],
        )

    async def count(self) -> int:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM github_user")
