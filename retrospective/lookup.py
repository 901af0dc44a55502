"""
Username resolution: cache check, GitHub fetch, persistence and stale fallback.
"""

import logging
import re

import asyncpg

from .cache_policy import is_fresh
from .domain import (
    ApiError,
    AverageStats,
    EmptyInputError,
    InvalidFormatError,
    NotFoundError,
    UserNotFoundError,
)
from .models import GitHubUser

logger = logging.getLogger(__name__)

# 1-39 alphanumerics, single hyphens only between alphanumerics.
USERNAME_PATTERN = re.compile(r"^[a-z\d](?:[a-z\d]|-(?=[a-z\d])){0,38}$", re.IGNORECASE)

STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def normalize_username(raw_username: str) -> str:
    """Trim, lowercase and validate a GitHub username."""
    username = (raw_username or "").strip().lower()
    if not username:
        raise EmptyInputError("Username is required")
    if not USERNAME_PATTERN.match(username):
        raise InvalidFormatError(f"Invalid GitHub username: {username!r}")
    return username


class LookupService:
    """
    Resolves usernames to stored retrospectives.

    The store and the GitHub client are injected. Lookups of the same login
    are not de-duplicated; two concurrent refreshes both hit GitHub and the
    last upsert wins.
    """

    def __init__(self, store, client):
        self.store = store
        self.client = client

    async def resolve_user(self, raw_username: str) -> GitHubUser:
        """
        Return a fresh or freshly fetched record for the username.

        Raises EmptyInputError, InvalidFormatError, UserNotFoundError,
        AuthenticationError, RateLimitError or ApiError. External and store
        failures fall back to any cached record, however old.
        """
        username = normalize_username(raw_username)

        cached = await self.store.get(username)
        if cached and is_fresh(cached):
            logger.info(f"📦 Using cached data for {username}")
            return cached

        try:
            if not await self.client.user_exists(username):
                raise UserNotFoundError(f"GitHub user {username} does not exist")

            logger.info(f"🔍 Fetching fresh data for {username}")
            metrics = await self.client.fetch_metrics(username)
            return await self.store.upsert(username, metrics)
        except UserNotFoundError:
            logger.info(f"🚫 GitHub user not found: {username}")
            raise
        except ApiError as e:
            logger.error(f"❌ Error looking up {username}: {e}")
            if cached:
                logger.warning(f"⚠️ Returning stale cached data for {username} due to error")
                return cached
            raise
        except STORE_ERRORS as e:
            logger.error(f"❌ Error storing {username}: {e}")
            if cached:
                logger.warning(f"⚠️ Returning stale cached data for {username} due to store error")
                return cached
            raise ApiError(f"Failed to store {username}: {e}") from e

    async def get_user(self, raw_username: str) -> GitHubUser:
        """
        Like resolve_user, for step pages: every failure that leaves nothing
        to display becomes NotFoundError.
        """
        try:
            return await self.resolve_user(raw_username)
        except (EmptyInputError, InvalidFormatError, ApiError) as e:
            raise NotFoundError(str(e)) from e

    async def average_stats(self) -> AverageStats:
        return await self.store.average_stats()

    async def user_count(self) -> int:
        return await self.store.count()
