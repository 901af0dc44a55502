import aiohttp
import asyncio
import logging
from typing import Optional, List, Dict, Any, Tuple

from .config import settings
from .domain import (
    RateLimit,
    RateLimitError,
    AuthenticationError,
    UserNotFoundError,
    ApiError,
)
from .metrics import build_metrics, extract_first_last_commit
from .models import CommitInfo, GitHubMetrics

logger = logging.getLogger(__name__)

USER_NOT_FOUND_MESSAGE = "Could not resolve to a User"

USER_EXISTS_QUERY = """
query CheckUser($username: String!) {
  user(login: $username) {
    login
  }
}"""

USER_STATS_QUERY = """
query UserStats($username: String!, $from: DateTime!, $to: DateTime!) {
  user(login: $username) {
    contributionsCollection(from: $from, to: $to) {
      totalCommitContributions
      totalPullRequestContributions
      totalIssueContributions
      totalPullRequestReviewContributions
      contributionCalendar {
        weeks {
          contributionDays {
            contributionCount
            date
          }
        }
      }
      commitContributionsByRepository(maxRepositories: 100) {
        contributions {
          totalCount
        }
        repository {
          name
          owner { login }
          url
          isFork
          stargazerCount
          languages(first: 10, orderBy: {field: SIZE, direction: DESC}) {
            edges {
              size
              node { name }
            }
          }
        }
      }
    }
    repositories(first: 100, ownerAffiliations: OWNER, orderBy: {field: CREATED_AT, direction: DESC}) {
      totalCount
      nodes {
        name
        owner { login }
        url
        isFork
        stargazerCount
        createdAt
      }
    }
    repositoriesContributedTo(first: 1, contributionTypes: [COMMIT, PULL_REQUEST]) {
      totalCount
    }
  }
  rateLimit {
    limit
    cost
    remaining
    resetAt
  }
}"""

COMMITS_QUERY = """
query UserCommits($username: String!, $from: DateTime!, $to: DateTime!) {
  user(login: $username) {
    contributionsCollection(from: $from, to: $to) {
      commitContributionsByRepository(maxRepositories: 100) {
        repository {
          name
          owner { login }
          defaultBranchRef {
            target {
              ... on Commit {
                history(first: 100, since: $from, until: $to) {
                  nodes {
                    committedDate
                    message
                    url
                    repository {
                      name
                      owner { login }
                    }
                  }
                }
              }
            }
          }
        }
      }
    }
  }
}"""


def year_window(year: int) -> Tuple[str, str]:
    """GraphQL DateTime bounds covering a whole calendar year."""
    return f"{year}-01-01T00:00:00Z", f"{year}-12-31T23:59:59Z"


def classify_graphql_errors(
    errors: List[Dict[str, Any]], data: Optional[Dict[str, Any]]
) -> Optional[ApiError]:
    """
    Translate GraphQL error entries into the domain error taxonomy.

    Only a missing ``user`` counts as a nonexistent login; NOT_FOUND errors
    on nested nodes (deleted repositories and the like) are partial errors.
    Returns None when the errors are partial and the response still carries
    usable data.
    """
    data = data or {}
    user_missing = data.get("user") is None
    has_data = any(value is not None for value in data.values())

    for error in errors:
        error_type = error.get("type", "")
        message = str(error.get("message", ""))
        if USER_NOT_FOUND_MESSAGE in message:
            return UserNotFoundError(message)
        if error_type == "NOT_FOUND" and error.get("path") == ["user"] and user_missing:
            return UserNotFoundError(message)
        if error_type == "RATE_LIMITED" or "rate limit" in message.lower():
            return RateLimitError(f"GraphQL rate limited: {message}")

    if has_data:
        return None

    for error in errors:
        error_type = error.get("type", "")
        message = str(error.get("message", ""))
        if error_type == "FORBIDDEN" or "Bad credentials" in message:
            return AuthenticationError(f"Authentication failed: {message}")

    return ApiError(f"GraphQL query failed: {[str(e) for e in errors]}")


class GitHubClient:
    """
    GitHub GraphQL client acting as the boundary adapter for the retrospective.

    Every transport, HTTP and GraphQL failure is classified here into
    AuthenticationError, RateLimitError, UserNotFoundError or ApiError.
    Requests have a bounded timeout and are never retried.
    """

    def __init__(
        self,
        token: str = settings.github_token,
        year: int = settings.retrospective_year,
    ):
        if not token:
            raise ValueError("GitHub token is required (set GITHUB_TOKEN)")

        self.graphql_url = settings.github_api_url
        self.year = year
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github.v4+json",
            "User-Agent": "GitHub-Retrospective/1.0",
        }
        self._connector = None
        self._session = None

    async def __aenter__(self):
        """Async context manager entry."""
        self._connector = aiohttp.TCPConnector(
            limit=100,
            limit_per_host=20,
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        self._session = aiohttp.ClientSession(
            connector=self._connector,
            headers=self.headers,
            timeout=aiohttp.ClientTimeout(total=settings.request_timeout_seconds),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._session:
            await self._session.close()
        if self._connector:
            await self._connector.close()

    async def _make_graphql_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Make a single GraphQL request and classify any failure."""
        if not self._session:
            raise RuntimeError("Client must be used as async context manager")

        try:
            async with self._session.post(self.graphql_url, json=payload) as resp:
                if resp.status == 401:
                    raise AuthenticationError("GitHub API authentication failed")

                if resp.status in {403, 429}:
                    response_text = await resp.text()
                    if resp.status == 429 or "rate limit" in response_text.lower():
                        raise RateLimitError("GitHub API rate limit exceeded")
                    raise AuthenticationError(f"GitHub API forbidden: {response_text}")

                if resp.status != 200:
                    raise ApiError(f"GitHub API returned HTTP {resp.status}")

                response_data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"🔁 Network error: {e}")
            raise ApiError(f"GitHub request failed: {e}") from e

        if response_data.get("errors"):
            error = classify_graphql_errors(
                response_data["errors"], response_data.get("data")
            )
            if error is not None:
                raise error
            logger.warning(f"⚠️ GraphQL errors (continuing): {response_data['errors']}")

        return response_data

    async def user_exists(self, login: str) -> bool:
        """
        Lightweight existence check.

        Returns False only when GitHub reports that the login cannot be
        resolved; every other failure propagates.
        """
        payload = {"query": USER_EXISTS_QUERY, "variables": {"username": login}}
        try:
            response = await self._make_graphql_request(payload)
        except UserNotFoundError:
            return False
        return bool(response.get("data", {}).get("user"))

    async def fetch_user_stats(self, login: str) -> Dict[str, Any]:
        """Run the user-stats query and log the rate-limit budget."""
        start, end = year_window(self.year)
        payload = {
            "query": USER_STATS_QUERY,
            "variables": {"username": login, "from": start, "to": end},
        }
        response = await self._make_graphql_request(payload)

        data = response.get("data") or {}
        if not data.get("user"):
            raise UserNotFoundError(f"{USER_NOT_FOUND_MESSAGE} with the login of '{login}'")

        if data.get("rateLimit"):
            self._log_rate_limit(RateLimit.from_response(data["rateLimit"]))

        return data["user"]

    def _log_rate_limit(self, rate_limit: RateLimit):
        logger.info(
            f"🚦 GitHub API rate limit: {rate_limit.remaining}/{rate_limit.limit} "
            f"(cost: {rate_limit.cost})"
        )
        if rate_limit.remaining < settings.low_rate_limit_threshold:
            reset = rate_limit.reset_at.isoformat() if rate_limit.reset_at else "unknown"
            logger.warning(f"⏱️ Low rate limit! Resets at {reset}")

    async def fetch_commit_nodes(self, login: str) -> List[Dict[str, Any]]:
        """Default-branch commits of every repository contributed to this year."""
        start, end = year_window(self.year)
        payload = {
            "query": COMMITS_QUERY,
            "variables": {"username": login, "from": start, "to": end},
        }
        response = await self._make_graphql_request(payload)

        user = (response.get("data") or {}).get("user") or {}
        by_repo = user.get("contributionsCollection", {}).get(
            "commitContributionsByRepository", []
        )

        nodes: List[Dict[str, Any]] = []
        for item in by_repo:
            branch = item.get("repository", {}).get("defaultBranchRef") or {}
            history = (branch.get("target") or {}).get("history") or {}
            nodes.extend(history.get("nodes") or [])
        return nodes

    async def fetch_first_last_commit(
        self, login: str
    ) -> Tuple[Optional[CommitInfo], Optional[CommitInfo]]:
        """First and last commit of the year; (None, None) on any failure."""
        try:
            nodes = await self.fetch_commit_nodes(login)
            return extract_first_last_commit(nodes)
        except (ApiError, KeyError, TypeError, ValueError) as e:
            logger.error(f"❌ Error fetching commits for {login}: {e}")
            return None, None

    async def fetch_metrics(self, login: str) -> GitHubMetrics:
        """Fetch and aggregate the full year-in-review metrics for a login."""
        stats = await self.fetch_user_stats(login)
        first_commit, last_commit = await self.fetch_first_last_commit(login)

        try:
            return build_metrics(stats, self.year, first_commit, last_commit)
        except ValueError as e:
            logger.error(f"❌ Malformed stats payload for {login}: {e}")
            raise ApiError(f"Malformed GitHub response: {e}") from e
