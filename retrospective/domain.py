"""
Domain objects and error taxonomy for the retrospective service.

External-source failures are classified once, at the GitHub client boundary,
into the closed set of error kinds below. Callers branch on exception type,
never on message text.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of failure outcomes for a lookup."""

    EMPTY_INPUT = "empty_input"
    INVALID_FORMAT = "invalid_format"
    USER_NOT_FOUND = "user_not_found"
    AUTH_FAILURE = "auth_failure"
    RATE_LIMITED = "rate_limited"
    FETCH_FAILED = "fetch_failed"
    NOT_FOUND = "not_found"


class RetrospectiveError(Exception):
    """Base exception carrying an error kind and a user-facing message."""

    kind: ErrorKind = ErrorKind.FETCH_FAILED
    user_message: str = "Failed to fetch GitHub data. Please try again."


class EmptyInputError(RetrospectiveError):
    """Raised when the username is blank after trimming."""

    kind = ErrorKind.EMPTY_INPUT
    user_message = "Username is required"


class InvalidFormatError(RetrospectiveError):
    """Raised when the username does not follow GitHub's username grammar."""

    kind = ErrorKind.INVALID_FORMAT
    user_message = "Invalid GitHub username format"


class NotFoundError(RetrospectiveError):
    """Raised when no record exists and none can be fetched."""

    kind = ErrorKind.NOT_FOUND
    user_message = "Retrospective not found"


class ApiError(RetrospectiveError):
    """Base exception for GitHub API errors (generic fetch failure)."""

    pass


class RateLimitError(ApiError):
    """Exception raised when GitHub API rate limit is exceeded."""

    kind = ErrorKind.RATE_LIMITED
    user_message = "GitHub API rate limit exceeded. Please try again later."


class AuthenticationError(ApiError):
    """Exception raised when GitHub API authentication fails."""

    kind = ErrorKind.AUTH_FAILURE
    user_message = "GitHub API authentication failed. Please check GITHUB_TOKEN."


class UserNotFoundError(ApiError):
    """Exception raised when GitHub reports the login does not exist."""

    kind = ErrorKind.USER_NOT_FOUND
    user_message = "GitHub user not found"


@dataclass(frozen=True)
class RateLimit:
    """Immutable snapshot of the GraphQL rate-limit budget."""

    remaining: int
    limit: int
    cost: int = 0
    reset_at: Optional[datetime] = None

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "RateLimit":
        reset_at = None
        if data.get("resetAt"):
            reset_at = datetime.fromisoformat(data["resetAt"].replace("Z", "+00:00"))
        return cls(
            remaining=int(data.get("remaining", 0)),
            limit=int(data.get("limit", 0)),
            cost=int(data.get("cost", 0)),
            reset_at=reset_at,
        )


@dataclass(frozen=True)
class AverageStats:
    """Cross-user averages, each rounded to the nearest integer."""

    total_commits: int = 0
    longest_streak: int = 0
    total_prs: int = 0
    total_issues: int = 0
    stars_received: int = 0
    user_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalCommits": self.total_commits,
            "longestStreak": self.longest_streak,
            "totalPRs": self.total_prs,
            "totalIssues": self.total_issues,
            "starsReceived": self.stars_received,
            "userCount": self.user_count,
        }
