"""
pytest configuration for retrospective tests.

This file configures:
1. Test markers for different test types
2. Fixtures for raw GitHub payloads and domain records
3. An in-memory stand-in for the user store
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from retrospective.domain import AverageStats
from retrospective.models import ContributionDay, GitHubMetrics, GitHubUser


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")


def make_contribution(name, owner, commits, languages=(), is_fork=False, stars=0):
    """One commitContributionsByRepository entry as returned by GitHub."""
    return {
        "contributions": {"totalCount": commits},
        "repository": {
            "name": name,
            "owner": {"login": owner},
            "url": f"https://github.com/{owner}/{name}",
            "isFork": is_fork,
            "stargazerCount": stars,
            "languages": {
                "edges": [
                    {"size": size, "node": {"name": lang}} for lang, size in languages
                ]
            },
        },
    }


def make_calendar(counts, start="2025-01-01"):
    """Raw calendar weeks (7 days each) from a flat list of daily counts."""
    first = datetime.fromisoformat(start)
    days = [
        {
            "date": (first + timedelta(days=i)).date().isoformat(),
            "contributionCount": count,
        }
        for i, count in enumerate(counts)
    ]
    return [{"contributionDays": days[i:i + 7]} for i in range(0, len(days), 7)]


def make_commit_node(owner, name, committed_date, message):
    return {
        "committedDate": committed_date,
        "message": message,
        "url": f"https://github.com/{owner}/{name}/commit/{committed_date[:10]}",
        "repository": {"name": name, "owner": {"login": owner}},
    }


@pytest.fixture
def stats_payload():
    """Fixture providing the `user` object of a user-stats query response."""
    return {
        "contributionsCollection": {
            "totalCommitContributions": 420,
            "totalPullRequestContributions": 35,
            "totalIssueContributions": 12,
            "totalPullRequestReviewContributions": 18,
            "contributionCalendar": {
                "weeks": make_calendar([0, 1, 2, 3, 0, 5, 0, 0, 4, 4, 4, 4, 0, 0])
            },
            "commitContributionsByRepository": [
                make_contribution("api", "octocat", 120, [("Python", 3000), ("Shell", 100)]),
                make_contribution("web", "octocat", 80, [("TypeScript", 2000), ("CSS", 400)]),
                make_contribution("tools", "octo-org", 15, [("Python", 500)]),
            ],
        },
        "repositories": {
            "totalCount": 4,
            "nodes": [
                {"name": "api", "owner": {"login": "octocat"}, "url": "https://github.com/octocat/api",
                 "isFork": False, "stargazerCount": 10, "createdAt": "2025-02-01T10:00:00Z"},
                {"name": "web", "owner": {"login": "octocat"}, "url": "https://github.com/octocat/web",
                 "isFork": False, "stargazerCount": 5, "createdAt": "2024-06-01T10:00:00Z"},
                {"name": "linux", "owner": {"login": "octocat"}, "url": "https://github.com/octocat/linux",
                 "isFork": True, "stargazerCount": 0, "createdAt": "2025-03-01T10:00:00Z"},
                {"name": "notes", "owner": {"login": "octocat"}, "url": "https://github.com/octocat/notes",
                 "isFork": False, "stargazerCount": 2, "createdAt": "2025-11-20T10:00:00Z"},
            ],
        },
        "repositoriesContributedTo": {"totalCount": 7},
    }


@pytest.fixture
def commit_nodes():
    return [
        make_commit_node("octocat", "web", "2025-06-01T12:00:00Z", "Add landing page"),
        make_commit_node("octocat", "api", "2025-01-03T08:30:00Z", "Initial commit\n\nScaffold project"),
        make_commit_node("octo-org", "tools", "2025-12-30T22:15:00Z", "Release 2.0"),
    ]


@pytest.fixture
def sample_metrics():
    """Fixture providing complete metrics for a user."""
    return GitHubMetrics(
        total_commits=420,
        longest_streak=4,
        contribution_calendar=[
            [ContributionDay(date="2025-01-01", contribution_count=3)],
            [ContributionDay(date="2025-01-08", contribution_count=0)],
        ],
        total_prs=35,
        total_issues=12,
        stars_received=17,
    )


@pytest.fixture
def fresh_user(sample_metrics):
    return GitHubUser(
        username="octocat",
        fetched_at=datetime.now(timezone.utc) - timedelta(hours=1),
        metrics=sample_metrics,
    )


@pytest.fixture
def stale_user(sample_metrics):
    return GitHubUser(
        username="octocat",
        fetched_at=datetime.now(timezone.utc) - timedelta(days=10),
        metrics=sample_metrics,
    )


class InMemoryUserStore:
    """Dict-backed user store with the same interface as UserStore."""

    def __init__(self, *users):
        self.users = {user.username: user for user in users}
        self.upserts = []

    async def get(self, username):
        return self.users.get(username.lower())

    async def upsert(self, username, metrics):
        user = GitHubUser(
            username=username.lower(),
            fetched_at=datetime.now(timezone.utc),
            metrics=metrics,
        )
        self.users[user.username] = user
        self.upserts.append(user.username)
        return user

    async def average_stats(self):
        if not self.users:
            return AverageStats()
        users = list(self.users.values())
        n = len(users)
        return AverageStats(
            total_commits=round(sum(u.metrics.total_commits for u in users) / n),
            longest_streak=round(sum(u.metrics.longest_streak for u in users) / n),
            total_prs=round(sum(u.metrics.total_prs for u in users) / n),
            total_issues=round(sum(u.metrics.total_issues for u in users) / n),
            stars_received=round(sum(u.metrics.stars_received for u in users) / n),
            user_count=n,
        )

    async def count(self):
        return len(self.users)


@pytest.fixture
def memory_store():
    return InMemoryUserStore()


@pytest.fixture
def mock_github_client(sample_metrics):
    """Fixture providing a GitHub client double whose calls succeed."""
    client = AsyncMock()
    client.user_exists.return_value = True
    client.fetch_metrics.return_value = sample_metrics
    return client
