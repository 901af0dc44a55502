"""
Metrics aggregation for the year-in-review.

Pure functions that transform raw GitHub GraphQL payloads into the
GitHubMetrics value object. This is the anti-corruption layer: nothing
outside this module and the client reads the raw API shape.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dateutil import parser as date_parser

from .models import CommitInfo, ContributionDay, GitHubMetrics, Language, TopRepo

MAX_LANGUAGES = 10
MAX_TOP_REPOS = 5


def build_contribution_calendar(
    raw_weeks: Iterable[Dict[str, Any]]
) -> List[List[ContributionDay]]:
    """Convert the API's weeks/contributionDays structure into nested day lists."""
    return [
        [ContributionDay.model_validate(day) for day in week.get("contributionDays", [])]
        for week in raw_weeks
    ]


def compute_longest_streak(calendar_weeks: Iterable[Iterable[ContributionDay]]) -> int:
    """Longest run of consecutive days with at least one contribution."""
    longest = 0
    current = 0
    for week in calendar_weeks:
        for day in week:
            if day.contribution_count > 0:
                current += 1
                longest = max(longest, current)
            else:
                current = 0
    return longest


def aggregate_languages(contributions: Iterable[Dict[str, Any]]) -> List[Language]:
    """
    Byte-weighted language share across every repository contributed to.

    Percentages are rounded to one decimal place and only the top 10 are
    kept, so the result need not sum to 100.
    """
    language_bytes: Dict[str, int] = defaultdict(int)
    for item in contributions:
        for edge in item["repository"]["languages"]["edges"]:
            language_bytes[edge["node"]["name"]] += edge["size"]

    total_bytes = sum(language_bytes.values())
    if total_bytes == 0:
        return []

    languages = [
        Language(name=name, percentage=round(size / total_bytes * 1000) / 10)
        for name, size in language_bytes.items()
    ]
    languages.sort(key=lambda lang: lang.percentage, reverse=True)
    return languages[:MAX_LANGUAGES]


def rank_top_repos(contributions: Iterable[Dict[str, Any]]) -> List[TopRepo]:
    ranked = sorted(
        contributions,
        key=lambda item: item["contributions"]["totalCount"],
        reverse=True,
    )
    return [
        TopRepo(
            name=item["repository"]["name"],
            owner=item["repository"]["owner"]["login"],
            commits=item["contributions"]["totalCount"],
            additions=0,
            deletions=0,
            url=item["repository"]["url"],
        )
        for item in ranked[:MAX_TOP_REPOS]
    ]


def count_created_in_year(repos: Iterable[Dict[str, Any]], year: int) -> int:
    """Non-fork repositories created during the given year."""
    count = 0
    for repo in repos:
        created_at = repo.get("createdAt")
        if not created_at or repo.get("isFork"):
            continue
        if date_parser.parse(created_at).year == year:
            count += 1
    return count


def count_forked(repos: Iterable[Dict[str, Any]]) -> int:
    return sum(1 for repo in repos if repo.get("isFork"))


def sum_stars(repos: Iterable[Dict[str, Any]]) -> int:
    return sum(repo.get("stargazerCount", 0) for repo in repos)


def _commit_info(node: Dict[str, Any], committed_at: datetime) -> CommitInfo:
    repository = node["repository"]
    return CommitInfo(
        date=committed_at,
        repo=f"{repository['owner']['login']}/{repository['name']}",
        message=node["message"].split("\n")[0],
        url=node["url"],
    )


def extract_first_last_commit(
    commit_nodes: Iterable[Dict[str, Any]]
) -> Tuple[Optional[CommitInfo], Optional[CommitInfo]]:
    """Earliest and latest commit across all repositories, or (None, None)."""
    dated = [(date_parser.parse(node["committedDate"]), node) for node in commit_nodes]
    if not dated:
        return None, None

    dated.sort(key=lambda pair: pair[0])
    first_at, first = dated[0]
    last_at, last = dated[-1]
    return _commit_info(first, first_at), _commit_info(last, last_at)


def build_metrics(
    stats: Dict[str, Any],
    year: int,
    first_commit: Optional[CommitInfo] = None,
    last_commit: Optional[CommitInfo] = None,
) -> GitHubMetrics:
    """
    Assemble GitHubMetrics from the user-stats payload.

    ``stats`` is the ``user`` object of the stats query response. The first
    and last commits come from a separate query and may be missing.
    """
    try:
        collection = stats["contributionsCollection"]
        by_repo = collection["commitContributionsByRepository"]
        owned = stats["repositories"]["nodes"]
        calendar = build_contribution_calendar(
            collection["contributionCalendar"]["weeks"]
        )

        return GitHubMetrics(
            total_commits=collection["totalCommitContributions"],
            longest_streak=compute_longest_streak(calendar),
            contribution_calendar=calendar,
            repos_created=count_created_in_year(owned, year),
            repos_contributed=stats["repositoriesContributedTo"]["totalCount"],
            repos_forked=count_forked(owned),
            languages=aggregate_languages(by_repo),
            total_prs=collection["totalPullRequestContributions"],
            total_issues=collection["totalIssueContributions"],
            code_review_comments=collection["totalPullRequestReviewContributions"],
            stars_received=sum_stars(owned),
            top_repos=rank_top_repos(by_repo),
            first_commit=first_commit,
            last_commit=last_commit,
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid GitHub API response format: {e}") from e
