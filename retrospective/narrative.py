"""
Presentation data for the retrospective steps and the share view.

Each step displays fields of an already resolved record; the summary and
share views also compare against the cross-user averages.
"""

from typing import Any, Dict, List, Optional, Tuple

from .config import settings
from .domain import AverageStats, NotFoundError
from .models import GitHubMetrics, GitHubUser, Language

STEPS: List[Tuple[str, str]] = [
    ("first-commit", "First Commit"),
    ("total-commits", "Total Commits"),
    ("top-repositories", "Top Repositories"),
    ("streak", "Coding Streak"),
    ("languages", "Languages"),
    ("community", "Community Impact"),
    ("summary", "Summary"),
]
STEP_SLUGS = [slug for slug, _ in STEPS]
SHARE_SLUG = "share"

# (minimum score, title, message), highest first
YEAR_TIERS = [
    (5000, "Legendary Year!",
     "You've had an extraordinary year of coding. Your contributions have made a real impact!"),
    (2000, "Outstanding Year!",
     "Incredible dedication to your craft. You've accomplished so much this year!"),
    (1000, "Great Year!",
     "You've been consistently contributing and growing as a developer. Well done!"),
    (500, "Solid Year!",
     "You've made meaningful progress this year. Keep building on this momentum!"),
    (100, "Growing Year!",
     "You've taken steps forward in your coding journey. Every commit counts!"),
    (0, "New Beginnings!",
     "This year marks the start of your coding journey. The best is yet to come!"),
]


def year_score(metrics: GitHubMetrics) -> int:
    return (
        metrics.total_commits
        + metrics.total_prs * 5
        + metrics.total_issues * 3
        + metrics.stars_received * 10
        + metrics.longest_streak * 2
    )


def year_summary(metrics: GitHubMetrics) -> Tuple[str, str]:
    score = year_score(metrics)
    for threshold, title, message in YEAR_TIERS:
        if score >= threshold:
            return title, message
    return YEAR_TIERS[-1][1], YEAR_TIERS[-1][2]


def comparison_text(value: int, average: int) -> str:
    """Describe a value relative to the community average (±10% counts as equal)."""
    if average == 0:
        return "No comparison data"
    ratio = value / average
    percentage = abs(round((ratio - 1) * 100))
    if ratio > 1.1:
        return f"{percentage}% above average"
    if ratio < 0.9:
        return f"{percentage}% below average"
    return "Right at average"


def streak_message(streak: int) -> Tuple[str, str]:
    """Headline and detail line for the longest streak."""
    weeks = streak // 7
    months = streak // 30
    if streak >= 100:
        return "Incredible dedication! You're a coding machine!", f"That's over {months} months of daily coding!"
    if streak >= 50:
        return "Amazing consistency!", f"That's {weeks} weeks of daily coding!"
    if streak >= 30:
        return "A whole month of daily coding! Impressive!", f"That's {weeks} weeks straight!"
    if streak >= 14:
        return "Two weeks strong! Great momentum!", f"That's {weeks} weeks of consistency!"
    if streak >= 7:
        plural = "s" if weeks > 1 else ""
        return "Over a week of daily commits!", f"That's {weeks} week{plural} and {streak % 7} days!"
    if streak >= 3:
        return "Building that coding habit!", "Keep pushing forward!"
    if streak >= 1:
        return "Every journey starts with a single step!", "The beginning of something great!"
    return "Ready to start your streak?", "Your first commit awaits!"


# (minimum ratio to the average, message, label), highest first
COMMIT_TIERS = [
    (4, "You're in the top 1% of active developers!", "top 1%"),
    (2, "You're more active than 90% of developers!", "top 10%"),
    (1.5, "You're more active than 75% of developers!", "top 25%"),
    (1, "You're right on track with active developers!", "top 50%"),
    (0.5, "You've been steadily contributing this year.", "active"),
]


def commit_comparison(commits: int, average: int) -> Optional[Dict[str, str]]:
    if average == 0:
        return None
    ratio = commits / average
    for threshold, message, label in COMMIT_TIERS:
        if ratio >= threshold:
            return {"message": message, "label": label}
    return {"message": "Every commit counts! Keep pushing forward.", "label": "growing"}


def community_message(metrics: GitHubMetrics) -> str:
    activity = metrics.total_prs + metrics.total_issues + metrics.code_review_comments
    if metrics.stars_received >= 100:
        return "Your projects are inspiring the community! Stars are pouring in."
    if metrics.repos_contributed >= 10:
        return "You're a true open source champion! Contributing across many projects."
    if metrics.total_prs >= 50:
        return "PR machine! You've been shipping code left and right."
    if metrics.code_review_comments >= 50:
        return "Code review expert! Helping others write better code."
    if activity >= 100:
        return "Highly engaged community member! You're making waves."
    if activity >= 50:
        return "Active contributor! The community appreciates your involvement."
    if activity >= 20:
        return "Building your presence! Every contribution counts."
    if activity >= 1:
        return "Getting involved! Great start to community engagement."
    return "Ready to make an impact! Your first contribution awaits."


def active_days(metrics: GitHubMetrics) -> int:
    """Calendar days with at least one contribution."""
    return sum(
        1
        for week in (metrics.contribution_calendar or [])
        for day in week
        if day.contribution_count > 0
    )


def group_minor_languages(languages: List[Language]) -> List[Language]:
    """Fold languages under 1% into a trailing "Other" entry."""
    significant = [lang for lang in languages if lang.percentage >= 1]
    other = sum(lang.percentage for lang in languages if lang.percentage < 1)
    if other > 0:
        significant.append(Language(name="Other", percentage=round(other, 1)))
    return significant


def share_url(username: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/retrospective/{username}/share"


def _step_index(slug: str) -> int:
    if slug not in STEP_SLUGS:
        raise NotFoundError(f"Unknown step: {slug}")
    return STEP_SLUGS.index(slug)


def next_step(slug: str) -> Optional[str]:
    """Slug following ``slug``; the last step leads to the share view."""
    index = _step_index(slug)
    if index + 1 < len(STEP_SLUGS):
        return STEP_SLUGS[index + 1]
    return SHARE_SLUG


def previous_step(slug: str) -> Optional[str]:
    index = _step_index(slug)
    return STEP_SLUGS[index - 1] if index > 0 else None


def _comparisons(metrics: GitHubMetrics, averages: AverageStats) -> List[Dict[str, Any]]:
    pairs = [
        ("Total Commits", metrics.total_commits, averages.total_commits),
        ("Longest Streak", metrics.longest_streak, averages.longest_streak),
        ("Pull Requests", metrics.total_prs, averages.total_prs),
        ("Issues", metrics.total_issues, averages.total_issues),
        ("Stars Received", metrics.stars_received, averages.stars_received),
    ]
    return [
        {
            "label": label,
            "value": value,
            "average": average,
            "comparison": comparison_text(value, average),
        }
        for label, value, average in pairs
    ]


def _dump(model) -> Any:
    if model is None:
        return None
    return model.model_dump(mode="json", by_alias=True)


def step_payload(
    user: GitHubUser, slug: str, averages: Optional[AverageStats] = None
) -> Dict[str, Any]:
    """Fields displayed by one step, plus navigation."""
    position = _step_index(slug) + 1
    m = user.metrics
    averages = averages or AverageStats()

    if slug == "first-commit":
        data = {"firstCommit": _dump(m.first_commit), "lastCommit": _dump(m.last_commit)}
    elif slug == "total-commits":
        data = {
            "totalCommits": m.total_commits,
            "averageCommits": averages.total_commits,
            "commitsPerMonth": round(m.total_commits / 12),
            "commitsPerDay": round(m.total_commits / 365, 1),
            "comparison": commit_comparison(m.total_commits, averages.total_commits),
        }
    elif slug == "top-repositories":
        data = {
            "topRepos": [_dump(repo) for repo in m.top_repos],
            "totalCommits": sum(repo.commits for repo in m.top_repos),
        }
    elif slug == "streak":
        days = active_days(m)
        message, detail = streak_message(m.longest_streak)
        data = {
            "longestStreak": m.longest_streak,
            "totalActiveDays": days,
            "activeDaysPercent": round(days / 365 * 100),
            "message": message,
            "detail": detail,
            "contributionCalendar": [
                [_dump(day) for day in week] for week in (m.contribution_calendar or [])
            ],
        }
    elif slug == "languages":
        data = {"languages": [_dump(lang) for lang in group_minor_languages(m.languages)]}
    elif slug == "community":
        data = {
            "totalPRs": m.total_prs,
            "totalIssues": m.total_issues,
            "codeReviewComments": m.code_review_comments,
            "starsReceived": m.stars_received,
            "reposCreated": m.repos_created,
            "reposContributed": m.repos_contributed,
            "reposForked": m.repos_forked,
            "totalActivity": m.total_prs + m.total_issues + m.code_review_comments,
            "message": community_message(m),
        }
    else:
        title, message = year_summary(m)
        data = {
            "title": title,
            "message": message,
            "comparisons": _comparisons(m, averages),
        }

    return {
        "username": user.username,
        "step": slug,
        "label": dict(STEPS)[slug],
        "position": position,
        "totalSteps": len(STEPS),
        "previous": previous_step(slug),
        "next": next_step(slug),
        "data": data,
    }


def share_payload(user: GitHubUser, averages: AverageStats) -> Dict[str, Any]:
    title, message = year_summary(user.metrics)
    return {
        "username": user.username,
        "year": settings.retrospective_year,
        "title": title,
        "message": message,
        "comparisons": _comparisons(user.metrics, averages),
        "shareUrl": share_url(user.username),
    }
