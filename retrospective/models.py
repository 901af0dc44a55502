"""
Data models for the GitHub retrospective application.

These Pydantic models define the shape of the per-user document stored in
the database and served to the presentation layer. Field aliases keep the
stored JSON in camelCase while Python code uses snake_case attributes.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime, timezone
from dateutil import parser as date_parser
from typing import List, Optional

# Bumped whenever the stored metrics layout changes; older rows are refreshed.
CURRENT_SCHEMA_VERSION = 2


def _parse_utc(v):
    """Parse GitHub timestamps into timezone-aware UTC datetimes."""
    if isinstance(v, str):
        v = date_parser.parse(v)
    if isinstance(v, datetime):
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)
    return v


class ContributionDay(BaseModel):
    """A single day of the contribution calendar."""
    date: date
    contribution_count: int = Field(..., alias="contributionCount", ge=0)

    class Config:
        populate_by_name = True


class Language(BaseModel):
    name: str
    percentage: float


class TopRepo(BaseModel):
    """
    A repository ranked by the user's commit contributions.

    additions/deletions are not provided by the contributions query and are
    always 0.
    """
    name: str
    owner: str
    commits: int
    additions: int = 0
    deletions: int = 0
    url: str


class CommitInfo(BaseModel):
    date: datetime
    repo: str                                  # "owner/name"
    message: str                               # First line of the commit message
    url: str

    @field_validator('date', mode='before')
    @classmethod
    def parse_datetime(cls, v):
        return _parse_utc(v)


class GitHubMetrics(BaseModel):
    """
    Year-in-review metrics for one GitHub user.

    Replaced as a whole on every refresh. contribution_calendar is None on
    records written before the calendar was stored.
    """
    total_commits: int = Field(0, alias="totalCommits", ge=0)
    longest_streak: int = Field(0, alias="longestStreak", ge=0)
    contribution_calendar: Optional[List[List[ContributionDay]]] = Field(
        None, alias="contributionCalendar"
    )
    repos_created: int = Field(0, alias="reposCreated", ge=0)
    repos_contributed: int = Field(0, alias="reposContributed", ge=0)
    repos_forked: int = Field(0, alias="reposForked", ge=0)
    languages: List[Language] = Field(default_factory=list)
    total_prs: int = Field(0, alias="totalPRs", ge=0)
    total_issues: int = Field(0, alias="totalIssues", ge=0)
    code_review_comments: int = Field(0, alias="codeReviewComments", ge=0)
    stars_received: int = Field(0, alias="starsReceived", ge=0)
    top_repos: List[TopRepo] = Field(default_factory=list, alias="topRepos")
    first_commit: Optional[CommitInfo] = Field(None, alias="firstCommit")
    last_commit: Optional[CommitInfo] = Field(None, alias="lastCommit")

    class Config:
        populate_by_name = True


class GitHubUser(BaseModel):
    """
    A stored retrospective, one per lowercase GitHub login.
    """
    username: str
    fetched_at: datetime = Field(..., alias="fetchedAt")
    schema_version: int = Field(CURRENT_SCHEMA_VERSION, alias="schemaVersion")
    metrics: GitHubMetrics

    @field_validator('fetched_at', mode='before')
    @classmethod
    def parse_datetime(cls, v):
        return _parse_utc(v)

    @field_validator('username')
    @classmethod
    def normalize_username(cls, v: str) -> str:
        return v.lower()

    class Config:
        populate_by_name = True

    def to_json_dict(self) -> dict:
        """Serialize with camelCase keys and ISO timestamps."""
        return self.model_dump(mode="json", by_alias=True)
