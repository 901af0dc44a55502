"""
Unit tests for username resolution.

These tests verify that:
1. Usernames are trimmed, lowercased and validated
2. Fresh cached records are served without calling GitHub
3. Missing or stale records are refreshed and stored
4. Nonexistent users are distinguished from fetch failures
5. Stale records are served when a refresh or the store write fails
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from conftest import InMemoryUserStore
from retrospective.domain import (
    ApiError,
    AuthenticationError,
    EmptyInputError,
    ErrorKind,
    InvalidFormatError,
    NotFoundError,
    RateLimitError,
    UserNotFoundError,
)
from retrospective.lookup import LookupService, normalize_username
from retrospective.models import GitHubMetrics, GitHubUser


class TestNormalizeUsername:
    """Test input validation."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("octocat", "octocat"),
            ("  OctoCat  ", "octocat"),
            ("a", "a"),
            ("my-name-1", "my-name-1"),
            ("a" * 39, "a" * 39),
        ],
    )
    def test_valid_usernames(self, raw, expected):
        assert normalize_username(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_input(self, raw):
        with pytest.raises(EmptyInputError) as exc_info:
            normalize_username(raw)
        assert exc_info.value.kind == ErrorKind.EMPTY_INPUT

    @pytest.mark.parametrize(
        "raw",
        ["-octocat", "octocat-", "octo--cat", "octo_cat", "octo cat", "a" * 40, "octo.cat"],
    )
    def test_invalid_format(self, raw):
        with pytest.raises(InvalidFormatError):
            normalize_username(raw)


class TestResolveUserCache:
    """Test cache hits and refreshes."""

    @pytest.mark.asyncio
    async def test_fresh_cache_hit_skips_github(self, fresh_user, mock_github_client):
        service = LookupService(InMemoryUserStore(fresh_user), mock_github_client)

        user = await service.resolve_user("octocat")

        assert user is fresh_user
        mock_github_client.user_exists.assert_not_called()
        mock_github_client.fetch_metrics.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_record_is_fetched_and_stored(self, memory_store, mock_github_client, sample_metrics):
        service = LookupService(memory_store, mock_github_client)

        user = await service.resolve_user("OctoCat")

        assert user.username == "octocat"
        assert user.metrics == sample_metrics
        assert memory_store.upserts == ["octocat"]
        mock_github_client.user_exists.assert_awaited_once_with("octocat")
        mock_github_client.fetch_metrics.assert_awaited_once_with("octocat")

    @pytest.mark.asyncio
    async def test_stale_record_is_refreshed(self, stale_user, mock_github_client):
        store = InMemoryUserStore(stale_user)
        service = LookupService(store, mock_github_client)

        user = await service.resolve_user("octocat")

        assert user is not stale_user
        assert user.fetched_at > stale_user.fetched_at
        assert store.upserts == ["octocat"]

    @pytest.mark.asyncio
    async def test_incomplete_recent_record_is_refreshed(self, fresh_user, mock_github_client):
        incomplete = fresh_user.model_copy(update={"metrics": GitHubMetrics(total_commits=1)})
        store = InMemoryUserStore(incomplete)
        service = LookupService(store, mock_github_client)

        user = await service.resolve_user("octocat")

        assert user.metrics.contribution_calendar is not None
        assert store.upserts == ["octocat"]

    @pytest.mark.asyncio
    async def test_case_variants_resolve_to_same_record(self, memory_store, mock_github_client):
        service = LookupService(memory_store, mock_github_client)

        first = await service.resolve_user("OctoCat")
        second = await service.resolve_user("octocat")

        assert first == second
        assert await memory_store.count() == 1
        mock_github_client.fetch_metrics.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_input_never_touches_store(self, mock_github_client):
        service = LookupService(InMemoryUserStore(), mock_github_client)

        with pytest.raises(InvalidFormatError):
            await service.resolve_user("bad--name")
        mock_github_client.user_exists.assert_not_called()


class TestResolveUserFailures:
    """Test not-found handling and the stale fallback."""

    @pytest.mark.asyncio
    async def test_nonexistent_user(self, memory_store, mock_github_client):
        mock_github_client.user_exists.return_value = False
        service = LookupService(memory_store, mock_github_client)

        with pytest.raises(UserNotFoundError) as exc_info:
            await service.resolve_user("nobody-here")

        assert exc_info.value.kind == ErrorKind.USER_NOT_FOUND
        mock_github_client.fetch_metrics.assert_not_called()

    @pytest.mark.asyncio
    async def test_existence_check_transport_error_is_not_not_found(self, memory_store, mock_github_client):
        mock_github_client.user_exists.side_effect = ApiError("connection reset")
        service = LookupService(memory_store, mock_github_client)

        with pytest.raises(ApiError) as exc_info:
            await service.resolve_user("octocat")

        assert exc_info.value.kind == ErrorKind.FETCH_FAILED

    @pytest.mark.asyncio
    async def test_auth_error_serves_stale_record(self, stale_user, mock_github_client):
        mock_github_client.fetch_metrics.side_effect = AuthenticationError("Bad credentials")
        store = InMemoryUserStore(stale_user)
        service = LookupService(store, mock_github_client)

        user = await service.resolve_user("octocat")

        assert user is stale_user
        assert store.upserts == []

    @pytest.mark.asyncio
    async def test_rate_limit_on_existence_check_serves_stale_record(self, stale_user, mock_github_client):
        mock_github_client.user_exists.side_effect = RateLimitError("rate limited")
        service = LookupService(InMemoryUserStore(stale_user), mock_github_client)

        assert await service.resolve_user("octocat") is stale_user

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error, kind",
        [
            (AuthenticationError("Bad credentials"), ErrorKind.AUTH_FAILURE),
            (RateLimitError("rate limited"), ErrorKind.RATE_LIMITED),
            (ApiError("boom"), ErrorKind.FETCH_FAILED),
        ],
    )
    async def test_errors_without_cache_surface_typed(self, memory_store, mock_github_client, error, kind):
        mock_github_client.fetch_metrics.side_effect = error
        service = LookupService(memory_store, mock_github_client)

        with pytest.raises(ApiError) as exc_info:
            await service.resolve_user("octocat")

        assert exc_info.value.kind == kind
        assert await memory_store.count() == 0

    @pytest.mark.asyncio
    async def test_store_failure_serves_stale_record(self, stale_user, mock_github_client):
        store = InMemoryUserStore(stale_user)
        store.upsert = AsyncMock(side_effect=OSError("connection refused"))
        service = LookupService(store, mock_github_client)

        user = await service.resolve_user("octocat")

        assert user is stale_user
        store.upsert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_store_failure_without_cache_is_fetch_failure(self, memory_store, mock_github_client):
        memory_store.upsert = AsyncMock(side_effect=OSError("connection refused"))
        service = LookupService(memory_store, mock_github_client)

        with pytest.raises(ApiError) as exc_info:
            await service.resolve_user("octocat")

        assert exc_info.value.kind == ErrorKind.FETCH_FAILED
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_unexpected_errors_propagate(self, stale_user, mock_github_client):
        mock_github_client.fetch_metrics.side_effect = RuntimeError("bug")
        service = LookupService(InMemoryUserStore(stale_user), mock_github_client)

        with pytest.raises(RuntimeError):
            await service.resolve_user("octocat")


class TestGetUser:
    """Test the step-page variant."""

    @pytest.mark.asyncio
    async def test_failures_become_not_found(self, memory_store, mock_github_client):
        mock_github_client.user_exists.return_value = False
        service = LookupService(memory_store, mock_github_client)

        with pytest.raises(NotFoundError):
            await service.get_user("nobody-here")
        with pytest.raises(NotFoundError):
            await service.get_user("")

    @pytest.mark.asyncio
    async def test_returns_resolved_record(self, fresh_user, mock_github_client):
        service = LookupService(InMemoryUserStore(fresh_user), mock_github_client)
        assert await service.get_user("OCTOCAT") is fresh_user


class TestConcurrentRefresh:
    """Same-login lookups are not de-duplicated."""

    @pytest.mark.asyncio
    async def test_concurrent_stale_lookups_both_fetch(self, stale_user, mock_github_client, sample_metrics):
        async def slow_fetch(login):
            await asyncio.sleep(0.01)
            return sample_metrics

        mock_github_client.fetch_metrics.side_effect = slow_fetch
        store = InMemoryUserStore(stale_user)
        service = LookupService(store, mock_github_client)

        results = await asyncio.gather(
            service.resolve_user("octocat"), service.resolve_user("OctoCat")
        )

        assert mock_github_client.fetch_metrics.await_count == 2
        assert store.upserts == ["octocat", "octocat"]
        assert all(isinstance(user, GitHubUser) for user in results)
