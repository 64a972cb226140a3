"""Shared fixtures for trakt_sync unit tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from common.config.settings import Settings
from http_cache.storage import InMemoryResponseCache
from trakt_fakes import FakeHttp, make_movie, make_season, make_show
from trakt_sync.letterboxd_client import LetterboxdClient
from trakt_sync.rate_limiter import TokenBucketLimiter
from trakt_sync.trakt_client import TraktClient
from trakt_sync.transport import RetryingTransport, RetryPolicy


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with no pacing delay or backoff, writing under ``tmp_path``."""
    return Settings(
        trakt_api_key="test-key",
        request_pacing_seconds=0,
        initial_backoff_seconds=0,
        max_backoff_seconds=0,
        max_retries=2,
        output_dir=str(tmp_path / "output"),
        not_found_dir=str(tmp_path / "not_found"),
        overrides_dir=str(tmp_path / "overrides"),
        no_progress=True,
    )


@pytest.fixture
def cache() -> InMemoryResponseCache:
    return InMemoryResponseCache()


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def limiter() -> MagicMock:
    """Limiter double that never blocks but counts acquisitions."""
    mock = MagicMock(spec=TokenBucketLimiter)
    mock.acquire = AsyncMock(return_value=0.0)
    return mock


@pytest.fixture
def transport() -> RetryingTransport:
    return RetryingTransport(RetryPolicy(max_retries=2, initial_backoff=0, max_backoff=0))


@pytest.fixture
def trakt_client(http, cache, limiter, transport, settings) -> TraktClient:
    return TraktClient(
        http=http, cache=cache, limiter=limiter, transport=transport, settings=settings
    )


@pytest.fixture
def letterboxd_client(http, cache, limiter, transport, settings) -> LetterboxdClient:
    return LetterboxdClient(
        http=http, cache=cache, limiter=limiter, transport=transport, settings=settings
    )


@pytest.fixture
def mock_trakt() -> MagicMock:
    """TraktClient double for reconciler and pipeline tests."""
    mock = MagicMock(spec=TraktClient)
    mock.fetch_show = AsyncMock(return_value=make_show())
    mock.fetch_movie = AsyncMock(return_value=make_movie())
    mock.fetch_season = AsyncMock(side_effect=lambda _show_id, number: make_season(number))
    return mock
