"""
Tests for SyncRunner batch orchestration.

The runner is entered with a mock aiohttp session and an in-memory cache; the
Trakt fetcher is swapped for a double after entry.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from http_cache.config import CacheConfig, get_cache_config
from http_cache.storage import FileResponseCache, InMemoryResponseCache
from trakt_sync.exceptions import InputFileError, NotFoundError, OutputConflictError
from trakt_sync.pipeline import SyncRunner, progress_bar
from trakt_sync.trakt_client import TraktClient


def write_json(path, data) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def read_json(path: str):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@pytest.fixture(autouse=True)
def step_summary(tmp_path, monkeypatch):
    """Route reports to a summary file instead of the console."""
    summary = tmp_path / "summary.md"
    monkeypatch.setenv("GITHUB_STEP_SUMMARY", str(summary))
    return summary


@pytest.fixture
def tv_input(tmp_path) -> str:
    return write_json(
        tmp_path / "input" / "tv.json",
        [
            {"title": "Later", "mal_id": 30, "trakt_id": 1, "season": 1},
            {"title": "Earlier", "mal_id": 4, "trakt_id": 1, "season": 2},
        ],
    )


@pytest.fixture
def runner_factory(settings):
    def build(**overrides):
        runner = SyncRunner(
            settings.model_copy(update=overrides),
            CacheConfig(cache_enabled=False),
            session=MagicMock(),
            cache=InMemoryResponseCache(),
        )
        return runner

    return build


async def sync_shows(runner, mock_trakt, input_file):
    async with runner:
        runner.trakt = mock_trakt
        return await runner.sync_shows(input_file)


class TestSyncShows:
    @pytest.mark.asyncio
    async def test_writes_sorted_output(self, runner_factory, mock_trakt, tv_input, settings):
        stats = await sync_shows(runner_factory(), mock_trakt, tv_input)

        output = read_json(f"{settings.output_dir}/tv_ex.json")
        assert [r["myanimelist"]["id"] for r in output] == [4, 30]
        assert output[0]["trakt"]["season"]["number"] == 2
        assert stats.created == 2
        assert stats.total_after == 2

    @pytest.mark.asyncio
    async def test_writes_not_found_ledger(self, runner_factory, mock_trakt, tv_input, settings):
        mock_trakt.fetch_show.side_effect = NotFoundError("shows", 1)

        await sync_shows(runner_factory(), mock_trakt, tv_input)

        ledger = read_json(f"{settings.not_found_dir}/not_exist_tv_ex.json")
        assert ledger == [{"mal_id": 4, "title": "Earlier"}, {"mal_id": 30, "title": "Later"}]
        output = read_json(f"{settings.output_dir}/tv_ex.json")
        assert output == []

    @pytest.mark.asyncio
    async def test_unchanged_ledger_is_not_rewritten(
        self, runner_factory, mock_trakt, tv_input, settings, tmp_path
    ):
        ledger_text = '[{"mal_id": 30, "title": "Later"}]'
        ledger_path = tmp_path / "not_found" / "not_exist_tv_ex.json"
        ledger_path.parent.mkdir(parents=True)
        ledger_path.write_text(ledger_text)

        await sync_shows(runner_factory(), mock_trakt, tv_input)

        assert ledger_path.read_text() == ledger_text

    @pytest.mark.asyncio
    async def test_second_run_skips_everything(self, runner_factory, mock_trakt, tv_input):
        await sync_shows(runner_factory(), mock_trakt, tv_input)
        mock_trakt.fetch_show.reset_mock()

        stats = await sync_shows(runner_factory(), mock_trakt, tv_input)

        mock_trakt.fetch_show.assert_not_awaited()
        assert stats.created == 0
        assert stats.total_before == stats.total_after == 2

    @pytest.mark.asyncio
    async def test_explicit_output_file(self, runner_factory, mock_trakt, tv_input, tmp_path):
        target = tmp_path / "custom" / "shows.json"

        await sync_shows(runner_factory(output_file=str(target)), mock_trakt, tv_input)

        assert len(json.loads(target.read_text())) == 2
        assert not (tmp_path / "not_found" / "not_exist_shows.json").exists()

    @pytest.mark.asyncio
    async def test_applies_overrides_file(self, runner_factory, mock_trakt, tv_input, settings, tmp_path):
        write_json(
            tmp_path / "overrides" / "tv_overrides.json",
            [{"mal_id": 30, "ignore": True}, {"mal_id": 4, "trakt": {"slug": "fixed"}}],
        )

        stats = await sync_shows(runner_factory(), mock_trakt, tv_input)

        output = read_json(f"{settings.output_dir}/tv_ex.json")
        assert [(r["myanimelist"]["id"], r["trakt"]["slug"]) for r in output] == [(4, "fixed")]
        assert stats.modified == 1

    @pytest.mark.asyncio
    async def test_missing_input_raises(self, runner_factory, mock_trakt, tmp_path):
        with pytest.raises(InputFileError):
            await sync_shows(runner_factory(), mock_trakt, str(tmp_path / "missing.json"))

        mock_trakt.fetch_show.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reports_to_step_summary(self, runner_factory, mock_trakt, tv_input, step_summary):
        await sync_shows(runner_factory(), mock_trakt, tv_input)

        assert "## Tv - Summary" in step_summary.read_text(encoding="utf-8")


class TestSyncMovies:
    @pytest.mark.asyncio
    async def test_movies_use_letterboxd(self, runner_factory, mock_trakt, settings, tmp_path):
        movie_input = write_json(
            tmp_path / "input" / "movies.json",
            [{"title": "Kimi no Na wa.", "mal_id": 32281, "trakt_id": 10}],
        )
        runner = runner_factory()
        letterboxd = MagicMock()
        letterboxd.fetch_ids = AsyncMock(return_value=None)

        async with runner:
            runner.trakt = mock_trakt
            runner.letterboxd = letterboxd
            stats = await runner.sync_movies(movie_input)

        letterboxd.fetch_ids.assert_awaited_once_with(372058)
        output = read_json(f"{settings.output_dir}/movies_ex.json")
        assert output[0]["trakt"]["type"] == "movies"
        assert stats.media_type == "movies"


class TestSharedOutput:
    @pytest.mark.asyncio
    async def test_movies_cannot_overwrite_show_output(self, runner_factory, mock_trakt, tv_input, tmp_path):
        target = tmp_path / "shared.json"
        movie_input = write_json(
            tmp_path / "input" / "movies.json",
            [{"title": "Kimi no Na wa.", "mal_id": 32281, "trakt_id": 10}],
        )
        runner = runner_factory(output_file=str(target))

        async with runner:
            runner.trakt = mock_trakt
            await runner.sync_shows(tv_input)
            with pytest.raises(OutputConflictError):
                await runner.sync_movies(movie_input)

        output = read_json(str(target))
        assert [r["myanimelist"]["id"] for r in output] == [4, 30]
        assert all(r["trakt"]["season"]["number"] in (1, 2) for r in output)
        assert all(r["trakt"]["is_split_cour"] is False for r in output)
        mock_trakt.fetch_movie.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_same_media_may_rerun_into_one_file(self, runner_factory, mock_trakt, tv_input, tmp_path):
        runner = runner_factory(output_file=str(tmp_path / "shared.json"))

        async with runner:
            runner.trakt = mock_trakt
            await runner.sync_shows(tv_input)
            stats = await runner.sync_shows(tv_input)

        assert stats.total_before == stats.total_after == 2


class TestRunnerLifecycle:
    @pytest.mark.asyncio
    async def test_enter_builds_clients(self, settings):
        async with SyncRunner(settings, session=MagicMock(), cache=InMemoryResponseCache()) as runner:
            assert isinstance(runner.trakt, TraktClient)
            assert runner.letterboxd is not None

    @pytest.mark.asyncio
    async def test_exit_purges_volatile_entries_only(self, settings):
        cache = InMemoryResponseCache()
        await cache.put("shows", 1, b"{}")
        await cache.put("seasons", 1, b"[]")
        await cache.put("letterboxd", 372058, b"{}")

        async with SyncRunner(settings, CacheConfig(), session=MagicMock(), cache=cache):
            pass

        assert await cache.get("shows", 1) is None
        assert await cache.get("seasons", 1) is None
        assert await cache.get("letterboxd", 372058) == b"{}"

    @pytest.mark.asyncio
    async def test_borrowed_session_is_not_closed(self, settings):
        session = MagicMock()
        session.close = AsyncMock()

        async with SyncRunner(settings, session=session, cache=InMemoryResponseCache()):
            pass

        session.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owned_session_is_closed(self, settings, tmp_path, monkeypatch):
        session = MagicMock()
        session.close = AsyncMock()
        monkeypatch.setattr("trakt_sync.pipeline.aiohttp.ClientSession", lambda: session)

        async with SyncRunner(settings, CacheConfig(cache_dir=str(tmp_path / "cache"))):
            pass

        session.close.assert_awaited_once()

    def test_default_cache_config_comes_from_environment(self, settings, tmp_path, monkeypatch):
        monkeypatch.setenv("CACHE_CACHE_DIR", str(tmp_path / "env-cache"))
        get_cache_config.cache_clear()
        try:
            runner = SyncRunner(settings)
        finally:
            get_cache_config.cache_clear()

        assert runner.cache_config.cache_dir == str(tmp_path / "env-cache")
        assert isinstance(runner.cache, FileResponseCache)

    def test_cache_selection(self, settings, tmp_path):
        enabled = SyncRunner(settings, CacheConfig(cache_dir=str(tmp_path)))
        disabled = SyncRunner(settings, CacheConfig(cache_enabled=False))

        assert isinstance(enabled.cache, FileResponseCache)
        assert isinstance(disabled.cache, InMemoryResponseCache)


def test_progress_bar_advances():
    with progress_bar(3, "Processing shows", disabled=True) as advance:
        for _ in range(3):
            advance()
