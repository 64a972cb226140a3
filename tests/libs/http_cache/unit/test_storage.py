"""
Tests for the response cache backends.

Tests cover:
- File layout (<root>/<entity_type>/<id>.json)
- Read misses and best-effort writes
- Key validation
- Purging selected entity types
- Per-key locks: serialization and cleanup
"""

import asyncio
import logging

import pytest

from http_cache.exceptions import InvalidCacheKeyError
from http_cache.storage import FileResponseCache, InMemoryResponseCache


@pytest.fixture
def file_cache(tmp_path) -> FileResponseCache:
    return FileResponseCache(tmp_path / "trakt_data")


@pytest.fixture(params=["file", "memory"])
def any_cache(request, tmp_path):
    if request.param == "file":
        return FileResponseCache(tmp_path / "trakt_data")
    return InMemoryResponseCache()


class TestSharedSemantics:
    @pytest.mark.asyncio
    async def test_round_trip(self, any_cache):
        assert await any_cache.put("shows", 1, b'{"ids": {}}') is True

        assert await any_cache.get("shows", 1) == b'{"ids": {}}'

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, any_cache):
        assert await any_cache.get("shows", 404) is None

    @pytest.mark.asyncio
    async def test_int_and_str_ids_share_a_key(self, any_cache):
        await any_cache.put("movies", 10, b"x")

        assert await any_cache.get("movies", "10") == b"x"

    @pytest.mark.asyncio
    async def test_entity_types_are_separate(self, any_cache):
        await any_cache.put("shows", 1, b"show")
        await any_cache.put("seasons", 1, b"seasons")

        assert await any_cache.get("shows", 1) == b"show"
        assert await any_cache.get("seasons", 1) == b"seasons"

    @pytest.mark.asyncio
    async def test_overwrite(self, any_cache):
        await any_cache.put("shows", 1, b"old")
        await any_cache.put("shows", 1, b"new")

        assert await any_cache.get("shows", 1) == b"new"

    @pytest.mark.asyncio
    async def test_purge_selected_types(self, any_cache):
        await any_cache.put("shows", 1, b"s")
        await any_cache.put("movies", 2, b"m")
        await any_cache.put("letterboxd", 3, b"l")

        await any_cache.purge(["shows", "movies", "seasons"])

        assert await any_cache.get("shows", 1) is None
        assert await any_cache.get("movies", 2) is None
        assert await any_cache.get("letterboxd", 3) == b"l"

    @pytest.mark.parametrize(
        ("entity_type", "entity_id"),
        [("", 1), ("shows", ""), ("..", 1), ("shows", ".."), ("a/b", 1), ("shows", "1/2")],
    )
    @pytest.mark.asyncio
    async def test_rejects_unsafe_keys(self, any_cache, entity_type, entity_id):
        with pytest.raises(InvalidCacheKeyError):
            await any_cache.get(entity_type, entity_id)

    @pytest.mark.asyncio
    async def test_lock_serializes_same_key(self, any_cache):
        order = []

        async def worker(name):
            async with any_cache.lock("shows", 1):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_locks_are_keyed_per_entity(self, any_cache):
        async with any_cache.lock("shows", 1):
            async with any_cache.lock("shows", "2"):
                assert any_cache._locks.keys() == {("shows", "1"), ("shows", "2")}

    @pytest.mark.asyncio
    async def test_lock_is_dropped_after_last_holder(self, any_cache):
        async def worker():
            async with any_cache.lock("shows", 1):
                await asyncio.sleep(0)

        await asyncio.gather(worker(), worker(), worker())
        for entity_id in range(5):
            async with any_cache.lock("movies", entity_id):
                await any_cache.put("movies", entity_id, b"{}")

        assert any_cache._locks == {}
        assert any_cache._lock_users == {}

    @pytest.mark.asyncio
    async def test_lock_is_dropped_when_body_raises(self, any_cache):
        with pytest.raises(RuntimeError):
            async with any_cache.lock("shows", 1):
                raise RuntimeError("boom")

        assert any_cache._locks == {}


class TestFileResponseCache:
    def test_path_layout(self, file_cache, tmp_path):
        assert file_cache.path_for("seasons", 42) == tmp_path / "trakt_data" / "seasons" / "42.json"

    @pytest.mark.asyncio
    async def test_put_creates_directories(self, file_cache, tmp_path):
        await file_cache.put("letterboxd", 372058, b"{}")

        assert (tmp_path / "trakt_data" / "letterboxd" / "372058.json").read_bytes() == b"{}"

    @pytest.mark.asyncio
    async def test_purge_removes_directories(self, file_cache, tmp_path):
        await file_cache.put("shows", 1, b"{}")

        await file_cache.purge(["shows"])

        assert not (tmp_path / "trakt_data" / "shows").exists()

    @pytest.mark.asyncio
    async def test_purge_missing_directory_is_noop(self, file_cache):
        await file_cache.purge(["shows"])

    @pytest.mark.asyncio
    async def test_failed_write_returns_false(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        cache = FileResponseCache(blocker)

        with caplog.at_level(logging.WARNING):
            assert await cache.put("shows", 1, b"{}") is False

        assert "Cache write failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unreadable_entry_is_a_miss(self, file_cache):
        file_cache.path_for("shows", 1).mkdir(parents=True)

        assert await file_cache.get("shows", 1) is None

    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path):
        await FileResponseCache(tmp_path).put("letterboxd", 1, b"kept")

        assert await FileResponseCache(tmp_path).get("letterboxd", 1) == b"kept"
