"""Trakt API fetchers for shows, movies and seasons.

Every fetch goes cache → limiter → pacing delay → retrying transport, and writes
the raw body back to the cache after a successful live request.
"""

import asyncio
import logging
from typing import TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from common.config.settings import Settings
from common.models.trakt_models import TraktMovie, TraktSeason, TraktShow
from http_cache.config import MOVIES, SEASONS, SHOWS
from http_cache.storage import ResponseCache

from .exceptions import (
    MalformedResponseError,
    NotFoundError,
    SeasonNotFoundError,
    UpstreamError,
)
from .rate_limiter import TokenBucketLimiter
from .transport import HttpClient, HttpResponse, RetryingTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SEASON_LIST = TypeAdapter(list[TraktSeason])


def _decode(adapter: TypeAdapter[T], payload: bytes) -> T:
    try:
        return adapter.validate_json(payload)
    except ValidationError as e:
        raise MalformedResponseError(str(e)) from e


class TraktClient:
    """Fetches canonical entities from the Trakt API.

    Args:
        http: HTTP client performing single requests.
        cache: Response cache shared with other fetchers for the run.
        limiter: Trakt token bucket.
        transport: Retrying transport.
        settings: Run settings (API key, base URL, pacing, force flag).
    """

    def __init__(
        self,
        *,
        http: HttpClient,
        cache: ResponseCache,
        limiter: TokenBucketLimiter,
        transport: RetryingTransport,
        settings: Settings,
    ) -> None:
        self._http = http
        self._cache = cache
        self._limiter = limiter
        self._transport = transport
        self._settings = settings
        self.base_url = settings.trakt_base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "trakt-api-version": self._settings.trakt_api_version,
            "trakt-api-key": self._settings.trakt_api_key or "",
        }

    async def _request(self, path: str) -> HttpResponse:
        await self._limiter.acquire()
        if self._settings.request_pacing_seconds > 0:
            await asyncio.sleep(self._settings.request_pacing_seconds)

        url = f"{self.base_url}{path}"
        headers = self._headers()
        return await self._transport.execute(
            lambda: self._http.get(
                url,
                headers=headers,
                timeout_seconds=self._settings.request_timeout_seconds,
            )
        )

    async def _fetch_raw(self, entity_type: str, entity_id: int, path: str) -> bytes:
        logger.debug(f"Fetching {entity_type} {entity_id} from Trakt API")
        response = await self._request(path)
        if response.status == 404:
            raise NotFoundError(entity_type, entity_id)
        if response.status != 200:
            raise UpstreamError(response.status, response.url or path)
        return response.body

    async def _read_cache(
        self, entity_type: str, entity_id: int, adapter: TypeAdapter[T]
    ) -> T | None:
        if self._settings.force:
            return None
        payload = await self._cache.get(entity_type, entity_id)
        if payload is None:
            return None
        try:
            value = adapter.validate_json(payload)
        except ValidationError:
            logger.debug(f"Ignoring unparsable cache entry {entity_type}/{entity_id}")
            return None
        logger.debug(f"Using cached Trakt {entity_type} data for {entity_id}")
        return value

    async def _fetch_entity(
        self, entity_type: str, entity_id: int, path: str, model: type[BaseModel]
    ):
        adapter = TypeAdapter(model)
        async with self._cache.lock(entity_type, entity_id):
            cached = await self._read_cache(entity_type, entity_id, adapter)
            if cached is not None:
                return cached

            body = await self._fetch_raw(entity_type, entity_id, path)
            entity = _decode(adapter, body)
            await self._cache.put(entity_type, entity_id, body)
            return entity

    async def fetch_show(self, show_id: int) -> TraktShow:
        """Fetch ``GET /shows/{id}``.

        Raises:
            NotFoundError: Trakt answered 404.
            UpstreamError: Any other non-200 status.
            MalformedResponseError: Body is not a show payload.
            TransportError: Network failure.
        """
        return await self._fetch_entity(SHOWS, show_id, f"/shows/{show_id}", TraktShow)

    async def fetch_movie(self, movie_id: int) -> TraktMovie:
        """Fetch ``GET /movies/{id}``; same error contract as ``fetch_show``."""
        return await self._fetch_entity(
            MOVIES, movie_id, f"/movies/{movie_id}", TraktMovie
        )

    async def fetch_seasons(self, show_id: int) -> list[TraktSeason]:
        """Fetch the full season list of a show (always live, then cached)."""
        body = await self._fetch_raw(SEASONS, show_id, f"/shows/{show_id}/seasons")
        seasons = _decode(_SEASON_LIST, body)
        await self._cache.put(SEASONS, show_id, body)
        return seasons

    async def fetch_season(self, show_id: int, season_number: int) -> TraktSeason:
        """Return one season of a show.

        The cache holds the whole season list under the show ID. A cached list
        lacking the requested number falls through to a live fetch.

        Raises:
            SeasonNotFoundError: The show has no season with that number.
            NotFoundError: Trakt answered 404 for the season list.
        """
        async with self._cache.lock(SEASONS, show_id):
            cached = await self._read_cache(SEASONS, show_id, _SEASON_LIST)
            if cached is not None:
                season = _find_season(cached, season_number)
                if season is not None:
                    return season

            seasons = await self.fetch_seasons(show_id)

        season = _find_season(seasons, season_number)
        if season is None:
            raise SeasonNotFoundError(show_id, season_number)
        return season


def _find_season(seasons: list[TraktSeason], number: int) -> TraktSeason | None:
    for season in seasons:
        if season.number == number:
            return season
    return None
