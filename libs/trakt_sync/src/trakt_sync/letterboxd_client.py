"""Letterboxd ID lookup by TMDB ID.

Two steps, each taking its own limiter token:

1. ``GET /tmdb/<tmdb_id>/`` without following redirects; the ``Location``
   header points at ``/film/<slug>/``.
2. ``GET /film/<slug>/json/`` returns the numeric ``id`` and the short ``lid``.

Results are cached under the ``letterboxd`` entity type, which survives runs.
"""

import asyncio
import logging
from urllib.parse import urlsplit

from pydantic import ValidationError

from common.config.settings import Settings
from common.models.mapping import LetterboxdIds
from common.models.trakt_models import LetterboxdFilm
from http_cache.config import LETTERBOXD
from http_cache.storage import ResponseCache

from .exceptions import MalformedResponseError, SlugParseError, UpstreamError
from .rate_limiter import TokenBucketLimiter
from .transport import HttpClient, HttpResponse, RetryingTransport

logger = logging.getLogger(__name__)


def parse_film_slug(location: str | None) -> str:
    """Extract ``<slug>`` from a ``/film/<slug>/`` redirect target.

    Raises:
        SlugParseError: If the location is missing or shaped differently.
    """
    if not location:
        raise SlugParseError(location)
    parts = urlsplit(location).path.strip("/").split("/")
    if len(parts) >= 2 and parts[0] == "film" and parts[1]:
        return parts[1]
    raise SlugParseError(location)


class LetterboxdClient:
    """Resolves Letterboxd identifiers for a movie."""

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
        self.base_url = settings.letterboxd_base_url.rstrip("/")

    async def _request(
        self, url: str, *, allow_redirects: bool, timeout_seconds: float
    ) -> HttpResponse:
        await self._limiter.acquire()
        if self._settings.request_pacing_seconds > 0:
            await asyncio.sleep(self._settings.request_pacing_seconds)

        headers = {"User-Agent": self._settings.user_agent}
        return await self._transport.execute(
            lambda: self._http.get(
                url,
                headers=headers,
                allow_redirects=allow_redirects,
                timeout_seconds=timeout_seconds,
            )
        )

    async def _read_cache(self, tmdb_id: int) -> LetterboxdIds | None:
        if self._settings.force:
            return None
        payload = await self._cache.get(LETTERBOXD, tmdb_id)
        if payload is None:
            return None
        try:
            ids = LetterboxdIds.model_validate_json(payload)
        except ValidationError:
            logger.debug(f"Ignoring unparsable Letterboxd cache entry for {tmdb_id}")
            return None
        logger.debug(f"Using cached Letterboxd data for TMDB {tmdb_id}")
        return ids

    async def resolve_slug(self, tmdb_id: int) -> str:
        """Step 1: follow nothing, read the film slug out of the redirect."""
        url = f"{self.base_url}/tmdb/{tmdb_id}/"
        response = await self._request(
            url,
            allow_redirects=False,
            timeout_seconds=self._settings.redirect_timeout_seconds,
        )
        if not response.is_redirect:
            raise UpstreamError(response.status, url)
        return parse_film_slug(response.location)

    async def fetch_film(self, slug: str) -> LetterboxdFilm:
        """Step 2: fetch the film JSON for a slug."""
        url = f"{self.base_url}/film/{slug}/json/"
        response = await self._request(
            url,
            allow_redirects=True,
            timeout_seconds=self._settings.request_timeout_seconds,
        )
        if response.status != 200:
            raise UpstreamError(response.status, url)
        try:
            return LetterboxdFilm.model_validate_json(response.body)
        except ValidationError as e:
            raise MalformedResponseError(str(e)) from e

    async def fetch_ids(self, tmdb_id: int) -> LetterboxdIds:
        """Resolve ``LetterboxdIds(slug, uid, lid)`` for a TMDB movie ID.

        Raises:
            SlugParseError: The redirect target is not a film page.
            UpstreamError: Unexpected status on either step.
            MalformedResponseError: The film JSON is not the expected shape.
            TransportError: Network failure.
        """
        async with self._cache.lock(LETTERBOXD, tmdb_id):
            cached = await self._read_cache(tmdb_id)
            if cached is not None:
                return cached

            slug = await self.resolve_slug(tmdb_id)
            film = await self.fetch_film(slug)
            ids = LetterboxdIds(slug=slug, uid=film.id, lid=film.lid)
            await self._cache.put(LETTERBOXD, tmdb_id, ids.model_dump_json().encode())
            return ids
