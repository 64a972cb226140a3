"""HTTP transport with bounded retries on rate-limit and block responses.

``HttpClient`` performs a single GET on an aiohttp session and returns a fully
read ``HttpResponse``. ``RetryingTransport`` wraps any coroutine factory
producing such responses and retries HTTP 429/403 with capped exponential
backoff, honoring ``Retry-After`` when the server sends one.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field

import aiohttp
from multidict import CIMultiDict

from common.config.settings import Settings

from .exceptions import TransportError

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 403})


@dataclass(frozen=True)
class HttpResponse:
    """A completed HTTP response whose body has already been read."""

    status: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=CIMultiDict)
    url: str = ""

    @property
    def location(self) -> str | None:
        return self.headers.get("Location")

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400

    @property
    def retry_after(self) -> float | None:
        """Seconds requested by a ``Retry-After`` header, if parseable."""
        value = self.headers.get("Retry-After")
        if value is None:
            return None
        try:
            seconds = float(value.strip())
        except ValueError:
            logger.debug(f"Ignoring non-numeric Retry-After header: {value!r}")
            return None
        if not math.isfinite(seconds) or seconds < 0:
            logger.debug(f"Ignoring out-of-range Retry-After header: {value!r}")
            return None
        return seconds


class HttpClient:
    """Thin GET wrapper over an aiohttp session.

    Args:
        session: An aiohttp-style session whose ``get(...)`` returns an async
            context manager.
        timeout_seconds: Default total timeout per request.
    """

    def __init__(self, session: aiohttp.ClientSession, *, timeout_seconds: float = 30.0):
        self._session = session
        self._timeout = float(timeout_seconds)

    async def get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        allow_redirects: bool = True,
        timeout_seconds: float | None = None,
    ) -> HttpResponse:
        timeout = aiohttp.ClientTimeout(total=timeout_seconds or self._timeout)
        async with self._session.get(
            url, headers=headers, allow_redirects=allow_redirects, timeout=timeout
        ) as response:
            body = await response.read()
            return HttpResponse(
                status=response.status,
                body=body,
                headers=CIMultiDict(response.headers),
                url=str(response.url),
            )


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy.

    ``max_retries`` counts retries after the first attempt, so at most
    ``max_retries + 1`` requests are sent.
    """

    max_retries: int = 3
    initial_backoff: float = 1.0
    max_backoff: float = 32.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")  # noqa: TRY003
        if self.initial_backoff < 0 or self.max_backoff < 0:
            raise ValueError("backoff values must be >= 0")  # noqa: TRY003

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            initial_backoff=settings.initial_backoff_seconds,
            max_backoff=settings.max_backoff_seconds,
        )


class RetryingTransport:
    """Execute requests with retry on 429/403 and on timeouts."""

    def __init__(self, policy: RetryPolicy | None = None) -> None:
        self.policy = policy or RetryPolicy()

    async def execute(self, send: Callable[[], Awaitable[HttpResponse]]) -> HttpResponse:
        """Run ``send`` until it yields a non-retryable response or retries run out.

        Args:
            send: Zero-argument coroutine factory performing one request.

        Returns:
            The first non-retryable response, or the last 429/403 response once
            retries are exhausted. The caller decides what a 429 means.

        Raises:
            TransportError: On a non-timeout network error (immediately), or when
                every attempt timed out.
        """
        backoff = self.policy.initial_backoff
        attempt = 0

        while True:
            try:
                response = await send()
            except asyncio.TimeoutError as e:
                if attempt >= self.policy.max_retries:
                    raise TransportError(
                        f"request timed out after {attempt + 1} attempts"
                    ) from e
                logger.warning(
                    f"Request timed out (attempt {attempt + 1}/{self.policy.max_retries + 1}). "
                    f"Retrying in {backoff:.1f}s..."
                )
            except aiohttp.ClientError as e:
                raise TransportError(f"request failed: {e}") from e
            else:
                if response.status not in RETRYABLE_STATUSES:
                    return response

                if attempt >= self.policy.max_retries:
                    logger.error(
                        f"HTTP {response.status} for {response.url} after "
                        f"{self.policy.max_retries + 1} attempts. Giving up."
                    )
                    return response

                retry_after = response.retry_after
                if retry_after is not None:
                    backoff = retry_after
                logger.warning(
                    f"HTTP {response.status} for {response.url} "
                    f"(attempt {attempt + 1}/{self.policy.max_retries + 1}). "
                    f"Waiting {backoff:.1f}s..."
                )

            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.policy.max_backoff)
            attempt += 1
