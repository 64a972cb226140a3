"""
Run orchestration for the MAL → Trakt sync.

``SyncRunner`` owns every per-run resource (HTTP session, response cache,
limiters, transport, clients). Shows are processed before movies, and each batch
is persisted as soon as it finishes.
"""

import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from types import TracebackType

import aiohttp
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
)

from common.config.settings import Settings
from common.models.mapping import InputEntry, NotFoundEntry, OutputMovie, OutputShow
from http_cache.config import CacheConfig, get_cache_config
from http_cache.storage import FileResponseCache, InMemoryResponseCache, ResponseCache

from .exceptions import OutputConflictError
from .files import load_input, load_optional, save_not_found, save_records
from .letterboxd_client import LetterboxdClient
from .overrides import load_overrides
from .rate_limiter import letterboxd_limiter, trakt_limiter
from .reconciler import BaseReconciler, MovieReconciler, ShowReconciler
from .stats import ProcessingStats, report
from .trakt_client import TraktClient
from .transport import HttpClient, RetryingTransport, RetryPolicy

logger = logging.getLogger(__name__)


@contextmanager
def progress_bar(
    total: int, description: str, *, disabled: bool
) -> Iterator[Callable[[], None]]:
    """Yield a callback advancing a rich progress bar by one entry."""
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        disable=disabled,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=total)
        yield lambda: progress.advance(task)


class SyncRunner:
    """Async context manager running show and movie batches.

    Args:
        settings: Run settings.
        cache_config: Response cache settings.
        session: Optional pre-built aiohttp session (closed by the caller).
        cache: Optional cache override, e.g. an in-memory cache in tests.
    """

    def __init__(
        self,
        settings: Settings,
        cache_config: CacheConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        self.settings = settings
        self.cache_config = cache_config or get_cache_config()
        self._session = session
        self._owns_session = session is None
        self.cache = cache or self._build_cache()

        self.trakt: TraktClient | None = None
        self.letterboxd: LetterboxdClient | None = None
        self._outputs: dict[str, str] = {}

    def _build_cache(self) -> ResponseCache:
        if not self.cache_config.cache_enabled:
            logger.info("Response cache disabled; using an in-memory cache for this run")
            return InMemoryResponseCache()
        return FileResponseCache(self.cache_config.cache_dir)

    async def __aenter__(self) -> "SyncRunner":
        if self._session is None:
            self._session = aiohttp.ClientSession()

        http = HttpClient(
            self._session, timeout_seconds=self.settings.request_timeout_seconds
        )
        transport = RetryingTransport(RetryPolicy.from_settings(self.settings))
        self.trakt = TraktClient(
            http=http,
            cache=self.cache,
            limiter=trakt_limiter(self.settings),
            transport=transport,
            settings=self.settings,
        )
        self.letterboxd = LetterboxdClient(
            http=http,
            cache=self.cache,
            limiter=letterboxd_limiter(self.settings),
            transport=transport,
            settings=self.settings,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            await self.cache.purge(self.cache_config.volatile_entity_types)
        finally:
            if self._owns_session and self._session is not None:
                await self._session.close()
            self._session = None

    async def _run_batch(
        self,
        input_file: str,
        reconciler_factory: Callable[..., BaseReconciler],
        record_model: type[OutputShow] | type[OutputMovie],
        media: str,
        description: str,
    ) -> ProcessingStats:
        entries = load_input(input_file, InputEntry)

        output_file = self.settings.output_path_for(input_file)
        claimed_by = self._outputs.setdefault(os.path.abspath(output_file), media)
        if claimed_by != media:
            raise OutputConflictError(output_file, media, claimed_by)
        not_found_file = self.settings.not_found_path_for(output_file)

        ledger = load_optional(not_found_file, NotFoundEntry)
        reconciler = reconciler_factory(
            existing=load_optional(output_file, record_model),
            not_found=ledger,
            overrides=load_overrides(self.settings.overrides_path_for(media)),
            force=self.settings.force,
        )

        try:
            with progress_bar(
                len(entries), description, disabled=self.settings.no_progress
            ) as advance:
                await reconciler.reconcile(entries, on_progress=advance)
        finally:
            result = reconciler.result()
            save_records(output_file, result.records)
            if {e.mal_id for e in result.not_found} != {e.mal_id for e in ledger}:
                save_not_found(not_found_file, result.not_found)

        report(result.stats)
        logger.info(f"Processed {len(result.records)} {media} entries, saved to {output_file}")
        return result.stats

    async def sync_shows(self, input_file: str) -> ProcessingStats:
        """Process a TV input file.

        Raises:
            InputFileError: The input could not be read; nothing was processed.
            OutputConflictError: Another media type already wrote the same
                output file during this run.
        """
        return await self._run_batch(
            input_file,
            lambda **kwargs: ShowReconciler(trakt=self.trakt, **kwargs),
            OutputShow,
            "tv",
            "Processing shows",
        )

    async def sync_movies(self, input_file: str) -> ProcessingStats:
        """Process a movie input file; same contract as ``sync_shows``."""
        return await self._run_batch(
            input_file,
            lambda **kwargs: MovieReconciler(
                trakt=self.trakt, letterboxd=self.letterboxd, **kwargs
            ),
            OutputMovie,
            "movies",
            "Processing movies",
        )
