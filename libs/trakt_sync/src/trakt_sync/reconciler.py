"""
Reconciliation of freshly fetched Trakt data with previously saved output.

A reconciler is built per media batch from the existing output, the not-found
ledger and the override map. ``reconcile`` walks the input entries once:

1. skip entries already resolved, already ledgered, or ignored by an override;
2. fetch the canonical entity (404 → ledger, other failures → logged, skipped);
3. assemble the output record (shows also resolve their requested season);
4. classify against the prior record (Created / Updated);
5. augment (movies: Letterboxd IDs);
6. apply the override, which reclassifies as Modified when it changes anything;
7. commit the record, keyed by MAL ID.

Output records and ledger entries are kept mutually exclusive per MAL ID.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Generic, TypeVar

from common.models.mapping import (
    InputEntry,
    MediaType,
    MovieExternals,
    MyAnimeListRef,
    NotFoundEntry,
    OutputMovie,
    OutputShow,
    Override,
    SeasonExternals,
    ShowExternals,
    TraktBlock,
    TraktSeasonRef,
    TraktShowBlock,
)

from .exceptions import NotFoundError, SeasonNotFoundError, TraktSyncError
from .letterboxd_client import LetterboxdClient
from .overrides import apply_override, override_changed
from .stats import ChangeKind, ProcessingStats
from .trakt_client import TraktClient

logger = logging.getLogger(__name__)

R = TypeVar("R", OutputShow, OutputMovie)

# Trakt numbers specials as season 0
DEFAULT_SEASON = 0


@dataclass
class ReconcileResult(Generic[R]):
    """Snapshot of a batch: records to persist, the updated ledger, and stats."""

    records: dict[int, R]
    not_found: list[NotFoundEntry]
    new_not_found: list[NotFoundEntry]
    stats: ProcessingStats


def classify(prior: R | None, draft: R) -> tuple[ChangeKind, str] | None:
    """Compare a fresh draft with the previously saved record for the same MAL ID."""
    if prior is None:
        return ChangeKind.CREATED, "New entry added"
    if prior.trakt.id != draft.trakt.id or prior.trakt.slug != draft.trakt.slug:
        return ChangeKind.UPDATED, "Trakt metadata updated"
    return None


class BaseReconciler(ABC, Generic[R]):
    """Shared per-entry state machine for shows and movies.

    Args:
        trakt: Trakt fetcher.
        existing: Records from the previous output file.
        not_found: Entries from the previous not-found ledger.
        overrides: Override map keyed by MAL ID.
        force: Re-fetch every entry, ignoring existing output and the ledger.
    """

    media_type: str
    label: str

    def __init__(
        self,
        *,
        trakt: TraktClient,
        existing: Iterable[R] = (),
        not_found: Iterable[NotFoundEntry] = (),
        overrides: Mapping[int, Override] | None = None,
        force: bool = False,
    ) -> None:
        self._trakt = trakt
        self._force = force
        self._overrides = dict(overrides or {})

        self._existing: dict[int, R] = {}
        for record in existing:
            if record.mal_id in self._existing:
                logger.warning(f"Duplicate MAL ID {record.mal_id} in existing output")
            self._existing[record.mal_id] = record

        self.records: dict[int, R] = dict(self._existing)
        self.ledger: dict[int, NotFoundEntry] = {e.mal_id: e for e in not_found}
        for mal_id in sorted(self.ledger.keys() & self.records.keys()):
            logger.warning(f"MAL ID {mal_id} is both saved and ledgered, keeping the record")
            del self.ledger[mal_id]
        self.new_not_found: list[NotFoundEntry] = []
        self.stats = ProcessingStats(
            media_type=self.media_type, total_before=len(self._existing)
        )

        for mal_id, override in self._overrides.items():
            if override.ignore:
                self.records.pop(mal_id, None)
                self.ledger.pop(mal_id, None)

    async def reconcile(
        self,
        entries: Iterable[InputEntry],
        on_progress: Callable[[], None] | None = None,
    ) -> ReconcileResult[R]:
        """Process every input entry once and return the batch result."""
        seen: set[int] = set()
        for entry in entries:
            try:
                if entry.mal_id in seen:
                    logger.warning(
                        f"Duplicate MAL ID {entry.mal_id} in input, keeping first occurrence"
                    )
                    continue
                seen.add(entry.mal_id)
                await self.process_entry(entry)
            except Exception:
                logger.exception(f"Unexpected error processing {self.label} {entry.mal_id}")
            finally:
                if on_progress:
                    on_progress()
        return self.result()

    def result(self) -> ReconcileResult[R]:
        """Snapshot current state; safe to call after a partial run."""
        self.stats.total_after = len(self.records)
        return ReconcileResult(
            records=dict(self.records),
            not_found=[self.ledger[mal_id] for mal_id in sorted(self.ledger)],
            new_not_found=list(self.new_not_found),
            stats=self.stats,
        )

    def should_skip(self, entry: InputEntry) -> bool:
        override = self._overrides.get(entry.mal_id)
        if override and override.ignore:
            logger.debug(
                f"Skipping ignored {self.label}: {entry.title} "
                f"(MAL ID: {entry.mal_id}) - {override.description}"
            )
            return True
        if self._force:
            return False
        if entry.mal_id in self.records:
            logger.debug(
                f"Skipping already processed {self.label}: {entry.title} (MAL ID: {entry.mal_id})"
            )
            return True
        if entry.mal_id in self.ledger:
            logger.debug(
                f"Skipping non-existent {self.label}: {entry.title} (MAL ID: {entry.mal_id})"
            )
            return True
        return False

    async def process_entry(self, entry: InputEntry) -> ChangeKind | None:
        """Run the state machine for one entry and return its reporting bucket."""
        if self.should_skip(entry):
            return None

        logger.debug(
            f"Processing {self.label}: {entry.title} "
            f"(MAL ID: {entry.mal_id}, Trakt ID: {entry.trakt_id})"
        )
        try:
            draft = await self.build_record(entry)
        except NotFoundError:
            return self._mark_not_found(entry)
        except TraktSyncError as e:
            logger.error(f"Error processing {self.label} {entry.mal_id}: {e}")
            return None

        change = classify(self._existing.get(entry.mal_id), draft)

        await self.augment(draft)

        override = self._overrides.get(entry.mal_id)
        if override is not None:
            patched = apply_override(draft, override)
            if override_changed(draft, patched):
                change = (ChangeKind.MODIFIED, override.description or "Manual override")
            draft = patched

        self.records[entry.mal_id] = draft
        self.ledger.pop(entry.mal_id, None)

        if change is None:
            return None
        kind, reason = change
        self.stats.record(kind, entry.mal_id, entry.title, reason)
        return kind

    def _mark_not_found(self, entry: InputEntry) -> ChangeKind | None:
        if entry.mal_id in self.records:
            logger.warning(
                f"Trakt returned 404 for {self.label} {entry.mal_id} "
                "but it has a saved record; keeping the saved record"
            )
            return None
        if entry.mal_id in self.ledger:
            return None

        logger.info(f"{self.label.capitalize()} not found on Trakt: {entry.title} ({entry.mal_id})")
        ledger_entry = NotFoundEntry(mal_id=entry.mal_id, title=entry.title)
        self.ledger[entry.mal_id] = ledger_entry
        self.new_not_found.append(ledger_entry)
        self.stats.record(
            ChangeKind.NOT_FOUND, entry.mal_id, entry.title, "Not found on Trakt.tv"
        )
        return ChangeKind.NOT_FOUND

    @abstractmethod
    async def build_record(self, entry: InputEntry) -> R:
        """Fetch and assemble the draft output record for an entry."""

    async def augment(self, record: R) -> None:
        """Hook for post-classification enrichment."""


class ShowReconciler(BaseReconciler[OutputShow]):
    media_type = "tv"
    label = "show"

    async def build_record(self, entry: InputEntry) -> OutputShow:
        show = await self._trakt.fetch_show(entry.trakt_id)
        record = OutputShow(
            myanimelist=MyAnimeListRef(title=entry.title, id=entry.mal_id),
            trakt=TraktShowBlock(
                title=show.title,
                id=show.ids.trakt,
                slug=show.ids.slug,
                type=MediaType.SHOWS.value,
            ),
            release_year=show.year,
            externals=ShowExternals(
                tvdb=show.ids.tvdb,
                tmdb=show.ids.tmdb,
                imdb=show.ids.imdb,
                tvrage=show.ids.tvrage,
            ),
        )
        season_number = entry.season if entry.season is not None else DEFAULT_SEASON
        await self.resolve_season(record, entry.trakt_id, season_number)
        return record

    async def resolve_season(
        self, record: OutputShow, trakt_id: int, season_number: int
    ) -> None:
        """Attach the requested season, or flag the show as split-cour."""
        try:
            season = await self._trakt.fetch_season(trakt_id, season_number)
        except (SeasonNotFoundError, NotFoundError):
            logger.debug(f"Season {season_number} not found, marking as split cour")
            record.trakt.is_split_cour = True
            record.trakt.season = None
            return

        record.trakt.is_split_cour = False
        record.trakt.season = TraktSeasonRef(
            id=season.ids.trakt,
            number=season.number,
            externals=SeasonExternals(
                tvdb=season.ids.tvdb,
                tmdb=season.ids.tmdb,
                tvrage=season.ids.tvrage,
            ),
        )


class MovieReconciler(BaseReconciler[OutputMovie]):
    media_type = "movies"
    label = "movie"

    def __init__(self, *, letterboxd: LetterboxdClient | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._letterboxd = letterboxd

    async def build_record(self, entry: InputEntry) -> OutputMovie:
        movie = await self._trakt.fetch_movie(entry.trakt_id)
        return OutputMovie(
            myanimelist=MyAnimeListRef(title=entry.title, id=entry.mal_id),
            trakt=TraktBlock(
                title=movie.title,
                id=movie.ids.trakt,
                slug=movie.ids.slug,
                type=MediaType.MOVIES.value,
            ),
            release_year=movie.year,
            externals=MovieExternals(tmdb=movie.ids.tmdb, imdb=movie.ids.imdb),
        )

    async def augment(self, record: OutputMovie) -> None:
        """Fill in Letterboxd IDs from the TMDB ID; failures leave the field empty."""
        if self._letterboxd is None or record.externals is None:
            return
        letterboxd = record.externals.letterboxd
        if letterboxd is not None and letterboxd.slug is not None:
            logger.debug("Letterboxd info already present")
            return

        tmdb_id = record.externals.tmdb
        if tmdb_id is None:
            logger.debug(f"No TMDB ID available for MAL ID {record.mal_id}")
            return

        try:
            record.externals.letterboxd = await self._letterboxd.fetch_ids(tmdb_id)
        except TraktSyncError as e:
            logger.warning(f"Could not fetch Letterboxd info for TMDB ID {tmdb_id}: {e}")
