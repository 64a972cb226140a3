"""Pydantic models for MAL → Trakt mapping files: input, output, overrides, ledger."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MediaType(str, Enum):
    """Trakt media type recorded on the canonical block."""

    SHOWS = "shows"
    MOVIES = "movies"


# =============================================================================
# INPUT
# =============================================================================


class InputEntry(BaseModel):
    """One row of the MAL-derived input list."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., description="MAL title")
    mal_id: int = Field(..., description="MyAnimeList ID (source primary key)")
    trakt_id: int = Field(..., description="Trakt ID to resolve")
    guessed_slug: str | None = Field(None, description="Slug guessed upstream")
    season: int | None = Field(
        None, description="Requested Trakt season number (shows only)"
    )
    type: str | None = Field(None, description="Source media type")


class NotFoundEntry(BaseModel):
    """Ledger entry for a MAL ID that Trakt reported as missing."""

    mal_id: int
    title: str


# =============================================================================
# CROSS-REFERENCE SETS
# =============================================================================


class ShowExternals(BaseModel):
    tvdb: int | None = None
    tmdb: int | None = None
    imdb: str | None = None
    tvrage: int | None = None


class SeasonExternals(BaseModel):
    tvdb: int | None = None
    tmdb: int | None = None
    tvrage: int | None = None


class LetterboxdIds(BaseModel):
    slug: str | None = None
    uid: int | None = None
    lid: str | None = None


class MovieExternals(BaseModel):
    tmdb: int | None = None
    imdb: str | None = None
    letterboxd: LetterboxdIds | None = None


# =============================================================================
# OUTPUT RECORDS
# =============================================================================


class MyAnimeListRef(BaseModel):
    title: str
    id: int


class TraktBlock(BaseModel):
    """Canonical block shared by show and movie records."""

    title: str | None = None
    id: int
    slug: str
    type: str


class TraktSeasonRef(BaseModel):
    id: int
    number: int
    externals: SeasonExternals | None = None


class TraktShowBlock(TraktBlock):
    season: TraktSeasonRef | None = Field(
        None, description="Resolved season, null for split-cour entries"
    )
    is_split_cour: bool = Field(
        default=False,
        description="True when the requested season does not exist on Trakt",
    )


class OutputShow(BaseModel):
    myanimelist: MyAnimeListRef
    trakt: TraktShowBlock
    release_year: int | None = None
    externals: ShowExternals | None = None

    @property
    def mal_id(self) -> int:
        return self.myanimelist.id


class OutputMovie(BaseModel):
    myanimelist: MyAnimeListRef
    trakt: TraktBlock
    release_year: int | None = None
    externals: MovieExternals | None = None

    @property
    def mal_id(self) -> int:
        return self.myanimelist.id


OutputRecord = OutputShow | OutputMovie


# =============================================================================
# OVERRIDES
# =============================================================================


class TraktPatch(BaseModel):
    """Field-level patch over the canonical block; null fields are left alone."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    id: int | None = None
    slug: str | None = None
    type: str | None = None


class Override(BaseModel):
    """Manual correction keyed by MAL ID.

    ``externals`` stays a raw mapping here and is validated against the record's
    own cross-reference model when applied, since shows and movies differ.
    """

    model_config = ConfigDict(extra="ignore")

    mal_id: int
    description: str = ""
    ignore: bool = False
    trakt: TraktPatch | None = None
    externals: dict[str, Any] | None = None
