"""
Type models for Trakt and Letterboxd API payloads.

These are permissive: payloads carry more fields than we use.
We model only the fields we read while allowing extra keys at runtime.
"""

from pydantic import BaseModel, ConfigDict


# =============================================================================
# Trakt
# =============================================================================


class TraktShowIds(BaseModel):
    model_config = ConfigDict(extra="allow")

    trakt: int
    slug: str
    tvdb: int | None = None
    imdb: str | None = None
    tmdb: int | None = None
    tvrage: int | None = None


class TraktShow(BaseModel):
    """`GET /shows/{id}` payload."""

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    year: int | None = None
    ids: TraktShowIds


class TraktMovieIds(BaseModel):
    model_config = ConfigDict(extra="allow")

    trakt: int
    slug: str
    imdb: str | None = None
    tmdb: int | None = None


class TraktMovie(BaseModel):
    """`GET /movies/{id}` payload."""

    model_config = ConfigDict(extra="allow")

    title: str | None = None
    year: int | None = None
    ids: TraktMovieIds


class TraktSeasonIds(BaseModel):
    model_config = ConfigDict(extra="allow")

    trakt: int
    tvdb: int | None = None
    tmdb: int | None = None
    tvrage: int | None = None


class TraktSeason(BaseModel):
    """One element of the `GET /shows/{id}/seasons` list."""

    model_config = ConfigDict(extra="allow")

    number: int
    ids: TraktSeasonIds


# =============================================================================
# Letterboxd
# =============================================================================


class LetterboxdFilm(BaseModel):
    """`GET /film/{slug}/json/` payload."""

    model_config = ConfigDict(extra="allow")

    id: int
    lid: str
    slug: str | None = None
