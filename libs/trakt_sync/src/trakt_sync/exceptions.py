"""Exceptions for the Trakt sync pipeline."""


class TraktSyncError(Exception):
    """Base exception for per-record sync failures."""


class NotFoundError(TraktSyncError):
    """Raised when Trakt answers 404 for a show or movie."""

    def __init__(self, entity_type: str, entity_id: int):
        super().__init__(f"{entity_type} {entity_id} not found on Trakt (404)")
        self.entity_type = entity_type
        self.entity_id = entity_id


class SeasonNotFoundError(TraktSyncError):
    """Raised when a show exists but lacks the requested season number.

    Not a pipeline failure: the reconciler marks the show as split-cour.
    """

    def __init__(self, show_id: int, season_number: int):
        super().__init__(f"season {season_number} not found for show {show_id}")
        self.show_id = show_id
        self.season_number = season_number


class UpstreamError(TraktSyncError):
    """Raised on a non-200 upstream status (including exhausted 429/403)."""

    def __init__(self, status: int, url: str):
        super().__init__(f"upstream error {status} for {url}")
        self.status = status
        self.url = url


class TransportError(TraktSyncError):
    """Raised when a request fails at the network level (DNS, connect, timeout)."""


class MalformedResponseError(TraktSyncError):
    """Raised when an upstream payload cannot be decoded into the expected shape."""


class SlugParseError(TraktSyncError):
    """Raised when a Letterboxd redirect does not point at ``/film/<slug>/``."""

    def __init__(self, location: str | None):
        super().__init__(f"could not parse slug from redirect location: {location!r}")
        self.location = location


class InputFileError(Exception):
    """Raised when the primary input file is missing or unparsable."""


class OutputConflictError(Exception):
    """Raised when a batch would overwrite the output of another media type."""

    def __init__(self, path: str, media: str, other: str):
        super().__init__(f"{path} already holds {other} records, refusing to write {media}")
        self.path = path
        self.media = media
        self.other = other
