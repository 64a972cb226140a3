"""Manual override loading and application.

Overrides are keyed by MAL ID and patch the canonical Trakt block and the
cross-reference set of a freshly assembled record. Only non-null patch fields
are applied, so applying the same override twice yields the same record.
"""

import logging
from typing import TypeVar

from pydantic import ValidationError

from common.models.mapping import (
    MovieExternals,
    OutputMovie,
    OutputShow,
    Override,
    ShowExternals,
)

from .files import load_optional

logger = logging.getLogger(__name__)

R = TypeVar("R", OutputShow, OutputMovie)


def load_overrides(path: str) -> dict[int, Override]:
    """Load an override file into a MAL ID → Override map (missing file → empty)."""
    overrides = load_optional(path, Override)
    by_id: dict[int, Override] = {}
    for override in overrides:
        if override.mal_id in by_id:
            logger.warning(f"Duplicate override for MAL ID {override.mal_id}; last one wins")
        by_id[override.mal_id] = override
    if by_id:
        logger.info(f"Loaded {len(by_id)} overrides from {path}")
    return by_id


def _externals_model(record: OutputShow | OutputMovie) -> type[ShowExternals] | type[MovieExternals]:
    return ShowExternals if isinstance(record, OutputShow) else MovieExternals


def apply_override(record: R, override: Override) -> R:
    """Return a copy of ``record`` with the override's patches applied."""
    patched = record.model_copy(deep=True)

    if override.trakt is not None:
        for name, value in override.trakt.model_dump(exclude_none=True).items():
            setattr(patched.trakt, name, value)

    if override.externals:
        model = _externals_model(record)
        try:
            patch = model.model_validate(override.externals)
        except ValidationError as e:
            logger.warning(
                f"Ignoring invalid externals override for MAL ID {override.mal_id}: {e}"
            )
        else:
            if patched.externals is None:
                patched.externals = model()
            for name in patch.model_fields_set:
                value = getattr(patch, name)
                if value is not None:
                    setattr(patched.externals, name, value)

    return patched


def override_changed(before: OutputShow | OutputMovie, after: OutputShow | OutputMovie) -> bool:
    """True when an override moved the Trakt ID, slug, or cross-references."""
    return (
        before.trakt.id != after.trakt.id
        or before.trakt.slug != after.trakt.slug
        or before.externals != after.externals
    )
