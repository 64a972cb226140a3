"""JSON file persistence for inputs, outputs, ledgers and overrides.

The primary input is the only file whose failure aborts a batch. Optional
files degrade to empty lists with a warning, and writes are best effort: a
failed write is logged and the run continues.
"""

import json
import logging
import os
from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from common.models.mapping import NotFoundEntry

from .exceptions import InputFileError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _read_list(path: str, model: type[M]) -> list[M]:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    return TypeAdapter(list[model]).validate_python(data)


def load_input(path: str, model: type[M]) -> list[M]:
    """Load the primary input list.

    Raises:
        InputFileError: If the file is missing, unreadable or not a list of ``model``.
    """
    try:
        return _read_list(path, model)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise InputFileError(f"Failed to load input file {path}: {e}") from e


def load_optional(path: str, model: type[M]) -> list[M]:
    """Load an optional list file; missing or broken files yield an empty list."""
    if not os.path.exists(path):
        return []
    try:
        return _read_list(path, model)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Failed to load optional file {path}: {e}")
        return []


def save_json(path: str, data: Any) -> bool:
    """Write ``data`` as indented UTF-8 JSON. Returns False on failure."""
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.write("\n")
    except (OSError, TypeError, ValueError) as e:
        logger.warning(f"Failed to write {path}: {e}")
        return False
    return True


def save_records(path: str, records: Mapping[int, BaseModel]) -> bool:
    """Persist output records sorted by MAL ID ascending."""
    ordered = [records[mal_id].model_dump(mode="json") for mal_id in sorted(records)]
    return save_json(path, ordered)


def save_not_found(path: str, entries: Iterable[NotFoundEntry]) -> bool:
    """Persist the ledger, one entry per MAL ID, sorted by MAL ID."""
    unique: dict[int, NotFoundEntry] = {}
    for entry in entries:
        unique.setdefault(entry.mal_id, entry)
    return save_json(path, [unique[mal_id].model_dump(mode="json") for mal_id in sorted(unique)])
