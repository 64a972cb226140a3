#!/usr/bin/env python3
"""
Command-line entrypoint for the MAL → Trakt sync.

CLI:
  trakt-sync --tv json/input/tv.json --movies json/input/movies.json
  trakt-sync --tv json/input/tv.json --force --verbose
  python -m trakt_sync --movies json/input/movies.json --no-progress

The API key is taken from --api-key, then TRAKT_API_KEY (environment or .env),
then an interactive prompt.
"""

import argparse
import asyncio
import getpass
import logging
import sys
from typing import Any

from pydantic import ValidationError

from common.config.settings import Settings, get_settings
from http_cache.config import CacheConfig

from .exceptions import InputFileError, OutputConflictError
from .pipeline import SyncRunner

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Map MyAnimeList entries to Trakt shows and movies",
    )
    parser.add_argument("--api-key", help="Trakt API key")
    parser.add_argument("--tv", dest="tv_file", help="Path to TV shows JSON file")
    parser.add_argument("--movies", dest="movie_file", help="Path to movies JSON file")
    parser.add_argument("--output", dest="output_file", help="Output file path")
    parser.add_argument("--verbose", action="store_true", help="Verbose output")
    parser.add_argument(
        "--no-progress", action="store_true", help="Disable progress bar"
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Force update all entries, ignoring cache",
    )
    return parser


def prompt_for_api_key() -> str:
    return getpass.getpass("Enter Trakt API key: ").strip()


def load_settings(args: argparse.Namespace) -> Settings:
    """Merge CLI flags over environment-derived settings."""
    values: dict[str, Any] = {
        name: value
        for name, value in (
            ("tv_file", args.tv_file),
            ("movie_file", args.movie_file),
            ("output_file", args.output_file),
            ("trakt_api_key", args.api_key),
        )
        if value
    }
    for flag in ("verbose", "no_progress", "force"):
        if getattr(args, flag):
            values[flag] = True

    settings = Settings.model_validate({**get_settings().model_dump(), **values})
    if not settings.trakt_api_key:
        settings = settings.model_copy(update={"trakt_api_key": prompt_for_api_key()})
    return settings


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def run(settings: Settings, cache_config: CacheConfig | None = None) -> int:
    """Run the configured batches.

    Returns:
        Process exit code: 0 on success, 1 when a batch aborted on its input
        or output paths.
    """
    if not settings.tv_file and not settings.movie_file:
        logger.error("Nothing to do: pass --tv and/or --movies")
        return 1

    exit_code = 0
    async with SyncRunner(settings, cache_config) as runner:
        if settings.tv_file:
            try:
                await runner.sync_shows(settings.tv_file)
            except (InputFileError, OutputConflictError) as e:
                logger.error(str(e))
                exit_code = 1
        if settings.movie_file:
            try:
                await runner.sync_movies(settings.movie_file)
            except (InputFileError, OutputConflictError) as e:
                logger.error(str(e))
                exit_code = 1
    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging(settings)
    if settings.verbose:
        settings.log_configuration()
    if not settings.trakt_api_key:
        logger.error("A Trakt API key is required")
        return 1

    return asyncio.run(run(settings))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
