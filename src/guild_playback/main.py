#!/usr/bin/env python3
"""Command-line entry point: configure logging, validate settings, run the bot."""

from __future__ import annotations

import argparse
import json
import logging
import logging.config
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from guild_playback.domain.shared.messages import LogTemplates
from guild_playback.utils.logging import ColoredFormatter

if TYPE_CHECKING:
    from guild_playback.config.settings import Settings

_LOGGING_CONFIG_PATH = Path(__file__).resolve().parents[2] / "logging_config.json"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

EXIT_OK = 0
EXIT_FAILURE = 1

logger = logging.getLogger(__name__)


def _read_logging_config(path: Path) -> dict[str, Any] | None:
    try:
        with open(path) as f:
            return json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return None


def setup_logging(log_level: str = "INFO") -> None:
    """Apply ``logging_config.json``, or a colored stdout handler when it is unusable.

    ``log_level`` always wins over the root level in the file.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    config = _read_logging_config(_LOGGING_CONFIG_PATH)

    applied = False
    if config is not None:
        try:
            logging.config.dictConfig(config)
            applied = True
        except ValueError:
            applied = False

    if not applied:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(ColoredFormatter(_LOG_FORMAT, _DATE_FORMAT, stream=sys.stdout))
        logging.basicConfig(level=level, handlers=[console], force=True)
        logger.warning("Could not load %s, falling back to basic config", _LOGGING_CONFIG_PATH)

    logging.getLogger().setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="guild-playback",
        description="Discord playback coordinator backed by Lavalink nodes.",
    )
    parser.add_argument(
        "--log-level",
        help="override LOG_LEVEL from the environment (DEBUG, INFO, WARNING, ...)",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="validate settings, list the configured nodes and exit without connecting",
    )
    return parser


def _report_nodes(settings: Settings) -> None:
    for node in settings.lavalink.nodes:
        logger.info(
            "Node %s at %s:%s (secure=%s)", node.identifier, node.host, node.port, node.secure
        )


def run(settings: Settings) -> int:
    """Build the container and bot, then block until the bot stops."""
    from guild_playback.config.container import create_container
    from guild_playback.infrastructure.discord.bot import create_bot

    bot = create_bot(create_container(settings), settings)
    try:
        logger.info(LogTemplates.BOT_STARTING_RUN)
        bot.run_with_graceful_shutdown(settings.discord.token.get_secret_value())
    except KeyboardInterrupt:
        logger.info(LogTemplates.BOT_KEYBOARD_INTERRUPT)
    except Exception as e:
        logger.exception(LogTemplates.BOT_FATAL_ERROR, e)
        return EXIT_FAILURE

    logger.info(LogTemplates.BOT_STOPPED)
    return EXIT_OK


def main(argv: Sequence[str] = ()) -> int:
    from guild_playback.config.settings import get_settings

    args = build_parser().parse_args(list(argv))
    settings = get_settings()
    setup_logging(args.log_level or settings.log_level)

    try:
        settings.require_runnable()
    except ValueError as e:
        logger.error("%s", e)
        return EXIT_FAILURE

    if args.check_config:
        _report_nodes(settings)
        return EXIT_OK

    logger.info(LogTemplates.BOT_STARTING.format(environment=settings.environment))
    return run(settings)


def cli() -> None:
    """Console script entry point (used by pyproject.toml [project.scripts])."""
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    cli()  # pragma: no cover
