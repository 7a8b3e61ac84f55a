"""Loguru sink setup for turnstile processes.

Every record carries ``extra["conversation"]``, the id of the conversation
whose turn emitted it (``-`` outside a turn).
"""

from __future__ import annotations

import os
import sys
from logging import Handler
from typing import Literal

import loguru
from loguru import logger
from rich import get_console
from rich.logging import RichHandler

from turnstile.context import current_conversation
from turnstile.errors import ConfigurationError

type LogProfile = Literal["default", "console"]

_STDERR_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | conv={extra[conversation]} | {name}:{line} | {message}"
)
_CONSOLE_FORMAT = "[{extra[conversation]}] {message}"

# (profile, level) of the installed sink
_installed: tuple[LogProfile, str] | None = None


def _tag_conversation(record: loguru.Record) -> None:
    record["extra"]["conversation"] = current_conversation()


def _rich_sink() -> Handler:
    return RichHandler(
        console=get_console(),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )


def resolve_level(level: str | None) -> str:
    """Normalize a level name, falling back to ``TURNSTILE_LOG_LEVEL`` then ``INFO``."""

    name = (level or os.getenv("TURNSTILE_LOG_LEVEL") or "INFO").strip().upper()
    try:
        logger.level(name)
    except ValueError as exc:
        raise ConfigurationError(f"unknown log level: {name}") from exc
    return name


def configure_logging(*, profile: LogProfile = "default", level: str | None = None) -> bool:
    """Install the process log sink for ``profile`` at ``level``.

    Calling again with the same profile and level is a no-op and returns False.
    """

    global _installed
    wanted = (profile, resolve_level(level))
    if wanted == _installed:
        return False

    logger.remove()
    logger.configure(patcher=_tag_conversation)
    if profile == "console":
        logger.add(_rich_sink(), level=wanted[1], format=_CONSOLE_FORMAT, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, level=wanted[1], format=_STDERR_FORMAT, backtrace=False, diagnose=False)
    _installed = wanted
    logger.debug("logging.configured profile={} level={}", *wanted)
    return True
