"""Logging setup — diagnostics go to stderr through rich, never to stdout."""

from __future__ import annotations

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "unpushed"
ENV_VAR = "UNPUSHED_LOG"

# "off" sits above CRITICAL so nothing gets through.
LEVELS = {
    "off": logging.CRITICAL + 10,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}

LEVEL_CHOICES = ["off", "error", "warn", "info", "debug", "trace"]


def resolve_level(
    name: Optional[str] = None,
    *,
    verbose: bool = False,
    missing_head: bool = False,
    environ: Optional[dict] = None,
) -> int:
    """Pick the effective level: env var, then --verbose, then --log-level.

    With no explicit level the default is warn, or error in missing-head mode.
    """
    environ = os.environ if environ is None else environ
    env_name = environ.get(ENV_VAR, "").strip().lower()
    if env_name in LEVELS:
        return LEVELS[env_name]
    if verbose:
        return logging.INFO
    if name is None:
        name = "error" if missing_head else "warn"
    try:
        return LEVELS[name.lower()]
    except KeyError:
        raise ValueError(f"unknown log level {name!r}") from None


def setup_logging(level: int = logging.WARNING, *, tui: bool = False) -> logging.Logger:
    """Configure the package logger and return it.

    Safe to call repeatedly; handlers installed by an earlier call are replaced.
    """
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(level)

    for handler in list(log.handlers):
        if getattr(handler, "_unpushed", False):
            log.removeHandler(handler)

    if tui:
        from textual.logging import TextualHandler

        handler: logging.Handler = TextualHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    else:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    handler._unpushed = True
    handler.setLevel(level)
    log.addHandler(handler)
    return log
