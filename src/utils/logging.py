"""Structured logging setup using structlog.

One processor chain (context vars, level, timestamps, stack info) feeds
either a coloured ConsoleRenderer for local development or a JSONRenderer
for production.  ``APP_ENV=production`` selects JSON unless the caller
forces a format.

Standard-library ``logging`` is routed through the same formatter so that
uvicorn, httpx and aiosqlite produce identically formatted lines.

Queue processing binds ``job_id`` / ``material_id`` with
:func:`bind_job_context` so every log line emitted while a job is in
flight (fetch, parse, embed, persist) carries them without threading the
ids through each call.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# Libraries that log every request at INFO; held at WARNING unless the
# app itself runs at DEBUG.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "aiosqlite")


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output.  When False, JSON is still used if
                     ``APP_ENV`` is ``production``.

    Returns:
        A configured structlog BoundLogger.
    """
    use_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    level = log_level.upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    if level != "DEBUG":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


@contextmanager
def bind_job_context(job_id: str, material_id: str) -> Iterator[None]:
    """Bind queue job identifiers to every log line inside the block."""
    structlog.contextvars.bind_contextvars(job_id=job_id, material_id=material_id)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars("job_id", "material_id")
