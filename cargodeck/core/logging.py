"""Structured logging for cargodeck — structlog rendered through stdlib handlers.

Environment:
    CARGODECK_LOG_LEVEL   DEBUG | INFO | WARNING | ERROR (default: INFO)
    CARGODECK_LOG_FORMAT  console | json (default: console)

Records go to stderr; stdout belongs to command output (``--json`` etc.).
"""

from __future__ import annotations

import logging.config
import os

import structlog

_PRE_CHAIN: tuple[structlog.types.Processor, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
)

# Chatty third-party loggers, capped regardless of our own level.
_QUIET = {"asyncio": "WARNING"}


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """(Re)configure logging. Explicit arguments win over the environment."""
    level = (level or os.environ.get("CARGODECK_LOG_LEVEL") or "INFO").upper()
    fmt = (fmt or os.environ.get("CARGODECK_LOG_FORMAT") or "console").lower()

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    loggers = {name: {"level": quiet} for name, quiet in _QUIET.items()}
    loggers["cargodeck"] = {"level": level}
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "cargodeck": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": list(_PRE_CHAIN),
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        _renderer(fmt),
                    ],
                },
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "cargodeck",
                },
            },
            "root": {"handlers": ["stderr"], "level": level},
            "loggers": loggers,
        }
    )
