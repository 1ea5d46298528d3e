"""
Logging setup for processes that embed flowcore.

flowcore modules log through ``logging.getLogger(__name__)`` and never
configure handlers themselves. A host (the ``flowcore`` CLI, a test run,
an app shell) calls ``setup_logging`` once; records from flowcore and from
any other stdlib logger are then rendered by structlog to stderr, keeping
stdout free for the CLI's JSON output.

Environment:
    FLOWCORE_LOG_LEVEL   DEBUG / INFO / WARNING / ERROR (default INFO)
    FLOWCORE_LOG_FORMAT  "json" for one JSON object per line, else console

Usage:
    from flowcore.logging_config import get_logger, setup_logging

    setup_logging(level="DEBUG")
    logger = get_logger(__name__)
    logger.info("context built", characters=1834)
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

DEFAULT_LEVEL = "INFO"

# Marks the handler installed here so repeated setup replaces only our own
_HANDLER_NAME = "flowcore"


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("FLOWCORE_LOG_LEVEL") or DEFAULT_LEVEL).upper()
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def _wants_json(json_output: bool | None) -> bool:
    if json_output is not None:
        return json_output
    return os.environ.get("FLOWCORE_LOG_FORMAT", "").strip().lower() == "json"


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=False),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Route stdlib and structlog records through one stderr handler."""
    pre_chain = _pre_chain()
    final: structlog.types.Processor = (
        structlog.processors.JSONRenderer(sort_keys=True)
        if _wants_json(json_output)
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, final],
        )
    )

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """A structlog logger bound to ``name`` (used by entry points)."""
    return structlog.get_logger(name)


__all__ = ["get_logger", "setup_logging"]
