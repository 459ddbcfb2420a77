# src/siteagent/core/logging.py
"""Structured logging for the site agent.

structlog renders every record, including stdlib records from httpx, azure
and watchdog, through one ProcessorFormatter on stdout. Every line carries the
site it came from and whether this replica is the master, so logs from the
replicas of one site can be told apart after aggregation.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.stdlib import ProcessorFormatter

if TYPE_CHECKING:
    from siteagent.core.config import LoggingSettings

# Clamped to WARNING: they log every request or filesystem event at DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = (
    "azure",
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.identity",
    "urllib3",
    "httpx",
    "httpcore",
    "watchdog",
    "watchdog.observers",
    "opentelemetry",
)


def _drop_formatter_fields(logger: logging.Logger | None, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)
    return event_dict


def _site_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]


def _renderers(json_output: bool) -> list[Any]:
    if json_output:
        return [_drop_formatter_fields, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [_drop_formatter_fields, structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]


def bind_site(site_id: str | None, *, is_master: bool) -> None:
    """Attach the site identity to every subsequent log line."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(site_id=site_id or "unregistered", role="master" if is_master else "replica")


def configure_logging(
    settings: LoggingSettings,
    *,
    site_id: str | None = None,
    is_master: bool = True,
    level: str | None = None,
    json_output: bool | None = None,
) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        settings: Configured level and format
        site_id: Site this agent serves, bound to every line
        is_master: Bound as role=master or role=replica
        level: Overrides settings.level (the CLI --verbose flag)
        json_output: Overrides settings.json_output
    """
    log_level = getattr(logging, (level or settings.level).upper())
    as_json = settings.json_output if json_output is None else json_output
    processors = _site_processors()

    structlog.configure(
        processors=[*processors, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Tests reconfigure between cases
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProcessorFormatter(processors=_renderers(as_json), foreign_pre_chain=processors))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    bind_site(site_id, is_master=is_master)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
