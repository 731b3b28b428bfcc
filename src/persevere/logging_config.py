"""Structured logging setup for applications embedding persevere.

The library itself only calls ``structlog.get_logger(__name__)`` and emits
key/value events (attempt_index, signal, duration, ...). Applications that
want those events rendered call ``configure_logging`` once at startup; level
and renderer default to ``PERSEVERE_LOG_LEVEL`` and ``PERSEVERE_ENVIRONMENT``.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from persevere.config import Settings, settings as default_settings

# Loggers whose per-request chatter would repeat on every attempt
NOISY_LOGGERS = ("httpx", "httpcore")


def add_app_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag every event with the application name unless the caller set one."""
    event_dict.setdefault("app", default_settings.APP_NAME)
    return event_dict


def _renderer(environment: str) -> Processor:
    if environment.lower() == "production":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(
    settings: Optional[Settings] = None,
    *,
    log_level: Optional[str] = None,
    environment: Optional[str] = None,
) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        settings: Source of LOG_LEVEL and ENVIRONMENT; the module-level
            settings when omitted
        log_level: Overrides ``settings.LOG_LEVEL``; unknown names mean INFO
        environment: Overrides ``settings.ENVIRONMENT``; "production" renders
            JSON lines, anything else the console renderer
    """
    settings = settings or default_settings
    log_level = log_level or settings.LOG_LEVEL
    environment = environment or settings.ENVIRONMENT
    level = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
    ]
    if environment.lower() == "production":
        shared_processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(environment),
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.get_logger(__name__).debug(
        "Logging configured",
        log_level=logging.getLevelName(level),
        environment=environment,
    )
