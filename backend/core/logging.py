"""Structured Logging for the Progression Service

structlog on top of stdlib logging:
- Colored console output in development, JSON in production
- Request correlation IDs bound through contextvars
- Redaction of sensitive keys before rendering
"""
import logging
import sys
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME = "progression-service"
SERVICE_VERSION = "0.1.0"

_SENSITIVE_KEYS = frozenset({"password", "token", "secret", "authorization", "cookie"})


def _redact_sensitive(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Replace values of sensitive keys, including nested dicts."""

    def _walk(obj, depth: int = 0):
        if depth > 5:
            return obj
        if isinstance(obj, dict):
            return {
                k: "[REDACTED]" if str(k).lower() in _SENSITIVE_KEYS else _walk(v, depth + 1)
                for k, v in obj.items()
            }
        if isinstance(obj, (list, tuple)):
            return [_walk(item, depth + 1) for item in obj]
        return obj

    return _walk(event_dict)


def _add_service_info(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", SERVICE_VERSION)
    return event_dict


def _stringify_ids(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """UUIDs render as plain strings in both console and JSON output."""
    for key, value in event_dict.items():
        if key.endswith("_id") and value is not None and not isinstance(value, (str, int)):
            event_dict[key] = str(value)
    return event_dict


def get_shared_processors() -> list[Processor]:
    """Processors applied to both structlog and foreign (stdlib) records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _add_service_info,
        _stringify_ids,
        _redact_sensitive,
    ]


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    log_sql: bool = False,
) -> None:
    """Configure structlog and route stdlib logging through the same renderer.

    Args:
        level: Root log level name.
        json_logs: Render JSON lines instead of colored console output.
        log_sql: Emit SQLAlchemy statements at DEBUG.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    shared_processors = get_shared_processors()

    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # uvicorn propagates into the root handler
    for logger_name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(logger_name).handlers = []
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.DEBUG if log_sql else logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def generate_correlation_id() -> str:
    return str(uuid4())[:8]


def bind_context(**kwargs) -> None:
    """Bind key/value pairs to every log event in the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


class LoggerRegistry:
    """Named loggers per application domain."""

    _loggers: dict[str, structlog.stdlib.BoundLogger] = {}

    @classmethod
    def get(cls, name: str) -> structlog.stdlib.BoundLogger:
        if name not in cls._loggers:
            cls._loggers[name] = get_logger(f"progression.{name}")
        return cls._loggers[name]


def api_logger() -> structlog.stdlib.BoundLogger:
    """Logger for HTTP layer events."""
    return LoggerRegistry.get("api")


def engine_logger() -> structlog.stdlib.BoundLogger:
    """Logger for progress and streak computations."""
    return LoggerRegistry.get("engine")


def db_logger() -> structlog.stdlib.BoundLogger:
    """Logger for store writes and retries."""
    return LoggerRegistry.get("db")


def access_logger() -> structlog.stdlib.BoundLogger:
    """Logger for access and unlock decisions."""
    return LoggerRegistry.get("access")


def gamification_logger() -> structlog.stdlib.BoundLogger:
    """Logger for XP, level and badge events."""
    return LoggerRegistry.get("gamification")
