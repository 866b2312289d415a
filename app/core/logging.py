"""
Logging
One structlog pipeline for the API process, Celery workers and scripts.

structlog events and plain stdlib records (uvicorn, Celery, SQLAlchemy) are
rendered by the same formatter, so every line carries the same fields.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from structlog.stdlib import LoggerFactory, ProcessorFormatter

from app.core.config import settings

APP_NAME = "stackflow_crm"


def add_app_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("app", APP_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


def _shared_processors() -> List[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
    ]


def _renderer() -> Any:
    if settings.is_development:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def build_formatter() -> ProcessorFormatter:
    """Formatter rendering both structlog events and foreign stdlib records"""
    processors = [ProcessorFormatter.remove_processors_meta]
    if not settings.is_development:
        processors.append(structlog.processors.dict_tracebacks)
    processors.append(_renderer())

    return ProcessorFormatter(
        processors=processors,
        foreign_pre_chain=_shared_processors(),
    )


def setup_logging(log_file: Optional[str] = None) -> None:
    """
    Configure structured logging.

    Safe to call more than once: root handlers are replaced, not stacked.
    ``log_file`` overrides ``LOG_FILE``.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    formatter = build_formatter()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_file = log_file or settings.LOG_FILE
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        root.addHandler(handler)
    root.setLevel(log_level)

    # SQL echo goes through the same handlers when DEBUG is on
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG and settings.is_development else logging.WARNING
    )
    for name in ("celery", "uvicorn", "uvicorn.error"):
        logging.getLogger(name).handlers.clear()
        logging.getLogger(name).propagate = True

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def bind_task_context(task_id: Optional[str], task_name: Optional[str]) -> None:
    """Tag every event logged while a Celery task runs"""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(task_id=task_id, task_name=task_name)


def clear_task_context() -> None:
    structlog.contextvars.clear_contextvars()
