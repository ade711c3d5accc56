"""
Structured logging.

JSON log lines with the active project ID attached to every record.
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

_project_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "workflow_project_id", default=None
)

# LogRecord attributes that are not user-supplied `extra` fields
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "project_id"}

_configured = False


class ProjectContextFilter(logging.Filter):
    """Attach the current project ID to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "project_id", None):
            record.project_id = _project_id.get()
        return True


class JSONFormatter(logging.Formatter):
    """Render records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "project_id": getattr(record, "project_id", None),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def set_project_id(project_id: Optional[str]) -> None:
    """
    Set the project ID for log records emitted in the current context.

    Args:
        project_id: Project ID, or None to clear it
    """
    _project_id.set(str(project_id) if project_id is not None else None)


def get_project_id() -> Optional[str]:
    """Return the project ID bound to the current context."""
    return _project_id.get()


def configure_logging(level: Optional[str] = None, force: bool = False) -> logging.Logger:
    """
    Install the JSON handler on the root logger.

    Args:
        level: Log level name; defaults to the configured LOG_LEVEL
        force: Replace handlers even if logging was already configured

    Returns:
        Root logger
    """
    global _configured
    root = logging.getLogger()
    if _configured and not force:
        return root

    if level is None:
        from shared.config import get_settings
        level = get_settings().log_level

    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(ProjectContextFilter())
    root.addHandler(handler)
    root.setLevel(level)
    _configured = True
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger that carries the project context.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, ProjectContextFilter) for f in logger.filters):
        logger.addFilter(ProjectContextFilter())
    return logger
