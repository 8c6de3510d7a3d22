"""
User-facing notifications.

Presentation code supplies its own Notifier (toasts, status bar); the
default writes them to the log.
"""

from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    """Transient message sink."""

    def success(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class LogNotifier:
    """Notifier that emits structured log events."""

    def success(self, message: str) -> None:
        logger.info("notification", severity="success", message=message)

    def error(self, message: str) -> None:
        logger.warning("notification", severity="error", message=message)
