"""Logging utilities for Tandem."""

import logging
import sys
from typing import Any

ROOT_LOGGER = "tandem"
DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"


def configure_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """Configure the ``tandem`` logger.

    Calling this more than once replaces the handler installed by the
    previous call instead of stacking duplicates.

    Args:
        level: Logging level name or number.
        format_string: Custom format string.
        handler: Custom handler. Defaults to a stdout StreamHandler.

    Returns:
        The configured ``tandem`` logger.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handler = handler or logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    handler._tandem_handler = True  # type: ignore[attr-defined]

    logger = logging.getLogger(ROOT_LOGGER)
    for existing in list(logger.handlers):
        if getattr(existing, "_tandem_handler", False):
            logger.removeHandler(existing)

    logger.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger below the ``tandem`` namespace.

    Args:
        name: Component name (e.g., "engine", "tools"). Dotted module
            names that already start with ``tandem`` are used as-is.
    """
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class StructuredLogger:
    """Logger that appends ``key=value`` context to every message.

    Example:
        log = StructuredLogger("engine").bind(workflow_id="wf-1")
        log.info("Workflow started", pattern="parallel")
        # Workflow started | workflow_id=wf-1 pattern=parallel
    """

    def __init__(self, name: str, context: dict[str, Any] | None = None):
        self._name = name
        self._logger = get_logger(name)
        self._context: dict[str, Any] = dict(context or {})

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Return a child logger with extra context; self is unchanged."""
        return StructuredLogger(self._name, {**self._context, **kwargs})

    def _format_message(self, message: str, **kwargs: Any) -> str:
        data = {**self._context, **kwargs}
        if not data:
            return message
        pairs = " ".join(f"{k}={v}" for k, v in data.items() if v is not None)
        return f"{message} | {pairs}" if pairs else message

    def debug(self, message: str, **kwargs: Any) -> None:
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(self._format_message(message, **kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        self._logger.exception(self._format_message(message, **kwargs))
