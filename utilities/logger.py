"""
Structured logging setup using structlog.
Provides JSON or console output and a request lifecycle logger.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Add call-site information to every event
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        logging.getLogger().addHandler(file_handler)

    structlog.get_logger(__name__).info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


class RequestLogger:
    """
    Logger for HTTP request lifecycle events.

    Request-scoped values such as the request id come from structlog's
    context variables, bound by the request logging middleware.
    """

    def __init__(self, name: str = "api.requests"):
        self.logger = structlog.get_logger(name)

    def log_request_complete(self, method: str, path: str, status_code: int, duration_ms: float) -> None:
        """Log a finished request; server errors are logged at warning level."""
        level = "warning" if status_code >= 500 else "info"
        getattr(self.logger, level)(
            "Request completed",
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=round(duration_ms, 2)
        )

    def log_request_failed(self, method: str, path: str, error: str, duration_ms: float) -> None:
        """Log a request whose handler raised."""
        self.logger.error(
            "Request failed",
            method=method,
            path=path,
            error=error,
            duration_ms=round(duration_ms, 2)
        )
