"""
Structured logging configuration
"""

import logging
import sys
from typing import Optional

import structlog


def setup_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Setup structured logging with consistent format"""

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level.upper())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            # JSON for production, console for development
            (
                structlog.dev.ConsoleRenderer()
                if fmt == "console"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance"""
    return structlog.get_logger(name)
