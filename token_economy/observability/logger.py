"""
Structured logging setup.

Library modules only call get_logger(); the CLI decides how events are rendered.
"""

import logging
import sys

import structlog


def setup_logging(level: int = logging.INFO, json_output: bool = False) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum log level to emit
        json_output: Render JSON lines instead of console key=value output
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        # Resolve stderr per logger so redirected streams are honoured
        logger_factory=lambda *args: structlog.PrintLogger(sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str = "token_economy"):
    return structlog.get_logger(name)
