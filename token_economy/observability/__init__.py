"""Logging helpers for token_economy."""

from .logger import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
