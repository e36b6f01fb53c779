"""Structured logging."""

from lending_core.logging.setup import bound_context, get_logger, setup_logging

__all__ = ["bound_context", "get_logger", "setup_logging"]
