"""Shared utilities."""

from moldkpi.utils.logging import bind_selection, configure_logging, get_logger

__all__ = ["bind_selection", "configure_logging", "get_logger"]
