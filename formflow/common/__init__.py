"""Common utilities for FormFlow."""

from .logger import setup_logger, configure_logging

__all__ = ["configure_logging", "setup_logger"]
