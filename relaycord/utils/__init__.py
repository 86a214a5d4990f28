"""Utility functions for relaycord.

The ``logging_system`` module provides the logger factory used by every other
module: Rich console output on a TTY, plain lines otherwise, optional
rotating log files.
"""

from .logging_system import setup_log_system, get_logger  # noqa: F401

__all__ = ["setup_log_system", "get_logger"]
