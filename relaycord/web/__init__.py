"""
Settings API package for relaycord.

This package provides a small Flask application exposing the plugin's
configuration (status, channel mappings, pairing requests and user grants)
as JSON endpoints.  Launch it with ``relaycord web``.
"""

from __future__ import annotations

from .flask_app import create_app, run_app  # noqa: F401

__all__ = ["create_app", "run_app"]
