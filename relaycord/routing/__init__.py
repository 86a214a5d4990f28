"""Routing of inbound Discord messages to assistant sessions.

``SessionRouter`` maps channels to sessions; ``AccessGate`` decides whether a
user may talk to a session and runs the pairing workflow for newcomers.
"""

from .access_gate import AccessDecision, AccessGate  # noqa: F401
from .session_router import SessionRouter  # noqa: F401

__all__ = ["AccessDecision", "AccessGate", "SessionRouter"]
