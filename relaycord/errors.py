"""Exception types raised across relaycord."""
from __future__ import annotations


class RelaycordError(Exception):
    """Base class for every error raised by relaycord."""


class TransientDeliveryError(RelaycordError):
    """Sending or editing a Discord message failed.

    Raised at the message I/O boundary and swallowed by the reconciler: the
    stream keeps buffering and the next flush resends the full content.
    """


class AuthenticationFailure(RelaycordError):
    """The bot could not log in.  Fatal to startup, never retried."""


class InjectionFailure(RelaycordError):
    """The assistant host rejected or failed a request."""

    def __init__(self, session: str, message: str) -> None:
        super().__init__(f"{session}: {message}")
        self.session = session


class ConfigPersistenceError(RelaycordError):
    """Writing the configuration document failed.

    The in-memory document is not rolled back.
    """


class PairingError(RelaycordError):
    """A pairing code is unknown or was already resolved."""

    def __init__(self, code: str, message: str, *, unknown: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.unknown = unknown
