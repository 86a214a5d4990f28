"""
Access control and pairing.

The access policy in the configuration document decides who may talk to a
session:

``all``
    everyone.
``paired``
    users holding an unblocked grant for the session.  Unknown users are
    offered a pairing code that an operator approves from the CLI or the
    settings API.
``none``
    only users an operator granted explicitly; no pairing codes are issued.

A channel mapping can further restrict a channel to an allowlist of users.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..config.models import (
    AccessPolicy,
    ChannelMapping,
    PairingRequest,
    PairingStatus,
    UserGrant,
)
from ..config.store import ConfigStore
from ..errors import PairingError
from ..utils.logging_system import setup_log_system

logger = setup_log_system(__name__)

PAIRING_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PAIRING_CODE_LENGTH = 8


def generate_pairing_code() -> str:
    return "".join(secrets.choice(PAIRING_ALPHABET) for _ in range(PAIRING_CODE_LENGTH))


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = AccessDecision(True)


class AccessGate:
    """Authorisation checks plus the pairing and grant workflow."""

    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Authorisation
    # ------------------------------------------------------------------
    def policy(self) -> AccessPolicy:
        return self.store.load().default_access

    def authorize(self, user_id: str, session: str, mapping: Optional[ChannelMapping] = None) -> AccessDecision:
        user_id = str(user_id)
        if mapping is not None and not mapping.allows(user_id):
            return AccessDecision(False, "not_allowlisted")

        config = self.store.load()
        if config.default_access is AccessPolicy.ALL:
            return ALLOW

        grant = config.users.get(user_id)
        if grant is not None and grant.blocked:
            return AccessDecision(False, "blocked")
        if grant is not None and grant.covers(session):
            return ALLOW
        if config.default_access is AccessPolicy.PAIRED:
            return AccessDecision(False, "not_paired")
        return AccessDecision(False, "no_grant")

    def set_policy(self, policy: AccessPolicy | str) -> AccessPolicy:
        policy = AccessPolicy(policy)
        with self.store.transaction() as config:
            config.default_access = policy
        logger.info(f"Access policy set to {policy.value}")
        return policy

    # ------------------------------------------------------------------
    # Pairing
    # ------------------------------------------------------------------
    def request_pairing(
        self,
        user_id: str,
        user_name: str,
        session: str,
        *,
        channel_name: Optional[str] = None,
        guild_name: Optional[str] = None,
    ) -> Tuple[str, bool]:
        """
        Issue a pairing code for ``user_id``.

        Returns ``(code, existing)``.  A user with a pending request gets the
        same code back with ``existing`` set.
        """
        user_id = str(user_id)
        with self.store.transaction() as config:
            for code, request in config.pairing_requests.items():
                if request.user_id == user_id and request.pending:
                    return code, True

            code = generate_pairing_code()
            while code in config.pairing_requests:
                code = generate_pairing_code()
            config.pairing_requests[code] = PairingRequest(
                user_id=user_id,
                user_name=user_name,
                session=session,
                channel_name=channel_name,
                guild_name=guild_name,
            )
        logger.info(f"Pairing request {code} from {user_name} ({user_id}) for {session}")
        return code, False

    def _resolve(self, code: str, status: PairingStatus) -> PairingRequest:
        code = code.strip().upper()
        with self.store.transaction() as config:
            request = config.pairing_requests.get(code)
            if request is None:
                raise PairingError(code, f"Unknown pairing code {code}", unknown=True)
            if not request.pending:
                raise PairingError(code, f"Pairing code {code} is already {request.status.value}")
            request.status = status
            request.resolved_at = int(time.time() * 1000)
            if status is PairingStatus.APPROVED:
                grant = config.users.setdefault(request.user_id, UserGrant())
                grant.sessions.add(request.session)
                grant.paired_at = request.resolved_at
                grant.pairing_code = code
        return request

    def approve(self, code: str) -> PairingRequest:
        request = self._resolve(code, PairingStatus.APPROVED)
        logger.info(f"Approved pairing {code}: {request.user_name} -> {request.session}")
        return request

    def reject(self, code: str) -> PairingRequest:
        request = self._resolve(code, PairingStatus.REJECTED)
        logger.info(f"Rejected pairing {code} from {request.user_name}")
        return request

    def list_requests(self, status: Optional[PairingStatus] = None) -> Dict[str, PairingRequest]:
        requests = self.store.load().pairing_requests
        if status is None:
            return dict(requests)
        return {code: r for code, r in requests.items() if r.status is status}

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------
    def grant(self, user_id: str, session: str) -> UserGrant:
        with self.store.transaction() as config:
            grant = config.users.setdefault(str(user_id), UserGrant())
            grant.sessions.add(session)
        logger.info(f"Granted {user_id} access to {session}")
        return grant

    def revoke(self, user_id: str, session: Optional[str] = None) -> bool:
        """Remove one session from a grant, or every session when ``session`` is None."""
        user_id = str(user_id)
        with self.store.transaction() as config:
            grant = config.users.get(user_id)
            if grant is None:
                return False
            if session is None:
                changed = bool(grant.sessions)
                grant.sessions.clear()
            else:
                changed = session in grant.sessions
                grant.sessions.discard(session)
        if changed:
            logger.info(f"Revoked {user_id} from {session or 'all sessions'}")
        return changed

    def block(self, user_id: str, reason: Optional[str] = None) -> UserGrant:
        with self.store.transaction() as config:
            grant = config.users.setdefault(str(user_id), UserGrant())
            grant.blocked = True
            grant.block_reason = reason
        logger.info(f"Blocked {user_id}" + (f": {reason}" if reason else ""))
        return grant

    def unblock(self, user_id: str) -> bool:
        user_id = str(user_id)
        with self.store.transaction() as config:
            grant = config.users.get(user_id)
            if grant is None or not grant.blocked:
                return False
            grant.blocked = False
            grant.block_reason = None
        logger.info(f"Unblocked {user_id}")
        return True

    def list_users(self) -> Dict[str, UserGrant]:
        return dict(self.store.load().users)
