"""
Data model of the persisted configuration document.

The document is stored with camelCase keys; the dataclasses below use
snake_case attributes and convert at the ``to_dict``/``from_dict`` boundary.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class AccessPolicy(str, Enum):
    ALL = "all"
    PAIRED = "paired"
    NONE = "none"


class PairingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ChannelMapping:
    """Channel id -> session mapping."""

    session: str
    respond_to_all: bool = False
    allowed_users: Optional[List[str]] = None
    channel_name: Optional[str] = None
    guild_name: Optional[str] = None
    created_at: int = field(default_factory=_now_ms)

    def allows(self, user_id: str) -> bool:
        return not self.allowed_users or user_id in self.allowed_users

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session,
            "respondToAll": self.respond_to_all,
            "allowedUsers": self.allowed_users,
            "channelName": self.channel_name,
            "guildName": self.guild_name,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChannelMapping":
        allowed = data.get("allowedUsers")
        return cls(
            session=data["session"],
            respond_to_all=bool(data.get("respondToAll", False)),
            allowed_users=[str(u) for u in allowed] if allowed else None,
            channel_name=data.get("channelName"),
            guild_name=data.get("guildName"),
            created_at=int(data.get("createdAt") or _now_ms()),
        )


@dataclass
class PairingRequest:
    """A request from an unrecognised user to use a session."""

    user_id: str
    user_name: str
    session: str
    channel_name: Optional[str] = None
    guild_name: Optional[str] = None
    status: PairingStatus = PairingStatus.PENDING
    created_at: int = field(default_factory=_now_ms)
    resolved_at: Optional[int] = None

    @property
    def pending(self) -> bool:
        return self.status is PairingStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "userName": self.user_name,
            "session": self.session,
            "channelName": self.channel_name,
            "guildName": self.guild_name,
            "status": self.status.value,
            "createdAt": self.created_at,
            "resolvedAt": self.resolved_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PairingRequest":
        return cls(
            user_id=str(data["userId"]),
            user_name=data.get("userName") or str(data["userId"]),
            session=data.get("session", ""),
            channel_name=data.get("channelName"),
            guild_name=data.get("guildName"),
            status=PairingStatus(data.get("status", PairingStatus.PENDING.value)),
            created_at=int(data.get("createdAt") or _now_ms()),
            resolved_at=data.get("resolvedAt"),
        )


@dataclass
class UserGrant:
    """Sessions a user may talk to, plus block state."""

    sessions: Set[str] = field(default_factory=set)
    paired_at: Optional[int] = None
    pairing_code: Optional[str] = None
    blocked: bool = False
    block_reason: Optional[str] = None

    def covers(self, session: str) -> bool:
        return "*" in self.sessions or session in self.sessions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessions": sorted(self.sessions),
            "pairedAt": self.paired_at,
            "pairingCode": self.pairing_code,
            "blocked": self.blocked,
            "blockReason": self.block_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserGrant":
        return cls(
            sessions=set(data.get("sessions") or []),
            paired_at=data.get("pairedAt"),
            pairing_code=data.get("pairingCode"),
            blocked=bool(data.get("blocked", False)),
            block_reason=data.get("blockReason"),
        )


@dataclass
class PluginConfig:
    """The whole persisted document."""

    token: Optional[str] = None
    guild_id: Optional[str] = None
    auto_create: bool = True
    default_access: AccessPolicy = AccessPolicy.PAIRED
    mappings: Dict[str, ChannelMapping] = field(default_factory=dict)
    users: Dict[str, UserGrant] = field(default_factory=dict)
    pairing_requests: Dict[str, PairingRequest] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "guildId": self.guild_id,
            "autoCreate": self.auto_create,
            "defaultAccess": self.default_access.value,
            "mappings": {cid: m.to_dict() for cid, m in self.mappings.items()},
            "users": {uid: g.to_dict() for uid, g in self.users.items()},
            "pairingRequests": {code: r.to_dict() for code, r in self.pairing_requests.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PluginConfig":
        guild_id = data.get("guildId")
        return cls(
            token=data.get("token") or None,
            guild_id=str(guild_id) if guild_id else None,
            auto_create=bool(data.get("autoCreate", True)),
            default_access=AccessPolicy(data.get("defaultAccess", AccessPolicy.PAIRED.value)),
            mappings={str(k): ChannelMapping.from_dict(v) for k, v in (data.get("mappings") or {}).items()},
            users={str(k): UserGrant.from_dict(v) for k, v in (data.get("users") or {}).items()},
            pairing_requests={
                k: PairingRequest.from_dict(v) for k, v in (data.get("pairingRequests") or {}).items()
            },
        )
