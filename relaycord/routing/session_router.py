"""
Channel to session routing.

Every Discord channel talks to one named assistant session.  Explicit
mappings come from the CLI or settings API; when auto-create is enabled an
unmapped channel gets ``discord-<channel id>`` on first contact and the
mapping is persisted.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from ..config.models import ChannelMapping
from ..config.store import ConfigStore
from ..utils.logging_system import setup_log_system

logger = setup_log_system(__name__)


def session_name_for(channel_id: str) -> str:
    return f"discord-{channel_id}"


class SessionRouter:
    """Resolves and manages channel mappings in the configuration store."""

    def __init__(self, store: ConfigStore) -> None:
        self.store = store

    def resolve_session(self, channel_id: str, meta: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        """
        Return the session for ``channel_id``.

        ``meta`` may carry ``channel_name`` and ``guild_name`` which are stored
        on an auto-created mapping.  Returns ``None`` when the channel is
        unmapped and auto-create is off.
        """
        channel_id = str(channel_id)
        config = self.store.load()
        mapping = config.mappings.get(channel_id)
        if mapping is not None:
            return mapping.session
        if not config.auto_create:
            return None

        meta = meta or {}
        session = session_name_for(channel_id)
        with self.store.transaction() as config:
            config.mappings[channel_id] = ChannelMapping(
                session=session,
                channel_name=meta.get("channel_name") or "DM",
                guild_name=meta.get("guild_name") or "Direct Message",
            )
        logger.info(f"Auto-mapped {meta.get('channel_name') or channel_id} -> {session}")
        return session

    def mapping_for(self, channel_id: str) -> Optional[ChannelMapping]:
        return self.store.load().mappings.get(str(channel_id))

    def map_channel(
        self,
        channel_id: str,
        session: str,
        *,
        respond_to_all: bool = False,
        allowed_users: Optional[List[str]] = None,
    ) -> ChannelMapping:
        channel_id = str(channel_id)
        with self.store.transaction() as config:
            previous = config.mappings.get(channel_id)
            mapping = ChannelMapping(
                session=session,
                respond_to_all=respond_to_all,
                allowed_users=[str(u) for u in allowed_users] if allowed_users else None,
                channel_name=previous.channel_name if previous else None,
                guild_name=previous.guild_name if previous else None,
            )
            config.mappings[channel_id] = mapping
        logger.info(f"Mapped channel {channel_id} -> {session}")
        return mapping

    def unmap_channel(self, channel_id: str) -> bool:
        channel_id = str(channel_id)
        with self.store.transaction() as config:
            removed = config.mappings.pop(channel_id, None)
        if removed is not None:
            logger.info(f"Unmapped channel {channel_id} (was {removed.session})")
        return removed is not None

    def list_mappings(self) -> Dict[str, ChannelMapping]:
        return dict(self.store.load().mappings)

    def set_auto_create(self, enabled: bool) -> None:
        with self.store.transaction() as config:
            config.auto_create = enabled
        logger.info(f"Auto-create {'enabled' if enabled else 'disabled'}")
