"""
Central controller for relaycord.

This module wires the configuration store, session router, access gate,
stream reconciler, assistant host and Discord bridge together.  The
``PluginController`` class starts and stops the bridge and reports a status
summary for the CLI and the settings API.
"""
from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any, Dict, Optional

from dotenv import load_dotenv

from .config.models import PairingStatus
from .config.settings import StreamSettings
from .config.store import ConfigStore
from .host.base import AssistantHost
from .routing.access_gate import AccessGate
from .routing.session_router import SessionRouter
from .streaming.reconciler import StreamReconciler
from .utils.logging_system import setup_log_system

if TYPE_CHECKING:
    from .discord_bot.discord_bridge import DiscordBridge

logger = setup_log_system("relaycord.plugin")


class PluginController:
    """Coordinates all subsystems of the Discord plugin."""

    def __init__(
        self,
        store: Optional[ConfigStore] = None,
        host: Optional[AssistantHost] = None,
        settings: Optional[StreamSettings] = None,
    ) -> None:
        # Load environment variables from .env if present
        load_dotenv()

        self.store = store or ConfigStore()
        self.settings = settings or StreamSettings.from_env()
        if host is None:
            from .host.ollama_host import OllamaHost

            host = OllamaHost()
        self.host = host
        self.router = SessionRouter(self.store)
        self.gate = AccessGate(self.store)
        self.discord_bridge: Optional["DiscordBridge"] = None

    def resolve_token(self) -> Optional[str]:
        """Token from the config document, falling back to DISCORD_TOKEN."""
        return self.store.load().token or os.getenv("DISCORD_TOKEN") or None

    # ------------------------------------------------------------------
    # Discord integration
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Run the Discord bridge until it is stopped.

        Returns immediately when no token is configured.  A rejected token
        raises :class:`~relaycord.errors.AuthenticationFailure`.
        """
        if self.discord_bridge is not None:
            logger.debug("Discord bridge already running.")
            return
        token = self.resolve_token()
        if not token:
            logger.warning("Discord not configured. Set a bot token with `relaycord token set`.")
            return
        # Import here so the CLI's config commands do not pay for discord.py
        from .discord_bot.discord_bridge import DiscordBridge

        self.discord_bridge = DiscordBridge(
            self.host,
            self.store,
            router=self.router,
            gate=self.gate,
            reconciler=StreamReconciler(self.settings),
        )
        try:
            await self.discord_bridge.run_bridge(token)
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the Discord bridge if it is running."""
        bridge, self.discord_bridge = self.discord_bridge, None
        if bridge is None:
            return
        try:
            await bridge.shutdown()
        except Exception as e:
            logger.error(f"Failed to stop Discord bridge: {e}", exc_info=True)
        logger.info("Plugin shut down.")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def status(self) -> Dict[str, Any]:
        return build_status(self.store, connected=self.discord_bridge is not None and self.discord_bridge.is_ready())


def build_status(store: ConfigStore, *, connected: bool = False) -> Dict[str, Any]:
    config = store.load()
    pending = sum(1 for r in config.pairing_requests.values() if r.status is PairingStatus.PENDING)
    return {
        "configured": bool(config.token or os.getenv("DISCORD_TOKEN")),
        "connected": connected,
        "guild_id": config.guild_id,
        "access": config.default_access.value,
        "auto_create": config.auto_create,
        "mappings": len(config.mappings),
        "users": len(config.users),
        "blocked_users": sum(1 for g in config.users.values() if g.blocked),
        "pending_requests": pending,
    }
