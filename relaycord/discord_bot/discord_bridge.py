"""
Discord bridge relaying channel messages to the assistant host.

The bot answers when it is mentioned, when it is messaged directly, or in
channels mapped with ``respond_to_all``.  Other messages are only recorded
with the host as conversation history.  Each answer is streamed back through
:class:`~relaycord.streaming.StreamReconciler`, which edits and splits the
reply messages as text arrives.  The triggering message carries a 👀 reaction
while the answer is generated, replaced by ✅ or ❌ when it completes.
"""
from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Dict, Optional, Set

import discord

from ..config.settings import StreamSettings
from ..config.store import ConfigStore
from ..errors import AuthenticationFailure, InjectionFailure
from ..host.base import AssistantHost
from ..host.fragments import stream_fragments
from ..routing.access_gate import AccessDecision, AccessGate
from ..routing.session_router import SessionRouter, session_name_for
from ..streaming.reconciler import StreamReconciler
from ..utils.logging_system import setup_log_system
from .mentions import resolve_mentions, strip_bot_mentions

logger = setup_log_system(__name__)

RECEIVED = "👀"
SUCCEEDED = "✅"
FAILED = "❌"
# Reaction updates never hold up a reply for longer than this
REACTION_TIMEOUT = 5.0

NO_SESSION_REPLY = "No session configured for this channel."
ERROR_REPLY = "Error processing your request."


class DiscordBridge(discord.Client):
    """
    Discord client forwarding addressed messages to the assistant host.

    Parameters
    ----------
    host:
        The assistant host generating responses.
    store:
        Configuration store holding mappings, grants and pairing requests.
    router, gate, reconciler:
        Collaborators; built from ``store`` and ``settings`` when omitted.
        Every bridge owns its own reconciler, so stream state is never
        shared between bridges.
    """

    def __init__(
        self,
        host: AssistantHost,
        store: ConfigStore,
        *,
        router: Optional[SessionRouter] = None,
        gate: Optional[AccessGate] = None,
        reconciler: Optional[StreamReconciler] = None,
        settings: Optional[StreamSettings] = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guild_messages = True
        intents.dm_messages = True
        intents.guild_reactions = True
        super().__init__(intents=intents)
        self.host = host
        self.store = store
        self.router = router if router is not None else SessionRouter(store)
        self.gate = gate if gate is not None else AccessGate(store)
        if reconciler is None:
            reconciler = StreamReconciler(settings or StreamSettings.from_env())
        self.reconciler = reconciler
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def run_bridge(self, token: str) -> None:
        """Log in and process events until the client is closed."""
        logger.info("Starting Discord bot…")
        try:
            await self.login(token)
        except discord.LoginFailure as e:
            raise AuthenticationFailure(f"Discord login failed: {e}") from e
        await self.connect()

    async def shutdown(self) -> None:
        await self.reconciler.shutdown()
        await self.wait_for_background()
        await self.close()
        logger.info("Discord bridge stopped.")

    async def wait_for_background(self) -> None:
        """Wait for pending reaction updates."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def on_ready(self) -> None:
        logger.info(f"Discord bot ready: logged in as {self.user} (ID: {self.user.id})")

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------
    async def on_message(self, message: discord.Message) -> None:
        try:
            await self.handle_message(message)
        except Exception as e:
            logger.error(f"Failed to handle Discord message: {e}", exc_info=True)

    async def handle_message(self, message: discord.Message) -> None:
        me = self.user
        # Ignore messages sent by the bot itself and by other bots
        if me is None or message.author.id == me.id or message.author.bot:
            return

        config = self.store.load()
        if config.guild_id and message.guild is not None and str(message.guild.id) != config.guild_id:
            return

        channel_id = str(message.channel.id)
        meta = _channel_meta(message)
        author_name = getattr(message.author, "display_name", None) or message.author.name
        mapping = config.mappings.get(channel_id)

        mentioned = any(user.id == me.id for user in message.mentions)
        is_dm = message.guild is None
        if not (mentioned or is_dm or (mapping is not None and mapping.respond_to_all)):
            session = mapping.session if mapping is not None else session_name_for(channel_id)
            self._record_history(session, message.content, author_name, meta)
            return

        text = resolve_mentions(strip_bot_mentions(message.content, me.id), self, message.guild)
        if not text:
            return
        logger.debug(f"Discord message from {author_name} in {channel_id}: {text[:100]}")

        session = self.router.resolve_session(channel_id, meta)
        if session is None:
            await self._reply_quietly(message, NO_SESSION_REPLY)
            return

        decision = self.gate.authorize(str(message.author.id), session, self.router.mapping_for(channel_id))
        if not decision:
            await self._refuse(message, session, decision, author_name, meta)
            return

        self.host.ensure_session(session, meta)
        await self._relay(message, session, text, author_name, meta)

    def _record_history(self, session: str, text: str, author_name: str, meta: Dict[str, Any]) -> None:
        try:
            self.host.log_message(session, text, **{"from": author_name, "channel": meta})
        except Exception as e:
            logger.debug(f"Could not record history for {session}: {e}")

    async def _refuse(
        self,
        message: discord.Message,
        session: str,
        decision: AccessDecision,
        author_name: str,
        meta: Dict[str, Any],
    ) -> None:
        logger.info(f"Denied {author_name} ({message.author.id}) on {session}: {decision.reason}")
        if decision.reason == "not_paired":
            code, existing = self.gate.request_pairing(
                str(message.author.id),
                author_name,
                session,
                channel_name=meta.get("channel_name"),
                guild_name=meta.get("guild_name"),
            )
            lead = "Your pairing request is still pending." if existing else "You are not paired with this bot yet."
            reply = f"{lead} Pairing code: **{code}**. Ask the bot owner to approve it."
        elif decision.reason == "blocked":
            reply = "You are blocked from using this bot."
        else:
            reply = "You do not have access to this session."
        await self._reply_quietly(message, reply)

    # ------------------------------------------------------------------
    # Streaming a response
    # ------------------------------------------------------------------
    async def _relay(
        self, message: discord.Message, session: str, text: str, author_name: str, meta: Dict[str, Any]
    ) -> None:
        received = self._spawn(self._bounded(message.add_reaction(RECEIVED), f"add {RECEIVED}"))
        stream = self.reconciler.open(session, message.channel, message)
        logger.info(f"New stream {session}: {text[:100]}")

        succeeded = False
        try:
            fragments = stream_fragments(self.host, session, text, **{"from": author_name, "channel": meta})
            # Closing the generator cancels the host call if we stop early
            async with contextlib.aclosing(fragments):
                async for fragment in fragments:
                    await self.reconciler.on_fragment(session, fragment, stream=stream)
            succeeded = True
        except InjectionFailure as e:
            logger.error(f"Inject failed: {e}")
        except Exception as e:
            logger.error(f"Inject failed for {session}: {e}", exc_info=True)
        finally:
            # Buffered output is flushed on both paths
            await self.reconciler.close(session, stream=stream)

        self._spawn(self._swap_reaction(message, received, SUCCEEDED if succeeded else FAILED))
        if not succeeded:
            await self._reply_quietly(message, ERROR_REPLY)

    # ------------------------------------------------------------------
    # Best-effort Discord calls
    # ------------------------------------------------------------------
    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _bounded(self, call: Awaitable[Any], what: str) -> None:
        try:
            await asyncio.wait_for(call, timeout=REACTION_TIMEOUT)
        except Exception as e:
            logger.debug(f"Reaction update ({what}) failed: {e!r}")

    async def _swap_reaction(self, message: discord.Message, received: asyncio.Task, emoji: str) -> None:
        await asyncio.wait({received}, timeout=REACTION_TIMEOUT)
        await self._bounded(message.remove_reaction(RECEIVED, self.user), f"remove {RECEIVED}")
        await self._bounded(message.add_reaction(emoji), f"add {emoji}")

    async def _reply_quietly(self, message: discord.Message, text: str) -> None:
        try:
            await message.reply(text)
        except Exception as e:
            logger.error(f"Failed to send Discord message: {e}")


def _channel_meta(message: discord.Message) -> Dict[str, Any]:
    guild = message.guild
    return {
        "type": "discord",
        "id": str(message.channel.id),
        "channel_name": getattr(message.channel, "name", None),
        "guild_name": guild.name if guild is not None else None,
    }
