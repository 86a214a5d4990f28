"""Session context files for new Discord sessions."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from ..config.settings import DISCORD_LIMIT
from ..utils.logging_system import setup_log_system

logger = setup_log_system(__name__)


def default_context(channel_meta: Mapping[str, Any]) -> str:
    guild_name = channel_meta.get("guild_name")
    if guild_name:
        where = f'Discord server "{guild_name}", channel #{channel_meta.get("channel_name") or "unknown"}'
    else:
        where = "a Discord direct message"
    return (
        f"You are an assistant responding in {where}.\n\n"
        f"Keep responses concise - Discord has a {DISCORD_LIMIT} character limit.\n"
        "Use markdown formatting (Discord supports it).\n"
        "Be helpful but brief.\n"
    )


def ensure_session_context(sessions_dir: Path, session: str, channel_meta: Mapping[str, Any]) -> Path:
    """Write ``<sessions_dir>/<session>.md`` unless it already exists."""
    path = Path(sessions_dir) / f"{session}.md"
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(default_context(channel_meta), encoding="utf-8")
        logger.info(f"Created session context: {session}")
    return path
