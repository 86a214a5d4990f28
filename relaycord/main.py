"""Process entry point: run the Discord bridge, optionally with the settings API."""
from __future__ import annotations

import asyncio
import os
import threading
from typing import Optional

from .config.store import ConfigStore
from .errors import AuthenticationFailure
from .plugin import PluginController
from .utils.logging_system import setup_log_system

logger = setup_log_system("relaycord.main")


class RelaycordApp:
    """Owns the plugin controller and, when asked, the settings API thread."""

    def __init__(self, store: Optional[ConfigStore] = None, *, web: bool = False) -> None:
        self.controller = PluginController(store)
        self.web = web
        self._web_thread: Optional[threading.Thread] = None

    def _start_web(self) -> None:
        from .web.flask_app import run_app

        host = os.getenv("RELAYCORD_WEB_HOST", "127.0.0.1")
        port = int(os.getenv("RELAYCORD_WEB_PORT", "5000"))
        # Flask's server blocks, so it gets its own daemon thread
        self._web_thread = threading.Thread(
            target=run_app, args=(self.controller.store, host, port), name="SettingsAPI", daemon=True
        )
        self._web_thread.start()
        logger.info(f"Settings API listening on http://{host}:{port}")

    def run(self) -> int:
        """Start everything and block until interrupted.  Returns an exit code."""
        if self.web:
            self._start_web()
        try:
            asyncio.run(self.controller.start())
            if self._web_thread is not None and self._web_thread.is_alive():
                # Keep serving settings, e.g. until a token is configured
                self._web_thread.join()
        except AuthenticationFailure as e:
            logger.error(str(e))
            return 1
        except KeyboardInterrupt:
            logger.debug("Shutting down (KeyboardInterrupt received)…")
        logger.info("Application terminated.")
        return 0


if __name__ == "__main__":
    raise SystemExit(RelaycordApp().run())
