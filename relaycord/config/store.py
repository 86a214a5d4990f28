"""
Persistent configuration store.

The whole document is read on ``load`` and written on ``save``.  Writes go to
a temporary file that is then moved over the real one, so a crash never
leaves a half-written document behind.
"""
from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

import orjson

from ..errors import ConfigPersistenceError
from ..utils.logging_system import setup_log_system
from .models import PluginConfig

logger = setup_log_system(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".relaycord" / "config.json"


def _atomic_json_save(data: dict, file_path: Path) -> None:
    temp_file_path = file_path.with_name(file_path.name + ".tmp")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(temp_file_path, "wb") as f:
        f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
    os.replace(temp_file_path, file_path)


class ConfigStore:
    """Loads and saves the plugin's configuration document."""

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path or os.getenv("RELAYCORD_CONFIG") or DEFAULT_CONFIG_PATH).expanduser()

    def load(self) -> PluginConfig:
        """Read the document from disk; a missing file yields defaults."""
        if not self.path.exists():
            return PluginConfig()
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise ConfigPersistenceError(f"Cannot read {self.path}: {e}") from e
        if not raw.strip():
            return PluginConfig()
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise ConfigPersistenceError(f"{self.path} is not valid JSON: {e}") from e
        return PluginConfig.from_dict(data)

    def save(self, config: PluginConfig) -> None:
        try:
            _atomic_json_save(config.to_dict(), self.path)
        except OSError as e:
            logger.error(f"Failed to write config {self.path}: {e}")
            raise ConfigPersistenceError(f"Cannot write {self.path}: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[PluginConfig]:
        """Load the document, let the caller mutate it, then save it.

        Nothing is written when the block raises.
        """
        config = self.load()
        yield config
        self.save(config)
