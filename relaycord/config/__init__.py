"""Configuration for relaycord.

``settings`` holds process tunables read from the environment; ``store``
persists the plugin document (token, access policy, channel mappings, user
grants and pairing requests) as a single JSON file.
"""

from .models import (  # noqa: F401
    AccessPolicy,
    ChannelMapping,
    PairingRequest,
    PairingStatus,
    PluginConfig,
    UserGrant,
)
from .settings import StreamSettings  # noqa: F401
from .store import ConfigStore  # noqa: F401

__all__ = [
    "AccessPolicy",
    "ChannelMapping",
    "ConfigStore",
    "PairingRequest",
    "PairingStatus",
    "PluginConfig",
    "StreamSettings",
    "UserGrant",
]
