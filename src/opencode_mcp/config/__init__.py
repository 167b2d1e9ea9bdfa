"""
Configuration du bridge MCP opencode.
"""

from .loader import load_config, get_bridge_section
from .settings import BridgeSettings, load_settings_toml, split_addr

__all__ = [
    "load_config",
    "get_bridge_section",
    "BridgeSettings",
    "load_settings_toml",
    "split_addr",
]
