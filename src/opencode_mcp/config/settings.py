"""
Dataclasses pour la configuration du bridge.

Priorité finale: env > toml (`[bridge]`) > défauts.
"""
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TARGET,
    DEFAULT_TIMEOUT_SEC,
    DEFAULT_MODEL,
    DEFAULT_MAX_LINE_BYTES,
    MODEL_CACHE_TTL_SEC,
)
from .loader import load_config, get_bridge_section, default_config_path

logger = logging.getLogger(__name__)


def split_addr(addr: str, default_host: str = DEFAULT_HOST, default_port: int = DEFAULT_PORT) -> tuple:
    """
    Découpe une adresse d'écoute `host:port` (`:9876` accepté).

    Returns:
        Tuple (host, port); les parties invalides retombent sur les défauts
    """
    raw = (addr or "").strip()
    if not raw:
        return default_host, default_port

    host, sep, port_raw = raw.rpartition(":")
    if not sep:
        # Pas de ':' -> seulement un host
        return raw, default_port

    try:
        port = int(port_raw)
    except ValueError:
        port = default_port
    return host or default_host, port


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


def _env_int(name: str) -> Optional[int]:
    raw = _env_str(name)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("⚠️ %s invalide (%r), valeur ignorée", name, raw)
        return None


def _toml_int(section: Dict[str, Any], key: str) -> Optional[int]:
    value = section.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _toml_str(section: Dict[str, Any], key: str) -> Optional[str]:
    value = section.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True)
class BridgeSettings:
    """Configuration globale du bridge."""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    target: str = DEFAULT_TARGET
    timeout_s: float = float(DEFAULT_TIMEOUT_SEC)
    default_model: str = DEFAULT_MODEL
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES
    model_cache_ttl_s: float = float(MODEL_CACHE_TTL_SEC)
    max_sessions: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeSettings":
        """Crée une instance depuis une section `[bridge]`."""
        host, port = split_addr(_toml_str(data, "addr") or "")
        return cls(
            host=host,
            port=port,
            target=_toml_str(data, "target") or DEFAULT_TARGET,
            timeout_s=float(_positive(_toml_int(data, "timeout_sec"), DEFAULT_TIMEOUT_SEC)),
            default_model=_toml_str(data, "default_model") or DEFAULT_MODEL,
            max_line_bytes=_positive(_toml_int(data, "max_line_bytes"), DEFAULT_MAX_LINE_BYTES),
            model_cache_ttl_s=float(_positive(_toml_int(data, "model_cache_ttl_sec"), MODEL_CACHE_TTL_SEC)),
            max_sessions=max(0, _toml_int(data, "max_sessions") or 0),
        )

    @classmethod
    def from_env(cls, base: "BridgeSettings" = None) -> "BridgeSettings":
        """
        Applique les variables d'environnement `MCP_*` par-dessus `base`.

        Args:
            base: Réglages de départ (défaut: `load_settings_toml()`)
        """
        if base is None:
            base = load_settings_toml()

        host, port = base.host, base.port
        addr = _env_str("MCP_ADDR")
        if addr is not None:
            host, port = split_addr(addr, default_host=base.host, default_port=base.port)

        # 0 est une valeur explicite (pas de plafond)
        max_sessions = _env_int("MCP_MAX_SESSIONS")

        return cls(
            host=host,
            port=port,
            target=_env_str("MCP_TARGET") or base.target,
            timeout_s=float(_positive(_env_int("MCP_TIMEOUT_SEC"), base.timeout_s)),
            default_model=_env_str("MCP_DEFAULT_MODEL") or base.default_model,
            max_line_bytes=_positive(_env_int("MCP_MAX_LINE_BYTES"), base.max_line_bytes),
            model_cache_ttl_s=float(_positive(_env_int("MCP_MODEL_CACHE_TTL_SEC"), base.model_cache_ttl_s)),
            max_sessions=base.max_sessions if max_sessions is None else max(0, max_sessions),
        )


def _positive(value: Optional[int], default):
    if value is None or value <= 0:
        return default
    return value


def load_settings_toml(config_path: str = None) -> BridgeSettings:
    """
    Lit `[bridge]` dans config.toml.

    Fail-open: si config.toml est absent, on retombe sur les défauts.
    Un fichier présent mais invalide reste une erreur de configuration.
    """
    path = config_path or default_config_path()
    if not os.path.exists(path):
        logger.debug("Pas de config.toml (%s), défauts utilisés", path)
        return BridgeSettings()
    config = load_config(path)
    return BridgeSettings.from_dict(get_bridge_section(config))
