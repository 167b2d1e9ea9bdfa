"""opencode_mcp.config.loader

Chargement de la configuration TOML (optionnelle).

Note d'architecture:
- Le package `config/` est consommé par `bridge/` et `api/`.
- Il ne doit donc dépendre que de `core/` afin d'éviter les imports circulaires.
"""
import os
import re
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional

from ..core.exceptions import ConfigurationError

# Cache global de configuration
_config_cache: Optional[Dict[str, Any]] = None
_config_cache_path: Optional[str] = None


def _expand_env_vars(obj: Any) -> Any:
    """
    Récursivement étend les variables d'environnement ${VAR} dans la config.

    Args:
        obj: Valeur à traiter (str, dict, list)

    Returns:
        Valeur avec variables d'environnement expansées
    """
    if isinstance(obj, str):
        def replace_env_var(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))
        return re.sub(r'\$\{([^}]+)\}', replace_env_var, obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj


def _clear_config_cache():
    """Vide le cache de configuration."""
    global _config_cache, _config_cache_path
    _config_cache = None
    _config_cache_path = None


def default_config_path() -> str:
    """Chemin de config.toml: `MCP_CONFIG_PATH` ou racine du projet (parent de src/)."""
    override = (os.getenv("MCP_CONFIG_PATH") or "").strip()
    if override:
        return override
    # Remonte de 4 niveaux: loader.py -> config -> opencode_mcp -> src -> projet
    current_file = os.path.abspath(__file__)
    project_dir = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(current_file))))
    return os.path.join(project_dir, "config.toml")


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Charge la configuration depuis config.toml.

    Args:
        config_path: Chemin vers le fichier config (optionnel)

    Returns:
        Dictionnaire de configuration

    Raises:
        ConfigurationError: Si le fichier n'existe pas ou est invalide
    """
    global _config_cache, _config_cache_path

    if config_path is None:
        config_path = default_config_path()

    if _config_cache is not None and _config_cache_path == config_path:
        return _config_cache

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(
            message=f"Fichier de configuration non trouvé: {config_path}",
            config_key="config_path"
        )

    try:
        with open(path, "rb") as f:
            raw_config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            message=f"config.toml invalide: {e}",
            config_key="config_path"
        ) from e

    _config_cache = _expand_env_vars(raw_config)
    _config_cache_path = config_path
    return _config_cache


def get_bridge_section(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extrait la section `[bridge]` de la configuration.

    Args:
        config: Configuration chargée

    Returns:
        Section bridge (dict vide si absente ou mal typée)
    """
    section = config.get("bridge", {})
    if not isinstance(section, dict):
        return {}
    return section
