"""
Constantes globales du bridge MCP opencode.
"""

# ============================================================================
# SERVEUR
# ============================================================================

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9876
DEFAULT_ADDR = f":{DEFAULT_PORT}"

SERVER_NAME = "opencode-mcp"

# ============================================================================
# EXÉCUTABLE CIBLE
# ============================================================================

DEFAULT_TARGET = "opencode-cli"
DEFAULT_TIMEOUT_SEC = 120

# Modèle de repli si `opencode-cli models` ne renvoie rien
DEFAULT_MODEL = "github-copilot/gpt-5.2-codex"

# Ordre de préférence (testés avec --format json)
PREFERRED_MODELS = [
    "github-copilot/gpt-5.2-codex",
    "github-copilot/gpt-5.1-codex",
    "github-copilot/gpt-4o",
    "github-copilot/gpt-4.1",
]
PREFERRED_PROVIDER_PREFIX = "github-copilot/"

MODEL_CACHE_TTL_SEC = 300
MODEL_FETCH_TIMEOUT_SEC = 10

# ============================================================================
# FLUX STDOUT
# ============================================================================

# Plafond d'une ligne d'événement JSON (1 MiB)
DEFAULT_MAX_LINE_BYTES = 1024 * 1024

# Taille de lecture des pipes du sous-processus
READ_CHUNK_BYTES = 64 * 1024

# ============================================================================
# PROTOCOLE MCP
# ============================================================================

MCP_PROTOCOL_VERSION = "2024-11-05"
MCP_SESSION_HEADER = "Mcp-Session-Id"
SSE_MEDIA_TYPE = "text/event-stream"
# Trames SSE en attente avant que le producteur ne bloque
SSE_QUEUE_MAX_FRAMES = 64
NOTIFICATION_LOGGER = "opencode"
