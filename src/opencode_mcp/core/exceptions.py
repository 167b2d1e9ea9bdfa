"""
Exceptions personnalisées pour le bridge MCP opencode.
"""


class OpencodeMCPError(Exception):
    """Exception de base pour toutes les erreurs du bridge."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code or "unknown_error"
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"[{self.code}] {self.message} - Détails: {self.details}"
        return f"[{self.code}] {self.message}"


class ConfigurationError(OpencodeMCPError):
    """Erreur de configuration (fichier illisible, valeur invalide)."""

    def __init__(self, message: str, config_key: str = None):
        super().__init__(
            message=message,
            code="config_error",
            details={"key": config_key} if config_key else {}
        )


class InvalidToolArguments(OpencodeMCPError):
    """Outil inconnu, argument requis manquant ou répertoire de travail inutilisable.

    Levée avant tout lancement de sous-processus.
    """

    def __init__(self, message: str, tool: str = None, field: str = None):
        details = {}
        if tool:
            details["tool"] = tool
        if field:
            details["field"] = field
        super().__init__(
            message=message,
            code="invalid_arguments",
            details=details
        )


class CommandLaunchError(OpencodeMCPError):
    """L'exécutable externe n'a pas pu être démarré."""

    def __init__(self, message: str, executable: str = None, cwd: str = None):
        details = {}
        if executable:
            details["executable"] = executable
        if cwd:
            details["cwd"] = cwd
        super().__init__(
            message=message,
            code="launch_error",
            details=details
        )


class StreamingUnsupportedError(OpencodeMCPError):
    """La connexion cible ne sait pas flusher: impossible de streamer en SSE."""

    def __init__(self, message: str = "streaming unsupported", writer: str = None):
        super().__init__(
            message=message,
            code="streaming_unsupported",
            details={"writer": writer} if writer else {}
        )
