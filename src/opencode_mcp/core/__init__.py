"""
Module core - Briques partagées sans dépendance HTTP.
"""

from .exceptions import (
    OpencodeMCPError,
    ConfigurationError,
    InvalidToolArguments,
    CommandLaunchError,
    StreamingUnsupportedError,
)
from .sessions import Session, SessionRegistry, generate_session_id

__all__ = [
    "OpencodeMCPError",
    "ConfigurationError",
    "InvalidToolArguments",
    "CommandLaunchError",
    "StreamingUnsupportedError",
    "Session",
    "SessionRegistry",
    "generate_session_id",
]
