"""opencode_mcp.core.sessions

Registre de sessions MCP en mémoire.

Notes:
- Une session est créée à chaque `initialize`, jamais modifiée ensuite.
- L'identifiant est consultatif: une session absente ou inconnue ne bloque pas
  la requête (déploiement mono-tenant de confiance).
- Aucune expiration; un plafond optionnel (`max_sessions`) évince les plus anciennes.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SESSION_ID_BYTES = 16


@dataclass(frozen=True)
class Session:
    id: str
    created_at: datetime


def generate_session_id() -> str:
    """Identifiant aléatoire de 128 bits encodé en hexadécimal (32 caractères)."""
    return secrets.token_hex(SESSION_ID_BYTES)


class SessionRegistry:
    """Map `id -> Session` protégée par un lock async.

    Les sessions sont immuables: seul le dictionnaire partagé a besoin du lock.
    """

    def __init__(self, *, max_sessions: int = 0) -> None:
        self._max_sessions = max(0, int(max_sessions))
        self._lock = asyncio.Lock()
        self._sessions: dict[str, Session] = {}

    async def create(self) -> Session:
        session = Session(id=generate_session_id(), created_at=datetime.now(timezone.utc))
        async with self._lock:
            self._sessions[session.id] = session
            self._evict_locked()
        logger.debug("Session MCP créée: %s", session.id)
        return session

    async def get(self, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        async with self._lock:
            return self._sessions.get(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict_locked(self) -> None:
        if self._max_sessions <= 0:
            return
        overflow = len(self._sessions) - self._max_sessions
        if overflow <= 0:
            return
        # dict conserve l'ordre d'insertion: les premières clés sont les plus anciennes
        for key in list(self._sessions)[:overflow]:
            del self._sessions[key]
        logger.info("🧹 %d session(s) évincée(s) (plafond %d)", overflow, self._max_sessions)
