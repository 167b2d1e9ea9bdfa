"""
Bridge MCP opencode - Application FastAPI Factory.
JSON-RPC 2.0 sur HTTP, réponses agrégées ou streaming SSE depuis `opencode-cli`.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from . import __version__
from .api.router import api_router
from .bridge.invoker import CommandInvoker
from .bridge.models import ModelCache
from .bridge.rpc import MCPDispatcher
from .config.settings import BridgeSettings
from .core.sessions import SessionRegistry

logger = logging.getLogger(__name__)


async def _prefetch_models(model_cache: ModelCache) -> None:
    models = await model_cache.get_or_refresh()
    if models:
        logger.info("✅ %d modèle(s) disponible(s)", len(models))
    else:
        logger.warning("⚠️ Aucun modèle récupéré au démarrage")


def create_app(
    settings: BridgeSettings | None = None,
    *,
    invoker: CommandInvoker | None = None,
    model_cache: ModelCache | None = None,
    sessions: SessionRegistry | None = None,
    prefetch_models: bool = True,
) -> FastAPI:
    """
    Factory pour créer l'application FastAPI.

    Les dépendances sont injectables (tests); par défaut elles sont construites
    depuis `BridgeSettings.from_env()`.

    Returns:
        Instance configurée de FastAPI
    """

    if settings is None:
        settings = BridgeSettings.from_env()
    dispatcher = MCPDispatcher.from_settings(settings, invoker=invoker, model_cache=model_cache, sessions=sessions)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Gestion du cycle de vie de l'application."""
        logger.info("🚀 Bridge MCP opencode sur %s:%s (cible: %s)", settings.host, settings.port, settings.target)
        prefetch = None
        if prefetch_models and dispatcher.model_cache is not None:
            prefetch = asyncio.create_task(_prefetch_models(dispatcher.model_cache))
        yield
        if prefetch is not None and not prefetch.done():
            prefetch.cancel()
            with suppress(asyncio.CancelledError):
                await prefetch
        logger.info("👋 Arrêt du bridge")

    app = FastAPI(
        title="opencode MCP bridge",
        description="Bridge MCP (JSON-RPC / SSE) vers opencode-cli",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.invoker = dispatcher.invoker
    app.state.sessions = dispatcher.sessions
    app.state.model_cache = dispatcher.model_cache

    app.include_router(api_router)

    return app


# Crée l'application pour uvicorn
app = create_app()
