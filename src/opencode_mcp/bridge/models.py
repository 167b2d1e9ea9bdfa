"""opencode_mcp.bridge.models

Cache TTL de la liste des modèles (`opencode-cli models`) et choix du modèle par défaut.

Le cache est un objet injecté (app.state / dispatcher), pas une globale:
les tests peuvent lui substituer un fetcher factice.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Sequence

from ..core.constants import (
    DEFAULT_MODEL,
    MODEL_CACHE_TTL_SEC,
    MODEL_FETCH_TIMEOUT_SEC,
    PREFERRED_MODELS,
    PREFERRED_PROVIDER_PREFIX,
)
from ..core.exceptions import CommandLaunchError
from .invoker import CommandInvoker

logger = logging.getLogger(__name__)

ModelFetcher = Callable[[], Awaitable[list[str]]]


def parse_models_output(output: str) -> list[str]:
    """Extrait les identifiants de modèles (première colonne de chaque ligne)."""
    models: list[str] = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("Available"):
            continue
        parts = line.split()
        if parts:
            models.append(parts[0])
    return models


def select_default_model(
    models: Sequence[str],
    *,
    fallback: str = DEFAULT_MODEL,
    preferred: Sequence[str] = PREFERRED_MODELS,
) -> str:
    """Choisit le meilleur modèle disponible.

    Ordre: préféré exact -> préféré partiel -> premier `github-copilot/` ->
    premier disponible -> `fallback`.
    """
    for wanted in preferred:
        if wanted in models:
            logger.info("Modèle préféré sélectionné: %s", wanted)
            return wanted

    for wanted in preferred:
        for available in models:
            if wanted in available:
                logger.info("Modèle partiel sélectionné: %s", available)
                return available

    for available in models:
        if available.startswith(PREFERRED_PROVIDER_PREFIX):
            logger.info("Premier modèle %s sélectionné: %s", PREFERRED_PROVIDER_PREFIX, available)
            return available

    if models:
        logger.info("Premier modèle disponible sélectionné: %s", models[0])
        return models[0]

    logger.warning("⚠️ Aucun modèle disponible, repli sur %s", fallback)
    return fallback


def cli_model_fetcher(invoker: CommandInvoker, *, timeout_s: float = MODEL_FETCH_TIMEOUT_SEC) -> ModelFetcher:
    """Fetcher basé sur `opencode-cli models`; une erreur donne une liste vide."""

    async def _fetch() -> list[str]:
        try:
            output = await invoker.run_command(["models"], timeout_s=timeout_s)
        except CommandLaunchError as e:
            logger.warning("⚠️ Récupération des modèles impossible: %s", e.message)
            return []
        if output.exit_code != 0:
            logger.warning("⚠️ `models` a échoué (exit=%s): %s", output.exit_code, output.stderr.strip()[:200])
            return []
        return parse_models_output(output.stdout)

    return _fetch


class ModelCache:
    """Liste de modèles mémorisée avec rafraîchissement périodique.

    Double vérification: lecture sans lock, puis re-vérification sous lock avant
    de rafraîchir, pour qu'une rafale d'appels ne lance qu'un seul fetch.
    Une liste vide n'est jamais mise en cache.
    """

    def __init__(self, fetcher: ModelFetcher, *, ttl_s: float = MODEL_CACHE_TTL_SEC) -> None:
        self._fetcher = fetcher
        self._ttl_s = float(ttl_s)
        self._lock = asyncio.Lock()
        self._models: list[str] = []
        self._fetched_at: float = 0.0
        self.refresh_count = 0

    def _fresh(self, ttl_s: float) -> bool:
        return bool(self._models) and (time.monotonic() - self._fetched_at) < ttl_s

    async def get_or_refresh(self, ttl_s: float | None = None) -> list[str]:
        ttl = self._ttl_s if ttl_s is None else float(ttl_s)
        if self._fresh(ttl):
            return list(self._models)

        async with self._lock:
            if self._fresh(ttl):
                return list(self._models)

            models = await self._fetcher()
            self.refresh_count += 1
            if models:
                self._models = list(models)
                self._fetched_at = time.monotonic()
                logger.info("📦 %d modèle(s) en cache", len(models))
            return list(models)

    async def default_model(self, fallback: str = DEFAULT_MODEL) -> str:
        return select_default_model(await self.get_or_refresh(), fallback=fallback)
