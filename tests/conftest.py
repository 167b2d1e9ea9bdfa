"""
Configuration des tests pytest.
"""
import os
import stat
import sys
import textwrap

import pytest

# Ajoute src au path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from opencode_mcp.bridge.invoker import CommandInvoker  # noqa: E402


def pytest_configure(config):
    """Marqueurs du projet."""
    config.addinivalue_line("markers", "unit: test unitaire (aucun réseau, exécutables factices)")
    config.addinivalue_line("markers", "asyncio: marque un test comme asynchrone")


class SpyInvoker(CommandInvoker):
    """Invoker réel qui enregistre chaque lancement."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.starts = []
        self.launched = []

    async def start(self, argv, *, stdin="", cwd=None, timeout_s=None):
        self.starts.append({"argv": list(argv), "stdin": stdin, "cwd": cwd})
        running = await super().start(argv, stdin=stdin, cwd=cwd, timeout_s=timeout_s)
        self.launched.append(running)
        return running


@pytest.fixture
def make_stub(tmp_path):
    """Écrit un exécutable shell factice et retourne son chemin.

    Usage: `make_stub("echo hello")` ou `make_stub(body, name="opencode-cli")`.
    """

    counter = {"n": 0}

    def _make(body: str, name: str = None) -> str:
        counter["n"] += 1
        path = tmp_path / (name or f"stub_{counter['n']}.sh")
        path.write_text("#!/bin/sh\n" + textwrap.dedent(body).lstrip("\n"), encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def spy_invoker_factory():
    def _factory(executable: str, timeout_s: float = 10.0) -> SpyInvoker:
        return SpyInvoker(executable, timeout_s=timeout_s)

    return _factory


@pytest.fixture(autouse=True)
def _isolate_bridge_env(monkeypatch, tmp_path):
    """Aucun test ne lit la config réelle de la machine."""
    for name in (
        "MCP_ADDR",
        "MCP_TARGET",
        "MCP_TIMEOUT_SEC",
        "MCP_DEFAULT_MODEL",
        "MCP_MAX_LINE_BYTES",
        "MCP_MODEL_CACHE_TTL_SEC",
        "MCP_MAX_SESSIONS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MCP_CONFIG_PATH", str(tmp_path / "absent-config.toml"))


OPENCODE_STUB = r"""
case "$1" in
    models)
        printf 'modelA\nmodelB\n'
        ;;
    run)
        for last; do :; done
        echo '{"type":"step_start","part":{}}'
        echo "{\"type\":\"text\",\"part\":{\"text\":\"echo: $last\"}}"
        echo '{"type":"step_finish","part":{"reason":"stop"}}'
        ;;
    fail)
        echo boom >&2
        exit 2
        ;;
    slow)
        echo '{"type":"text","part":{"text":"started"}}'
        sleep 30
        ;;
    *)
        echo "unknown: $*"
        ;;
esac
"""


@pytest.fixture
def opencode_stub(make_stub):
    """Faux `opencode-cli`: models, run, fail (exit 2), slow (bloque 30s)."""
    return make_stub(OPENCODE_STUB, name="opencode-cli")
