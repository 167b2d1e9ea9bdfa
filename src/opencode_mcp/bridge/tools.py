"""opencode_mcp.bridge.tools

Catalogue des outils MCP et construction des vecteurs d'arguments `opencode-cli`.

Toute la validation (outil connu, champs requis, cwd) a lieu ici, avant le
moindre lancement de sous-processus.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..core.exceptions import InvalidToolArguments

JsonDict = dict[str, object]

TOOL_EXEC = "opencode_exec"
TOOL_RUN = "opencode_run"
TOOL_MODELS = "opencode_models"
TOOL_SESSION_LIST = "opencode_session_list"
TOOL_AGENT_LIST = "opencode_agent_list"

# Outils sans argument: relais brut de la sortie
_FIXED_ARGV: dict[str, tuple[str, ...]] = {
    TOOL_MODELS: ("models",),
    TOOL_SESSION_LIST: ("session", "list"),
    TOOL_AGENT_LIST: ("agent", "list"),
}

_EMPTY_SCHEMA: JsonDict = {"type": "object", "properties": {}}

TOOL_DEFINITIONS: list[JsonDict] = [
    {
        "name": TOOL_EXEC,
        "description": "Run any opencode-cli command with custom arguments. Use this for advanced operations.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "args": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Command arguments (e.g., ['run', '--model', 'gpt-4', 'Hello'])",
                },
                "cwd": {"type": "string", "description": "Working directory for the command"},
                "stdin": {"type": "string", "description": "Standard input to pass to the command"},
            },
            "required": ["args"],
        },
    },
    {
        "name": TOOL_RUN,
        "description": (
            "Run AI code assistant with a message. "
            "This is the main tool for code editing, analysis, and generation."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "The message/prompt to send to the AI assistant"},
                "cwd": {"type": "string", "description": "Project directory to work in"},
                "model": {"type": "string", "description": "Model to use (e.g., 'github-copilot/claude-sonnet-4')"},
                "session": {"type": "string", "description": "Session ID to continue a previous conversation"},
                "continue": {"type": "boolean", "description": "Continue the last session"},
                "files": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "File paths to attach to the message for context (relative to cwd or absolute)",
                },
            },
            "required": ["message"],
        },
    },
    {"name": TOOL_MODELS, "description": "List all available AI models", "inputSchema": _EMPTY_SCHEMA},
    {"name": TOOL_SESSION_LIST, "description": "List all saved sessions", "inputSchema": _EMPTY_SCHEMA},
    {"name": TOOL_AGENT_LIST, "description": "List all available agents", "inputSchema": _EMPTY_SCHEMA},
]

TOOL_NAMES = frozenset(str(t["name"]) for t in TOOL_DEFINITIONS)


@dataclass(frozen=True)
class ToolInvocation:
    tool: str
    argv: tuple[str, ...]
    cwd: str | None = None
    stdin: str = ""

    @property
    def structured(self) -> bool:
        """Seul `opencode_run --format json` produit un flux d'événements JSON."""
        return self.tool == TOOL_RUN


def validate_cwd(cwd: str | None) -> str | None:
    """Vérifie qu'un répertoire de travail existe; `None`/vide = répertoire courant."""
    if not cwd:
        return None
    if not os.path.exists(cwd):
        raise InvalidToolArguments(f"invalid cwd: {cwd}: no such file or directory", field="cwd")
    if not os.path.isdir(cwd):
        raise InvalidToolArguments(f"invalid cwd: {cwd}: not a directory", field="cwd")
    return cwd


def _optional_str(args: JsonDict, key: str, tool: str) -> str | None:
    value = args.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidToolArguments(f"invalid arguments: '{key}' must be a string", tool=tool, field=key)
    return value


def _str_list(args: JsonDict, key: str, tool: str) -> list[str]:
    value = args.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidToolArguments(f"invalid arguments: '{key}' must be an array of strings", tool=tool, field=key)
    return list(value)


def _run_argv(args: JsonDict, *, model: str) -> tuple[str, ...]:
    argv = ["run", "--format", "json", "--model", model]
    session = _optional_str(args, "session", TOOL_RUN)
    if session:
        argv += ["--session", session]
    if args.get("continue") is True:
        argv.append("--continue")
    for path in _str_list(args, "files", TOOL_RUN):
        argv += ["--file", path]
    argv.append(str(args["message"]))
    return tuple(argv)


async def build_invocation(
    name: object,
    arguments: object,
    *,
    request_cwd: object = None,
    resolve_model: Callable[[], Awaitable[str]] | None = None,
) -> ToolInvocation:
    """Valide un appel `tools/call` et construit l'invocation correspondante.

    Ordre: outil connu -> champs requis -> cwd -> modèle par défaut.

    Raises:
        InvalidToolArguments: aucun sous-processus ne doit être lancé.
    """

    if not isinstance(name, str) or name not in TOOL_NAMES:
        raise InvalidToolArguments(f"unknown tool: {name}", tool=str(name))

    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise InvalidToolArguments("invalid arguments", tool=name)

    fallback_cwd = request_cwd if isinstance(request_cwd, str) else None

    if name in _FIXED_ARGV:
        cwd = _optional_str(arguments, "cwd", name) or fallback_cwd
        return ToolInvocation(tool=name, argv=_FIXED_ARGV[name], cwd=validate_cwd(cwd))

    if name == TOOL_EXEC:
        exec_args = _str_list(arguments, "args", name)
        if not exec_args:
            raise InvalidToolArguments("missing args", tool=name, field="args")
        stdin = _optional_str(arguments, "stdin", name) or ""
        cwd = _optional_str(arguments, "cwd", name) or fallback_cwd
        return ToolInvocation(tool=name, argv=tuple(exec_args), cwd=validate_cwd(cwd), stdin=stdin)

    # TOOL_RUN
    message = arguments.get("message")
    if not isinstance(message, str) or not message:
        raise InvalidToolArguments("missing message", tool=name, field="message")
    cwd = validate_cwd(_optional_str(arguments, "cwd", name) or fallback_cwd)
    # validation des champs optionnels avant toute résolution de modèle
    _optional_str(arguments, "session", name)
    _str_list(arguments, "files", name)

    model = _optional_str(arguments, "model", name)
    if not model:
        if resolve_model is None:
            raise InvalidToolArguments("missing model", tool=name, field="model")
        model = await resolve_model()
    return ToolInvocation(tool=name, argv=_run_argv(arguments, model=model), cwd=cwd)
