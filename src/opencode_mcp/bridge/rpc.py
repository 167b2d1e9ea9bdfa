"""opencode_mcp.bridge.rpc

Dispatcher JSON-RPC 2.0 / MCP, indépendant du transport (HTTP ou stdio).

Le dispatcher ne choisit pas le mode de réponse: pour `tools/call` il valide,
lance le sous-processus et rend un `PreparedToolCall`. Le transport décide
ensuite entre agrégation (`execute_tool_call`) et SSE (`open_tool_stream`).
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import AsyncIterator, Union

from .. import __version__
from ..core.constants import DEFAULT_MAX_LINE_BYTES, DEFAULT_MODEL, MCP_PROTOCOL_VERSION, SERVER_NAME
from ..core.exceptions import CommandLaunchError, InvalidToolArguments, StreamingUnsupportedError
from ..config.settings import BridgeSettings
from ..core.sessions import Session, SessionRegistry
from .aggregator import InvocationResult
from .invoker import CommandInvoker, RunningCommand
from .models import ModelCache, cli_model_fetcher
from .notifier import QueueSSEWriter, SSENotifier
from .runner import run_invocation
from .tools import TOOL_DEFINITIONS, ToolInvocation, build_invocation

logger = logging.getLogger(__name__)

JsonDict = dict[str, object]

# Codes d'erreur JSON-RPC
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
EXECUTION_ERROR = -32000


def jsonrpc_error(*, code: int, message: str, req_id: object | None, data: object | None = None) -> JsonDict:
    error: JsonDict = {"code": int(code), "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": req_id, "error": error}


def jsonrpc_result(*, req_id: object | None, result: object) -> JsonDict:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def tool_result(result: InvocationResult) -> JsonDict:
    return {"content": [{"type": "text", "text": result.text}], "isError": result.failed}


@dataclass(frozen=True)
class RPCReply:
    """Réponse JSON-RPC complète, prête à être sérialisée."""

    payload: JsonDict
    session: Session | None = None


@dataclass(frozen=True)
class RPCAck:
    """Notification (requête sans `id`): accusé de réception sans corps."""

    method: str | None = None


@dataclass(frozen=True)
class PreparedToolCall:
    """`tools/call` validé dont le sous-processus tourne déjà."""

    request_id: object
    invocation: ToolInvocation
    running: RunningCommand
    progress_token: object | None = None
    session: Session | None = None


RPCOutcome = Union[RPCReply, RPCAck, PreparedToolCall]


def _progress_token(params: JsonDict, req_id: object) -> object:
    meta = params.get("_meta")
    if isinstance(meta, dict) and meta.get("progressToken") is not None:
        return meta["progressToken"]
    return req_id


class MCPDispatcher:
    """Machine à états du protocole: initialize, ping, tools/list, tools/call."""

    def __init__(
        self,
        *,
        invoker: CommandInvoker,
        sessions: SessionRegistry,
        model_cache: ModelCache | None = None,
        default_model: str = DEFAULT_MODEL,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    ) -> None:
        self.invoker = invoker
        self.sessions = sessions
        self.model_cache = model_cache
        self.default_model = default_model
        self.max_line_bytes = max_line_bytes

    @classmethod
    def from_settings(
        cls,
        settings: BridgeSettings,
        *,
        invoker: CommandInvoker | None = None,
        model_cache: ModelCache | None = None,
        sessions: SessionRegistry | None = None,
    ) -> "MCPDispatcher":
        """Assemble le dispatcher et ses dépendances (partagé par HTTP et stdio)."""
        if invoker is None:
            invoker = CommandInvoker(settings.target, timeout_s=settings.timeout_s)
        if model_cache is None:
            model_cache = ModelCache(cli_model_fetcher(invoker), ttl_s=settings.model_cache_ttl_s)
        if sessions is None:
            sessions = SessionRegistry(max_sessions=settings.max_sessions)
        return cls(
            invoker=invoker,
            sessions=sessions,
            model_cache=model_cache,
            default_model=settings.default_model,
            max_line_bytes=settings.max_line_bytes,
        )

    async def handle_body(self, body: bytes | str, *, session_id: str | None = None) -> RPCOutcome:
        """Décode le corps brut puis dispatche (`-32700` si ce n'est pas du JSON)."""
        try:
            req_obj: object = json.loads(body)
        except ValueError:
            return RPCReply(jsonrpc_error(code=PARSE_ERROR, message="invalid JSON", req_id=None))
        return await self.handle(req_obj, session_id=session_id)

    async def handle(self, req_obj: object, *, session_id: str | None = None) -> RPCOutcome:
        if not isinstance(req_obj, dict):
            return RPCReply(jsonrpc_error(code=INVALID_REQUEST, message="invalid request", req_id=None))

        method = req_obj.get("method")
        if "id" not in req_obj:
            logger.debug("Notification reçue: %s", method)
            return RPCAck(method=method if isinstance(method, str) else None)

        req_id = req_obj.get("id")
        if not isinstance(method, str) or not method:
            return RPCReply(jsonrpc_error(code=INVALID_REQUEST, message="missing method", req_id=req_id))

        params = req_obj.get("params")
        params_dict: JsonDict = params if isinstance(params, dict) else {}
        session = await self.sessions.get(session_id)

        if method == "initialize":
            session = await self.sessions.create()
            protocol_version = params_dict.get("protocolVersion")
            if not isinstance(protocol_version, str) or not protocol_version:
                protocol_version = MCP_PROTOCOL_VERSION
            return RPCReply(
                jsonrpc_result(
                    req_id=req_id,
                    result={
                        "protocolVersion": protocol_version,
                        "capabilities": {"tools": {}},
                        "serverInfo": {"name": SERVER_NAME, "version": __version__},
                    },
                ),
                session=session,
            )

        if method in {"ping", "notifications/initialized"}:
            return RPCReply(jsonrpc_result(req_id=req_id, result={}), session=session)

        if method == "tools/list":
            return RPCReply(jsonrpc_result(req_id=req_id, result={"tools": TOOL_DEFINITIONS}), session=session)

        if method == "tools/call":
            return await self._prepare_tool_call(req_obj, params_dict, req_id, session)

        return RPCReply(
            jsonrpc_error(code=METHOD_NOT_FOUND, message=f"method not found: {method}", req_id=req_id),
            session=session,
        )

    async def _resolve_model(self) -> str:
        if self.model_cache is None:
            return self.default_model
        return await self.model_cache.default_model(fallback=self.default_model)

    async def _prepare_tool_call(
        self,
        req_obj: JsonDict,
        params: JsonDict,
        req_id: object,
        session: Session | None,
    ) -> RPCOutcome:
        try:
            invocation = await build_invocation(
                params.get("name"),
                params.get("arguments"),
                request_cwd=req_obj.get("cwd"),
                resolve_model=self._resolve_model,
            )
        except InvalidToolArguments as e:
            logger.info("Appel d'outil refusé: %s", e.message)
            return RPCReply(
                jsonrpc_error(code=INVALID_PARAMS, message=e.message, req_id=req_id, data=e.details or None),
                session=session,
            )

        try:
            running = await self.invoker.start(list(invocation.argv), stdin=invocation.stdin, cwd=invocation.cwd)
        except CommandLaunchError as e:
            return RPCReply(jsonrpc_error(code=EXECUTION_ERROR, message=e.message, req_id=req_id), session=session)

        return PreparedToolCall(
            request_id=req_id,
            invocation=invocation,
            running=running,
            progress_token=_progress_token(params, req_id),
            session=session,
        )


async def execute_tool_call(
    call: PreparedToolCall,
    *,
    notifier: SSENotifier | None = None,
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
) -> JsonDict:
    """Mène l'invocation à son terme et rend la réponse JSON-RPC terminale."""
    result = await run_invocation(
        call.running,
        structured=call.invocation.structured,
        notifier=notifier,
        max_line_bytes=max_line_bytes,
    )
    return jsonrpc_result(req_id=call.request_id, result=tool_result(result))


async def open_tool_stream(
    call: PreparedToolCall,
    *,
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    writer: QueueSSEWriter | None = None,
) -> AsyncIterator[bytes]:
    """Démarre la production SSE d'un appel et rend l'itérateur d'octets à servir.

    Raises:
        StreamingUnsupportedError: le writer ne sait pas flusher (processus tué, rien d'écrit).
    """

    writer = writer if writer is not None else QueueSSEWriter()
    try:
        notifier = SSENotifier(writer, progress_token=call.progress_token)
    except StreamingUnsupportedError:
        await call.running.terminate()
        raise

    async def _produce() -> None:
        try:
            try:
                payload = await execute_tool_call(call, notifier=notifier, max_line_bytes=max_line_bytes)
            except Exception as e:
                logger.exception("❌ Échec de l'invocation %s", call.invocation.tool)
                payload = jsonrpc_error(code=INTERNAL_ERROR, message=f"internal error: {e}", req_id=call.request_id)
            await notifier.send_final(payload)
        finally:
            await writer.close()

    task = asyncio.create_task(_produce())
    return _relay(writer, task)


async def _relay(writer: QueueSSEWriter, task: asyncio.Task) -> AsyncIterator[bytes]:
    try:
        async for chunk in writer:
            yield chunk
    finally:
        # Déconnexion de l'appelant: le runner tue le processus en sortant
        if not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
