"""Routes API: endpoint MCP.

`POST /mcp` reçoit un JSON-RPC 2.0 et répond:
- en JSON (mode agrégé, par défaut),
- en SSE (`Accept: text/event-stream`) pour `tools/call`: notifications live
  puis réponse JSON-RPC en dernière trame.

Les erreurs JSON-RPC sont toujours renvoyées avec un HTTP 200.

Une déconnexion du client (`http.disconnect`) annule l'invocation en cours,
ce qui tue le groupe de processus, dans les deux modes.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import AsyncIterator, Awaitable

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ...bridge.rpc import (
    EXECUTION_ERROR,
    INTERNAL_ERROR,
    MCPDispatcher,
    PreparedToolCall,
    RPCAck,
    execute_tool_call,
    jsonrpc_error,
    open_tool_stream,
)
from ...core.constants import MCP_SESSION_HEADER, SSE_MEDIA_TYPE
from ...core.exceptions import StreamingUnsupportedError
from ...core.sessions import Session

logger = logging.getLogger(__name__)

router = APIRouter()

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _get_dispatcher(request: Request) -> MCPDispatcher:
    return request.app.state.dispatcher


def _wants_sse(request: Request) -> bool:
    return SSE_MEDIA_TYPE in request.headers.get("accept", "")


def _session_headers(session: Session | None) -> dict[str, str]:
    if session is None:
        return {}
    return {MCP_SESSION_HEADER: session.id}


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def _cancel(task: asyncio.Future) -> None:
    if task.done():
        return
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task


async def _unless_disconnected(request: Request, work: Awaitable[dict]) -> dict | None:
    """Attend `work`; `None` si le client se déconnecte avant (`work` est annulé)."""
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
        if task.done():
            return task.result()
        return None
    finally:
        await _cancel(watcher)
        await _cancel(task)


async def _relay_until_disconnect(request: Request, stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """Relaie le flux SSE tant que le client écoute, même si la commande est muette."""
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    next_chunk: asyncio.Future | None = None
    try:
        while True:
            next_chunk = asyncio.ensure_future(stream.__anext__())
            await asyncio.wait({next_chunk, watcher}, return_when=asyncio.FIRST_COMPLETED)
            if not next_chunk.done():
                logger.info("🔌 Client SSE déconnecté, arrêt de l'invocation")
                return
            try:
                chunk = next_chunk.result()
            except StopAsyncIteration:
                return
            yield chunk
    finally:
        await _cancel(watcher)
        # Annuler la lecture en cours déclenche le `finally` du relais (processus tué)
        if next_chunk is not None:
            await _cancel(next_chunk)
        await stream.aclose()


@router.options("/mcp")
async def mcp_options():
    return Response(
        status_code=204,
        headers={"Allow": "POST, OPTIONS", "Accept": f"application/json, {SSE_MEDIA_TYPE}"},
    )


@router.post("/mcp")
async def mcp_rpc(request: Request):
    """Dispatch JSON-RPC; `tools/call` peut basculer en SSE."""

    dispatcher = _get_dispatcher(request)
    body = await request.body()
    session_id = request.headers.get(MCP_SESSION_HEADER)

    try:
        outcome = await dispatcher.handle_body(body, session_id=session_id)
    except Exception as e:
        logger.exception("❌ Erreur inattendue du dispatcher MCP")
        return JSONResponse(content=jsonrpc_error(code=INTERNAL_ERROR, message=f"internal error: {e}", req_id=None))

    if isinstance(outcome, RPCAck):
        return Response(status_code=202)

    headers = _session_headers(outcome.session)
    if not isinstance(outcome, PreparedToolCall):
        return JSONResponse(content=outcome.payload, headers=headers)

    if _wants_sse(request):
        try:
            stream = await open_tool_stream(outcome, max_line_bytes=dispatcher.max_line_bytes)
        except StreamingUnsupportedError as e:
            return JSONResponse(
                content=jsonrpc_error(code=EXECUTION_ERROR, message=e.message, req_id=outcome.request_id),
                headers=headers,
            )
        logger.info("📡 Streaming SSE de %s (pid=%s)", outcome.invocation.tool, outcome.running.pid)
        return StreamingResponse(
            _relay_until_disconnect(request, stream),
            media_type=SSE_MEDIA_TYPE,
            headers={**headers, **_SSE_HEADERS},
        )

    try:
        payload = await _unless_disconnected(
            request, execute_tool_call(outcome, max_line_bytes=dispatcher.max_line_bytes)
        )
    except Exception as e:
        logger.exception("❌ Échec de l'invocation %s", outcome.invocation.tool)
        payload = jsonrpc_error(code=INTERNAL_ERROR, message=f"internal error: {e}", req_id=outcome.request_id)
    if payload is None:
        logger.info("🔌 Client déconnecté, invocation %s annulée (pid=%s)", outcome.invocation.tool, outcome.running.pid)
        return Response(status_code=204)
    return JSONResponse(content=payload, headers=headers)
