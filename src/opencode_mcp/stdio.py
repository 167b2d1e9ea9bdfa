"""opencode_mcp.stdio

Transport stdio: JSON-RPC délimité par des sauts de ligne sur stdin/stdout.

- une ligne de requête -> une ligne de réponse (les notifications n'ont pas de réponse)
- mode agrégé uniquement (pas de SSE)
- stdout est réservé au protocole: les logs partent sur stderr
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Callable

from .bridge.events import LineTooLong, iter_lines
from .bridge.rpc import (
    INTERNAL_ERROR,
    PARSE_ERROR,
    MCPDispatcher,
    PreparedToolCall,
    RPCAck,
    execute_tool_call,
    jsonrpc_error,
)
from .config.settings import BridgeSettings

logger = logging.getLogger(__name__)

# Plafond d'une requête entrante
STDIO_MAX_REQUEST_BYTES = 16 * 1024 * 1024

JsonDict = dict[str, object]


async def handle_line(dispatcher: MCPDispatcher, line: str) -> JsonDict | None:
    """Traite une requête; `None` pour une notification (aucune réponse)."""
    try:
        outcome = await dispatcher.handle_body(line)
    except Exception as e:
        logger.exception("❌ Erreur inattendue du dispatcher MCP")
        return jsonrpc_error(code=INTERNAL_ERROR, message=f"internal error: {e}", req_id=None)

    if isinstance(outcome, RPCAck):
        return None
    if not isinstance(outcome, PreparedToolCall):
        return outcome.payload

    try:
        return await execute_tool_call(outcome, max_line_bytes=dispatcher.max_line_bytes)
    except Exception as e:
        logger.exception("❌ Échec de l'invocation %s", outcome.invocation.tool)
        return jsonrpc_error(code=INTERNAL_ERROR, message=f"internal error: {e}", req_id=outcome.request_id)


async def serve_stdio(
    dispatcher: MCPDispatcher,
    reader: asyncio.StreamReader,
    write_line: Callable[[str], None],
) -> None:
    """Boucle requête/réponse jusqu'à EOF sur `reader`."""
    async for line in iter_lines(reader, max_line_bytes=STDIO_MAX_REQUEST_BYTES):
        if isinstance(line, LineTooLong):
            logger.warning("⚠️ Requête stdio trop longue (%d octets), ignorée", line.size)
            response: JsonDict | None = jsonrpc_error(code=PARSE_ERROR, message="invalid JSON", req_id=None)
        else:
            response = await handle_line(dispatcher, line)
        if response is not None:
            write_line(json.dumps(response, ensure_ascii=False))
    logger.info("stdin fermé, arrêt du transport stdio")


async def _connect_stdin_reader() -> asyncio.StreamReader:
    """StreamReader non-bloquant connecté à stdin (binaire)."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=STDIO_MAX_REQUEST_BYTES)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)
    return reader


def _write_stdout_line(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


async def _run(settings: BridgeSettings) -> None:
    dispatcher = MCPDispatcher.from_settings(settings)
    reader = await _connect_stdin_reader()
    await serve_stdio(dispatcher, reader, _write_stdout_line)


def main(settings: BridgeSettings | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if settings is None:
        settings = BridgeSettings.from_env()
    logger.info("🚀 Transport stdio (cible: %s)", settings.target)
    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
