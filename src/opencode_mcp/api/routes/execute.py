"""Routes API: exécution directe (hors MCP).

- `POST /exec`: exécute `opencode-cli <args>` jusqu'au bout, renvoie stdout/stderr/exitCode.
- `POST /exec/stream`: relaie chaque ligne stdout dans une trame SSE `data: <ligne>`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from ...bridge.events import LineTooLong, iter_lines
from ...bridge.invoker import CommandInvoker, RunningCommand
from ...bridge.tools import validate_cwd
from ...core.constants import SSE_MEDIA_TYPE
from ...core.exceptions import CommandLaunchError, InvalidToolArguments

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(content={"ok": False, "error": message}, status_code=status_code)


async def _parse_exec_request(request: Request) -> tuple[list[str], str | None, str]:
    """Valide `{args, cwd?, stdin?}`.

    Raises:
        InvalidToolArguments: corps invalide (-> HTTP 400)
    """
    try:
        body = json.loads(await request.body())
    except ValueError:
        raise InvalidToolArguments("invalid JSON")
    if not isinstance(body, dict):
        raise InvalidToolArguments("invalid JSON")

    args = body.get("args")
    if not isinstance(args, list) or not args or not all(isinstance(a, str) for a in args):
        raise InvalidToolArguments("missing args", field="args")

    cwd = body.get("cwd") if isinstance(body.get("cwd"), str) else None
    stdin = body.get("stdin") if isinstance(body.get("stdin"), str) else ""
    return list(args), validate_cwd(cwd), stdin


@router.post("/exec")
async def exec_command(request: Request):
    invoker: CommandInvoker = request.app.state.invoker
    try:
        args, cwd, stdin = await _parse_exec_request(request)
    except InvalidToolArguments as e:
        return _error(e.message, 400)

    try:
        output = await invoker.run_command(args, stdin=stdin, cwd=cwd)
    except CommandLaunchError as e:
        return _error(e.message, 500)

    payload: dict[str, object] = {
        "ok": output.exit_code == 0,
        "stdout": output.stdout,
        "stderr": output.stderr,
        "exitCode": output.exit_code,
    }
    if output.timed_out:
        payload["error"] = f"command timed out after {invoker.timeout_s:g}s"
    elif output.exit_code != 0:
        payload["error"] = f"command failed: {output.stderr.strip()}"
    return payload


async def _log_stderr(running: RunningCommand) -> None:
    async for line in iter_lines(running.stderr):
        if isinstance(line, LineTooLong):
            continue
        logger.info("[stderr pid=%s] %s", running.pid, line)


async def _stream_stdout(running: RunningCommand, max_line_bytes: int) -> AsyncIterator[bytes]:
    stderr_task = asyncio.create_task(_log_stderr(running))
    try:
        async for line in iter_lines(running.stdout, max_line_bytes=max_line_bytes):
            if isinstance(line, LineTooLong):
                logger.warning("⚠️ Ligne stdout trop longue (%d octets), ignorée", line.size)
                continue
            yield f"data: {line}\n\n".encode("utf-8")
        completion = await running.wait()
        logger.info("✅ /exec/stream terminé: exit=%s", completion.exit_code)
    finally:
        if not running.done:
            await running.terminate()
        if not stderr_task.done():
            stderr_task.cancel()
            with suppress(asyncio.CancelledError):
                await stderr_task


@router.post("/exec/stream")
async def exec_stream(request: Request):
    invoker: CommandInvoker = request.app.state.invoker
    try:
        args, cwd, stdin = await _parse_exec_request(request)
    except InvalidToolArguments as e:
        return _error(e.message, 400)

    try:
        running = await invoker.start(args, stdin=stdin, cwd=cwd)
    except CommandLaunchError as e:
        return _error(e.message, 500)

    return StreamingResponse(
        _stream_stdout(running, request.app.state.settings.max_line_bytes),
        media_type=SSE_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
