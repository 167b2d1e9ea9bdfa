"""opencode_mcp.bridge.runner

Pilotage d'une invocation: stdout parsé en continu, stderr drainé en parallèle.

Deux producteurs indépendants:
- tâche stderr -> buffer
- boucle stdout -> (Notifier, Aggregator)

Ils ne se rejoignent qu'à la finalisation. Le délai est appliqué par le watchdog
du `RunningCommand` (processus tué -> pipes fermés -> EOF). En cas d'annulation
(déconnexion de l'appelant), le `finally` tue le processus avant de propager.
"""

from __future__ import annotations

import asyncio
import logging

from ..core.constants import DEFAULT_MAX_LINE_BYTES
from .aggregator import InvocationResult, ResponseAggregator
from .events import LineTooLong, parse_event_line, too_long_event, iter_lines
from .invoker import RunningCommand
from .notifier import SSENotifier

logger = logging.getLogger(__name__)


async def _drain_stream(reader: asyncio.StreamReader) -> str:
    chunks: list[bytes] = []
    while True:
        chunk = await reader.read(64 * 1024)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks).decode("utf-8", errors="replace")


async def run_invocation(
    running: RunningCommand,
    *,
    structured: bool,
    notifier: SSENotifier | None = None,
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
) -> InvocationResult:
    """Consomme la sortie d'un processus démarré jusqu'à sa fin.

    Args:
        running: processus lancé par `CommandInvoker.start`
        structured: True pour parser le flux d'événements JSON (`opencode_run`)
        notifier: émetteur SSE (None en mode agrégé)
        max_line_bytes: plafond d'une ligne stdout

    Returns:
        Le résultat finalisé une seule fois, après la fin du processus.
    """

    aggregator = ResponseAggregator(structured=structured)
    stderr_task = asyncio.create_task(_drain_stream(running.stderr))
    lines_seen = 0

    try:
        async for item in iter_lines(running.stdout, max_line_bytes=max_line_bytes):
            lines_seen += 1

            if isinstance(item, LineTooLong):
                logger.warning("⚠️ Ligne stdout trop longue (%d octets > %d), ignorée", item.size, max_line_bytes)
                event = too_long_event(item)
                if notifier is not None:
                    await notifier.notify_event(event)
                continue

            if not structured:
                aggregator.add_raw_line(item)
                if notifier is not None:
                    await notifier.notify_raw_line(item)
                continue

            event = parse_event_line(item)
            milestone = aggregator.add(event, raw_line=item)
            if notifier is not None:
                await notifier.notify_event(event)
                if milestone is not None:
                    await notifier.notify_milestone(milestone)

        completion = await running.wait()
        stderr_text = await stderr_task
    finally:
        if not running.done:
            await running.terminate()
        if not stderr_task.done():
            stderr_task.cancel()

    logger.info(
        "✅ Processus %s terminé: exit=%s, %d ligne(s) stdout, timeout=%s",
        running.pid,
        completion.exit_code,
        lines_seen,
        completion.timed_out,
    )
    return aggregator.finalize(
        stderr_text=stderr_text,
        exit_code=completion.exit_code,
        timed_out=completion.timed_out,
        cancelled=completion.cancelled,
        timeout_s=running.timeout_s,
    )
