"""opencode_mcp.bridge.notifier

Émission live des événements sous forme de notifications MCP en trames SSE.

Une trame = `data: <json>\\n\\n`, suivie d'un flush immédiat. L'ordre des trames
suit l'ordre des lignes stdout; la trame d'un événement précède celle du jalon
qu'il déclenche. Aucune mise en lot entre lignes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Protocol

from ..core.constants import NOTIFICATION_LOGGER, SSE_QUEUE_MAX_FRAMES
from ..core.exceptions import StreamingUnsupportedError
from .aggregator import Milestone
from .events import DomainEvent, StepBoundaryEvent, TextEvent, ToolUseEvent, UnrecognizedEvent

logger = logging.getLogger(__name__)

JsonDict = dict[str, object]


class SSEWriter(Protocol):
    def write(self, data: str) -> None: ...

    async def flush(self) -> None: ...


def sse_frame(payload: object) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _notification(method: str, params: JsonDict) -> JsonDict:
    return {"jsonrpc": "2.0", "method": method, "params": params}


def raw_line_notification(line: str) -> JsonDict:
    return _notification("notifications/progress", {"data": line})


def event_notification(event: DomainEvent) -> JsonDict:
    """Traduit un événement du domaine en enveloppe de notification MCP."""

    if isinstance(event, UnrecognizedEvent):
        if event.data is None:
            return raw_line_notification(event.raw)
        event_type = event.data.get("type")
        return _message(event_type if isinstance(event_type, str) else "unknown", event.data)

    if isinstance(event, TextEvent):
        return _message("text", event.content)

    if isinstance(event, ToolUseEvent):
        data: JsonDict = {"tool": event.tool, "status": event.status}
        if event.input is not None:
            data["input"] = event.input
        if event.output is not None:
            data["output"] = event.output
        if event.error is not None:
            data["error"] = event.error
        level = "error" if event.status == "error" else "info"
        return _message("tool_use", data, level=level)

    if isinstance(event, StepBoundaryEvent):
        step_type = f"step_{event.phase}"
        return _message(step_type, {"type": step_type, "reason": event.reason})

    raise TypeError(f"Événement inconnu: {event!r}")


def _message(event_type: str, data: object, *, level: str = "info") -> JsonDict:
    return _notification(
        "notifications/message",
        {"level": level, "logger": NOTIFICATION_LOGGER, "type": event_type, "data": data},
    )


class SSENotifier:
    """Écrit les notifications d'une invocation sur un writer flushable.

    Échoue à la construction (avant toute écriture) si le writer ne sait pas flusher.
    """

    def __init__(self, writer: SSEWriter, *, progress_token: object | None = None) -> None:
        if not callable(getattr(writer, "flush", None)):
            raise StreamingUnsupportedError(writer=type(writer).__name__)
        self._writer = writer
        self._progress_token = progress_token
        self._progress = 0
        self.frames_sent = 0

    async def _emit(self, payload: object) -> None:
        self._writer.write(sse_frame(payload))
        await self._writer.flush()
        self.frames_sent += 1

    async def notify_event(self, event: DomainEvent) -> None:
        await self._emit(event_notification(event))

    async def notify_raw_line(self, line: str) -> None:
        await self._emit(raw_line_notification(line))

    async def notify_milestone(self, milestone: Milestone) -> None:
        self._progress += 1
        await self._emit(
            _notification(
                "notifications/progress",
                {
                    "progressToken": self._progress_token,
                    "progress": self._progress,
                    "message": milestone.message,
                },
            )
        )

    async def send_final(self, payload: JsonDict) -> None:
        """Trame terminale: la réponse JSON-RPC elle-même."""
        logger.debug("Trame terminale après %d notification(s)", self.frames_sent)
        await self._emit(payload)


class QueueSSEWriter:
    """Pont entre le notifier et un `StreamingResponse` Starlette.

    `write` accumule, `flush` transmet les octets à l'itérateur de réponse,
    `close` termine l'itération. La queue est bornée: un client lent fait
    attendre `flush`, donc la lecture de stdout, donc le processus (pipe plein).
    `close` ne bloque jamais: si la queue est pleine, l'itérateur s'arrête
    une fois la queue vidée.
    """

    def __init__(self, max_frames: int = SSE_QUEUE_MAX_FRAMES) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=max_frames)
        self._buffer: list[str] = []
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def write(self, data: str) -> None:
        if self._closed:
            raise RuntimeError("QueueSSEWriter fermé")
        self._buffer.append(data)

    def _take_buffer(self) -> bytes | None:
        if not self._buffer:
            return None
        chunk = "".join(self._buffer).encode("utf-8")
        self._buffer.clear()
        return chunk

    async def flush(self) -> None:
        chunk = self._take_buffer()
        if chunk is not None:
            await self._queue.put(chunk)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        pending = self._take_buffer()
        if pending is not None:
            if self._queue.full():
                logger.debug("Queue SSE pleine à la fermeture, dernière trame abandonnée")
            else:
                self._queue.put_nowait(pending)
        # Queue pleine: l'itérateur s'arrête de lui-même une fois la queue vidée
        if not self._queue.full():
            self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        while True:
            if self._closed and self._queue.empty():
                return
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk
