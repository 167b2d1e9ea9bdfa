"""opencode_mcp.bridge.events

Découpage en lignes et classification du flux stdout d'`opencode-cli run --format json`.

Chaque ligne non vide est décodée en objet JSON puis classée dans un petit
vocabulaire fermé (dataclasses figées). Rien de dynamique ne sort d'ici, sauf
dans la variante de repli `UnrecognizedEvent` qui transporte la ligne brute.

Format attendu (une ligne = un objet):
    {"type": "text", "part": {"text": "..."}}
    {"type": "tool_use", "part": {"tool": "bash", "state": {"status": "completed", "output": "..."}}}
    {"type": "step_start" | "step_finish", "part": {"reason": "..."}}
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Literal, Union

from ..core.constants import DEFAULT_MAX_LINE_BYTES, READ_CHUNK_BYTES

logger = logging.getLogger(__name__)


JsonDict = dict[str, object]
ToolStatus = Literal["in_progress", "completed", "error"]
StepPhase = Literal["start", "finish"]

# Statuts bruts de la CLI -> statut normalisé
_TOOL_STATUS_MAP: dict[str, ToolStatus] = {
    "pending": "in_progress",
    "running": "in_progress",
    "in_progress": "in_progress",
    "completed": "completed",
    "error": "error",
}

_LINE_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class TextEvent:
    content: str


@dataclass(frozen=True)
class ToolUseEvent:
    tool: str
    status: ToolStatus
    input: JsonDict | None = None
    output: object | None = None
    error: object | None = None


@dataclass(frozen=True)
class StepBoundaryEvent:
    phase: StepPhase
    reason: str | None = None


@dataclass(frozen=True)
class UnrecognizedEvent:
    """Repli: ligne non JSON (`data=None`), objet sans type connu, ou ligne trop longue."""

    raw: str
    data: JsonDict | None = None
    error: str | None = None


DomainEvent = Union[TextEvent, ToolUseEvent, StepBoundaryEvent, UnrecognizedEvent]


@dataclass(frozen=True)
class LineTooLong:
    """Marqueur émis par `iter_lines` quand une ligne dépasse le plafond."""

    size: int
    preview: str


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


async def iter_lines(
    reader: asyncio.StreamReader,
    *,
    max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
    chunk_size: int = READ_CHUNK_BYTES,
) -> AsyncIterator[Union[str, LineTooLong]]:
    """Itère les lignes non vides d'un flux, avec un plafond de taille par ligne.

    - Une ligne au-delà de `max_line_bytes` produit un seul `LineTooLong`; le reste
      de la ligne est ignoré jusqu'au prochain `\\n`.
    - Un fragment final sans `\\n` (fermeture brutale) est abandonné.
    """

    buffer = bytearray()
    discarding = False

    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            break
        buffer += chunk

        while True:
            idx = buffer.find(b"\n")
            if idx < 0:
                if not discarding and len(buffer) > max_line_bytes:
                    yield LineTooLong(size=len(buffer), preview=_decode(bytes(buffer[:_LINE_PREVIEW_CHARS])))
                    discarding = True
                if discarding:
                    buffer.clear()
                break

            raw = bytes(buffer[:idx])
            del buffer[: idx + 1]

            if discarding:
                # fin de la ligne trop longue
                discarding = False
                continue

            if len(raw) > max_line_bytes:
                yield LineTooLong(size=len(raw), preview=_decode(raw[:_LINE_PREVIEW_CHARS]))
                continue

            line = _decode(raw).rstrip("\r")
            if line.strip():
                yield line

    if buffer and not discarding:
        logger.debug("Fragment final sans fin de ligne ignoré (%d octets)", len(buffer))


def too_long_event(marker: LineTooLong) -> UnrecognizedEvent:
    return UnrecognizedEvent(raw=marker.preview, data=None, error="line_too_long")


def parse_event_line(line: str) -> DomainEvent:
    """Décode une ligne et la classe. Fonction pure: même ligne, même événement."""

    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        return UnrecognizedEvent(raw=line, data=None, error="invalid_json")

    if not isinstance(obj, dict):
        return UnrecognizedEvent(raw=line, data=None, error="not_an_object")

    return classify_event(obj, raw=line)


def classify_event(obj: JsonDict, *, raw: str) -> DomainEvent:
    event_type = obj.get("type")
    part = obj.get("part")
    if not isinstance(event_type, str) or not isinstance(part, dict):
        return UnrecognizedEvent(raw=raw, data=obj)

    if event_type == "text":
        text = part.get("text")
        if isinstance(text, str):
            return TextEvent(content=text)
        return UnrecognizedEvent(raw=raw, data=obj)

    if event_type == "tool_use":
        return _classify_tool_use(part, obj=obj, raw=raw)

    if event_type in {"step_start", "step_finish"}:
        reason = part.get("reason")
        return StepBoundaryEvent(
            phase="start" if event_type == "step_start" else "finish",
            reason=reason if isinstance(reason, str) else None,
        )

    return UnrecognizedEvent(raw=raw, data=obj)


def _classify_tool_use(part: JsonDict, *, obj: JsonDict, raw: str) -> DomainEvent:
    state = part.get("state")
    if not isinstance(state, dict):
        return UnrecognizedEvent(raw=raw, data=obj)

    status_raw = state.get("status")
    status = _TOOL_STATUS_MAP.get(status_raw) if isinstance(status_raw, str) else None
    if status is None:
        return UnrecognizedEvent(raw=raw, data=obj)

    tool = part.get("tool")
    tool_input = state.get("input")
    return ToolUseEvent(
        tool=tool if isinstance(tool, str) else "unknown",
        status=status,
        input=tool_input if isinstance(tool_input, dict) else None,
        output=state.get("output") if "output" in state else None,
        error=state.get("error") if "error" in state else None,
    )
