"""opencode_mcp.bridge.aggregator

Accumulation du résultat final d'une invocation, en parallèle de l'émission live.

Ordre de composition (contrat vérifié par les tests):
1. texte agrégé
2. section `--- Tool Outputs ---` (si au moins un outil `completed` avec sortie)
3. section `[stderr]` (si stderr non vide)
4. marqueur `[exit code: N]` (si code non nul)
5. marqueur `[timeout after Ns]` (si délai dépassé)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .events import DomainEvent, StepBoundaryEvent, TextEvent, ToolUseEvent

TOOL_OUTPUTS_HEADER = "\n\n--- Tool Outputs ---\n"
STDERR_LABEL = "[stderr]\n"

MilestoneKind = Literal["text", "tool", "step"]


@dataclass(frozen=True)
class Milestone:
    kind: MilestoneKind
    message: str
    text_length: int


@dataclass(frozen=True)
class InvocationResult:
    aggregated_text: str
    tool_outputs: list[str]
    stderr_text: str
    exit_code: int
    failed: bool
    text: str
    timed_out: bool = False
    cancelled: bool = False


def format_tool_output(tool: str, output: str) -> str:
    return f"[Tool: {tool}]\n{output}"


def compose_result_text(
    *,
    text: str,
    tool_outputs: list[str],
    stderr_text: str,
    exit_code: int,
    timed_out: bool = False,
    timeout_s: float | None = None,
) -> str:
    result = text
    if tool_outputs:
        result += TOOL_OUTPUTS_HEADER + "\n\n".join(tool_outputs)
    if stderr_text:
        if result:
            result += "\n\n"
        result += STDERR_LABEL + stderr_text
    if exit_code != 0:
        result += f"\n[exit code: {exit_code}]"
    if timed_out:
        seconds = f"{timeout_s:g}" if timeout_s is not None else "?"
        result += f"\n[timeout after {seconds}s]"
    return result


@dataclass
class ResponseAggregator:
    """État exclusif à une invocation.

    `structured=True`: flux d'événements JSON (`opencode_run`).
    `structured=False`: sortie brute relayée ligne par ligne (autres outils).
    """

    structured: bool = True
    _text_parts: list[str] = field(default_factory=list)
    _text_length: int = 0
    _tool_outputs: list[str] = field(default_factory=list)
    _raw_lines: list[str] = field(default_factory=list)
    _finalized: bool = False

    @property
    def text(self) -> str:
        return "".join(self._text_parts)

    @property
    def tool_outputs(self) -> list[str]:
        return list(self._tool_outputs)

    def add(self, event: DomainEvent, *, raw_line: str | None = None) -> Milestone | None:
        """Intègre un événement; retourne le jalon atteint, s'il y en a un."""

        if raw_line is not None and not self._has_content():
            self._raw_lines.append(raw_line)

        if isinstance(event, TextEvent):
            if not event.content:
                return None
            self._text_parts.append(event.content)
            self._text_length += len(event.content)
            self._raw_lines.clear()
            return Milestone(kind="text", message=event.content, text_length=self._text_length)

        if isinstance(event, ToolUseEvent):
            if event.status != "completed":
                return None
            if isinstance(event.output, str) and event.output:
                self._tool_outputs.append(format_tool_output(event.tool, event.output))
                self._raw_lines.clear()
            return Milestone(kind="tool", message=f"{event.tool} completed", text_length=self._text_length)

        if isinstance(event, StepBoundaryEvent):
            message = f"step_{event.phase}"
            if event.reason:
                message += f": {event.reason}"
            return Milestone(kind="step", message=message, text_length=self._text_length)

        return None

    def _has_content(self) -> bool:
        # La sortie brute ne sert que de repli quand rien n'est exploitable
        return bool(self._text_parts or self._tool_outputs)

    def add_raw_line(self, line: str) -> None:
        self._raw_lines.append(line)

    def _body_text(self) -> str:
        raw_text = "".join(f"{line}\n" for line in self._raw_lines)
        if not self.structured:
            return raw_text
        text = self.text
        if not text and not self._tool_outputs:
            # Aucun contenu exploitable: on rend la sortie brute
            return raw_text
        return text

    def finalize(
        self,
        *,
        stderr_text: str,
        exit_code: int,
        timed_out: bool = False,
        cancelled: bool = False,
        timeout_s: float | None = None,
    ) -> InvocationResult:
        if self._finalized:
            raise RuntimeError("ResponseAggregator déjà finalisé")
        self._finalized = True

        body = self._body_text()
        tool_outputs = self.tool_outputs
        return InvocationResult(
            aggregated_text=body,
            tool_outputs=tool_outputs,
            stderr_text=stderr_text,
            exit_code=exit_code,
            failed=exit_code != 0 or timed_out or cancelled,
            text=compose_result_text(
                text=body,
                tool_outputs=tool_outputs,
                stderr_text=stderr_text,
                exit_code=exit_code,
                timed_out=timed_out,
                timeout_s=timeout_s,
            ),
            timed_out=timed_out,
            cancelled=cancelled,
        )
