"""
Pont streaming: lancement du sous-processus, parsing des événements, notifications SSE.
"""

from .events import (
    TextEvent,
    ToolUseEvent,
    StepBoundaryEvent,
    UnrecognizedEvent,
    LineTooLong,
    iter_lines,
    parse_event_line,
)
from .aggregator import InvocationResult, Milestone, ResponseAggregator, compose_result_text
from .notifier import QueueSSEWriter, SSENotifier, event_notification, sse_frame
from .invoker import CommandInvoker, CommandOutput, Completion, RunningCommand
from .runner import run_invocation
from .tools import TOOL_DEFINITIONS, TOOL_NAMES, ToolInvocation, build_invocation
from .models import ModelCache, cli_model_fetcher, parse_models_output, select_default_model
from .rpc import (
    MCPDispatcher,
    PreparedToolCall,
    RPCAck,
    RPCReply,
    execute_tool_call,
    open_tool_stream,
)

__all__ = [
    # Événements
    "TextEvent",
    "ToolUseEvent",
    "StepBoundaryEvent",
    "UnrecognizedEvent",
    "LineTooLong",
    "iter_lines",
    "parse_event_line",
    # Agrégation
    "InvocationResult",
    "Milestone",
    "ResponseAggregator",
    "compose_result_text",
    # Notifications
    "QueueSSEWriter",
    "SSENotifier",
    "event_notification",
    "sse_frame",
    # Sous-processus
    "CommandInvoker",
    "CommandOutput",
    "Completion",
    "RunningCommand",
    "run_invocation",
    # Outils
    "TOOL_DEFINITIONS",
    "TOOL_NAMES",
    "ToolInvocation",
    "build_invocation",
    # Modèles
    "ModelCache",
    "cli_model_fetcher",
    "parse_models_output",
    "select_default_model",
    # JSON-RPC
    "MCPDispatcher",
    "PreparedToolCall",
    "RPCAck",
    "RPCReply",
    "execute_tool_call",
    "open_tool_stream",
]
