"""relay-core: a tool-calling orchestration layer over text-generation models."""
from relay_core.core.interfaces import ModelProvider, RemoteToolHost
from relay_core.core.types import (
    AgentEventType,
    AgentFunction,
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatRole,
    FunctionCall,
    ResponseFormat,
    StreamChunk,
)
from relay_core.protocol.orchestration.orchestrator import UnifiedAgent

__version__ = "0.1.0"

__all__ = [
    "AgentEventType",
    "AgentFunction",
    "ChatMessage",
    "ChatOptions",
    "ChatResponse",
    "ChatRole",
    "FunctionCall",
    "ModelProvider",
    "RemoteToolHost",
    "ResponseFormat",
    "StreamChunk",
    "UnifiedAgent",
]
