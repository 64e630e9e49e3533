"""Local LLM chat client.

This package provides a chat client for local OpenAI-compatible inference
servers, including:
- Streaming ingestion: SSE parsing, [THINK] reasoning split, message projection
- Application state: conversations, settings, observers, durable storage
- Request orchestration: per-send lifecycle with stale-write suppression
- Gateway: FastAPI proxy with login, model listing and chat relay

IMPORTANT: This module uses LAZY LOADING. Attributes are imported on first
access via __getattr__, so importing the package does not pull in FastAPI.
"""

from typing import TYPE_CHECKING

try:
    from importlib.metadata import version as _get_version
    __version__ = _get_version("local-llm-chat")
except Exception:
    __version__ = "0.1.0"  # Fallback if not installed as package

# -----------------------------------------------------------------------------
# Type hints only (no runtime import)
# -----------------------------------------------------------------------------

if TYPE_CHECKING:
    from .client import ChatClient
    from .core.config import ClientConfig, GatewayConfig
    from .core.errors import InferenceAPIError, NothingToSendError
    from .core.logging_system import SessionLogger
    from .state.models import Attachment, Conversation, Message, Settings
    from .state.app_state import AppState, OperationToken, StateChange
    from .storage.persistence import ChatPersistence, LocalStore
    from .streaming.sse_parser import ChunkReassembler, EventFrameDecoder, SSEParser
    from .streaming.reasoning_tracker import AccumulatedText, DeltaAccumulator
    from .streaming.projector import ConversationProjector
    from .requests.orchestrator import RequestOrchestrator, SendResult
    from .models.catalog_manager import ModelDirectory
    from .api.auth import LoginGate
    from .api.gateway import create_gateway_app


# -----------------------------------------------------------------------------
# Public API - All lazy loaded
# -----------------------------------------------------------------------------

__all__ = [
    "__version__",
    "ChatClient",
    "ClientConfig",
    "GatewayConfig",
    "InferenceAPIError",
    "NothingToSendError",
    "SessionLogger",
    "Attachment",
    "Conversation",
    "Message",
    "Settings",
    "AppState",
    "OperationToken",
    "StateChange",
    "ChatPersistence",
    "LocalStore",
    "ChunkReassembler",
    "EventFrameDecoder",
    "SSEParser",
    "AccumulatedText",
    "DeltaAccumulator",
    "ConversationProjector",
    "RequestOrchestrator",
    "SendResult",
    "ModelDirectory",
    "LoginGate",
    "create_gateway_app",
]

_cache: dict = {}

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "ChatClient": (".client", "ChatClient"),

    # Core
    "ClientConfig": (".core.config", "ClientConfig"),
    "GatewayConfig": (".core.config", "GatewayConfig"),
    "InferenceAPIError": (".core.errors", "InferenceAPIError"),
    "NothingToSendError": (".core.errors", "NothingToSendError"),
    "SessionLogger": (".core.logging_system", "SessionLogger"),

    # State
    "Attachment": (".state.models", "Attachment"),
    "Conversation": (".state.models", "Conversation"),
    "Message": (".state.models", "Message"),
    "Settings": (".state.models", "Settings"),
    "AppState": (".state.app_state", "AppState"),
    "OperationToken": (".state.app_state", "OperationToken"),
    "StateChange": (".state.app_state", "StateChange"),

    # Storage
    "ChatPersistence": (".storage.persistence", "ChatPersistence"),
    "LocalStore": (".storage.persistence", "LocalStore"),

    # Streaming
    "ChunkReassembler": (".streaming.sse_parser", "ChunkReassembler"),
    "EventFrameDecoder": (".streaming.sse_parser", "EventFrameDecoder"),
    "SSEParser": (".streaming.sse_parser", "SSEParser"),
    "AccumulatedText": (".streaming.reasoning_tracker", "AccumulatedText"),
    "DeltaAccumulator": (".streaming.reasoning_tracker", "DeltaAccumulator"),
    "ConversationProjector": (".streaming.projector", "ConversationProjector"),

    # Requests
    "RequestOrchestrator": (".requests.orchestrator", "RequestOrchestrator"),
    "SendResult": (".requests.orchestrator", "SendResult"),

    # HTTP collaborators
    "ModelDirectory": (".models.catalog_manager", "ModelDirectory"),
    "LoginGate": (".api.auth", "LoginGate"),
    "create_gateway_app": (".api.gateway", "create_gateway_app"),
}


def __getattr__(name: str):
    """Lazy-load module attributes on first access."""
    if name in _cache:
        return _cache[name]

    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        import importlib
        module = importlib.import_module(module_path, __name__)
        value = getattr(module, attr_name)
        _cache[name] = value
        globals()[name] = value
        return value

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
