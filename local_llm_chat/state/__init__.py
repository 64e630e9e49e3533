"""Application state: data model and the observable state container."""

from .models import Attachment, Conversation, Message, Settings
from .app_state import AppState, OperationToken, StateChange

__all__ = [
    "Attachment",
    "Conversation",
    "Message",
    "Settings",
    "AppState",
    "OperationToken",
    "StateChange",
]
