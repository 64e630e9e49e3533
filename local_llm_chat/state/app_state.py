"""Observable application state.

AppState is the single owner of the conversation map, the active conversation,
the user settings and the session-only flags (login, model list). It replaces
ambient globals with an explicit object:

- Lifecycle: ``load()`` once at startup, every mutation persisted immediately
- Observers: ``subscribe(listener)`` receives one ``StateChange`` per update
- Send operations: ``begin_operation`` hands out an ``OperationToken``; writes
  carrying a stale token are dropped, so an abandoned response can never
  overwrite the state of a conversation the user moved away from

All mutations are full replacements (new Conversation, new message tuple), so
no locking is required on the single event loop.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Sequence

from ..core.config import DEFAULT_CHAT_TITLE
from .models import Conversation, Message, Settings

if TYPE_CHECKING:
    from ..storage.persistence import ChatPersistence

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class StateChange:
    """Notification payload delivered to subscribers.

    ``kind`` is one of: loaded, conversation_created, conversation_selected,
    conversation_deleted, messages, settings, generating, models, login.
    """

    kind: str
    conversation_id: Optional[str] = None


@dataclass(slots=True, frozen=True)
class OperationToken:
    """Identity of one send operation and the conversation it writes to."""

    id: str
    conversation_id: str


Listener = Callable[[StateChange], Any]


class AppState:
    """Owner of conversations, settings and session flags."""

    def __init__(
        self,
        persistence: Optional["ChatPersistence"] = None,
        *,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._persistence = persistence
        self.logger = logger or LOGGER
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._conversations: dict[str, Conversation] = {}
        self._active_id: Optional[str] = None
        self._settings = Settings()
        self._listeners: list[Listener] = []
        self._operation: Optional[OperationToken] = None

        # Session-only; never persisted.
        self.logged_in = False
        self.models: list[str] = []
        self.selected_model: Optional[str] = None

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def conversations(self) -> Mapping[str, Conversation]:
        return MappingProxyType(self._conversations)

    @property
    def active_conversation_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_conversation(self) -> Optional[Conversation]:
        if self._active_id is None:
            return None
        return self._conversations.get(self._active_id)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def is_generating(self) -> bool:
        return self._operation is not None

    @property
    def current_operation(self) -> Optional[OperationToken]:
        return self._operation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    def visible_messages(self, conversation_id: Optional[str] = None) -> tuple[Message, ...]:
        """Messages to render, hiding reasoning entries when the user disabled them."""
        chat = self._conversations.get(conversation_id or self._active_id or "")
        if chat is None:
            return ()
        if self._settings.show_reasoning:
            return chat.messages
        return tuple(message for message in chat.messages if message.role != "reasoning")

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, kind: str, conversation_id: Optional[str] = None) -> None:
        change = StateChange(kind=kind, conversation_id=conversation_id)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                self.logger.exception("State listener failed while handling %s", kind)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def load(self) -> None:
        """Read conversations and settings from storage. Call once at startup."""
        if self._persistence is not None:
            self._conversations = self._persistence.load_conversations()
            self._settings = self._persistence.load_settings()
        if not self._conversations:
            self.create_conversation()
        else:
            latest = max(self._conversations.values(), key=lambda chat: chat.created)
            self._active_id = latest.id
        self.logger.debug("Loaded %d conversation(s)", len(self._conversations))
        self._notify("loaded", self._active_id)

    def persist_conversations(self) -> None:
        if self._persistence is None:
            return
        try:
            self._persistence.save_conversations(self._conversations)
        except OSError:
            self.logger.exception("Failed to persist conversations")

    def _persist_settings(self) -> None:
        if self._persistence is None:
            return
        try:
            self._persistence.save_settings(self._settings)
        except OSError:
            self.logger.exception("Failed to persist settings")

    # -------------------------------------------------------------------------
    # Conversations
    # -------------------------------------------------------------------------

    def _new_conversation_id(self) -> str:
        base = f"chat_{self._clock()}"
        candidate = base
        suffix = 1
        while candidate in self._conversations:
            candidate = f"{base}_{suffix}"
            suffix += 1
        return candidate

    def create_conversation(self) -> Conversation:
        """Create an empty conversation and make it active."""
        self.abandon_operation()
        chat = Conversation(
            id=self._new_conversation_id(),
            title=DEFAULT_CHAT_TITLE,
            messages=(),
            created=self._clock(),
        )
        self._conversations[chat.id] = chat
        self._active_id = chat.id
        self.persist_conversations()
        self._notify("conversation_created", chat.id)
        return chat

    def select_conversation(self, conversation_id: str) -> None:
        if conversation_id not in self._conversations:
            raise KeyError(conversation_id)
        if conversation_id == self._active_id:
            return
        self.abandon_operation()
        self._active_id = conversation_id
        self._notify("conversation_selected", conversation_id)

    def delete_conversation(self, conversation_id: str) -> None:
        if conversation_id not in self._conversations:
            raise KeyError(conversation_id)
        operation = self._operation
        if conversation_id == self._active_id or (
            operation is not None and operation.conversation_id == conversation_id
        ):
            self.abandon_operation()
        del self._conversations[conversation_id]
        if conversation_id == self._active_id:
            self._active_id = next(iter(self._conversations), None)
        self.persist_conversations()
        self._notify("conversation_deleted", conversation_id)
        if self._active_id is None:
            self.create_conversation()

    def replace_messages(
        self,
        conversation_id: str,
        messages: Sequence[Message],
        *,
        token: Optional[OperationToken] = None,
        title: Optional[str] = None,
    ) -> bool:
        """Replace a conversation's message list.

        Returns False without writing when ``token`` is no longer the current
        operation, targets another conversation, or the conversation is gone.
        """
        if token is not None:
            if not self.is_current(token) or token.conversation_id != conversation_id:
                self.logger.debug("Dropping stale write for conversation %s", conversation_id)
                return False
        chat = self._conversations.get(conversation_id)
        if chat is None:
            self.logger.debug("Dropping write for missing conversation %s", conversation_id)
            return False
        self._conversations[conversation_id] = chat.with_messages(tuple(messages), title=title)
        self._notify("messages", conversation_id)
        return True

    # -------------------------------------------------------------------------
    # Send operations
    # -------------------------------------------------------------------------

    def begin_operation(self, conversation_id: str) -> OperationToken:
        """Start a send operation, abandoning whichever one is still running."""
        self.abandon_operation()
        token = OperationToken(id=uuid.uuid4().hex, conversation_id=conversation_id)
        self._operation = token
        self._notify("generating", conversation_id)
        return token

    def is_current(self, token: OperationToken) -> bool:
        return self._operation is not None and self._operation.id == token.id

    def finish_operation(self, token: OperationToken) -> bool:
        if not self.is_current(token):
            return False
        self._operation = None
        self._notify("generating", token.conversation_id)
        return True

    def abandon_operation(self) -> Optional[OperationToken]:
        """Stop accepting writes from the running operation, if any.

        An empty trailing assistant placeholder (and a reasoning entry directly
        before it) is removed so the abandoned conversation never keeps a
        dangling empty reply.
        """
        token = self._operation
        if token is None:
            return None
        self._operation = None
        self.logger.debug("Abandoning operation %s", token.id)
        chat = self._conversations.get(token.conversation_id)
        if chat is not None and chat.messages:
            messages = list(chat.messages)
            last = messages[-1]
            if last.role == "assistant" and not last.content:
                messages.pop()
                if messages and messages[-1].role == "reasoning":
                    messages.pop()
                self._conversations[chat.id] = chat.with_messages(tuple(messages))
                self.persist_conversations()
                self._notify("messages", chat.id)
        self._notify("generating", token.conversation_id)
        return token

    # -------------------------------------------------------------------------
    # Settings & session flags
    # -------------------------------------------------------------------------

    def update_settings(self, **changes: Any) -> Settings:
        """Validate and apply ``changes`` atomically, then persist."""
        unknown = set(changes) - set(Settings.model_fields)
        if unknown:
            raise TypeError(f"Unknown setting(s): {', '.join(sorted(unknown))}")
        updated = self._settings.model_copy()
        for name, value in changes.items():
            setattr(updated, name, value)
        self._settings = updated
        self._persist_settings()
        self._notify("settings")
        return updated

    def set_logged_in(self, value: bool) -> None:
        self.logged_in = bool(value)
        self._notify("login")

    def set_models(self, models: Sequence[str], *, preferred: Optional[str] = None) -> None:
        """Store the available model ids, keeping or choosing a selection."""
        self.models = list(models)
        if preferred and preferred in self.models:
            self.selected_model = preferred
        elif self.selected_model not in self.models:
            self.selected_model = self.models[0] if self.models else None
        self._notify("models")

    def select_model(self, model_id: str) -> None:
        if model_id not in self.models:
            raise KeyError(model_id)
        self.selected_model = model_id
        self._notify("models")
