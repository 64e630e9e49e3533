"""Chat client facade.

ChatClient wires the application state, storage and the HTTP collaborators
around a single aiohttp session:

    async with ChatClient() as client:
        if await client.login("secret"):
            await client.refresh_models()
            await client.send("Hello")

Rendering layers subscribe to ``client.state`` and never talk to the pipeline
directly.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional, Sequence

import aiohttp

from .api.auth import LoginGate
from .core.config import ClientConfig
from .core.errors import InferenceAPIError
from .core.logging_system import SessionLogger
from .models.catalog_manager import ModelDirectory
from .requests.orchestrator import RequestOrchestrator, SendResult
from .state.app_state import AppState, StateChange
from .state.models import Attachment, Conversation, Settings
from .storage.persistence import ChatPersistence, LocalStore


class ChatClient:
    """Async context manager owning one HTTP session and the app state."""

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        state: Optional[AppState] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ClientConfig()
        self.logger = logger or SessionLogger.get_logger(__name__)
        self._owns_state = state is None
        self.state = state or AppState(
            ChatPersistence(LocalStore(self.config.STORAGE_DIR, logger=self.logger), logger=self.logger),
            logger=self.logger,
        )
        self._session = session
        self._owns_session = session is None
        self._orchestrator: Optional[RequestOrchestrator] = None
        self._models: Optional[ModelDirectory] = None
        self._login_gate: Optional[LoginGate] = None
        self._started = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "ChatClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _create_http_session(self) -> aiohttp.ClientSession:
        """Return a ClientSession with sane defaults; per-call timeouts are set by callers."""
        connector = aiohttp.TCPConnector(
            limit=10,
            keepalive_timeout=75,
            ttl_dns_cache=300,
        )
        timeout = aiohttp.ClientTimeout(total=None, connect=10)
        return aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            json_serialize=json.dumps,
        )

    async def start(self) -> None:
        if self._started:
            return
        if self._owns_state:
            self.state.load()
        if self._session is None:
            self._session = self._create_http_session()
        self._orchestrator = RequestOrchestrator(self.state, self._session, self.config, logger=self.logger)
        self._models = ModelDirectory(self._session, self.config, logger=self.logger)
        self._login_gate = LoginGate(self.state, self._session, self.config, logger=self.logger)
        self._started = True

    async def close(self) -> None:
        self.state.abandon_operation()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._started = False

    def _require_started(self) -> None:
        if not self._started:
            raise RuntimeError("ChatClient is not started; use 'async with ChatClient()' or call start().")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def login(self, password: str) -> bool:
        self._require_started()
        assert self._login_gate is not None
        return await self._login_gate.login(password)

    async def refresh_models(self) -> list[str]:
        """Reload the model list; failures are logged and yield an empty list."""
        self._require_started()
        assert self._models is not None
        try:
            models = await self._models.list_models()
        except (InferenceAPIError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.logger.warning("Could not load models: %s", str(exc) or type(exc).__name__)
            return []
        self.state.set_models(models, preferred=self.config.MODEL or None)
        return models

    async def send(self, text: str, attachments: Sequence[Attachment] = ()) -> Optional[SendResult]:
        self._require_started()
        assert self._orchestrator is not None
        return await self._orchestrator.send(text, attachments)

    def new_conversation(self) -> Conversation:
        return self.state.create_conversation()

    def select_conversation(self, conversation_id: str) -> None:
        self.state.select_conversation(conversation_id)

    def delete_conversation(self, conversation_id: str) -> None:
        self.state.delete_conversation(conversation_id)

    def update_settings(self, **changes: Any) -> Settings:
        return self.state.update_settings(**changes)

    def subscribe(self, listener: Callable[[StateChange], Any]) -> Callable[[], None]:
        return self.state.subscribe(listener)
