"""Durable storage for conversations and settings.

This module provides the client's equivalent of per-browser local storage:
- LocalStore: JSON key/value files in one directory, written atomically
- strip_images_for_storage: Drops image payloads, keeping the hadImages marker
- ChatPersistence: Typed load/save of the conversation map and the settings record
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from ..core.config import STORAGE_KEY_CHATS, STORAGE_KEY_SETTINGS
from ..state.models import Conversation, Settings

LOGGER = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalStore:
    """Tiny key/value store persisting each key as ``<dir>/<key>.json``."""

    def __init__(self, directory: str | os.PathLike[str], *, logger: Optional[logging.Logger] = None):
        self.directory = Path(directory).expanduser()
        self.logger = logger or LOGGER

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key or ""):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Any:
        """Return the decoded value for ``key`` or None when absent or unreadable."""
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            self.logger.warning("Could not read %s: %s", path, exc)
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            self.logger.warning("Ignoring corrupt storage entry %s: %s", path, exc)
            return None

    def set(self, key: str, value: Any) -> None:
        """Serialize ``value`` and atomically replace the stored entry."""
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        payload = json.dumps(value, ensure_ascii=False)
        try:
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        with contextlib.suppress(FileNotFoundError):
            self._path(key).unlink()


def strip_images_for_storage(conversations: Mapping[str, Conversation]) -> dict[str, Conversation]:
    """Return a copy of ``conversations`` where no message carries image payloads."""
    return {
        chat_id: chat.with_messages(tuple(message.for_storage() for message in chat.messages))
        for chat_id, chat in conversations.items()
    }


class ChatPersistence:
    """Typed load/save of the conversation map and settings on top of a LocalStore."""

    def __init__(self, store: LocalStore, *, logger: Optional[logging.Logger] = None):
        self.store = store
        self.logger = logger or LOGGER

    def load_conversations(self) -> dict[str, Conversation]:
        raw = self.store.get(STORAGE_KEY_CHATS)
        if not isinstance(raw, dict):
            return {}
        conversations: dict[str, Conversation] = {}
        for chat_id, entry in raw.items():
            if not isinstance(entry, dict):
                continue
            try:
                chat = Conversation.model_validate({**entry, "id": entry.get("id") or chat_id})
            except ValidationError as exc:
                self.logger.warning("Skipping unreadable conversation %s: %s", chat_id, exc)
                continue
            conversations[chat.id] = chat
        return conversations

    def save_conversations(self, conversations: Mapping[str, Conversation]) -> None:
        stripped = strip_images_for_storage(conversations)
        payload = {
            chat_id: chat.model_dump(mode="json", by_alias=True, exclude={"messages": {"__all__": {"images"}}})
            for chat_id, chat in stripped.items()
        }
        self.store.set(STORAGE_KEY_CHATS, payload)

    def load_settings(self) -> Settings:
        raw = self.store.get(STORAGE_KEY_SETTINGS)
        if not isinstance(raw, dict):
            return Settings()
        try:
            return Settings.model_validate(raw)
        except ValidationError as exc:
            self.logger.warning("Stored settings are invalid, using defaults: %s", exc)
            return Settings()

    def save_settings(self, settings: Settings) -> None:
        self.store.set(STORAGE_KEY_SETTINGS, settings.model_dump(mode="json", by_alias=True))
