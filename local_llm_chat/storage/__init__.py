"""Durable local storage for conversations and settings."""

from .persistence import ChatPersistence, LocalStore, strip_images_for_storage

__all__ = [
    "ChatPersistence",
    "LocalStore",
    "strip_images_for_storage",
]
