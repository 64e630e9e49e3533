"""Model directory client."""

from .catalog_manager import ModelDirectory

__all__ = ["ModelDirectory"]
