"""Login gate client."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from ..core.config import ClientConfig
from ..state.app_state import AppState

LOGGER = logging.getLogger(__name__)


class LoginGate:
    """POST the shared password to ``<gateway>/api/login``.

    Success marks the state as logged in for the lifetime of the process; no
    token is issued and nothing is persisted. Failures leave the state as is.
    """

    def __init__(
        self,
        state: AppState,
        session: aiohttp.ClientSession,
        config: Optional[ClientConfig] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self._state = state
        self._session = session
        self.config = config or ClientConfig()
        self.logger = logger or LOGGER

    async def login(self, password: str) -> bool:
        timeout = aiohttp.ClientTimeout(total=self.config.MODELS_TIMEOUT_SECONDS)
        try:
            async with self._session.post(
                self.config.login_url,
                json={"password": password},
                timeout=timeout,
            ) as resp:
                if resp.status != 200:
                    self.logger.info("Login rejected (status %s)", resp.status)
                    return False
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            self.logger.warning("Login request failed: %s", str(exc) or type(exc).__name__)
            return False
        if not (isinstance(payload, dict) and payload.get("success") is True):
            return False
        self._state.set_logged_in(True)
        return True
