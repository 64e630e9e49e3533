"""Model listing against the gateway.

Listing models is an idempotent GET, so transient network failures are retried
with tenacity. Chat sends are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

import aiohttp
from pydantic import BaseModel, ConfigDict, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.config import ClientConfig
from ..core.errors import InferenceAPIError, _build_inference_api_error, _extract_error_envelope

LOGGER = logging.getLogger(__name__)


class _ModelEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class _ModelList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: List[_ModelEntry] = []
    error: Any = None


class ModelDirectory:
    """Client for ``GET <gateway>/api/models``."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        config: Optional[ClientConfig] = None,
        *,
        logger: Optional[logging.Logger] = None,
        retry_wait_seconds: float = 0.5,
    ):
        self._session = session
        self.config = config or ClientConfig()
        self.logger = logger or LOGGER
        self._retry_wait_seconds = max(0.0, retry_wait_seconds)

    async def list_models(self) -> list[str]:
        """Return the model ids reported by the gateway, in order.

        Raises:
            InferenceAPIError: on a non-2xx status or an error envelope.
            aiohttp.ClientError / asyncio.TimeoutError: after the last attempt.
        """
        timeout = aiohttp.ClientTimeout(total=self.config.MODELS_TIMEOUT_SECONDS)
        retryer = AsyncRetrying(
            stop=stop_after_attempt(self.config.MODELS_FETCH_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self._retry_wait_seconds,
                min=self._retry_wait_seconds,
                max=max(self._retry_wait_seconds, 4),
            ),
            retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError)),
            reraise=True,
        )
        async for attempt in retryer:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self.logger.debug(
                        "Retrying model listing (attempt %d)", attempt.retry_state.attempt_number
                    )
                async with self._session.get(self.config.models_url, timeout=timeout) as resp:
                    body_text = await resp.text()
                    if resp.status >= 400:
                        raise _build_inference_api_error(resp.status, resp.reason or "", body_text)
                    return self._parse(body_text, status=resp.status)
        return []

    def _parse(self, body_text: str, *, status: int) -> list[str]:
        try:
            payload = _ModelList.model_validate_json(body_text)
        except ValidationError as exc:
            raise InferenceAPIError(
                status=status,
                error="The gateway returned an unreadable model list",
                details=str(exc.errors(include_url=False)[:1]),
                raw_body=body_text,
            ) from exc
        if payload.error:
            envelope = _extract_error_envelope(body_text)
            raise InferenceAPIError(
                status=status,
                error=envelope["error"],
                details=envelope["details"],
                raw_body=body_text,
            )
        models = [entry.id for entry in payload.data if entry.id]
        self.logger.debug("Gateway reported %d model(s)", len(models))
        return models
