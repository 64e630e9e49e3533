"""Core infrastructure module.

Foundation services required by all domains:
- Configuration schemas (ClientConfig, GatewayConfig)
- Error handling classes
- Session logging
- Pure utility functions
"""

from .config import ClientConfig, GatewayConfig, LOGGER
from .errors import InferenceAPIError, NothingToSendError
from .logging_system import SessionLogger
from .utils import (
    _safe_json_loads,
    _render_error_template,
)

__all__ = [
    "ClientConfig",
    "GatewayConfig",
    "LOGGER",
    "InferenceAPIError",
    "NothingToSendError",
    "SessionLogger",
    "_safe_json_loads",
    "_render_error_template",
]
