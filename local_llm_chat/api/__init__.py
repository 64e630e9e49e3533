"""HTTP surfaces: the login gate client and the inference gateway application.

The gateway module pulls in FastAPI, so it is not imported here; use
``from local_llm_chat.api.gateway import create_gateway_app``.
"""

from .auth import LoginGate

__all__ = ["LoginGate"]
