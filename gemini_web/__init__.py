"""
gemini-web v0.1.0
=================

Async client for the gemini.google.com web app, authenticated with the
browser's ``__Secure-1PSID`` / ``__Secure-1PSIDTS`` cookies.

Architecture:
    - Session: cookie store, app-page bootstrap, cookie rotation
    - Protocol: batchexecute envelope, length-prefixed frame stream,
      positional frame schema, snapshot-to-delta reconciliation
    - Client: generate (streaming and not), chats, gems

Usage:
    from gemini_web import GeminiWebClient, Model

    async with GeminiWebClient(secure_1psid, secure_1psidts) as client:
        chat = client.start_chat(model=Model.G_3_0_FLASH)
        async for chunk in chat.send_message_stream("Hello"):
            print(chunk.text_delta, end="")
"""

__version__ = "0.1.0"

from .chat import ChatSession, ChatState
from .client import GeminiWebClient
from .core import (
    ClientConfig,
    ErrorKind,
    GeminiWebError,
    configure_logging,
    get_logger,
    load_config,
)
from .gems import GemRegistry
from .models import (
    Candidate,
    ChatSessionMetadata,
    Gem,
    GemJar,
    Image,
    ImageKind,
    ModelOutput,
)
from .protocol import Model, RpcCall, RpcId, RpcResult

__all__ = [
    "__version__",
    "GeminiWebClient",
    "ChatSession",
    "ChatState",
    "GemRegistry",
    "ClientConfig",
    "ErrorKind",
    "GeminiWebError",
    "configure_logging",
    "get_logger",
    "load_config",
    "Candidate",
    "ChatSessionMetadata",
    "Gem",
    "GemJar",
    "Image",
    "ImageKind",
    "ModelOutput",
    "Model",
    "RpcCall",
    "RpcId",
    "RpcResult",
]
