"""
Gemini Web Client
=================

Async client for the gemini.google.com web app, authenticated with the
``__Secure-1PSID`` / ``__Secure-1PSIDTS`` browser cookies.

Usage:
    async with GeminiWebClient(secure_1psid, secure_1psidts) as client:
        output = await client.generate_content("Hello")
        print(output.text)

        async for chunk in client.generate_content_stream("Tell me a story"):
            print(chunk.text_delta, end="", flush=True)

        chat = client.start_chat(model=Model.G_3_0_FLASH)
        await chat.send_message("Hi")
        await chat.send_message("And then?")
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Sequence

from curl_cffi.requests.exceptions import RequestException, Timeout

from .chat import ChatSession
from .core.config import ClientConfig
from .core.exceptions import (
    ErrorKind,
    GeminiWebError,
    api_error,
    client_closed_error,
    timeout_error,
)
from .gems import GemRegistry
from .models import ChatSessionMetadata, Gem, GemJar, ModelOutput
from .protocol import schema
from .protocol.constants import GEMINI_HEADERS, ErrorCode, Endpoint, Model, RpcId
from .protocol.delta import DeltaReconciler
from .protocol.envelope import RpcCall, RpcResult, decode_batch, dumps, encode_batch
from .protocol.stream import FrameDecoder, iter_frames
from .session import SessionManager
from .upload import upload_files

logger = logging.getLogger("gemini_web.client")

_UPSTREAM_ERRORS: dict[int, tuple[ErrorKind, str]] = {
    ErrorCode.USAGE_LIMIT_EXCEEDED: (
        ErrorKind.USAGE_LIMIT_EXCEEDED,
        "Usage limit exceeded for the selected model",
    ),
    ErrorCode.MODEL_INCONSISTENT: (
        ErrorKind.MODEL_INVALID,
        "Selected model is inconsistent with the one used earlier in this chat",
    ),
    ErrorCode.MODEL_HEADER_INVALID: (
        ErrorKind.MODEL_INVALID,
        "Selected model is unavailable or the model header is invalid",
    ),
    ErrorCode.IP_TEMPORARILY_BLOCKED: (
        ErrorKind.TEMPORARILY_BLOCKED,
        "Your IP address is temporarily blocked by the service",
    ),
}


def upstream_error(code: int) -> GeminiWebError:
    """Map an error code found inside a response frame to an error."""
    kind, message = _UPSTREAM_ERRORS.get(
        code, (ErrorKind.API, "The service reported a temporary error")
    )
    return GeminiWebError(kind, f"{message} (code {code})", details={"upstream_code": code})


@dataclass
class GenerateTurn:
    """Reconciliation state of one generate call."""

    text: DeltaReconciler = field(default_factory=DeltaReconciler)
    thoughts: DeltaReconciler = field(default_factory=DeltaReconciler)
    last_body: Any = None
    final: ModelOutput | None = None
    frames: int = 0

    def absorb(self, raw_body: Any, is_final: bool) -> ModelOutput | None:
        body = schema.parse_generate_body(raw_body, is_final=is_final)
        if body is None or not body.candidates:
            return None

        chosen = body.candidates[0]
        text_delta = self.text.update(chosen.content, is_final)
        thoughts_delta = self.thoughts.update(chosen.thoughts, is_final)
        return ModelOutput(
            text=self.text.last_sent,
            text_delta=text_delta,
            thoughts=self.thoughts.last_sent,
            thoughts_delta=thoughts_delta,
            images=list(chosen.images),
            candidates=body.candidates,
            metadata=body.metadata,
        )


class GeminiWebClient:
    """
    Client for gemini.google.com.

    Every public operation fails fast with ``CLIENT_CLOSED`` once
    ``close()`` has been called, before touching any state or the network.

    Attributes:
        proxy: Optional proxy URL
        config: Effective client configuration
    """

    def __init__(
        self,
        secure_1psid: str,
        secure_1psidts: str | None = None,
        proxy: str | None = None,
        *,
        impersonate: str = "chrome",
        session: Any = None,
        config: ClientConfig | None = None,
    ):
        self.proxy = proxy
        self.config = config or ClientConfig(
            secure_1psid=secure_1psid,
            secure_1psidts=secure_1psidts,
            proxy=proxy,
            impersonate=impersonate,
        )
        self._manager = SessionManager(
            secure_1psid,
            secure_1psidts,
            proxy=proxy,
            impersonate=impersonate,
            timeout=self.config.timeout,
            session=session,
        )
        self._gems = GemRegistry(self)
        self._initialized = False
        self._closed = False

    @classmethod
    def from_config(cls, config: ClientConfig, session: Any = None) -> "GeminiWebClient":
        return cls(
            config.secure_1psid,
            config.secure_1psidts,
            config.proxy,
            impersonate=config.impersonate,
            session=session,
            config=config,
        )

    # -- lifecycle ------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def session(self) -> SessionManager:
        return self._manager

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise client_closed_error(operation)

    async def init(
        self,
        timeout: float | None = None,
        auto_refresh: bool | None = None,
        refresh_interval: float | None = None,
    ) -> None:
        """
        Bootstrap the session and optionally start cookie rotation.

        Arguments left as ``None`` fall back to ``self.config``.
        """
        self._check_open("init")
        timeout = self.config.timeout if timeout is None else timeout
        auto_refresh = self.config.auto_refresh if auto_refresh is None else auto_refresh
        refresh_interval = (
            self.config.refresh_interval if refresh_interval is None else refresh_interval
        )

        await self._manager.initialize(timeout)
        if auto_refresh:
            self._manager.start_auto_refresh(refresh_interval)
        self._initialized = True
        logger.info("Gemini web client initialized")

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.init()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._manager.close()
        logger.debug("Gemini web client closed")

    async def __aenter__(self) -> "GeminiWebClient":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # -- generate -------------------------------------------------------

    def _build_generate_body(
        self,
        prompt: str,
        file_refs: list[list[Any]] | None,
        model: Model,
        gem: Gem | str | None,
        chat: ChatSession | None,
    ) -> dict[str, Any]:
        parameters: dict[str, Any] = {
            "_reqid": str(self._manager.next_request_id()),
            "rt": "c",
        }
        if self._manager.build_label:
            parameters["bl"] = self._manager.build_label
        if self._manager.session_id:
            parameters["sid"] = self._manager.session_id

        body: dict[str, Any] = {
            "input": [prompt, 0, None, file_refs or None, None, None, 0],
            "parameters": parameters,
            "model": model.model_name,
        }
        gem_id = gem.id if isinstance(gem, Gem) else gem
        if gem_id:
            body["gem"] = gem_id
        body["chat"] = chat.continuation() if chat is not None else {}
        return body

    def generate_content_stream(
        self,
        prompt: str,
        files: Sequence[str | Path] | None = None,
        model: Model | str = Model.UNSPECIFIED,
        gem: Gem | str | None = None,
        chat: ChatSession | None = None,
    ) -> AsyncIterator[ModelOutput]:
        """
        Stream a reply as ``ModelOutput`` chunks, one per non-empty delta.

        Stop early with ``break``, ``aclose()`` or by cancelling the task;
        the transfer is torn down and chunks already received stay valid.
        A chat passed in is updated only when the reply completes.
        """
        self._check_open("generate_content_stream")
        if not prompt:
            raise ValueError("prompt must not be empty")
        return self._generate(prompt, files, Model.resolve(model), gem, chat, GenerateTurn())

    async def generate_content(
        self,
        prompt: str,
        files: Sequence[str | Path] | None = None,
        model: Model | str = Model.UNSPECIFIED,
        gem: Gem | str | None = None,
        chat: ChatSession | None = None,
    ) -> ModelOutput:
        """Generate a full reply; ``text``/``thoughts`` hold the final snapshot."""
        self._check_open("generate_content")
        if not prompt:
            raise ValueError("prompt must not be empty")

        turn = GenerateTurn()
        async for _ in self._generate(prompt, files, Model.resolve(model), gem, chat, turn):
            pass
        if turn.final is None:
            raise api_error("Stream ended without a final reply")
        return turn.final

    async def _generate(
        self,
        prompt: str,
        files: Sequence[str | Path] | None,
        model: Model,
        gem: Gem | str | None,
        chat: ChatSession | None,
        turn: GenerateTurn,
    ) -> AsyncIterator[ModelOutput]:
        self._check_open("generate_content")
        await self._ensure_initialized()
        session = await self._manager.ensure_session()

        file_refs = None
        if files:
            file_refs = await upload_files(session, list(files), timeout=self.config.timeout)

        body = self._build_generate_body(prompt, file_refs, model, gem, chat)
        headers = {**GEMINI_HEADERS, "Content-Type": "application/json", **model.model_header}
        decoder = FrameDecoder()

        try:
            async with session.stream(
                "POST",
                Endpoint.GENERATE,
                headers=headers,
                cookies=self._manager.cookies_for(Endpoint.GENERATE),
                data=dumps(body),
                timeout=self.config.timeout,
            ) as response:
                if not 200 <= response.status_code < 300:
                    raise api_error(
                        "Failed to generate contents", status_code=response.status_code
                    )

                async for frame in iter_frames(response.aiter_content(), decoder):
                    code = schema.extract_error_code(frame)
                    if code is not None:
                        raise upstream_error(code)

                    raw_body = schema.find_generate_body(frame)
                    if raw_body is None:
                        continue
                    turn.frames += 1
                    turn.last_body = raw_body

                    output = turn.absorb(raw_body, is_final=False)
                    if output is not None and (output.text_delta or output.thoughts_delta):
                        yield output
        except Timeout as e:
            raise timeout_error("StreamGenerate", cause=e) from e
        except RequestException as e:
            raise api_error(f"Generate stream failed: {e}", cause=e) from e

        if decoder.pairs_skipped:
            logger.debug("Skipped %d malformed frame(s)", decoder.pairs_skipped)
        if turn.last_body is None:
            raise api_error("Stream ended without any reply frame")

        final = turn.absorb(turn.last_body, is_final=True)
        if final is None:
            raise api_error("No reply candidate found in the response")
        turn.final = final

        if chat is not None:
            chat._absorb(final)
        if final.text_delta or final.thoughts_delta:
            yield final

    # -- chats ----------------------------------------------------------

    def start_chat(
        self,
        model: Model | str = Model.UNSPECIFIED,
        gem: Gem | str | None = None,
        metadata: ChatSessionMetadata | None = None,
    ) -> ChatSession:
        """Start a chat, or resume one by passing its ``metadata``."""
        self._check_open("start_chat")
        return ChatSession(self, model=model, gem=gem, metadata=metadata)

    async def delete_chat(self, conversation_id: str) -> None:
        self._check_open("delete_chat")
        await self.batch_execute([RpcCall.build(RpcId.DELETE_CHAT, [conversation_id])])
        logger.debug("Deleted chat %s", conversation_id)

    # -- batchexecute ---------------------------------------------------

    async def batch_execute(self, calls: Sequence[RpcCall]) -> list[RpcResult]:
        """
        Send RPC calls in one batchexecute request.

        Returns:
            Every ``wrb.fr`` result entry of the response, in arrival order
        """
        self._check_open("batch_execute")
        await self._ensure_initialized()
        session = await self._manager.ensure_session()

        params: dict[str, Any] = {
            "rpcids": ",".join(call.rpc_id for call in calls),
            "_reqid": str(self._manager.next_request_id()),
            "rt": "c",
            "source-path": "/app",
        }
        if self._manager.build_label:
            params["bl"] = self._manager.build_label
        if self._manager.session_id:
            params["f.sid"] = self._manager.session_id

        try:
            response = await session.post(
                Endpoint.BATCH_EXEC,
                params=params,
                headers=GEMINI_HEADERS,
                cookies=self._manager.cookies_for(Endpoint.BATCH_EXEC),
                data=encode_batch(calls, self._manager.access_token),
                timeout=self.config.timeout,
            )
        except Timeout as e:
            raise timeout_error("batchexecute", cause=e) from e
        except RequestException as e:
            raise api_error(f"batchexecute failed: {e}", cause=e) from e

        if not 200 <= response.status_code < 300:
            raise api_error(
                "batchexecute request failed",
                status_code=response.status_code,
                response_body=response.text,
            )

        results = decode_batch(response.text)
        for result in results:
            logger.debug("RPC %s answered (identifier=%s)", result.rpc_id, result.identifier)
        return results

    # -- gems -----------------------------------------------------------

    @property
    def gems(self) -> GemJar:
        """Gems from the last ``fetch_gems()``."""
        self._check_open("gems")
        return self._gems.jar

    async def fetch_gems(self, include_hidden: bool = False, language: str | None = None) -> GemJar:
        self._check_open("fetch_gems")
        return await self._gems.fetch(include_hidden, language or self.config.language)

    async def create_gem(self, name: str, prompt: str, description: str = "") -> Gem:
        self._check_open("create_gem")
        return await self._gems.create(name, prompt, description)

    async def update_gem(
        self, gem: Gem | str, name: str, prompt: str, description: str = ""
    ) -> Gem:
        self._check_open("update_gem")
        return await self._gems.update(gem, name, prompt, description)

    async def delete_gem(self, gem: Gem | str) -> None:
        self._check_open("delete_gem")
        await self._gems.delete(gem)


__all__ = ["GeminiWebClient", "GenerateTurn", "upstream_error"]
