"""
Shared pytest fixtures for gemini-web tests

Includes:
    - Wire builders for length-prefixed frame bodies
    - A fake curl_cffi-shaped AsyncSession (get/post/stream/close)
    - Client fixtures wired to the fake session
"""

from contextlib import asynccontextmanager
from typing import Any

import orjson
import pytest

from gemini_web.client import GeminiWebClient
from gemini_web.protocol.constants import Endpoint

APP_PAGE = (
    "<html><script>window.WIZ_global_data = {"
    '"cfb2h":"boq_assistant-bard-web-server_20260101.00_p0",'
    '"FdrFJe":"-1234567890123456789",'
    '"SNlM0e":"AOtoken:1700000000000"'
    "};</script></html>"
)


# =============================================================================
# Wire Builders
# =============================================================================


class Wire:
    """Builders for bodies the service sends."""

    @staticmethod
    def body(*frames: Any, prefix: bool = True) -> bytes:
        lines = [")]}'"] if prefix else []
        for frame in frames:
            payload = frame if isinstance(frame, str) else orjson.dumps(frame).decode()
            lines += [str(len(payload)), payload]
        return ("\n".join(lines) + "\n").encode()

    @staticmethod
    def candidate(rcid: str, text: str, thoughts: str | None = None) -> list[Any]:
        entry: list[Any] = [rcid, [text]]
        if thoughts is not None:
            entry += [None] * (37 - len(entry))
            entry.append([[thoughts]])
        return entry

    @staticmethod
    def generate_frame(
        text: str = "",
        cid: str = "c_1",
        rid: str = "r_1",
        rcid: str = "rc_1",
        thoughts: str | None = None,
        candidates: list[list[Any]] | None = None,
    ) -> list[Any]:
        if candidates is None:
            candidates = [Wire.candidate(rcid, text, thoughts)]
        body = [None, [cid, rid], None, None, candidates]
        return [["wrb.fr", None, orjson.dumps(body).decode()]]

    @staticmethod
    def error_frame(code: int) -> list[Any]:
        return [["wrb.fr", None, None, None, None, [None, None, [[None, [code]]]]]]

    @staticmethod
    def rpc_frame(rpc_id: str, payload: Any, identifier: str | None = None) -> list[Any]:
        entry = ["wrb.fr", rpc_id, orjson.dumps(payload).decode(), None, None, None]
        if identifier is not None:
            entry.append(identifier)
        return [entry]


# =============================================================================
# Fake Transport
# =============================================================================


class FakeCookies(dict):
    """Stands in for curl_cffi's response cookie jar."""


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        text: str | bytes = "",
        chunks: list[bytes] | None = None,
        cookies: dict[str, str] | None = None,
    ):
        self.status_code = status_code
        self.content = text if isinstance(text, bytes) else text.encode()
        self.text = self.content.decode()
        self.cookies = FakeCookies(cookies or {})
        self.chunks = chunks if chunks is not None else [self.content]
        self.chunks_read = 0
        self.stream_closed = False

    async def aiter_content(self):
        for chunk in self.chunks:
            self.chunks_read += 1
            yield chunk


class FakeSession:
    """
    Records every request and answers from per-URL queues.

    The last queued response of a URL is reused once the others are spent.
    An exception queued instead of a response is raised.
    """

    def __init__(self):
        self.routes: dict[str, list[Any]] = {}
        self.requests: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False

    def route(self, url: str, *responses: Any) -> "FakeSession":
        self.routes.setdefault(url, []).extend(responses)
        return self

    def requests_to(self, url: str) -> list[dict[str, Any]]:
        return [kwargs for _, u, kwargs in self.requests if u == url]

    def _respond(self, method: str, url: str, kwargs: dict[str, Any]) -> Any:
        self.requests.append((method, url, kwargs))
        queue = self.routes.get(url)
        if not queue:
            raise AssertionError(f"Unexpected {method} {url}")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        return response

    async def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._respond("GET", url, kwargs)

    async def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._respond("POST", url, kwargs)

    @asynccontextmanager
    async def stream(self, method: str, url: str, **kwargs: Any):
        response = self._respond(method, url, kwargs)
        try:
            yield response
        finally:
            response.stream_closed = True

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def wire() -> type[Wire]:
    return Wire


@pytest.fixture
def fake_session() -> FakeSession:
    """Fake transport that already serves the app page"""
    return FakeSession().route(Endpoint.INIT, FakeResponse(text=APP_PAGE))


@pytest.fixture
def client(fake_session: FakeSession) -> GeminiWebClient:
    """Client wired to the fake transport (not yet initialized)"""
    return GeminiWebClient("test-psid", "test-psidts", session=fake_session)


@pytest.fixture
def serve_generate(fake_session: FakeSession):
    """Queue generate replies made of the given frames"""

    def _serve(*frames: Any, chunks: list[bytes] | None = None) -> FakeResponse:
        response = FakeResponse(text=Wire.body(*frames), chunks=chunks)
        fake_session.route(Endpoint.GENERATE, response)
        return response

    return _serve


@pytest.fixture
def serve_batch(fake_session: FakeSession):
    """Queue a batchexecute reply made of the given frames"""

    def _serve(*frames: Any) -> FakeResponse:
        response = FakeResponse(text=Wire.body(*frames))
        fake_session.route(Endpoint.BATCH_EXEC, response)
        return response

    return _serve
