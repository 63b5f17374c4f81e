"""
Tests for GeminiWebClient
"""

import asyncio
from unittest.mock import patch

import orjson
import pytest
from curl_cffi.requests.exceptions import RequestException, Timeout

from gemini_web.client import GeminiWebClient, upstream_error
from gemini_web.core.config import ClientConfig
from gemini_web.core.exceptions import ErrorKind, GeminiWebError
from gemini_web.models import Gem
from gemini_web.protocol.constants import MODEL_HEADER_KEY, PSID_COOKIE, Endpoint, Model, RpcId
from gemini_web.protocol.envelope import RpcCall

from conftest import FakeResponse


def _sent_body(fake_session) -> dict:
    return orjson.loads(fake_session.requests_to(Endpoint.GENERATE)[-1]["data"])


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_initializes_and_closes(self, client, fake_session):
        async with client as c:
            assert c is client
            assert c.session.access_token == "AOtoken:1700000000000"
        assert client.closed

    @pytest.mark.asyncio
    async def test_init_starts_auto_refresh(self, client, fake_session):
        fake_session.route(Endpoint.ROTATE_COOKIES, FakeResponse())
        await client.init(auto_refresh=True, refresh_interval=60)

        assert client.session.auto_refreshing
        await client.close()
        assert not client.session.auto_refreshing

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, client):
        await client.close()
        await client.close()
        assert client.closed

    def test_from_config(self, fake_session):
        config = ClientConfig(secure_1psid="cfg-psid", timeout=12, language="fr")
        client = GeminiWebClient.from_config(config, session=fake_session)

        assert client.config is config
        assert client.session.get_cookies() == {PSID_COOKIE: "cfg-psid"}
        assert client.session.timeout == 12


class TestClosedClient:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "operation",
        [
            lambda c: c.init(),
            lambda c: c.generate_content("hi"),
            lambda c: c.batch_execute([RpcCall("X", "[]")]),
            lambda c: c.delete_chat("c_1"),
            lambda c: c.fetch_gems(),
            lambda c: c.create_gem("n", "p"),
            lambda c: c.update_gem("g", "n", "p"),
            lambda c: c.delete_gem("g"),
        ],
    )
    async def test_async_operations_fail_fast(self, client, fake_session, operation):
        await client.close()

        with pytest.raises(GeminiWebError) as exc_info:
            await operation(client)
        assert exc_info.value.kind is ErrorKind.CLIENT_CLOSED
        assert fake_session.requests == []

    @pytest.mark.asyncio
    async def test_sync_operations_fail_fast(self, client, fake_session):
        await client.close()

        for operation in (
            lambda: client.generate_content_stream("hi"),
            lambda: client.start_chat(),
            lambda: client.gems,
        ):
            with pytest.raises(GeminiWebError) as exc_info:
                operation()
            assert exc_info.value.kind is ErrorKind.CLIENT_CLOSED
        assert fake_session.requests == []

    @pytest.mark.asyncio
    async def test_chat_after_close(self, client, fake_session):
        chat = client.start_chat()
        await client.close()

        with pytest.raises(GeminiWebError) as exc_info:
            await chat.send_message("hi")
        assert exc_info.value.kind is ErrorKind.CLIENT_CLOSED
        assert chat.metadata.conversation_id is None
        assert fake_session.requests == []

    @pytest.mark.asyncio
    async def test_session_manager_after_close(self, client, fake_session):
        await client.init(auto_refresh=False)
        await client.close()

        with patch("gemini_web.session.AsyncSession") as transport:
            for operation in (
                client.session.rotate_cookies,
                client.session.initialize,
                client.session.ensure_session,
            ):
                with pytest.raises(GeminiWebError) as exc_info:
                    await operation()
                assert exc_info.value.kind is ErrorKind.CLIENT_CLOSED
            with pytest.raises(GeminiWebError):
                client.session.start_auto_refresh(1)

        transport.assert_not_called()
        assert fake_session.requests_to(Endpoint.ROTATE_COOKIES) == []


class TestGenerateContent:
    @pytest.mark.asyncio
    async def test_generate_without_final_reply(self, client):
        async def no_replies(*args):
            return
            yield

        with patch.object(client, "_generate", no_replies):
            with pytest.raises(GeminiWebError) as exc_info:
                await client.generate_content("hi")
        assert exc_info.value.kind is ErrorKind.API

    @pytest.mark.asyncio
    async def test_final_snapshot(self, client, serve_generate, wire):
        serve_generate(
            wire.generate_frame("Hello"),
            wire.generate_frame("Hello wor", thoughts="thinking"),
            wire.generate_frame("Hello world", thoughts="thinking done"),
        )
        output = await client.generate_content("Hi")

        assert output.text == "Hello world"
        assert output.thoughts == "thinking done"
        assert output.metadata == {"conversation_id": "c_1", "response_id": "r_1"}
        assert output.candidates[0].finish_reason == "stop"
        assert output.candidates[0].response_id == "rc_1"

    @pytest.mark.asyncio
    async def test_initializes_lazily(self, client, fake_session, serve_generate, wire):
        serve_generate(wire.generate_frame("ok"))
        await client.generate_content("Hi")

        assert len(fake_session.requests_to(Endpoint.INIT)) == 1

    @pytest.mark.asyncio
    async def test_request_body(self, client, fake_session, serve_generate, wire):
        serve_generate(wire.generate_frame("ok"))
        await client.init()
        await client.generate_content("Hi there", model=Model.G_3_0_FLASH, gem=Gem("g-1", "Gem"))

        request = fake_session.requests_to(Endpoint.GENERATE)[-1]
        body = _sent_body(fake_session)
        assert body["input"] == ["Hi there", 0, None, None, None, None, 0]
        assert body["model"] == "gemini-3.0-flash"
        assert body["gem"] == "g-1"
        assert body["chat"] == {}
        assert body["parameters"]["rt"] == "c"
        assert body["parameters"]["sid"] == "-1234567890123456789"
        assert body["parameters"]["bl"].startswith("boq_assistant")
        assert int(body["parameters"]["_reqid"]) > 99999
        assert request["headers"][MODEL_HEADER_KEY].startswith("[1,null,null,null,")
        assert request["headers"]["Content-Type"] == "application/json"
        assert request["cookies"][PSID_COOKIE] == "test-psid"

    @pytest.mark.asyncio
    async def test_request_ids_step(self, client, fake_session, serve_generate, wire):
        serve_generate(wire.generate_frame("ok"))
        for _ in range(3):
            await client.generate_content("Hi")

        ids = [
            int(orjson.loads(r["data"])["parameters"]["_reqid"])
            for r in fake_session.requests_to(Endpoint.GENERATE)
        ]
        assert ids[1] - ids[0] == ids[2] - ids[1] == 100000

    @pytest.mark.asyncio
    async def test_unspecified_model_sends_no_header(self, client, fake_session, serve_generate, wire):
        serve_generate(wire.generate_frame("ok"))
        await client.generate_content("Hi", model="unspecified")

        headers = fake_session.requests_to(Endpoint.GENERATE)[-1]["headers"]
        assert MODEL_HEADER_KEY not in headers
        assert _sent_body(fake_session)["model"] == "unspecified"

    @pytest.mark.asyncio
    async def test_unknown_model_name(self, client):
        with pytest.raises(ValueError):
            await client.generate_content("Hi", model="gpt-9")

    @pytest.mark.asyncio
    async def test_empty_prompt(self, client):
        with pytest.raises(ValueError):
            await client.generate_content("")

    @pytest.mark.asyncio
    async def test_files_are_uploaded(self, client, fake_session, serve_generate, wire, tmp_path):
        attachment = tmp_path / "notes.txt"
        attachment.write_text("hello")
        fake_session.route(Endpoint.UPLOAD, FakeResponse(text="/contrib_service/ref_1"))
        serve_generate(wire.generate_frame("ok"))

        await client.generate_content("Summarize", files=[attachment])

        assert _sent_body(fake_session)["input"][3] == [[["/contrib_service/ref_1"], "notes.txt"]]
        upload = fake_session.requests_to(Endpoint.UPLOAD)[0]
        assert upload["headers"]["Push-ID"] == "feeds/mcudyrk2a4khkz"


class TestGenerateErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "code, kind",
        [
            (1037, ErrorKind.USAGE_LIMIT_EXCEEDED),
            (1050, ErrorKind.MODEL_INVALID),
            (1052, ErrorKind.MODEL_INVALID),
            (1060, ErrorKind.TEMPORARILY_BLOCKED),
            (1013, ErrorKind.API),
        ],
    )
    async def test_upstream_codes(self, client, serve_generate, wire, code, kind):
        serve_generate(wire.error_frame(code))

        with pytest.raises(GeminiWebError) as exc_info:
            await client.generate_content("Hi")
        assert exc_info.value.kind is kind
        assert exc_info.value.details["upstream_code"] == code

    def test_unknown_upstream_code(self):
        assert upstream_error(9999).kind is ErrorKind.API

    @pytest.mark.asyncio
    async def test_bad_status(self, client, fake_session):
        fake_session.route(Endpoint.GENERATE, FakeResponse(status_code=400))

        with pytest.raises(GeminiWebError) as exc_info:
            await client.generate_content("Hi")
        assert exc_info.value.kind is ErrorKind.API
        assert exc_info.value.details["status_code"] == 400

    @pytest.mark.asyncio
    async def test_stream_without_reply(self, client, serve_generate):
        serve_generate([["di", 12]], [["af.httprm", 12, "-1", 3]])

        with pytest.raises(GeminiWebError) as exc_info:
            await client.generate_content("Hi")
        assert exc_info.value.kind is ErrorKind.API

    @pytest.mark.asyncio
    async def test_malformed_envelope(self, client, fake_session):
        fake_session.route(Endpoint.GENERATE, FakeResponse(text="<html>error</html>"))

        with pytest.raises(GeminiWebError) as exc_info:
            await client.generate_content("Hi")
        assert exc_info.value.kind is ErrorKind.API

    @pytest.mark.asyncio
    async def test_timeout(self, client, fake_session):
        fake_session.route(Endpoint.GENERATE, Timeout("deadline"))

        with pytest.raises(GeminiWebError) as exc_info:
            await client.generate_content("Hi")
        assert exc_info.value.kind is ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_transport_failure(self, client, fake_session):
        fake_session.route(Endpoint.GENERATE, RequestException("reset"))

        with pytest.raises(GeminiWebError) as exc_info:
            await client.generate_content("Hi")
        assert exc_info.value.kind is ErrorKind.API


class TestGenerateStream:
    @pytest.mark.asyncio
    async def test_deltas(self, client, serve_generate, wire):
        serve_generate(
            wire.generate_frame("Hello"),
            wire.generate_frame("Hello"),
            wire.generate_frame("Hello world"),
        )
        chunks = [chunk async for chunk in client.generate_content_stream("Hi")]

        assert [c.text_delta for c in chunks] == ["Hello", " world"]
        assert chunks[-1].text == "Hello world"

    @pytest.mark.asyncio
    async def test_final_frame_restores_artifact(self, client, serve_generate, wire):
        serve_generate(wire.generate_frame("Price: 5 \\*"))
        chunks = [chunk async for chunk in client.generate_content_stream("Hi")]

        assert "".join(c.text_delta for c in chunks) == "Price: 5 \\*"

    @pytest.mark.asyncio
    async def test_thought_deltas(self, client, serve_generate, wire):
        serve_generate(
            wire.generate_frame("", thoughts="Let me"),
            wire.generate_frame("Answer", thoughts="Let me think"),
        )
        chunks = [chunk async for chunk in client.generate_content_stream("Hi")]

        assert [c.thoughts_delta for c in chunks] == ["Let me", " think"]
        assert [c.text_delta for c in chunks] == ["", "Answer"]

    @pytest.mark.asyncio
    async def test_malformed_frames_skipped(self, client, fake_session, wire):
        good = wire.body(wire.generate_frame("A"), wire.generate_frame("AB"))
        body = good + b"7\n{broken\n"
        fake_session.route(Endpoint.GENERATE, FakeResponse(text=body))

        chunks = [chunk async for chunk in client.generate_content_stream("Hi")]
        assert "".join(c.text_delta for c in chunks) == "AB"

    @pytest.mark.asyncio
    async def test_break_tears_down_transfer(self, client, serve_generate, wire):
        frames = [wire.generate_frame("a" * i) for i in range(1, 6)]
        chunks = [wire.body(frames[0])] + [wire.body(f, prefix=False) for f in frames[1:]]
        response = serve_generate(*frames, chunks=chunks)

        received = []
        stream = client.generate_content_stream("Hi")
        async for chunk in stream:
            received.append(chunk)
            break
        await stream.aclose()

        assert [c.text_delta for c in received] == ["a"]
        assert response.stream_closed
        assert response.chunks_read == 1

    @pytest.mark.asyncio
    async def test_cancellation(self, client, fake_session, wire):
        release = asyncio.Event()

        class SlowResponse(FakeResponse):
            async def aiter_content(self):
                yield wire.body(wire.generate_frame("first"))
                await release.wait()
                yield b"never"

        response = SlowResponse()
        fake_session.route(Endpoint.GENERATE, response)
        received = []

        async def consume():
            async for chunk in client.generate_content_stream("Hi"):
                received.append(chunk)

        task = asyncio.create_task(consume())
        while not received:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert [c.text for c in received] == ["first"]
        assert response.stream_closed


class TestBatchExecute:
    @pytest.mark.asyncio
    async def test_request_and_results(self, client, fake_session, serve_batch, wire):
        serve_batch(wire.rpc_frame("A", [1]), wire.rpc_frame("B", {"x": 2}))
        results = await client.batch_execute(
            [RpcCall.build("A", []), RpcCall.build("B", [None])]
        )

        assert [r.rpc_id for r in results] == ["A", "B"]
        assert results[1].json() == {"x": 2}

        request = fake_session.requests_to(Endpoint.BATCH_EXEC)[0]
        assert request["params"]["rpcids"] == "A,B"
        assert request["params"]["f.sid"] == "-1234567890123456789"
        assert request["data"].startswith("f.req=")
        assert request["data"].endswith("&at=AOtoken%3A1700000000000")

    @pytest.mark.asyncio
    async def test_bad_status(self, client, fake_session):
        fake_session.route(Endpoint.BATCH_EXEC, FakeResponse(status_code=500, text="oops"))

        with pytest.raises(GeminiWebError) as exc_info:
            await client.batch_execute([RpcCall.build("A", [])])
        assert exc_info.value.kind is ErrorKind.API

    @pytest.mark.asyncio
    async def test_delete_chat(self, client, fake_session, serve_batch, wire):
        serve_batch(wire.rpc_frame(RpcId.DELETE_CHAT, []))
        await client.delete_chat("c_42")

        data = fake_session.requests_to(Endpoint.BATCH_EXEC)[0]["data"]
        assert RpcId.DELETE_CHAT in data
        assert "c_42" in data
