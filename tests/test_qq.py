from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any

import anyio
import httpx
import msgspec
import pytest
from anyio.lowlevel import checkpoint
from websockets.asyncio.server import ServerConnection, serve

from botmaid.adapter import DecodeError, ProtocolError, PullConfig, TransportError
from botmaid.model import DELETE, Chat, Update, outbound
from botmaid.qq import QQAdapter, parse_event
from botmaid.qq import api_models as api
from botmaid.qq.parsing import cq_code, message_text, parse_segments


def _adapter(handler, **kwargs: Any) -> QQAdapter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return QQAdapter(
        "http://127.0.0.1:5700/",
        "ws://127.0.0.1:6700/event",
        http_client=client,
        **kwargs,
    )


def _event(**fields: Any) -> api.Event:
    return msgspec.convert(fields, type=api.Event)


def test_parse_segments_splits_cq_codes() -> None:
    segments = parse_segments("hi [CQ:image,file=a.jpg,url=http://x/a&#44;b]!")

    assert [s.type for s in segments] == ["text", "image", "text"]
    assert segments[1].data == {"file": "a.jpg", "url": "http://x/a,b"}
    assert segments[1].raw == "[CQ:image,file=a.jpg,url=http://x/a&#44;b]"


def test_message_text_normalizes_segments() -> None:
    raw = "&#91;hi&#93; [CQ:at,qq=123] [CQ:reply,id=5]yo [CQ:face,id=1]"

    assert message_text(raw) == "[hi] [CQ:at,qq=123] yo [CQ:face,id=1]"


def test_cq_code_escapes_values() -> None:
    assert cq_code("image", file="a,b[1].png") == "[CQ:image,file=a&#44;b&#91;1&#93;.png]"


def test_parse_group_event_prefers_card() -> None:
    update = parse_event(
        _event(
            post_type="message",
            time=1_700_000_000,
            message_type="group",
            message_id=88,
            user_id=10001,
            group_id=20002,
            raw_message="/ping",
            sender={"user_id": 10001, "nickname": "nick", "card": "card"},
        )
    )

    assert update is not None
    assert update.id == 88
    assert update.chat == Chat(id=20002, type="group")
    assert update.user is not None
    assert update.user.nick_name == "card"
    assert update.user.user_name == "10001"
    assert update.message is not None
    assert update.message.text == "/ping"


def test_parse_private_event_uses_sender_as_chat() -> None:
    update = parse_event(
        _event(
            post_type="message",
            message_type="private",
            message_id=1,
            user_id=10001,
            raw_message="hello",
            sender={"nickname": "nick"},
        )
    )

    assert update is not None
    assert update.chat == Chat(id=10001, type="private")
    assert update.user is not None
    assert update.user.nick_name == "nick"


def test_non_message_events_are_ignored() -> None:
    assert parse_event(_event(post_type="meta_event")) is None
    assert parse_event(_event(post_type="notice", user_id=1)) is None


@pytest.mark.anyio
async def test_push_text_to_group() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200, json={"status": "ok", "retcode": 0, "data": {"message_id": 321}}
        )

    adapter = _adapter(handler, access_token="secret")
    sent = await adapter.push(
        outbound(Update(chat=Chat(id=20002, type="group")), "hello [CQ:at,qq=1]")
    )

    assert sent is not None
    assert sent.id == 321
    assert requests[0].url.path == "/send_msg"
    assert requests[0].headers["Authorization"] == "Bearer secret"
    assert json.loads(requests[0].content) == {
        "message_type": "group",
        "group_id": 20002,
        "message": "hello [CQ:at,qq=1]",
        "auto_escape": False,
    }


@pytest.mark.anyio
async def test_push_local_image_as_base64(tmp_path: Path) -> None:
    image = tmp_path / "cat.png"
    image.write_bytes(b"PNG")
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"status": "ok", "data": {"message_id": 1}})

    adapter = _adapter(handler)
    await adapter.push(
        outbound(Update(chat=Chat(id=10001, type="private")), image=str(image))
    )

    encoded = base64.b64encode(b"PNG").decode("ascii")
    assert bodies[0]["user_id"] == 10001
    assert bodies[0]["message"] == f"[CQ:image,file=base64://{encoded}]"


@pytest.mark.anyio
async def test_push_remote_audio_as_record() -> None:
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"status": "async", "retcode": 1})

    adapter = _adapter(handler)
    sent = await adapter.push(
        outbound(
            Update(chat=Chat(id=1, type="discuss")), audio="https://example.com/a.amr"
        )
    )

    assert sent is not None
    assert bodies[0]["discuss_id"] == 1
    assert bodies[0]["message"] == "[CQ:record,file=https://example.com/a.amr]"


@pytest.mark.anyio
async def test_push_delete() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"status": "ok", "data": None})

    adapter = _adapter(handler)
    result = await adapter.push(Update(id=55, type=DELETE, chat=Chat(id=1)))

    assert result is None
    assert requests[0].url.path == "/delete_msg"
    assert json.loads(requests[0].content) == {"message_id": 55}


@pytest.mark.anyio
async def test_failed_status_is_protocol_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"status": "failed", "retcode": 100, "wording": "no such group"}
        )

    adapter = _adapter(handler)

    with pytest.raises(ProtocolError) as exc_info:
        await adapter.push(outbound(Update(chat=Chat(id=1, type="group")), "hi"))

    assert exc_info.value.method == "send_msg"
    assert exc_info.value.description == "no such group"


@pytest.mark.anyio
async def test_http_failure_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="unauthorized")

    adapter = _adapter(handler)

    with pytest.raises(TransportError):
        await adapter.get_me()


@pytest.mark.anyio
async def test_get_me_and_mention() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/get_login_info"
        return httpx.Response(
            200, json={"status": "ok", "data": {"user_id": 42, "nickname": "Maid"}}
        )

    adapter = _adapter(handler)
    me = await adapter.get_me()

    assert me.id == 42
    assert me.user_name == "42"
    assert adapter.mention(me) == "[CQ:at,qq=42]"


def _group_message(message_id: int, raw_message: str) -> str:
    return json.dumps(
        {
            "post_type": "message",
            "time": 1_700_000_000,
            "message_type": "group",
            "message_id": message_id,
            "user_id": 10001,
            "group_id": 20002,
            "raw_message": raw_message,
            "sender": {"user_id": 10001, "nickname": "nick"},
        }
    )


@pytest.mark.anyio
async def test_event_stream_survives_bad_frames_and_reconnects() -> None:
    connections: list[ServerConnection] = []
    sleeps: list[float] = []

    async def events(ws: ServerConnection) -> None:
        connections.append(ws)
        if len(connections) == 1:
            await ws.send("not json")
            await ws.send(
                json.dumps({"post_type": "meta_event", "meta_event_type": "heartbeat"})
            )
            await ws.send(_group_message(42, "/ping [CQ:at,qq=1] &#91;x&#93;"))
            return
        await ws.send(_group_message(43, "/again"))
        await ws.wait_closed()

    async def sleep(delay: float) -> None:
        sleeps.append(delay)
        await checkpoint()

    async with serve(events, "127.0.0.1", 0) as server:
        port = next(iter(server.sockets)).getsockname()[1]
        adapter = QQAdapter(
            "http://127.0.0.1:5700",
            f"ws://127.0.0.1:{port}/event",
            sleep=sleep,
        )
        async with anyio.create_task_group() as tg:
            streams = adapter.pull(tg, PullConfig(timeout=5, retry_waiting_time=0.25))
            async with streams.updates, streams.errors:
                with anyio.fail_after(5):
                    first = await streams.updates.receive()
                    second = await streams.updates.receive()
                    decode_error = await streams.errors.receive()
                    closed_error = await streams.errors.receive()
                tg.cancel_scope.cancel()
        await adapter.close()

    assert [first.id, second.id] == [42, 43]
    assert first.message is not None
    assert first.message.text == "/ping [CQ:at,qq=1] [x]"
    assert isinstance(decode_error, DecodeError)
    assert isinstance(closed_error, TransportError)
    assert decode_error.method == closed_error.method == "event_stream"
    assert sleeps == [0.25]
    assert len(connections) == 2
