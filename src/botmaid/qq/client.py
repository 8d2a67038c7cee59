from __future__ import annotations

import base64
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import anyio
import httpx
import msgspec
from websockets.asyncio.client import connect
from websockets.exceptions import WebSocketException
from anyio.abc import ObjectSendStream, TaskGroup

from ..adapter import (
    AdapterError,
    DecodeError,
    ProtocolError,
    PullConfig,
    PullStreams,
    TransportError,
    forward_error,
    is_remote,
    open_pull_streams,
)
from ..logging import get_logger
from ..model import DELETE, Update, User
from . import api_models as api
from .parsing import cq_code, parse_event

logger = get_logger(__name__)

T = TypeVar("T")

PLATFORM = "QQ"
EVENTS_METHOD = "event_stream"

_TARGET_FIELDS = {
    "private": "user_id",
    "group": "group_id",
    "discuss": "discuss_id",
}


class QQAdapter:
    """OneBot v11 endpoint: actions over HTTP, events over a websocket."""

    def __init__(
        self,
        api_endpoint: str,
        websocket_endpoint: str,
        *,
        access_token: str = "",
        timeout_s: float = 30,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        if not api_endpoint:
            raise ValueError("QQ api_endpoint is empty")
        self._api_base = api_endpoint.rstrip("/")
        self._ws_url = websocket_endpoint
        self._headers: dict[str, str] = {}
        if access_token:
            self._headers["Authorization"] = f"Bearer {access_token}"
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_http_client = http_client is None
        self._sleep = sleep

    @property
    def platform_name(self) -> str:
        return PLATFORM

    async def close(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def _call(self, action: str, params: dict[str, Any]) -> Any:
        logger.debug("qq.request", action=action, params=params)
        try:
            resp = await self._http_client.post(
                f"{self._api_base}/{action}", json=params, headers=self._headers
            )
        except httpx.HTTPError as exc:
            raise TransportError(
                action, f"{exc.__class__.__name__}: {exc}"
            ) from exc
        if resp.is_error:
            raise TransportError(action, f"HTTP {resp.status_code}: {resp.text}")
        try:
            envelope = msgspec.json.decode(resp.content, type=api.Envelope)
        except msgspec.DecodeError as exc:
            raise DecodeError(action, f"malformed response: {exc}") from exc
        if envelope.status not in ("ok", "async"):
            description = envelope.wording or envelope.msg or f"retcode {envelope.retcode}"
            raise ProtocolError(action, description, description=description)
        logger.debug("qq.response", action=action, data=envelope.data)
        return envelope.data

    def _decode_result(self, *, method: str, payload: Any, model: type[T]) -> T:
        try:
            return msgspec.convert(payload, type=model)
        except msgspec.ValidationError as exc:
            raise DecodeError(method, str(exc)) from exc

    def pull(self, task_group: TaskGroup, config: PullConfig) -> PullStreams:
        send_updates, send_errors, streams = open_pull_streams()
        task_group.start_soon(self._event_loop, send_updates, send_errors, config)
        return streams

    async def _event_loop(
        self,
        updates: ObjectSendStream[Update],
        errors: ObjectSendStream[Exception],
        config: PullConfig,
    ) -> None:
        async with updates, errors:
            while True:
                try:
                    await self._consume_events(updates, errors, config)
                except AdapterError as exc:
                    forward_error(errors, exc)
                await self._sleep(config.retry_waiting_time)

    async def _consume_events(
        self,
        updates: ObjectSendStream[Update],
        errors: ObjectSendStream[Exception],
        config: PullConfig,
    ) -> None:
        try:
            async with connect(
                self._ws_url,
                additional_headers=self._headers,
                open_timeout=config.timeout,
            ) as ws:
                logger.info("qq.events.connected", url=self._ws_url)
                async for frame in ws:
                    try:
                        event = msgspec.json.decode(frame, type=api.Event)
                    except msgspec.DecodeError as exc:
                        forward_error(errors, DecodeError(EVENTS_METHOD, str(exc)))
                        continue
                    update = parse_event(event)
                    if update is not None:
                        await updates.send(update)
        except (WebSocketException, OSError, TimeoutError) as exc:
            raise TransportError(
                EVENTS_METHOD, f"{exc.__class__.__name__}: {exc}"
            ) from exc
        raise TransportError(EVENTS_METHOD, "connection closed")

    async def push(self, update: Update) -> Update | None:
        if update.type == DELETE:
            await self._call("delete_msg", {"message_id": update.id})
            return None

        chat = update.chat
        message = update.message
        if chat is None or message is None:
            raise ValueError("outbound update needs a chat and a message")
        target = _TARGET_FIELDS.get(chat.type)
        if target is None:
            raise ValueError(f"unsupported QQ chat type {chat.type!r}")

        if message.image:
            content = cq_code("image", file=await self._file_ref("send_msg", message.image))
        elif message.audio:
            content = cq_code("record", file=await self._file_ref("send_msg", message.audio))
        else:
            content = message.text

        data = await self._call(
            "send_msg",
            {
                "message_type": chat.type,
                target: chat.id,
                "message": content,
                "auto_escape": False,
            },
        )
        if data is not None:
            sent = self._decode_result(method="send_msg", payload=data, model=api.SentMessage)
            update.id = sent.message_id
        return update

    async def _file_ref(self, method: str, path: str) -> str:
        if is_remote(path):
            return path
        try:
            content = await anyio.Path(path).read_bytes()
        except OSError as exc:
            raise AdapterError(method, f"read {path}: {exc}") from exc
        return "base64://" + base64.b64encode(content).decode("ascii")

    async def get_me(self) -> User:
        data = await self._call("get_login_info", {})
        info = self._decode_result(method="get_login_info", payload=data, model=api.LoginInfo)
        return User(id=info.user_id, nick_name=info.nickname, user_name=str(info.user_id))

    def mention(self, user: User) -> str:
        return cq_code("at", qq=user.id)
