from __future__ import annotations

import html
from collections.abc import Awaitable, Callable
from pathlib import PurePath
from typing import Any, TypeVar

import anyio
import httpx
import msgspec
from anyio.abc import ObjectSendStream, TaskGroup

from ..adapter import (
    AdapterError,
    DecodeError,
    ProtocolError,
    PullConfig,
    PullStreams,
    TransportError,
    forward_error,
    is_animated,
    is_remote,
    open_pull_streams,
)
from ..logging import get_logger
from ..model import DELETE, Update, User
from . import api_models as api
from .parsing import parse_update, to_user

logger = get_logger(__name__)

T = TypeVar("T")

PLATFORM = "Telegram"
API_BASE = "https://api.telegram.org"
PARSE_MODE = "HTML"
# Headroom over the long-poll timeout so httpx never gives up first.
_POLL_TIMEOUT_SLACK_S = 10


class TelegramAdapter:
    def __init__(
        self,
        token: str,
        *,
        timeout_s: float = 120,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = API_BASE,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._base = f"{base_url}/bot{token}"
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_http_client = http_client is None
        self._sleep = sleep
        self.offset = 0

    @property
    def platform_name(self) -> str:
        return PLATFORM

    async def close(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def _request(
        self,
        method: str,
        *,
        json: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        logger.debug(
            "telegram.request",
            method=method,
            payload=json if json is not None else data,
        )
        extra: dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = timeout
        url = f"{self._base}/{method}"
        try:
            if json is not None:
                resp = await self._http_client.post(url, json=json, **extra)
            else:
                resp = await self._http_client.post(
                    url, data=data, files=files, **extra
                )
        except httpx.HTTPError as exc:
            raise TransportError(
                method, f"{exc.__class__.__name__}: {exc}"
            ) from exc

        try:
            envelope = msgspec.json.decode(resp.content, type=api.Envelope)
        except msgspec.DecodeError as exc:
            if resp.is_error:
                raise TransportError(
                    method, f"HTTP {resp.status_code}: {resp.text}"
                ) from exc
            raise DecodeError(method, f"malformed response: {exc}") from exc

        if not envelope.ok:
            description = envelope.description or "Unsuccessful request"
            raise ProtocolError(method, description, description=description)
        if resp.is_error:
            raise TransportError(method, f"HTTP {resp.status_code}")

        logger.debug("telegram.response", method=method, result=envelope.result)
        return envelope.result

    def _decode_result(self, *, method: str, payload: Any, model: type[T]) -> T:
        try:
            return msgspec.convert(payload, type=model)
        except msgspec.ValidationError as exc:
            raise DecodeError(method, str(exc)) from exc

    async def get_updates(
        self,
        offset: int,
        *,
        limit: int = 100,
        timeout_s: int = 60,
    ) -> list[api.Update]:
        result = await self._request(
            "getUpdates",
            json={"offset": offset, "limit": limit, "timeout": timeout_s},
            timeout=timeout_s + _POLL_TIMEOUT_SLACK_S,
        )
        return self._decode_result(
            method="getUpdates", payload=result, model=list[api.Update]
        )

    def accept(self, batch: list[api.Update]) -> list[Update]:
        """Normalize a polled batch and advance the offset past it."""
        fresh = [upd for upd in batch if upd.update_id >= self.offset]
        if fresh:
            self.offset = max(self.offset, max(u.update_id for u in fresh) + 1)
        updates: list[Update] = []
        for upd in fresh:
            parsed = parse_update(upd)
            if parsed is not None:
                updates.append(parsed)
        return updates

    def pull(self, task_group: TaskGroup, config: PullConfig) -> PullStreams:
        send_updates, send_errors, streams = open_pull_streams()
        task_group.start_soon(self._poll_loop, send_updates, send_errors, config)
        return streams

    async def _poll_loop(
        self,
        updates: ObjectSendStream[Update],
        errors: ObjectSendStream[Exception],
        config: PullConfig,
    ) -> None:
        async with updates, errors:
            while True:
                try:
                    batch = await self.get_updates(
                        self.offset, limit=config.limit, timeout_s=config.timeout
                    )
                except AdapterError as exc:
                    forward_error(errors, exc)
                    await self._sleep(config.retry_waiting_time)
                    continue
                for update in self.accept(batch):
                    await updates.send(update)

    async def push(self, update: Update) -> Update | None:
        if update.chat is None:
            raise ValueError("outbound update has no chat")
        chat_id = update.chat.id

        if update.type == DELETE:
            await self._request(
                "deleteMessage", json={"chat_id": chat_id, "message_id": update.id}
            )
            return None

        message = update.message
        if message is None:
            raise ValueError("outbound update has no message")

        if message.image:
            if is_animated(message.image):
                sent = await self._send_file(
                    "sendAnimation", "animation", chat_id, message.image
                )
            else:
                sent = await self._send_file("sendPhoto", "photo", chat_id, message.image)
        elif message.audio:
            sent = await self._send_file("sendVoice", "voice", chat_id, message.audio)
        else:
            result = await self._request(
                "sendMessage",
                json={"chat_id": chat_id, "text": message.text, "parse_mode": PARSE_MODE},
            )
            sent = self._decode_result(
                method="sendMessage", payload=result, model=api.SentMessage
            )

        update.id = sent.message_id
        return update

    async def _send_file(
        self, method: str, field: str, chat_id: int, path: str
    ) -> api.SentMessage:
        files: dict[str, Any]
        if is_remote(path):
            files = {field: (None, path)}
        else:
            try:
                content = await anyio.Path(path).read_bytes()
            except OSError as exc:
                raise AdapterError(method, f"read {path}: {exc}") from exc
            files = {field: (PurePath(path).name, content)}
        result = await self._request(
            method, data={"chat_id": str(chat_id)}, files=files
        )
        return self._decode_result(method=method, payload=result, model=api.SentMessage)

    async def get_me(self) -> User:
        result = await self._request("getMe", json={})
        me = self._decode_result(method="getMe", payload=result, model=api.User)
        return to_user(me)

    def mention(self, user: User) -> str:
        if user.user_name:
            return f"@{user.user_name}"
        name = html.escape(user.nick_name, quote=False)
        return f'<a href="tg://user?id={user.id}">{name}</a>'
