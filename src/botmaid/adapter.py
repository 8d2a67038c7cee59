from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import anyio
from anyio.abc import ObjectReceiveStream, ObjectSendStream, TaskGroup

from .logging import get_logger
from .model import Update, User

logger = get_logger(__name__)

ERROR_BUFFER_SIZE = 16
ANIMATED_IMAGE_SUFFIXES = (".gif",)


class AdapterError(RuntimeError):
    def __init__(self, method: str, message: str) -> None:
        super().__init__(f"{method}: {message}")
        self.method = method


class TransportError(AdapterError):
    """Network failure or non-2xx HTTP status."""


class ProtocolError(AdapterError):
    """The platform answered, but reported failure or an unexpected envelope."""

    def __init__(
        self, method: str, message: str, *, description: str | None = None
    ) -> None:
        super().__init__(method, message)
        self.description = description


class DecodeError(ProtocolError):
    """A successful response whose payload has the wrong shape."""


@dataclass(frozen=True, slots=True)
class PullConfig:
    limit: int = 100
    timeout: int = 60
    retry_waiting_time: float = 3.0


@dataclass(frozen=True, slots=True)
class PullStreams:
    updates: ObjectReceiveStream[Update]
    errors: ObjectReceiveStream[Exception]


class Adapter(Protocol):
    @property
    def platform_name(self) -> str: ...

    def pull(self, task_group: TaskGroup, config: PullConfig) -> PullStreams: ...

    async def push(self, update: Update) -> Update | None: ...

    async def get_me(self) -> User: ...

    def mention(self, user: User) -> str: ...

    async def close(self) -> None: ...


def open_pull_streams() -> tuple[
    ObjectSendStream[Update],
    ObjectSendStream[Exception],
    PullStreams,
]:
    send_updates, receive_updates = anyio.create_memory_object_stream[Update]()
    send_errors, receive_errors = anyio.create_memory_object_stream[Exception](
        ERROR_BUFFER_SIZE
    )
    return send_updates, send_errors, PullStreams(receive_updates, receive_errors)


def forward_error(stream: ObjectSendStream[Exception], exc: Exception) -> None:
    """Hand an error to the error stream without ever blocking the poll loop."""
    try:
        stream.send_nowait(exc)
    except (anyio.WouldBlock, anyio.BrokenResourceError, anyio.ClosedResourceError):
        logger.debug(
            "pull.error_dropped",
            error=str(exc),
            error_type=exc.__class__.__name__,
        )


def is_remote(path: str) -> bool:
    return path.startswith(("http://", "https://"))


def is_animated(path: str) -> bool:
    return path.lower().endswith(ANIMATED_IMAGE_SUFFIXES)

