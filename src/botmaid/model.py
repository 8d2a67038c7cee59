from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .adapter import Adapter
    from .botmaid import BotMaid
    from .flags import FlagSet

MESSAGE_TEXT = "message_text"
DELETE = "delete"


@dataclass(slots=True)
class User:
    id: int
    nick_name: str = ""
    user_name: str = ""


@dataclass(slots=True)
class Chat:
    id: int
    type: str = "private"
    title: str = ""


@dataclass(slots=True)
class Message:
    id: int = 0
    text: str = ""
    args: list[str] = field(default_factory=list)
    command: str = ""
    flags: dict[str, FlagSet] = field(default_factory=dict)
    image: str = ""
    audio: str = ""


@dataclass(slots=True)
class Bot:
    """One configured connection, keyed by its config table name."""

    id: str
    self_user: User
    api: Adapter
    botmaid: BotMaid | None = field(default=None, repr=False, compare=False)

    @property
    def platform(self) -> str:
        return self.api.platform_name


@dataclass(slots=True)
class Update:
    """A canonical inbound or outbound chat event."""

    id: int = 0
    type: str = MESSAGE_TEXT
    time: datetime | None = None
    chat: Chat | None = None
    user: User | None = None
    message: Message | None = None
    bot: Bot | None = field(default=None, repr=False, compare=False)
    raw: Any = field(default=None, repr=False, compare=False)


def outbound(
    to: Update,
    text: str = "",
    *,
    image: str = "",
    audio: str = "",
) -> Update:
    """Build an update addressed to the chat `to` came from."""
    return Update(
        type=MESSAGE_TEXT,
        chat=to.chat,
        message=Message(text=text, image=image, audio=audio),
        bot=to.bot,
    )
