"""Msgspec models for the subset of the Telegram Bot API botmaid consumes."""

from __future__ import annotations

from typing import Any

import msgspec


class User(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    first_name: str = ""
    last_name: str | None = None
    username: str | None = None
    is_bot: bool = False


class Chat(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    type: str = "private"
    title: str | None = None


class MessageEntity(msgspec.Struct, forbid_unknown_fields=False):
    type: str
    offset: int
    length: int
    user: User | None = None


class Sticker(msgspec.Struct, forbid_unknown_fields=False):
    file_id: str = ""
    emoji: str | None = None


class ReplyMessage(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int
    from_: User | None = msgspec.field(default=None, name="from")
    text: str | None = None


class Message(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int
    chat: Chat
    date: int = 0
    from_: User | None = msgspec.field(default=None, name="from")
    text: str | None = None
    entities: list[MessageEntity] | None = None
    reply_to_message: ReplyMessage | None = None
    sticker: Sticker | None = None


class Update(msgspec.Struct, forbid_unknown_fields=False):
    update_id: int
    message: Message | None = None


class SentMessage(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int


class Envelope(msgspec.Struct, forbid_unknown_fields=False):
    ok: bool
    result: Any = None
    description: str | None = None
    error_code: int | None = None
