"""Msgspec models for OneBot v11 (CQHTTP) events and action responses."""

from __future__ import annotations

from typing import Any

import msgspec


class Sender(msgspec.Struct, forbid_unknown_fields=False):
    user_id: int | None = None
    nickname: str = ""
    card: str | None = None


class Event(msgspec.Struct, forbid_unknown_fields=False):
    post_type: str
    time: int = 0
    self_id: int | None = None
    message_type: str | None = None
    sub_type: str | None = None
    message_id: int | None = None
    user_id: int | None = None
    group_id: int | None = None
    discuss_id: int | None = None
    raw_message: str | None = None
    sender: Sender | None = None


class Envelope(msgspec.Struct, forbid_unknown_fields=False):
    status: str
    retcode: int = 0
    data: Any = None
    msg: str | None = None
    wording: str | None = None


class LoginInfo(msgspec.Struct, forbid_unknown_fields=False):
    user_id: int
    nickname: str = ""


class SentMessage(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int
