from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..model import MESSAGE_TEXT, Chat, Message, Update, User
from . import api_models as api

_CQ_CODE_RE = re.compile(r"\[CQ:([^,\]]+)((?:,[^,\]]*)*)\]")

_UNESCAPES = (("&#91;", "["), ("&#93;", "]"), ("&#44;", ","), ("&amp;", "&"))


@dataclass(frozen=True, slots=True)
class Segment:
    type: str
    data: dict[str, str] = field(default_factory=dict)
    raw: str = ""


def unescape(text: str) -> str:
    for escaped, plain in _UNESCAPES:
        text = text.replace(escaped, plain)
    return text


def escape(text: str, *, comma: bool = False) -> str:
    text = text.replace("&", "&amp;").replace("[", "&#91;").replace("]", "&#93;")
    if comma:
        text = text.replace(",", "&#44;")
    return text


def cq_code(kind: str, **data: object) -> str:
    params = "".join(f",{key}={escape(str(value), comma=True)}" for key, value in data.items())
    return f"[CQ:{kind}{params}]"


def parse_segments(message: str) -> list[Segment]:
    segments: list[Segment] = []
    pos = 0
    for match in _CQ_CODE_RE.finditer(message):
        if match.start() > pos:
            text = message[pos : match.start()]
            segments.append(Segment("text", {"text": unescape(text)}, text))
        data: dict[str, str] = {}
        for param in match.group(2).split(",")[1:]:
            key, _, value = param.partition("=")
            data[key] = unescape(value)
        segments.append(Segment(match.group(1), data, match.group(0)))
        pos = match.end()
    if pos < len(message):
        text = message[pos:]
        segments.append(Segment("text", {"text": unescape(text)}, text))
    return segments


def message_text(message: str) -> str:
    parts: list[str] = []
    for segment in parse_segments(message):
        if segment.type == "text":
            parts.append(segment.data["text"])
        elif segment.type == "at":
            parts.append(cq_code("at", qq=segment.data.get("qq", "")))
        elif segment.type == "reply":
            continue
        else:
            parts.append(segment.raw)
    return "".join(parts)


def _chat(event: api.Event) -> Chat | None:
    if event.message_type == "group" and event.group_id is not None:
        return Chat(id=event.group_id, type="group")
    if event.message_type == "discuss" and event.discuss_id is not None:
        return Chat(id=event.discuss_id, type="discuss")
    if event.message_type == "private" and event.user_id is not None:
        return Chat(id=event.user_id, type="private")
    return None


def _user(event: api.Event) -> User | None:
    if event.user_id is None:
        return None
    sender = event.sender
    nick = ""
    if sender is not None:
        nick = sender.card or sender.nickname
    return User(id=event.user_id, nick_name=nick, user_name=str(event.user_id))


def parse_event(event: api.Event) -> Update | None:
    if event.post_type != "message" or event.message_id is None:
        return None
    chat = _chat(event)
    if chat is None:
        return None
    return Update(
        id=event.message_id,
        type=MESSAGE_TEXT,
        time=datetime.fromtimestamp(event.time, tz=timezone.utc),
        chat=chat,
        user=_user(event),
        message=Message(id=event.message_id, text=message_text(event.raw_message or "")),
        raw=event,
    )
