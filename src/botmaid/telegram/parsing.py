from __future__ import annotations

import html
from collections.abc import Iterable
from datetime import datetime, timezone

from ..model import MESSAGE_TEXT, Chat, Message, Update, User
from . import api_models as api

TEXT_MENTION = "text_mention"
_UTF16 = "utf-16-le"


def display_name(user: api.User) -> str:
    if user.last_name:
        return f"{user.first_name} {user.last_name}"
    return user.first_name


def to_user(user: api.User) -> User:
    return User(
        id=user.id,
        nick_name=display_name(user),
        user_name=user.username or "",
    )


def mention_anchor(user_id: int, name: str) -> str:
    """HTML anchor for a user, double-quoted so shell splitting keeps it whole."""
    escaped = html.escape(name, quote=False).replace("\\", "\\\\").replace('"', '\\"')
    return f'"<a href=\\"tg://user?id={user_id}\\">{escaped}</a>"'


def splice_utf16(text: str, offset: int, length: int, replacement: str) -> str:
    """Replace `length` UTF-16 code units of `text` starting at `offset`."""
    raw = text.encode(_UTF16, errors="surrogatepass")
    start = offset * 2
    end = (offset + length) * 2
    spliced = raw[:start] + replacement.encode(_UTF16, errors="surrogatepass") + raw[end:]
    return spliced.decode(_UTF16, errors="surrogatepass")


def utf16_len(text: str) -> int:
    return len(text.encode(_UTF16, errors="surrogatepass")) // 2


def rewrite_text_mentions(text: str, entities: Iterable[api.MessageEntity]) -> str:
    # Highest offset first, so splicing never shifts a span still to be rewritten.
    mentions = sorted(
        (
            (entity.offset, entity.length, entity.user)
            for entity in entities
            if entity.type == TEXT_MENTION and entity.user is not None
        ),
        key=lambda item: item[0],
        reverse=True,
    )
    total = utf16_len(text)
    for offset, length, user in mentions:
        if offset < 0 or length <= 0 or offset + length > total:
            continue
        text = splice_utf16(
            text, offset, length, mention_anchor(user.id, display_name(user))
        )
    return text


def message_text(msg: api.Message) -> str:
    text = msg.text or ""
    if msg.text is not None:
        if msg.entities:
            text = rewrite_text_mentions(text, msg.entities)
        reply = msg.reply_to_message
        if reply is not None and reply.from_ is not None and reply.from_.username:
            text = f"@{reply.from_.username} {text}"
    if msg.sticker is not None and msg.sticker.emoji:
        text = msg.sticker.emoji
    return text


def parse_update(update: api.Update) -> Update | None:
    msg = update.message
    if msg is None:
        return None
    return Update(
        id=update.update_id,
        type=MESSAGE_TEXT,
        time=datetime.fromtimestamp(msg.date, tz=timezone.utc),
        chat=Chat(id=msg.chat.id, type=msg.chat.type, title=msg.chat.title or ""),
        user=to_user(msg.from_) if msg.from_ is not None else None,
        message=Message(id=msg.message_id, text=message_text(msg)),
        raw=update,
    )
