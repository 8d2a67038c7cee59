"""Telegram Bot API adapter."""

from .client import PLATFORM, TelegramAdapter
from .parsing import parse_update, rewrite_text_mentions

__all__ = ["PLATFORM", "TelegramAdapter", "parse_update", "rewrite_text_mentions"]
