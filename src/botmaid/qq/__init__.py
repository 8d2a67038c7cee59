"""QQ adapter for OneBot v11 (CQHTTP) endpoints."""

from .client import PLATFORM, QQAdapter
from .parsing import parse_event

__all__ = ["PLATFORM", "QQAdapter", "parse_event"]
