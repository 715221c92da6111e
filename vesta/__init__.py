"""
Vesta public API.

Everything here is importable without the Apple Foundation Models SDK; the
SDK is only imported when a session is actually created.
"""

from __future__ import annotations

from .config import ChatConfig
from .exceptions import ChatError, ProviderSetupError, TurnInFlightError
from .messages import Message
from .protocols import get_backend, set_backend
from .segmenter import BlockMath, InlineMath, ProseText, Span, segment
from .session import ChatController, ChatEvent, ChatEventKind

__all__ = [
    "BlockMath",
    "ChatConfig",
    "ChatController",
    "ChatError",
    "ChatEvent",
    "ChatEventKind",
    "InlineMath",
    "Message",
    "ProseText",
    "ProviderSetupError",
    "Span",
    "TurnInFlightError",
    "get_backend",
    "segment",
    "set_backend",
]
