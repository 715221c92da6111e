"""Conversation messages and transcript export."""

from __future__ import annotations

import json
import re
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

__all__ = [
    "Message",
    "derive_title",
    "export_jsonl",
    "export_markdown",
    "format_timestamp_short",
    "utc_now",
]


def utc_now() -> datetime:
    """Return the current UTC time without microseconds."""
    return datetime.now(UTC).replace(microsecond=0)


@dataclass(eq=False)
class Message:
    """One entry in the conversation.

    ``content`` changes while an assistant reply streams in and stays fixed
    once the turn is finalized. Identity is the ``id``; two messages with the
    same text are still different messages.
    """

    content: str
    is_user: bool
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def role(self) -> str:
        return "user" if self.is_user else "assistant"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "role": self.role,
            "content": self.content,
            "created_at": self.timestamp.isoformat(),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Message):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


def format_timestamp_short(value: datetime) -> str:
    """Short local time for bubble metadata; includes the date if not today."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    local_dt = value.astimezone()
    now_local = datetime.now().astimezone()
    time_str = local_dt.strftime("%I:%M %p").lstrip("0")
    if local_dt.date() == now_local.date():
        return time_str
    return f"{local_dt.strftime('%b')} {local_dt.day}, {time_str}"


def derive_title(messages: Iterable[Message]) -> str:
    """Readable transcript title from the first user message."""
    for message in messages:
        if not message.is_user:
            continue
        words = re.findall(r"[A-Za-z0-9']+", message.content)
        if not words:
            break
        title = " ".join(word[:1].upper() + word[1:] for word in words[:8])
        if len(title) <= 60:
            return title
        return title[:60].rsplit(" ", 1)[0].strip() or title[:60]
    return "Untitled Chat"


def export_jsonl(messages: Iterable[Message], target: Path) -> None:
    """Write a metadata line followed by one JSON object per message."""
    messages = list(messages)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        handle.write(
            json.dumps(
                {
                    "type": "chat_metadata",
                    "title": derive_title(messages),
                    "exported_at": utc_now().isoformat(),
                    "message_count": len(messages),
                },
                ensure_ascii=False,
            )
            + "\n"
        )
        for message in messages:
            record = {"type": "message", **message.to_dict()}
            handle.write(json.dumps(record, ensure_ascii=False) + "\n")


def export_markdown(messages: Iterable[Message], target: Path) -> None:
    """Write the transcript as Markdown, one section per message."""
    messages = list(messages)
    target.parent.mkdir(parents=True, exist_ok=True)

    lines = [f"# {derive_title(messages)}", ""]
    for message in messages:
        role = "User" if message.is_user else "Assistant"
        lines.append(f"## {role} ({format_timestamp_short(message.timestamp)})")
        lines.append("")
        lines.append(message.content)
        lines.append("")

    target.write_text("\n".join(lines), encoding="utf-8")
