"""Chat configuration shared by the controller and the CLI."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

DEFAULT_INSTRUCTIONS = """\
You are a helpful AI assistant. Provide clear, concise, and friendly responses to user questions and requests.
Keep responses conversational and maintain context from previous messages in our conversation.

For mathematical content, use LaTeX notation:
- Inline math: $equation$
- Block math: $$equation$$

Examples:
- Inline: The quadratic formula is $x = \\frac{-b \\pm \\sqrt{b^2-4ac}}{2a}$
- Block: $$E = mc^2$$"""

ERROR_FALLBACK_TEXT = "Sorry, I encountered an error. Please try again."
UNAVAILABLE_FALLBACK_TEXT = "Sorry, I'm having trouble connecting. Please try again."


@dataclass(frozen=True)
class ChatConfig:
    """Provider configuration and pacing for one conversation.

    ``stream_delay`` pauses after each applied partial so fast streams stay
    readable. The timeouts are off by default: the provider stream is trusted
    to finish or fail on its own.
    """

    instructions: str = DEFAULT_INSTRUCTIONS
    adapter: str | None = None
    stream_delay: float = 0.0
    first_chunk_timeout: float | None = None
    idle_timeout: float | None = None
    worker_thread: bool = False
    debug_timing: bool = False
    error_text: str = ERROR_FALLBACK_TEXT
    unavailable_text: str = UNAVAILABLE_FALLBACK_TEXT

    def __post_init__(self) -> None:
        if self.stream_delay < 0:
            raise ValueError("stream_delay must be >= 0")
        for name in ("first_chunk_timeout", "idle_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be > 0 or None")

    def replace(self, **changes: Any) -> ChatConfig:
        """Return a copy with *changes* applied."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatConfig:
        """Build a config from loosely typed input, ignoring unknown keys."""
        known = {field.name for field in dataclasses.fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        instructions = values.get("instructions")
        if instructions is not None and not str(instructions).strip():
            values.pop("instructions")
        adapter = values.get("adapter")
        if adapter is not None:
            values["adapter"] = str(adapter).strip() or None
        return cls(**values)
