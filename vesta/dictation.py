"""Fill the compose draft from a live speech transcriber."""

from __future__ import annotations

import logging
from collections.abc import Callable

from .protocols import SpeechTranscriber

logger = logging.getLogger("vesta")

__all__ = ["dictate"]


async def dictate(
    transcriber: SpeechTranscriber,
    on_text: Callable[[str], None],
) -> str:
    """Forward cumulative transcription into *on_text* until the transcriber ends.

    Each transcription value replaces the draft (it is the full text so far,
    like model snapshots). The transcriber is always stopped on the way out,
    including on errors and cancellation, so recording never outlives the
    dictation. Returns the final draft, trimmed.
    """
    draft = ""
    try:
        async for text in transcriber.transcribe():
            if text == draft:
                continue
            draft = text
            on_text(draft)
    finally:
        transcriber.stop()
        logger.debug("[Vesta] Dictation stopped after %d chars", len(draft))
    return draft.strip()
