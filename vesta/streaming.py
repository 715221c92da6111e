"""
Streaming helpers between a provider session and the UI event loop.

``stream_snapshots`` is what the chat controller consumes: it yields the
provider's cumulative snapshots, optionally from a worker thread (some SDK
builds block the calling loop while generating), and enforces the optional
first-chunk / idle timeouts.

``should_commit_frame`` is a pacing policy for renderers that redraw a whole
transcript per snapshot and want to skip near-identical frames.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .protocols import StreamingSessionProtocol

logger = logging.getLogger("vesta")

STREAM_UI_MIN_INTERVAL_SECONDS = 0.022
STREAM_UI_MAX_INTERVAL_SECONDS = 0.065
STREAM_UI_MIN_CHARS_DELTA = 8
STREAM_UI_BREAK_CHARS = frozenset({".", "!", "?", ":", ";", "\n"})
STREAM_WORKER_JOIN_TIMEOUT_SECONDS = 0.4

__all__ = [
    "should_commit_frame",
    "stream_on_worker",
    "stream_snapshots",
    "with_timeouts",
]


def should_commit_frame(
    current_text: str, previous_text: str, last_commit_time: float, now: float
) -> bool:
    """Decide when to push the next streamed frame to the screen."""
    if current_text == previous_text:
        return False
    if not previous_text:
        return bool(current_text)

    delta_chars = max(0, len(current_text) - len(previous_text))
    elapsed = now - last_commit_time
    tail = current_text[-1] if current_text else ""

    if delta_chars >= STREAM_UI_MIN_CHARS_DELTA:
        return True
    if tail in STREAM_UI_BREAK_CHARS and elapsed >= STREAM_UI_MIN_INTERVAL_SECONDS:
        return True
    return elapsed >= STREAM_UI_MAX_INTERVAL_SECONDS


def _timeout_for(first_chunk_seen: bool, first: float | None, idle: float | None) -> float | None:
    return idle if first_chunk_seen else first


async def with_timeouts(
    stream: AsyncIterator[str],
    first_chunk_timeout: float | None = None,
    idle_timeout: float | None = None,
) -> AsyncIterator[str]:
    """Re-yield *stream*, raising :class:`TimeoutError` when it stalls.

    With both timeouts ``None`` this is a plain pass-through.
    """
    first_chunk_seen = False
    iterator = stream.__aiter__()
    try:
        while True:
            timeout = _timeout_for(first_chunk_seen, first_chunk_timeout, idle_timeout)
            try:
                if timeout is None:
                    snapshot = await iterator.__anext__()
                else:
                    snapshot = await asyncio.wait_for(iterator.__anext__(), timeout=timeout)
            except StopAsyncIteration:
                return
            except TimeoutError as exc:
                label = "response stream" if first_chunk_seen else "first response chunk"
                raise TimeoutError(f"Timed out waiting for {label} after {timeout:.0f}s.") from exc
            first_chunk_seen = True
            yield str(snapshot)
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            with contextlib.suppress(Exception):
                await aclose()


async def stream_on_worker(
    session: StreamingSessionProtocol,
    prompt: str,
    cancel_event: threading.Event,
    first_chunk_timeout: float | None = None,
    idle_timeout: float | None = None,
) -> AsyncIterator[str]:
    """Run ``session.stream_response`` on a worker thread and forward snapshots."""
    ui_loop = asyncio.get_running_loop()
    event_queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
    worker_done = threading.Event()

    def producer_sync() -> None:
        async def producer() -> None:
            try:
                async for snapshot in session.stream_response(prompt):
                    if cancel_event.is_set():
                        break
                    ui_loop.call_soon_threadsafe(event_queue.put_nowait, ("chunk", str(snapshot)))
            except Exception as exc:
                ui_loop.call_soon_threadsafe(event_queue.put_nowait, ("error", exc))
                return
            ui_loop.call_soon_threadsafe(event_queue.put_nowait, ("done", None))

        try:
            asyncio.run(producer())
        except Exception as exc:
            with contextlib.suppress(RuntimeError):
                ui_loop.call_soon_threadsafe(event_queue.put_nowait, ("error", exc))
        finally:
            worker_done.set()

    worker_thread = threading.Thread(
        target=producer_sync,
        name="vesta-stream-worker",
        daemon=True,
    )
    worker_thread.start()
    first_chunk_seen = False

    try:
        while True:
            timeout = _timeout_for(first_chunk_seen, first_chunk_timeout, idle_timeout)
            try:
                kind, payload = await asyncio.wait_for(event_queue.get(), timeout=timeout)
            except TimeoutError as exc:
                label = "response stream" if first_chunk_seen else "first response chunk"
                raise TimeoutError(f"Timed out waiting for {label} after {timeout:.0f}s.") from exc
            if kind == "chunk":
                first_chunk_seen = True
                yield str(payload)
                continue
            if kind == "error":
                if isinstance(payload, Exception):
                    raise payload
                raise RuntimeError(str(payload))
            break
    finally:
        cancel_event.set()
        with contextlib.suppress(Exception):
            await asyncio.to_thread(worker_done.wait, STREAM_WORKER_JOIN_TIMEOUT_SECONDS)


def stream_snapshots(
    session: StreamingSessionProtocol,
    prompt: str,
    *,
    on_worker: bool = False,
    cancel_event: threading.Event | None = None,
    first_chunk_timeout: float | None = None,
    idle_timeout: float | None = None,
) -> AsyncIterator[str]:
    """Cumulative snapshots for *prompt*, on this loop or a worker thread."""
    if on_worker:
        logger.debug("[Vesta Stream] Streaming on worker thread")
        return stream_on_worker(
            session,
            prompt,
            cancel_event if cancel_event is not None else threading.Event(),
            first_chunk_timeout=first_chunk_timeout,
            idle_timeout=idle_timeout,
        )
    return with_timeouts(
        session.stream_response(prompt),
        first_chunk_timeout=first_chunk_timeout,
        idle_timeout=idle_timeout,
    )
