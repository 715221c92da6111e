"""
Chat session controller.

:class:`ChatController` owns the transcript and at most one in-flight turn.
A turn goes through the model provider as a stream of *cumulative*
snapshots; every snapshot replaces the assistant message's content in place.

State changes are published to subscribers as :class:`ChatEvent` values
right after they happen, so any UI (terminal, WebView, Toga) can redraw
without the controller knowing about it.

All methods must be called from the thread running the event loop that owns
the controller. ``submit`` schedules the provider request on that loop and
returns at once.

Usage::

    controller = ChatController(ChatConfig())
    controller.subscribe(lambda event: redraw(controller.messages))
    controller.submit("What is $e^{i\\pi}$?")
    await controller.wait_idle()
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .config import ChatConfig
from .exceptions import ChatError, ProviderSetupError, TurnInFlightError
from .messages import Message
from .protocols import StreamingSessionProtocol, create_session, prepare_model
from .streaming import stream_snapshots

logger = logging.getLogger("vesta")

__all__ = [
    "ChatController",
    "ChatEvent",
    "ChatEventKind",
    "Listener",
    "SessionProvider",
    "StreamingTurn",
    "backend_session",
]

SessionProvider = Callable[[ChatConfig], StreamingSessionProtocol]


def backend_session(config: ChatConfig) -> StreamingSessionProtocol:
    """Build a provider session from the active backend for *config*."""
    model = prepare_model(config.adapter, context="ChatController")
    return create_session(instructions=config.instructions, model=model)


class ChatEventKind(enum.Enum):
    """What changed in the controller."""

    MESSAGE_APPENDED = "message_appended"
    MESSAGE_UPDATED = "message_updated"
    TURN_COMPLETED = "turn_completed"
    TURN_FAILED = "turn_failed"
    RESET = "reset"


@dataclass(frozen=True)
class ChatEvent:
    kind: ChatEventKind
    generation: int
    message: Message | None = None


Listener = Callable[[ChatEvent], None]


@dataclass
class StreamingTurn:
    """Transient state of the assistant reply being streamed."""

    generation: int
    accumulator: str = ""
    message: Message | None = None
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def appended(self) -> bool:
        return self.message is not None


class ChatController:
    """Sequences user turns through a model provider.

    Args:
        config: Instructions, adapter and pacing. Defaults to :class:`ChatConfig`.
        session: A ready provider session, kept across resets.
        session_factory: Called with the current config to build a session
            at startup and on every reset. Defaults to
            :func:`backend_session`. If it raises
            :class:`ProviderSetupError` the controller still works and
            answers every turn with the "trouble connecting" fallback.
    """

    def __init__(
        self,
        config: ChatConfig | None = None,
        *,
        session: StreamingSessionProtocol | None = None,
        session_factory: SessionProvider | None = None,
    ) -> None:
        if session is not None and session_factory is not None:
            raise TypeError("pass either session or session_factory, not both")
        if session is not None:

            def reuse_session(config: ChatConfig) -> StreamingSessionProtocol:
                return session

            session_factory = reuse_session
        self.config = config if config is not None else ChatConfig()
        self._session_factory: SessionProvider = session_factory or backend_session
        self._messages: list[Message] = []
        self._turn: StreamingTurn | None = None
        self._generation = 0
        self._listeners: list[Listener] = []
        self._task: asyncio.Task[None] | None = None
        self._cancel_event: threading.Event | None = None
        self._session: StreamingSessionProtocol | None = None
        self.setup_error: ProviderSetupError | None = None

        self._initialize_session()

    # -----------------------------------------------------------------------
    # Read-only state
    # -----------------------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_busy(self) -> bool:
        """True while a turn is in flight; ``submit`` is rejected meanwhile."""
        return self._turn is not None

    @property
    def is_streaming(self) -> bool:
        return self._turn is not None and self._turn.appended

    @property
    def streaming_text(self) -> str:
        return self._turn.accumulator if self._turn is not None else ""

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def has_provider(self) -> bool:
        return self._session is not None

    # -----------------------------------------------------------------------
    # Subscriptions
    # -----------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* after every state change. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: ChatEventKind, message: Message | None = None) -> None:
        event = ChatEvent(kind=kind, generation=self._generation, message=message)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("[Vesta] Listener %r failed on %s", listener, kind.value)

    # -----------------------------------------------------------------------
    # Provider session
    # -----------------------------------------------------------------------

    def _initialize_session(self) -> None:
        self._session = None
        self.setup_error = None
        try:
            self._session = self._session_factory(self.config)
        except ProviderSetupError as exc:
            self.setup_error = exc
        if self._session is None:
            logger.warning("[Vesta] Model provider unavailable: %s", self.setup_error)
            return
        logger.info(
            "[Vesta] Session initialized (adapter=%s)",
            self.config.adapter if self.config.adapter else "none",
        )

    # -----------------------------------------------------------------------
    # Turn lifecycle
    # -----------------------------------------------------------------------

    def submit(self, utterance: str) -> bool:
        """Start a turn for *utterance*.

        Returns ``False`` without touching the transcript when the trimmed
        utterance is empty or a turn is already in flight.
        """
        text = utterance.strip()
        if not text:
            return False
        if self._turn is not None:
            logger.debug(
                "[Vesta] Ignoring submit while generation %d is in flight", self._generation
            )
            return False
        session = self._session
        loop = asyncio.get_running_loop() if session is not None else None

        self._generation += 1
        turn = StreamingTurn(generation=self._generation)
        self._turn = turn

        user_message = Message(content=text, is_user=True)
        self._messages.append(user_message)
        self._notify(ChatEventKind.MESSAGE_APPENDED, user_message)

        if session is None or loop is None:
            reason = self.setup_error or ProviderSetupError("no model session configured")
            self.on_error(reason, generation=turn.generation)
            return True

        self._cancel_event = threading.Event()
        self._task = loop.create_task(
            self._run_turn(session, text, turn.generation, self._cancel_event),
            name=f"vesta-turn-{turn.generation}",
        )
        self._task.add_done_callback(self._on_task_done)
        return True

    async def _run_turn(
        self,
        session: StreamingSessionProtocol,
        prompt: str,
        generation: int,
        cancel_event: threading.Event,
    ) -> None:
        config = self.config
        try:
            async for snapshot in stream_snapshots(
                session,
                prompt,
                on_worker=config.worker_thread,
                cancel_event=cancel_event,
                first_chunk_timeout=config.first_chunk_timeout,
                idle_timeout=config.idle_timeout,
            ):
                if generation != self._generation:
                    break
                self.on_partial(snapshot, generation=generation)
                if config.stream_delay:
                    await asyncio.sleep(config.stream_delay)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[Vesta Stream] Turn %d failed: %s", generation, exc)
            self.on_error(exc, generation=generation)
            return
        self.on_complete(generation=generation)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if self._task is task:
            self._task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[Vesta] Turn task crashed: %r", exc)

    def _active_turn(self, generation: int | None) -> StreamingTurn | None:
        turn = self._turn
        if turn is None or (generation is not None and generation != turn.generation):
            logger.debug("[Vesta] Discarding callback for stale generation %s", generation)
            return None
        return turn

    def on_partial(self, text: str, *, generation: int | None = None) -> None:
        """Apply a cumulative snapshot to the current turn."""
        turn = self._active_turn(generation)
        if turn is None:
            return
        if turn.message is not None and text == turn.accumulator:
            return

        turn.accumulator = text
        if turn.message is None:
            turn.message = Message(content=text, is_user=False)
            self._messages.append(turn.message)
            self._notify(ChatEventKind.MESSAGE_APPENDED, turn.message)
        else:
            turn.message.content = text
            self._notify(ChatEventKind.MESSAGE_UPDATED, turn.message)

    def on_complete(self, *, generation: int | None = None) -> None:
        """Finalize the current turn with the last accumulated text."""
        turn = self._active_turn(generation)
        if turn is None:
            return

        if turn.message is None:
            turn.message = Message(content=turn.accumulator, is_user=False)
            self._messages.append(turn.message)
            self._notify(ChatEventKind.MESSAGE_APPENDED, turn.message)
        else:
            turn.message.content = turn.accumulator
        self._finish_turn()

        if self.config.debug_timing:
            elapsed = time.perf_counter() - turn.started_at
            logger.info(
                f"[Vesta] Turn {turn.generation} completed in {elapsed:.3f}s. "
                f"Reply length: {len(turn.accumulator)} chars."
            )
        self._notify(ChatEventKind.TURN_COMPLETED, turn.message)

    def on_error(self, reason: BaseException | str, *, generation: int | None = None) -> None:
        """End the current turn with a user-visible fallback message.

        Partial text already shown stays in the transcript; the fallback is
        appended after it. Nothing is retried.
        """
        turn = self._active_turn(generation)
        if turn is None:
            return

        if isinstance(reason, ProviderSetupError):
            fallback_text = self.config.unavailable_text
        else:
            fallback_text = self.config.error_text
        fallback = Message(content=fallback_text, is_user=False)
        self._messages.append(fallback)
        self._finish_turn()
        self._notify(ChatEventKind.MESSAGE_APPENDED, fallback)
        self._notify(ChatEventKind.TURN_FAILED, fallback)

    def _finish_turn(self) -> None:
        self._turn = None
        self._cancel_event = None

    def reset(self) -> None:
        """Start a brand-new conversation.

        Clears the transcript, cancels any in-flight turn (its late snapshots
        are discarded) and asks the session factory for a fresh provider
        session with the current instructions and adapter.
        """
        self._generation += 1
        if self._cancel_event is not None:
            self._cancel_event.set()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
        self._turn = None
        self._cancel_event = None
        self._messages.clear()
        self._initialize_session()
        self._notify(ChatEventKind.RESET)

    def reconfigure(self, **changes: Any) -> None:
        """Apply config *changes* and start a new conversation with them."""
        self.config = self.config.replace(**changes)
        self.reset()

    # -----------------------------------------------------------------------
    # Awaitable helpers
    # -----------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until the in-flight turn (if any) has finished or was cancelled."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    async def ask(self, utterance: str) -> Message:
        """Run one full turn and return the assistant's final message."""
        if self.is_busy:
            raise TurnInFlightError("a turn is already in flight")
        if not self.submit(utterance):
            raise ValueError("utterance must not be empty")
        generation = self._generation
        await self.wait_idle()
        if generation != self._generation or not self._messages:
            raise ChatError("turn was cancelled by a conversation reset")
        return self._messages[-1]
