"""
Pluggable model provider protocols for Vesta.

The chat controller only talks to the structural interfaces below, so any
backend that streams cumulative text snapshots can stand in for Apple
Foundation Models (tests use scripted fakes).

Usage:
    from vesta.protocols import set_backend, get_backend

    # Default: AppleFMBackend wrapping apple_fm_sdk
    backend = get_backend()

    # Swap in a custom backend for testing or alternative providers:
    set_backend(my_custom_backend)

Adapter loading and speech transcription are optional capabilities. A
backend advertises adapter support by providing ``load_adapter``; a speech
transcriber is passed separately to whoever fills the input draft.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Protocol, cast, runtime_checkable

from .exceptions import ensure_model_available, raise_setup_error

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger("vesta")

__all__ = [
    "AdapterCapability",
    "AppleFMBackend",
    "AppleFMModel",
    "AppleFMSession",
    "Capabilities",
    "ModelProtocol",
    "SessionFactory",
    "SpeechTranscriber",
    "StreamingSessionProtocol",
    "backend_capabilities",
    "create_model",
    "create_session",
    "get_backend",
    "prepare_model",
    "set_backend",
]


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class ModelProtocol(Protocol):
    """Structural interface for a language model availability check."""

    def is_available(self) -> tuple[bool, str | None]:
        """Return (available, reason_if_not)."""
        ...


@runtime_checkable
class StreamingSessionProtocol(Protocol):
    """Structural interface for a conversational session.

    ``stream_response`` yields *cumulative* snapshots: every value is the
    full response text so far, never a delta.
    """

    def stream_response(self, prompt: str) -> AsyncIterator[str]: ...


@runtime_checkable
class SessionFactory(Protocol):
    """Callable that creates a session from a model + instructions."""

    def __call__(self, model: ModelProtocol, instructions: str) -> StreamingSessionProtocol: ...


@runtime_checkable
class AdapterCapability(Protocol):
    """A backend that can load supplementary (low-rank adapter) weights."""

    def load_adapter(self, identifier: str) -> Any: ...


@runtime_checkable
class SpeechTranscriber(Protocol):
    """Live speech-to-text source yielding cumulative transcription text."""

    def transcribe(self) -> AsyncIterator[str]: ...

    def stop(self) -> None: ...


@dataclass(frozen=True)
class Capabilities:
    """Optional host capabilities available to a chat session."""

    adapters: bool = False
    speech: bool = False


def backend_capabilities(backend: Any, transcriber: Any | None = None) -> Capabilities:
    """Report which optional capabilities *backend* and *transcriber* provide."""
    return Capabilities(
        adapters=callable(getattr(backend, "load_adapter", None)),
        speech=transcriber is not None and isinstance(transcriber, SpeechTranscriber),
    )


# ---------------------------------------------------------------------------
# Apple FM concrete backend
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _import_apple_fm_sdk() -> Any:
    """Import ``apple_fm_sdk`` lazily so protocol import does not hard-require it."""
    return importlib.import_module("apple_fm_sdk")


class AppleFMModel:
    """Wraps ``apple_fm_sdk.SystemLanguageModel`` behind :class:`ModelProtocol`."""

    def __init__(self, adapter: Any | None = None) -> None:
        fm_sdk = _import_apple_fm_sdk()
        if adapter is None:
            self._model = fm_sdk.SystemLanguageModel()
        else:
            self._model = fm_sdk.SystemLanguageModel(adapter=adapter)
        self.adapter = adapter

    def is_available(self) -> tuple[bool, str | None]:
        available, reason = self._model.is_available()
        return available, None if reason is None else str(reason)

    @property
    def raw(self) -> Any:
        """Access the underlying SDK model object."""
        return self._model


class AppleFMSession:
    """Wraps ``apple_fm_sdk.LanguageModelSession`` behind :class:`StreamingSessionProtocol`."""

    def __init__(self, model: ModelProtocol, instructions: str) -> None:
        fm_sdk = _import_apple_fm_sdk()
        # Accept either our wrapper or the raw SDK model
        raw_model = cast("Any", getattr(model, "raw", model))
        self._session = fm_sdk.LanguageModelSession(model=raw_model, instructions=instructions)

    async def stream_response(self, prompt: str) -> AsyncIterator[str]:
        async for snapshot in self._session.stream_response(prompt):
            yield str(snapshot)


class AppleFMBackend:
    """
    Default backend that delegates to ``apple_fm_sdk``.

    Satisfies :class:`SessionFactory` (via ``__call__``) and
    :class:`AdapterCapability` (via ``load_adapter``).
    """

    def create_model(self, adapter: str | None = None) -> AppleFMModel:
        """Create a new :class:`AppleFMModel`, optionally with adapter weights."""
        if adapter is None:
            return AppleFMModel()
        return AppleFMModel(adapter=self.load_adapter(adapter))

    def load_adapter(self, identifier: str) -> Any:
        """Load adapter weights from a file path or adapter name."""
        fm_sdk = _import_apple_fm_sdk()
        adapter_cls = getattr(fm_sdk, "Adapter", None)
        if adapter_cls is None:
            raise_setup_error(
                "load_adapter", reason="installed apple_fm_sdk does not expose Adapter"
            )
        try:
            return adapter_cls(identifier)
        except Exception as exc:
            raise_setup_error("load_adapter", exc=exc)

    def __call__(self, model: ModelProtocol, instructions: str) -> AppleFMSession:
        """Create a new :class:`AppleFMSession` (satisfies :class:`SessionFactory`)."""
        return AppleFMSession(model, instructions)


# ---------------------------------------------------------------------------
# Module-level backend registry
# ---------------------------------------------------------------------------

_backend: Any = AppleFMBackend()


def set_backend(backend: Any) -> None:
    """Replace the active backend (module-level singleton)."""
    global _backend
    _backend = backend
    logger.info("[Vesta] Backend set to %s", type(backend).__name__)


def get_backend() -> Any:
    """Return the currently active backend."""
    return _backend


def _create_model_from_backend(backend: Any, adapter: str | None = None) -> ModelProtocol:
    create_model_fn = getattr(backend, "create_model", None)
    if not callable(create_model_fn):
        raise TypeError(f"Active backend must provide create_model(); got {type(backend).__name__}")
    if adapter is None:
        return cast("ModelProtocol", create_model_fn())
    if not backend_capabilities(backend).adapters:
        raise_setup_error(
            "create_model",
            reason=f"backend {type(backend).__name__} cannot load adapter {adapter!r}",
        )
    return cast("ModelProtocol", create_model_fn(adapter=adapter))


def create_model(adapter: str | None = None) -> ModelProtocol:
    """Create a model using the currently active backend."""
    return _create_model_from_backend(get_backend(), adapter)


def prepare_model(adapter: str | None = None, *, context: str) -> ModelProtocol:
    """Create a model via the active backend and check that it can run.

    Every setup failure surfaces as :class:`ProviderSetupError`, including a
    missing SDK, an unavailable model and an adapter the backend cannot load.
    """
    try:
        model = create_model(adapter=adapter)
    except ModuleNotFoundError as exc:
        raise_setup_error(context, exc=exc)
    ensure_model_available(model, context=context)
    return model


def create_session(
    instructions: str,
    model: ModelProtocol | None = None,
    adapter: str | None = None,
) -> StreamingSessionProtocol:
    """Create a session via the active backend.

    If *model* is omitted, a new model is created via :func:`create_model`
    (with *adapter* weights when given).
    """
    backend = get_backend()
    resolved_model = model if model is not None else _create_model_from_backend(backend, adapter)

    if callable(backend):
        return cast("StreamingSessionProtocol", backend(resolved_model, instructions))

    create_session_fn = getattr(backend, "create_session", None)
    if callable(create_session_fn):
        return cast("StreamingSessionProtocol", create_session_fn(resolved_model, instructions))

    raise TypeError(
        "Active backend must be callable(model, instructions) or "
        f"provide create_session(); got {type(backend).__name__}"
    )
