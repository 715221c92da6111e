"""
Shared fixtures and fake providers for the Vesta test suite.

A MagicMock ``apple_fm_sdk`` is installed into sys.modules before any vesta
import so the Apple backend can be exercised on machines without macOS 26
and Apple Silicon. Most tests bypass it entirely with the scripted fake
backend below, which streams cumulative snapshots like the real SDK does.
"""

import asyncio
import sys
from unittest.mock import MagicMock

# ---------------------------------------------------------------------------
# Install a fake apple_fm_sdk into sys.modules BEFORE any vesta imports.
# ---------------------------------------------------------------------------
_mock_fm = MagicMock()
_mock_fm.SystemLanguageModel = MagicMock
_mock_fm.LanguageModelSession = MagicMock
sys.modules["apple_fm_sdk"] = _mock_fm

import pytest  # noqa: E402

from vesta.protocols import get_backend, set_backend  # noqa: E402

# ---------------------------------------------------------------------------
# Fake provider pieces
# ---------------------------------------------------------------------------


class FakeModel:
    """Model with configurable availability."""

    def __init__(self, available=True, reason=None, adapter=None):
        self.available = available
        self.reason = reason
        self.adapter = adapter

    def is_available(self):
        return self.available, self.reason


class ScriptedSession:
    """
    Streams a fixed list of cumulative snapshots.

    Args:
        snapshots: Values yielded in order.
        error: Raised after the snapshots are exhausted.
        gate: If given, the stream waits on it before the first snapshot,
            which keeps the turn in flight until the test releases it.
    """

    def __init__(self, snapshots=(), error=None, gate=None):
        self.snapshots = list(snapshots)
        self.error = error
        self.gate = gate
        self.prompts = []
        self.instructions = None
        self.closed = False

    async def stream_response(self, prompt):
        self.prompts.append(prompt)
        try:
            if self.gate is not None:
                await self.gate.wait()
            for snapshot in self.snapshots:
                await asyncio.sleep(0)
                yield snapshot
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


class FakeBackend:
    """Backend handing out queued sessions; supports adapters."""

    def __init__(self, sessions=(), available=True, reason=None):
        self.sessions = list(sessions)
        self.available = available
        self.reason = reason
        self.models = []
        self.created = []
        self.loaded_adapters = []

    def create_model(self, adapter=None):
        model = FakeModel(self.available, self.reason, adapter=adapter)
        self.models.append(model)
        return model

    def load_adapter(self, identifier):
        self.loaded_adapters.append(identifier)
        return identifier

    def __call__(self, model, instructions):
        session = self.sessions.pop(0) if self.sessions else ScriptedSession()
        session.instructions = instructions
        self.created.append(session)
        return session


class PlainBackend(FakeBackend):
    """Backend without the adapter capability."""

    load_adapter = None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def install_backend():
    """Install a backend for the duration of a test, restoring the previous one."""
    original = get_backend()

    def install(backend):
        set_backend(backend)
        return backend

    yield install
    set_backend(original)


@pytest.fixture
def fake_backend(install_backend):
    """A FakeBackend installed as the active backend."""
    return install_backend(FakeBackend())
