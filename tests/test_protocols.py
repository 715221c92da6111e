"""
Tests for vesta.protocols — pluggable model provider protocols.

Covers:
  - Runtime-checkable protocol verification
  - AppleFMBackend / AppleFMModel / AppleFMSession delegation to the SDK
  - Adapter capability detection and loading
  - set_backend / get_backend round-trip
  - create_model / create_session through the active backend
"""

from unittest.mock import MagicMock, patch

import pytest

from vesta.exceptions import ProviderSetupError
from vesta.protocols import (
    AdapterCapability,
    AppleFMBackend,
    AppleFMModel,
    AppleFMSession,
    Capabilities,
    ModelProtocol,
    SessionFactory,
    SpeechTranscriber,
    StreamingSessionProtocol,
    backend_capabilities,
    create_model,
    create_session,
    get_backend,
    prepare_model,
    set_backend,
)

from .conftest import FakeBackend, PlainBackend

# ========================================================================
# Lazy SDK import behavior
# ========================================================================


class TestLazySDKImport:
    def test_apple_model_imports_sdk_lazily(self):
        import vesta.protocols as protocols_mod

        protocols_mod._import_apple_fm_sdk.cache_clear()
        try:
            with patch("vesta.protocols.importlib.import_module") as import_module:
                sdk = MagicMock()
                import_module.return_value = sdk

                AppleFMModel()

                import_module.assert_called_once_with("apple_fm_sdk")
                sdk.SystemLanguageModel.assert_called_once_with()
        finally:
            protocols_mod._import_apple_fm_sdk.cache_clear()


# ========================================================================
# Protocol structural checks
# ========================================================================


class TestProtocolsAreRuntimeCheckable:
    def test_model_protocol(self):
        obj = MagicMock()
        obj.is_available = MagicMock(return_value=(True, None))
        assert isinstance(obj, ModelProtocol)

    def test_streaming_session_protocol(self):
        assert isinstance(AppleFMSession(MagicMock(), "x"), StreamingSessionProtocol)

    def test_session_factory(self):
        assert isinstance(AppleFMBackend(), SessionFactory)

    def test_adapter_capability(self):
        assert isinstance(AppleFMBackend(), AdapterCapability)
        assert not isinstance(object(), AdapterCapability)

    def test_speech_transcriber(self):
        transcriber = MagicMock(spec=["transcribe", "stop"])
        assert isinstance(transcriber, SpeechTranscriber)


# ========================================================================
# Apple FM backend
# ========================================================================


class TestAppleFMModel:
    def test_is_available_returns_tuple(self):
        with patch("apple_fm_sdk.SystemLanguageModel") as mock_slm:
            mock_slm.return_value.is_available.return_value = (False, 3)
            model = AppleFMModel()
            assert model.is_available() == (False, "3")

    def test_adapter_is_passed_to_sdk_model(self):
        with patch("apple_fm_sdk.SystemLanguageModel") as mock_slm:
            AppleFMModel(adapter="weights")
            mock_slm.assert_called_once_with(adapter="weights")


class TestAppleFMSession:
    def test_wraps_raw_sdk_model(self):
        with patch("apple_fm_sdk.LanguageModelSession") as cls:
            model = MagicMock()
            AppleFMSession(model, "instructions")
        cls.assert_called_once_with(model=model.raw, instructions="instructions")

    async def test_stream_response_yields_strings(self):
        async def fake_stream(prompt):
            yield "He"
            yield "Hello"

        sdk_session = MagicMock()
        sdk_session.stream_response = fake_stream
        with patch("apple_fm_sdk.LanguageModelSession", return_value=sdk_session):
            session = AppleFMSession(MagicMock(), "i")
            result = [s async for s in session.stream_response("p")]
        assert result == ["He", "Hello"]


class TestAppleFMBackend:
    def test_call_returns_session(self):
        assert isinstance(AppleFMBackend()(MagicMock(), "test"), AppleFMSession)

    def test_create_model_without_adapter(self):
        assert isinstance(AppleFMBackend().create_model(), AppleFMModel)

    def test_load_adapter_uses_sdk_adapter(self):
        with patch("apple_fm_sdk.Adapter", create=True) as adapter_cls:
            loaded = AppleFMBackend().load_adapter("my.fmadapter")
        adapter_cls.assert_called_once_with("my.fmadapter")
        assert loaded is adapter_cls.return_value

    def test_load_adapter_failure_is_setup_error(self):
        with patch("apple_fm_sdk.Adapter", create=True, side_effect=FileNotFoundError("nope")):
            with pytest.raises(ProviderSetupError, match="FileNotFoundError"):
                AppleFMBackend().load_adapter("missing.fmadapter")

    def test_sdk_without_adapter_support(self):
        with patch("apple_fm_sdk.Adapter", None, create=True):
            with pytest.raises(ProviderSetupError, match="does not expose Adapter"):
                AppleFMBackend().load_adapter("x")


# ========================================================================
# Registry and helpers
# ========================================================================


class TestSetGetBackend:
    def test_roundtrip(self):
        original = get_backend()
        try:
            sentinel = object()
            set_backend(sentinel)
            assert get_backend() is sentinel
        finally:
            set_backend(original)

    def test_default_backend_is_apple_fm(self):
        import vesta.protocols as mod

        original = mod._backend
        try:
            mod._backend = AppleFMBackend()
            assert isinstance(get_backend(), AppleFMBackend)
        finally:
            mod._backend = original


class TestCreateHelpers:
    def test_create_model_uses_active_backend(self, install_backend):
        backend = install_backend(MagicMock())
        assert create_model() is backend.create_model.return_value
        backend.create_model.assert_called_once_with()

    def test_create_model_with_adapter(self, fake_backend):
        model = create_model(adapter="w")
        assert model.adapter == "w"

    def test_create_model_with_adapter_requires_capability(self, install_backend):
        install_backend(PlainBackend())
        with pytest.raises(ProviderSetupError, match="cannot load adapter"):
            create_model(adapter="w")

    def test_create_session_uses_active_backend(self, install_backend):
        backend = install_backend(MagicMock())
        created = create_session("hello")
        assert created is backend.return_value
        backend.assert_called_once_with(backend.create_model.return_value, "hello")

    def test_create_session_with_explicit_model(self, fake_backend):
        model = object()
        session = create_session("inst", model=model)
        assert session.instructions == "inst"
        assert fake_backend.models == []

    def test_backend_with_create_session_method(self, install_backend):
        class MethodBackend:
            def create_model(self):
                return "model"

            def create_session(self, model, instructions):
                return (model, instructions)

        install_backend(MethodBackend())
        assert create_session("i") == ("model", "i")

    def test_backend_without_create_model_raises(self, install_backend):
        install_backend(object())
        with pytest.raises(TypeError, match="create_model"):
            create_model()


class TestPrepareModel:
    def test_returns_available_model(self, fake_backend):
        model = prepare_model("w", context="unit-test")
        assert model.adapter == "w"

    def test_unavailable_model_is_setup_error(self, install_backend):
        install_backend(FakeBackend(available=False, reason="not downloaded"))
        with pytest.raises(ProviderSetupError, match="not downloaded"):
            prepare_model(context="unit-test")

    def test_missing_sdk_is_setup_error(self, install_backend):
        class MissingSDKBackend:
            def create_model(self):
                raise ModuleNotFoundError("No module named 'apple_fm_sdk'")

        install_backend(MissingSDKBackend())
        with pytest.raises(ProviderSetupError, match="ModuleNotFoundError") as exc_info:
            prepare_model(context="unit-test")
        assert isinstance(exc_info.value.__cause__, ModuleNotFoundError)


class TestCapabilities:
    def test_fake_backend_supports_adapters(self):
        assert backend_capabilities(FakeBackend()) == Capabilities(adapters=True, speech=False)

    def test_plain_backend_and_transcriber(self):
        transcriber = MagicMock(spec=["transcribe", "stop"])
        caps = backend_capabilities(PlainBackend(), transcriber)
        assert caps == Capabilities(adapters=False, speech=True)
