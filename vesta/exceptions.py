"""
Error types and setup diagnostics for Vesta.

Setup problems (SDK missing, model not downloaded, adapter unsupported) share
one troubleshooting message so the CLI, the chat controller and the doctor
command report them the same way.
"""

from __future__ import annotations

from typing import Any, NoReturn

__all__ = [
    "ChatError",
    "ProviderSetupError",
    "TurnInFlightError",
    "ensure_model_available",
    "raise_setup_error",
    "troubleshooting_message",
]


class ProviderSetupError(RuntimeError):
    """Raised when the model provider (SDK, model or adapter) is unavailable."""


class ChatError(RuntimeError):
    """Base class for errors raised by the chat controller's awaitable helpers."""


class TurnInFlightError(ChatError):
    """Raised when a turn is requested while another one is still streaming."""


def troubleshooting_message(context: str, reason: str | None = None) -> str:
    """Build a standard setup troubleshooting message."""
    label = context.strip() if context.strip() else "vesta"
    lines = [f"[{label}] Apple Foundation Models setup check failed."]
    if reason:
        lines.append(f"Reason: {reason}")
    lines.extend(
        [
            "",
            "Troubleshooting checklist:",
            "1. Use macOS 26+ on Apple Silicon (M-series) with Apple Intelligence enabled.",
            "2. Install the SDK extra: pip install 'vesta[apple]'",
            "3. Verify SDK import:",
            '   python -c "import apple_fm_sdk as fm; print(fm.__name__)"',
            "4. Verify model availability:",
            '   python -c "import apple_fm_sdk as fm; m=fm.SystemLanguageModel(); print(m.is_available())"',
            "5. If you passed --adapter, check that the adapter file exists and matches the OS model version.",
            "6. Run diagnostics: vesta doctor",
        ]
    )
    return "\n".join(lines)


def raise_setup_error(
    context: str,
    *,
    reason: str | None = None,
    exc: BaseException | None = None,
) -> NoReturn:
    """Raise :class:`ProviderSetupError` with standardized diagnostics."""
    computed_reason = reason
    if computed_reason is None and exc is not None:
        computed_reason = f"{type(exc).__name__}: {exc}"

    error = ProviderSetupError(troubleshooting_message(context, reason=computed_reason))
    if exc is not None:
        raise error from exc
    raise error


def ensure_model_available(model: Any, *, context: str) -> None:
    """Validate that a model can be used for local inference."""
    try:
        available, reason = model.is_available()
    except Exception as exc:
        raise_setup_error(context, exc=exc)

    if not available:
        detail = f"Foundation Model is not available: {reason}"
        raise_setup_error(context, reason=detail)

