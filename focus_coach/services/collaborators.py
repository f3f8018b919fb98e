"""Capability contracts supplied by the host

The core never talks to the operating system or an AI vendor directly. The
host hands in objects (or plain async callables) that satisfy these
protocols; tests hand in fakes.
"""
from typing import Any, Dict, Optional, Protocol, Union, runtime_checkable

from focus_coach.models.focus_state import ClassificationResult, RedactionOutcome, ScreenArtifact
from focus_coach.models.sample import WindowContext


@runtime_checkable
class ContextSource(Protocol):
    """captureActiveWindowContext: may raise or return None when unavailable"""

    async def __call__(self) -> Optional[Union[WindowContext, Dict[str, Any]]]:
        ...


@runtime_checkable
class FocusClassifier(Protocol):
    """classifyFocus: safe to retry, failures are non-fatal"""

    async def __call__(self, artifact: ScreenArtifact, work_context: str) -> ClassificationResult:
        ...


@runtime_checkable
class TextGenerator(Protocol):
    """generateText: returns the raw model reply"""

    async def __call__(self, system_prompt: str, user_prompt: str) -> str:
        ...


@runtime_checkable
class Redactor(Protocol):
    """redactSensitiveRegions: OCR + pixel redaction applied before classification"""

    async def __call__(self, artifact: ScreenArtifact) -> Union[RedactionOutcome, Dict[str, Any]]:
        ...


@runtime_checkable
class IdleTimeReader(Protocol):
    """Seconds since the last keyboard or mouse input; None when unknown"""

    async def __call__(self) -> Optional[float]:
        ...


@runtime_checkable
class ArtifactCapturer(Protocol):
    """Produces the screen artifact handed to the classifier"""

    async def __call__(self) -> Optional[ScreenArtifact]:
        ...


def as_window_context(value) -> Optional[WindowContext]:
    """Accept either a WindowContext or the plain mapping a host may return"""
    if value is None:
        return None
    if isinstance(value, WindowContext):
        return value
    if isinstance(value, dict):
        data = dict(value)
        # tolerate camelCase keys from hosts that mirror the capability names
        for camel, snake in (
            ("appId", "app_id"), ("appName", "app_name"), ("windowTitle", "window_title"),
            ("urlDomain", "url_domain"), ("docId", "doc_id"), ("onScreenText", "on_screen_text"),
        ):
            if camel in data and snake not in data:
                data[snake] = data.pop(camel)
        if not data.get("app_id"):
            return None
        return WindowContext.model_validate(data)
    raise TypeError(f"Unsupported window context type: {type(value).__name__}")


def as_redaction_outcome(value) -> RedactionOutcome:
    if isinstance(value, RedactionOutcome):
        return value
    if isinstance(value, dict):
        return RedactionOutcome(redacted=bool(value.get("redacted", False)))
    return RedactionOutcome(redacted=bool(value))


def as_classification_result(value) -> ClassificationResult:
    """Accept a ClassificationResult or a ``{"status", "reason"}`` mapping"""
    if isinstance(value, ClassificationResult):
        return value
    if isinstance(value, dict):
        label = value.get("label", value.get("status"))
        return ClassificationResult(label=label, reason=value.get("reason") or "")
    raise TypeError(f"Unsupported classification type: {type(value).__name__}")
