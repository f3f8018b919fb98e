from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union
from pydantic import BaseModel, Field

from focus_coach.models.sample import Sample


class FocusState(str, Enum):
    """Stabilized, externally visible focus state"""
    DETECTING = "detecting"
    FOCUSED = "focused"
    SEMI_DISTRACTED = "semi_distracted"
    DISTRACTED = "distracted"
    IDLE = "idle"


class FocusLabel(str, Enum):
    """Raw per-sample label produced by the classifier"""
    FOCUSED = "focused"
    SEMI_DISTRACTED = "semi-distracted"
    DISTRACTED = "distracted"

    @property
    def state(self) -> FocusState:
        return {
            FocusLabel.FOCUSED: FocusState.FOCUSED,
            FocusLabel.SEMI_DISTRACTED: FocusState.SEMI_DISTRACTED,
            FocusLabel.DISTRACTED: FocusState.DISTRACTED,
        }[self]


class NudgeKind(str, Enum):
    NUDGE = "nudge"
    CONTINUATION = "continuation"
    REMINDER = "reminder"


class ClassificationResult(BaseModel):
    """Classifier verdict for one screen artifact"""
    label: FocusLabel
    reason: str = Field(default="", description="Short justification from the classifier")
    raw: Optional[str] = Field(default=None, description="Unparsed classifier output")


class RedactionOutcome(BaseModel):
    redacted: bool = False


# A screen artifact is whatever the capture collaborator produces, usually a screenshot path
ScreenArtifact = Union[Path, str, Any]


@dataclass
class StateTransition:
    previous: Optional[FocusState]
    current: FocusState
    reason: str
    timestamp: float


@dataclass
class ClassificationEvent:
    """A classification surfaced by the stabilizer"""
    label: FocusLabel
    reason: str
    consensus: int
    changed: bool
    timestamp: float
    artifact: Optional[ScreenArtifact] = None


@dataclass
class NudgeEvent:
    message: str
    kind: NudgeKind
    timestamp: float


@dataclass
class OnTaskReference:
    """Most recent context captured while the user was on task"""
    timestamp: float
    artifact: Optional[ScreenArtifact] = None
    sample: Optional[Sample] = None
    reason: str = ""


@dataclass
class NudgeRecord:
    """Throttling bookkeeping for coaching messages"""
    cooldown_seconds: float
    max_per_session: int
    last_nudge_at: Optional[float] = None
    session_count: int = 0

    def can_send(self, now: float) -> bool:
        if self.session_count >= self.max_per_session:
            return False
        if self.last_nudge_at is not None and now - self.last_nudge_at < self.cooldown_seconds:
            return False
        return True

    def register(self, now: float) -> None:
        self.last_nudge_at = now
        self.session_count += 1

    def reset(self) -> None:
        self.last_nudge_at = None
        self.session_count = 0


@dataclass
class NudgeResult:
    """Diagnostics for the last generation run"""
    message: str
    confidence: str
    entities: list = field(default_factory=list)
    attempts: int = 0
    used_fallback: bool = False
