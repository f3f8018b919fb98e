from enum import Enum
from typing import List, Optional
from urllib.parse import urlparse
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_ENTITIES = 12
MIN_ENTITY_LENGTH = 3
MAX_ENTITY_LENGTH = 40


class ConfidenceLevel(str, Enum):
    """Trust that the cached context still describes the current activity"""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class SampleTrigger(str, Enum):
    """Why a sample was captured"""
    HEARTBEAT = "heartbeat"
    MILESTONE = "milestone"
    IDLE_TO_ACTIVE = "idle_to_active"
    MANUAL = "manual"


def normalize_entities(entities: List[str], limit: int = MAX_ENTITIES) -> List[str]:
    """De-duplicate (order preserving), length-filter and cap an entity list"""
    seen = set()
    result = []
    for entity in entities:
        if not isinstance(entity, str):
            continue
        cleaned = entity.strip()
        if not (MIN_ENTITY_LENGTH <= len(cleaned) <= MAX_ENTITY_LENGTH):
            continue
        if cleaned in seen:
            continue
        seen.add(cleaned)
        result.append(cleaned)
        if len(result) >= limit:
            break
    return result


class WindowContext(BaseModel):
    """Raw OS-level description of the foreground window"""
    app_id: str = Field(description="Bundle identifier or process name")
    app_name: Optional[str] = None
    window_title: Optional[str] = None
    url: Optional[str] = None
    url_domain: Optional[str] = None
    doc_id: Optional[str] = None
    on_screen_text: Optional[str] = None

    @model_validator(mode="after")
    def derive_domain(self) -> "WindowContext":
        if self.url and not self.url_domain:
            host = urlparse(self.url).hostname
            if host:
                self.url_domain = host
        return self

    @property
    def identity(self) -> str:
        """String used to detect foreground window changes"""
        return f"{self.app_name or self.app_id} - {self.window_title or 'No Window'}"


class CurrentMeta(BaseModel):
    """Activity signal at the instant a nudge or analysis is needed"""
    app_id: str
    window_title: Optional[str] = None
    url_domain: Optional[str] = None
    doc_id: Optional[str] = None

    @classmethod
    def from_context(cls, context: WindowContext) -> "CurrentMeta":
        return cls(
            app_id=context.app_id,
            window_title=context.window_title,
            url_domain=context.url_domain,
            doc_id=context.doc_id,
        )


class Sample(BaseModel):
    """One observation of user activity"""
    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(description="Capture time in epoch seconds")
    app_id: str = Field(min_length=1, description="Bundle identifier or process name")
    window_title: Optional[str] = None
    url_domain: Optional[str] = None
    doc_id: Optional[str] = None
    entities: List[str] = Field(default_factory=list, description="Salient tokens, 3-40 chars, at most 12")
    recent_snippet: Optional[str] = None
    trigger: SampleTrigger = SampleTrigger.MANUAL
    merged_count: int = Field(default=0, ge=0)

    @field_validator("entities")
    @classmethod
    def cap_entities(cls, value: List[str]) -> List[str]:
        return normalize_entities(value)

    @property
    def meta(self) -> CurrentMeta:
        return CurrentMeta(
            app_id=self.app_id,
            window_title=self.window_title,
            url_domain=self.url_domain,
            doc_id=self.doc_id,
        )


class MatchResult(BaseModel):
    """Outcome of matching the current activity against the cache"""
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    sample: Optional[Sample] = None

    @property
    def entities(self) -> List[str]:
        return list(self.sample.entities) if self.sample else []
