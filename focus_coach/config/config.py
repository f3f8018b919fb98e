from typing import Dict, Any
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import logging

logger = logging.getLogger(__name__)

class SamplerConfig(BaseModel):
    """Context sampler configuration"""
    heartbeat_minutes: float = Field(
        default=7.0,
        ge=0.1,
        le=120.0,
        description="Minutes between background heartbeat samples"
    )
    max_entities: int = Field(
        default=12,
        ge=1,
        le=12,
        description="Maximum entities kept per sample"
    )
    snippet_length: int = Field(
        default=200,
        ge=20,
        le=2000,
        description="Characters of on-screen text kept as the recent snippet"
    )

class CacheConfig(BaseModel):
    """Entity cache configuration"""
    capacity: int = Field(
        default=8,
        ge=1,
        le=64,
        description="Number of distinct samples kept in the ring"
    )
    stale_minutes: float = Field(
        default=12.0,
        gt=0.0,
        le=240.0,
        description="Age after which a cached sample is purged"
    )
    confidence_high: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum score for HIGH confidence"
    )
    confidence_medium: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Minimum score for MEDIUM confidence"
    )
    merge_similarity: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Title similarity above which two samples are the same activity"
    )
    max_entities: int = Field(
        default=12,
        ge=1,
        le=12,
        description="Entity cap applied after merging"
    )

    @model_validator(mode="after")
    def check_thresholds(self) -> "CacheConfig":
        if self.confidence_medium > self.confidence_high:
            raise ValueError("confidence_medium must not exceed confidence_high")
        return self

class NudgeConfig(BaseModel):
    """Nudge generation configuration"""
    cooldown_minutes: float = Field(
        default=4.0,
        ge=0.0,
        le=240.0,
        description="Minimum minutes between accepted nudges"
    )
    max_per_session: int = Field(
        default=1,
        ge=0,
        le=100,
        description="Maximum nudges per monitoring session"
    )
    max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Extra generation attempts after the first"
    )
    generation_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Timeout for a single text generation call"
    )

class StabilizerConfig(BaseModel):
    """Focus state stabilizer configuration"""
    poll_interval_seconds: float = Field(default=1.0, gt=0.0, le=60.0)
    analysis_cooldown_seconds: float = Field(default=2.0, ge=0.0, le=300.0)
    analysis_timeout_seconds: float = Field(default=30.0, gt=0.0, le=300.0)
    history_size: int = Field(default=3, ge=1, le=20)
    idle_check_interval_seconds: float = Field(default=5.0, gt=0.0, le=300.0)
    idle_after_no_window_change_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Seconds without a window change before idle is considered"
    )
    idle_input_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Device input idle time that counts as idle"
    )
    resume_input_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="Device input idle time at or below which the user is back"
    )
    semi_escalation_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Continuous semi-distracted seconds before escalating"
    )
    reminder_interval_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Seconds between reminders while distracted"
    )

    @model_validator(mode="after")
    def check_idle_thresholds(self) -> "StabilizerConfig":
        if self.resume_input_seconds >= self.idle_input_seconds:
            raise ValueError("resume_input_seconds must be below idle_input_seconds")
        return self

class Config(BaseSettings):
    """Main configuration class"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FOCUS_",
        env_nested_delimiter="__",
        extra="ignore"
    )

    sampler: SamplerConfig = SamplerConfig()
    cache: CacheConfig = CacheConfig()
    nudge: NudgeConfig = NudgeConfig()
    stabilizer: StabilizerConfig = StabilizerConfig()

    def as_dict(self) -> Dict[str, Any]:
        """Effective configuration, grouped by component"""
        return {
            "sampler": self.sampler.model_dump(),
            "cache": self.cache.model_dump(),
            "nudge": self.nudge.model_dump(),
            "stabilizer": self.stabilizer.model_dump(),
        }

# Global configuration instance
config = Config()
