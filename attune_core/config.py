"""
Configuration for the Attune dialogue core.
"""

from enum import Enum
from functools import lru_cache

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmotionCategory(str, Enum):
    """Closed emotion taxonomy."""

    NEUTRAL = "neutral"

    # Core emotions
    JOY = "joy"
    SADNESS = "sadness"
    ANGER = "anger"
    ANXIETY = "anxiety"
    SURPRISE = "surprise"
    FEAR = "fear"
    DISGUST = "disgust"
    CONTEMPT = "contempt"

    # Nuanced emotions
    RELIEF = "relief"
    PRIDE = "pride"
    BITTERSWEET = "bittersweet"
    NOSTALGIC = "nostalgic"
    CURIOUS = "curious"


class CandidateSource(str, Enum):
    """Detector that produced an emotion candidate."""

    OVERRIDE = "override"
    LEXICAL = "lexical"
    CONTEXTUAL = "contextual"
    PROSODIC = "prosodic"


class CrisisLevel(str, Enum):
    """Categorical crisis level."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _CRISIS_RANK[self]


_CRISIS_RANK = {
    CrisisLevel.NONE: 0,
    CrisisLevel.LOW: 1,
    CrisisLevel.MEDIUM: 2,
    CrisisLevel.HIGH: 3,
    CrisisLevel.CRITICAL: 4,
}


class Urgency(str, Enum):
    """How quickly a crisis needs a response."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    IMMEDIATE = "immediate"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    PRETTY = "pretty"


class CrisisLevelThresholds(BaseModel):
    """Lower bounds of overall risk for each crisis level."""

    low: float = Field(default=0.2, ge=0.0, le=1.0)
    medium: float = Field(default=0.4, ge=0.0, le=1.0)
    high: float = Field(default=0.6, ge=0.0, le=1.0)
    critical: float = Field(default=0.8, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_ascending(self) -> "CrisisLevelThresholds":
        if not (self.low <= self.medium <= self.high <= self.critical):
            raise ValueError("crisis level thresholds must be ascending")
        return self

    def for_level(self, level: CrisisLevel) -> float:
        """Lower bound for a level (0.0 for NONE)."""
        if level == CrisisLevel.NONE:
            return 0.0
        return getattr(self, level.value)


class SamplerConfig(BaseSettings):
    """Configuration for audio feature extraction."""

    model_config = SettingsConfigDict(env_prefix="SAMPLER_")

    sample_rate: int = Field(default=16000, description="Default sample rate")
    frame_size_ms: int = Field(default=25, description="Frame size for feature extraction")
    hop_size_ms: int = Field(default=10, description="Hop size between frames")

    pitch_min_hz: float = Field(default=80.0, description="Minimum pitch frequency")
    pitch_max_hz: float = Field(default=400.0, description="Maximum pitch frequency")
    pitch_threshold: float = Field(default=0.3, description="Pitch detection threshold")

    band_split_hz: float = Field(default=1000.0, description="Low/high band boundary")
    typical_syllable_rate: float = Field(
        default=4.0,
        description="Syllables per second of relaxed speech",
    )


class FusionConfig(BaseSettings):
    """Configuration for emotion fusion."""

    model_config = SettingsConfigDict(env_prefix="FUSION_")

    confidence_threshold: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Minimum candidate confidence to take part in fusion",
    )
    blend_max_weight: float = Field(
        default=0.25,
        description="Maximum pull of the secondary emotion on PAD values",
    )
    sarcasm_attenuation: float = Field(
        default=0.5,
        description="Scale applied to inverted pleasure when sarcasm is suspected",
    )


class MemoryConfig(BaseSettings):
    """Configuration for the session memory store."""

    model_config = SettingsConfigDict(env_prefix="MEMORY_")

    inactivity_timeout_ms: int = Field(
        default=30 * 60 * 1000,
        description="Idle time after which a session is swept",
    )
    sweep_interval_ms: int = Field(default=60_000, description="Sweep period")

    # Ring buffers
    recent_emotions_capacity: int = Field(default=10, ge=1)
    history_capacity: int = Field(default=20, ge=1)
    crisis_history_capacity: int = Field(default=50, ge=1)
    excerpt_length: int = Field(default=100, description="Stored text excerpt length")

    # Baseline and drift
    baseline_alpha: float = Field(
        default=0.1,
        gt=0.0,
        le=1.0,
        description="Exponential smoothing factor for the PAD baseline",
    )
    drift_window: int = Field(default=5, ge=1)
    drift_threshold: float = Field(default=0.3, description="Drift signal threshold")


class CrisisConfig(BaseSettings):
    """Configuration for crisis risk assessment."""

    model_config = SettingsConfigDict(env_prefix="CRISIS_")

    text_weight: float = Field(default=0.6)
    voice_weight: float = Field(default=0.25)
    behavioral_weight: float = Field(default=0.15)
    level_thresholds: CrisisLevelThresholds = Field(
        default_factory=CrisisLevelThresholds
    )
    behavioral_window: int = Field(
        default=10,
        description="Recent crisis levels considered for behavioral patterns",
    )


class FlowConfig(BaseSettings):
    """Configuration for the conversation flow state machine."""

    model_config = SettingsConfigDict(env_prefix="FLOW_")

    min_response_delay_ms: int = Field(default=500)
    max_response_delay_ms: int = Field(default=3000)
    natural_pause_ms: int = Field(default=800)
    turn_timeout_ms: int = Field(default=10_000)

    # Engagement
    initial_engagement: float = Field(default=0.5, ge=0.0, le=1.0)
    engagement_decay: float = Field(default=0.95)
    interruption_threshold: float = Field(
        default=0.7,
        description="Engagement required before a user interrupt is admitted",
    )
    interruption_count_cap: int = Field(default=2)

    # Timing heuristics
    processing_ms_per_word: int = Field(default=200)
    max_processing_ms: int = Field(default=2000)
    base_transition_ms: int = Field(default=500)
    complete_input_chars: int = Field(
        default=10,
        description="Inputs longer than this are treated as complete",
    )
    jitter: float = Field(default=0.05, description="Response delay jitter (+/-)")


class ArbiterConfig(BaseSettings):
    """Configuration for barge-in arbitration."""

    model_config = SettingsConfigDict(env_prefix="ARBITER_")

    window_frames: int = Field(default=10, ge=1)
    poll_interval_ms: int = Field(default=50, ge=1)
    sample_rate: int = Field(default=16000)
    breath_refractory_ms: int = Field(default=1000)

    yield_threshold: float = Field(default=0.5)
    max_yield_delay_ms: int = Field(default=2000)
    urgent_delay_cap_ms: int = Field(default=200)

    # Per-user interruption pattern learning
    pattern_history_size: int = Field(default=100, ge=1)
    pattern_min_history: int = Field(default=3, ge=1)
    pattern_window_ms: int = Field(default=300_000, description="Recency window for learned pause likelihood")


class VoiceConfig(BaseSettings):
    """Configuration for voice behavior mapping."""

    model_config = SettingsConfigDict(env_prefix="VOICE_")

    min_multiplier: float = Field(default=0.5)
    max_multiplier: float = Field(default=2.0)
    fatigue_turn: int = Field(default=20, description="Turn after which delivery slows")
    fatigue_rate_drop: float = Field(default=0.05)
    fatigue_volume_drop: float = Field(default=0.03)


class Settings(BaseSettings):
    """Main settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = Field(default="attune-core", description="Service name")
    log_level: str = Field(default="info", description="Log level")
    log_format: LogFormat = Field(default=LogFormat.PRETTY, description="Log format")

    max_text_length: int = Field(
        default=1000,
        description="Maximum accepted utterance length",
    )

    # Sub-configurations
    sampler: SamplerConfig = Field(default_factory=SamplerConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    crisis: CrisisConfig = Field(default_factory=CrisisConfig)
    flow: FlowConfig = Field(default_factory=FlowConfig)
    arbiter: ArbiterConfig = Field(default_factory=ArbiterConfig)
    voice: VoiceConfig = Field(default_factory=VoiceConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()
