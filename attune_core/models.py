"""
Data models for the Attune dialogue core.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .config import CandidateSource, CrisisLevel, EmotionCategory, Urgency


def clamp(value: float, low: float, high: float) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


# =============================================================================
# Affect
# =============================================================================


@dataclass(frozen=True)
class PAD:
    """Pleasure-arousal-dominance triple."""

    pleasure: float = 0.0  # -1.0 to 1.0
    arousal: float = 0.5  # 0.0 to 1.0
    dominance: float = 0.0  # -1.0 to 1.0

    def clamped(self) -> "PAD":
        return PAD(
            pleasure=clamp(self.pleasure, -1.0, 1.0),
            arousal=clamp(self.arousal, 0.0, 1.0),
            dominance=clamp(self.dominance, -1.0, 1.0),
        )

    def blend(self, other: "PAD", weight: float) -> "PAD":
        """Move `weight` of the way toward `other`."""
        return PAD(
            pleasure=(1 - weight) * self.pleasure + weight * other.pleasure,
            arousal=(1 - weight) * self.arousal + weight * other.arousal,
            dominance=(1 - weight) * self.dominance + weight * other.dominance,
        )

    def deviation(self, other: "PAD") -> float:
        """Mean absolute difference across the three axes."""
        return (
            abs(self.pleasure - other.pleasure)
            + abs(self.arousal - other.arousal)
            + abs(self.dominance - other.dominance)
        ) / 3

    def to_dict(self) -> Dict[str, float]:
        return {
            "pleasure": round(self.pleasure, 3),
            "arousal": round(self.arousal, 3),
            "dominance": round(self.dominance, 3),
        }


NEUTRAL_PAD = PAD(pleasure=0.0, arousal=0.5, dominance=0.0)


@dataclass(frozen=True)
class EmotionCandidate:
    """One detector's vote for an emotion."""

    emotion: EmotionCategory
    confidence: float
    intensity: float
    source: CandidateSource

    def to_dict(self) -> Dict[str, Any]:
        return {
            "emotion": self.emotion.value,
            "confidence": round(self.confidence, 3),
            "intensity": round(self.intensity, 3),
            "source": self.source.value,
        }


@dataclass(frozen=True)
class EmotionalState:
    """Fused emotional estimate for one utterance."""

    pleasure: float = 0.0
    arousal: float = 0.5
    dominance: float = 0.0
    primary_emotion: EmotionCategory = EmotionCategory.NEUTRAL
    secondary_emotion: EmotionCategory = EmotionCategory.NEUTRAL
    intensity: float = 0.5
    confidence: float = 0.5
    is_blended: bool = False
    sarcasm_suspected: bool = False

    # Ranked candidates; index 0 is always the primary emotion
    detected_candidates: Tuple[EmotionCandidate, ...] = ()

    @property
    def pad(self) -> PAD:
        return PAD(self.pleasure, self.arousal, self.dominance)

    @classmethod
    def neutral(cls) -> "EmotionalState":
        """Neutral baseline state used when nothing is detected."""
        return cls(
            pleasure=NEUTRAL_PAD.pleasure,
            arousal=NEUTRAL_PAD.arousal,
            dominance=NEUTRAL_PAD.dominance,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.pad.to_dict(),
            "primary_emotion": self.primary_emotion.value,
            "secondary_emotion": self.secondary_emotion.value,
            "intensity": round(self.intensity, 3),
            "confidence": round(self.confidence, 3),
            "is_blended": self.is_blended,
            "sarcasm_suspected": self.sarcasm_suspected,
            "detected_candidates": [c.to_dict() for c in self.detected_candidates],
        }


# =============================================================================
# Audio Features
# =============================================================================


@dataclass
class AudioFeatures:
    """Short-horizon audio features. Indicators are normalized to [0, 1]."""

    sample_rate: int = 16000
    duration_ms: float = 0.0

    # Raw measurements
    rms: float = 0.0
    zero_crossing_rate: float = 0.0
    pitch_hz: float = 0.0
    low_band_ratio: float = 0.0
    high_band_ratio: float = 0.0

    # Affect indicators
    stress: float = 0.0
    excitement: float = 0.0
    calmness: float = 0.0
    intensity: float = 0.0
    breathiness: float = 0.0

    # Crisis indicators
    breath_irregularity: float = 0.0
    tremor: float = 0.0
    pitch_instability: float = 0.0
    volume_inconsistency: float = 0.0
    speech_rate: float = 0.0  # Deviation from a typical rate

    @classmethod
    def silent(cls, sample_rate: int = 16000) -> "AudioFeatures":
        return cls(sample_rate=sample_rate)

    def to_dict(self) -> Dict[str, float]:
        return {
            "duration_ms": round(self.duration_ms, 1),
            "rms": round(self.rms, 4),
            "zero_crossing_rate": round(self.zero_crossing_rate, 4),
            "pitch_hz": round(self.pitch_hz, 2),
            "low_band_ratio": round(self.low_band_ratio, 3),
            "high_band_ratio": round(self.high_band_ratio, 3),
            "stress": round(self.stress, 3),
            "excitement": round(self.excitement, 3),
            "calmness": round(self.calmness, 3),
            "intensity": round(self.intensity, 3),
            "breathiness": round(self.breathiness, 3),
            "breath_irregularity": round(self.breath_irregularity, 3),
            "tremor": round(self.tremor, 3),
            "pitch_instability": round(self.pitch_instability, 3),
            "volume_inconsistency": round(self.volume_inconsistency, 3),
            "speech_rate": round(self.speech_rate, 3),
        }


# =============================================================================
# Crisis
# =============================================================================


@dataclass(frozen=True)
class CrisisAssessment:
    """Per-turn crisis risk estimate."""

    text_risk: float = 0.0
    voice_risk: float = 0.0
    behavioral_risk: float = 0.0
    overall_risk: float = 0.0
    level: CrisisLevel = CrisisLevel.NONE
    confidence: float = 0.0
    urgency: Urgency = Urgency.LOW
    recommended_action: str = ""

    text_indicators: Dict[str, float] = field(default_factory=dict)
    voice_indicators: Dict[str, float] = field(default_factory=dict)
    behavioral_indicators: Dict[str, float] = field(default_factory=dict)

    direct_statement: bool = False
    is_fallback: bool = False

    @property
    def is_critical(self) -> bool:
        return self.level == CrisisLevel.CRITICAL

    @classmethod
    def fallback(cls, overall_risk: float = 0.4) -> "CrisisAssessment":
        """Cautious assessment used when crisis computation faults."""
        return cls(
            overall_risk=overall_risk,
            level=CrisisLevel.MEDIUM,
            urgency=Urgency.MEDIUM,
            recommended_action=(
                "Risk could not be assessed. Continue supportive conversation "
                "and monitor for escalation."
            ),
            is_fallback=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text_risk": round(self.text_risk, 3),
            "voice_risk": round(self.voice_risk, 3),
            "behavioral_risk": round(self.behavioral_risk, 3),
            "overall_risk": round(self.overall_risk, 3),
            "level": self.level.value,
            "confidence": round(self.confidence, 3),
            "urgency": self.urgency.value,
            "recommended_action": self.recommended_action,
            "text_indicators": {k: round(v, 3) for k, v in self.text_indicators.items()},
            "voice_indicators": {k: round(v, 3) for k, v in self.voice_indicators.items()},
            "behavioral_indicators": {
                k: round(v, 3) for k, v in self.behavioral_indicators.items()
            },
            "direct_statement": self.direct_statement,
            "is_fallback": self.is_fallback,
        }


# =============================================================================
# Conversation Flow
# =============================================================================


class FlowPhase(str, Enum):
    """Turn-taking phases."""

    GREETING = "greeting"
    LISTENING = "listening"
    PROCESSING = "processing"
    RESPONDING = "responding"
    TRANSITIONING = "transitioning"
    PAUSED = "paused"


class FlowAction(str, Enum):
    """What the system should do next."""

    SPEAK = "speak"
    LISTEN = "listen"
    PAUSE = "pause"
    TRANSITION = "transition"
    INTERRUPT = "interrupt"


class FlowPriority(str, Enum):
    """Priority of a flow decision."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FlowReason(str, Enum):
    """Why a flow decision was made."""

    CRISIS_INTERRUPT = "crisis_interrupt"
    URGENT_SIGNAL_INTERRUPT = "urgent_signal_interrupt"
    USER_INTERRUPT = "user_interrupt"
    CRISIS_HOLD = "crisis_hold"
    GREETING_RESPONSE = "greeting_response"
    BEGIN_LISTENING = "begin_listening"
    INPUT_COMPLETE = "input_complete"
    AWAITING_INPUT = "awaiting_input"
    PROCESSING_INPUT = "processing_input"
    RESPONSE_READY = "response_ready"
    CONTINUE_RESPONSE = "continue_response"
    PLAYBACK_COMPLETE = "playback_complete"
    HOLDING = "holding"
    RESUME_LISTENING = "resume_listening"
    NO_INPUT = "no_input"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class FlowState:
    """Turn-taking state of one session."""

    phase: FlowPhase = FlowPhase.GREETING
    engagement: float = 0.5
    interruption_count: int = 0
    countdown_ms: float = 0.0

    # Set by a crisis interrupt; cleared only by new input
    crisis_hold: bool = False

    last_update_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "engagement": round(self.engagement, 3),
            "interruption_count": self.interruption_count,
            "countdown_ms": round(self.countdown_ms, 1),
            "crisis_hold": self.crisis_hold,
        }


@dataclass(frozen=True)
class FlowDecision:
    """Flow state machine output for one turn."""

    action: FlowAction
    duration_ms: float
    priority: FlowPriority
    reason_code: FlowReason

    @classmethod
    def fallback(cls, duration_ms: float = 10_000) -> "FlowDecision":
        return cls(
            action=FlowAction.LISTEN,
            duration_ms=duration_ms,
            priority=FlowPriority.MEDIUM,
            reason_code=FlowReason.FALLBACK,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "duration_ms": round(self.duration_ms, 1),
            "priority": self.priority.value,
            "reason_code": self.reason_code.value,
        }


# =============================================================================
# Interruption
# =============================================================================


class ResumeStrategy(str, Enum):
    """How playback resumes after yielding the floor."""

    CONTINUE = "continue"
    SUMMARIZE = "summarize"
    REDIRECT = "redirect"
    PAUSE_INDEFINITELY = "pause_indefinitely"


@dataclass(frozen=True)
class IntentionSignals:
    """Intention-to-interrupt signals derived from live audio."""

    breath_intake: float = 0.0
    micromovement: float = 0.0
    background_prep: float = 0.0
    pause_pattern_likelihood: float = 0.5
    urgency: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "breath_intake": round(self.breath_intake, 3),
            "micromovement": round(self.micromovement, 3),
            "background_prep": round(self.background_prep, 3),
            "pause_pattern_likelihood": round(self.pause_pattern_likelihood, 3),
            "urgency": round(self.urgency, 3),
        }


@dataclass
class PlaybackProgress:
    """What the system has said so far in the current response."""

    current_sentence: str = ""
    sentence_progress: Optional[float] = None  # 0-1, estimated from words if None
    priority: FlowPriority = FlowPriority.LOW
    engagement: float = 0.5


@dataclass(frozen=True)
class InterruptionDecision:
    """Barge-in arbitration result."""

    should_yield: bool
    confidence: float
    delay_ms: float
    resume_strategy: ResumeStrategy
    probability: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "should_yield": self.should_yield,
            "confidence": round(self.confidence, 3),
            "delay_ms": round(self.delay_ms, 1),
            "resume_strategy": self.resume_strategy.value,
            "probability": round(self.probability, 3),
        }


class InterruptionStyle(str, Enum):
    """How a user tends to take the floor."""

    POLITE = "polite"
    ASSERTIVE = "assertive"
    HESITANT = "hesitant"
    URGENT = "urgent"


@dataclass(frozen=True)
class InteractionRecord:
    """Outcome of one monitored response."""

    timestamp_ms: float
    duration_ms: float
    was_interrupted: bool
    emotion: Optional[EmotionCategory] = None


@dataclass(frozen=True)
class InterruptionPatterns:
    """Learned per-user barge-in habits."""

    interruption_style: InterruptionStyle = InterruptionStyle.POLITE
    average_turn_length_ms: float = 3000.0
    preferred_pause_ms: float = 500.0
    emotional_triggers: Tuple[EmotionCategory, ...] = ()
    hourly_interruptions: Dict[int, int] = field(default_factory=dict)
    interactions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "interruption_style": self.interruption_style.value,
            "average_turn_length_ms": round(self.average_turn_length_ms, 1),
            "preferred_pause_ms": round(self.preferred_pause_ms, 1),
            "emotional_triggers": [e.value for e in self.emotional_triggers],
            "hourly_interruptions": dict(self.hourly_interruptions),
            "interactions": self.interactions,
        }


# =============================================================================
# Voice
# =============================================================================


@dataclass(frozen=True)
class VoiceParams:
    """Speech synthesis delivery parameters."""

    rate_multiplier: float = 1.0
    pitch_multiplier: float = 1.0
    volume_multiplier: float = 1.0
    style_tag: str = "warm"

    @classmethod
    def default(cls) -> "VoiceParams":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate_multiplier": round(self.rate_multiplier, 3),
            "pitch_multiplier": round(self.pitch_multiplier, 3),
            "volume_multiplier": round(self.volume_multiplier, 3),
            "style_tag": self.style_tag,
        }


# =============================================================================
# Session
# =============================================================================


class RelationshipStage(str, Enum):
    NEW = "new"
    BUILDING = "building"
    ESTABLISHED = "established"
    CLOSE = "close"


class CommunicationStyle(str, Enum):
    CASUAL = "casual"
    PLAYFUL = "playful"
    SUPPORTIVE = "supportive"


@dataclass(frozen=True)
class RecentEmotion:
    """Entry in the recent-emotions ring buffer."""

    emotion: EmotionCategory
    intensity: float
    timestamp_ms: float
    pad: PAD = NEUTRAL_PAD


@dataclass(frozen=True)
class HistoryEntry:
    """Entry in the conversation-history ring buffer."""

    text: str
    emotion: EmotionCategory
    timestamp_ms: float


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session handed to analysis components."""

    session_id: str
    created_at_ms: float = 0.0
    turn_number: int = 0
    recent_emotions: Tuple[RecentEmotion, ...] = ()
    conversation_history: Tuple[HistoryEntry, ...] = ()
    baseline: PAD = NEUTRAL_PAD
    role_baseline: Optional[PAD] = None
    drift: float = 0.0
    flow: FlowState = field(default_factory=FlowState)
    crisis_levels: Tuple[CrisisLevel, ...] = ()
    trust_level: float = 0.3
    comfort_level: float = 0.3
    relationship_stage: RelationshipStage = RelationshipStage.NEW
    communication_style: CommunicationStyle = CommunicationStyle.SUPPORTIVE
    last_activity_ms: float = 0.0

    @property
    def phase(self) -> FlowPhase:
        return self.flow.phase

    @property
    def engagement(self) -> float:
        return self.flow.engagement

    @property
    def interruption_count(self) -> int:
        return self.flow.interruption_count

    @property
    def role_deviation(self) -> float:
        """How far the smoothed baseline has moved from the role anchor."""
        if self.role_baseline is None:
            return 0.0
        return self.baseline.deviation(self.role_baseline)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "turn_number": self.turn_number,
            "baseline": self.baseline.to_dict(),
            "role_baseline": self.role_baseline.to_dict() if self.role_baseline else None,
            "drift": round(self.drift, 3),
            "flow": self.flow.to_dict(),
            "recent_emotions": [e.emotion.value for e in self.recent_emotions],
            "crisis_levels": [level.value for level in self.crisis_levels],
            "trust_level": round(self.trust_level, 3),
            "comfort_level": round(self.comfort_level, 3),
            "relationship_stage": self.relationship_stage.value,
            "communication_style": self.communication_style.value,
        }


# =============================================================================
# Pipeline Output
# =============================================================================


@dataclass
class TurnResult:
    """Everything the caller needs after one user turn."""

    session_id: str
    turn_number: int
    emotional_state: EmotionalState
    crisis: CrisisAssessment
    flow_decision: FlowDecision
    voice_params: VoiceParams
    prompt_context: Dict[str, str] = field(default_factory=dict)
    degraded_stages: List[str] = field(default_factory=list)
    no_input: bool = False
    processing_time_ms: float = 0.0

    @property
    def should_speak_now(self) -> bool:
        return self.flow_decision.action == FlowAction.SPEAK

    @property
    def delay_ms(self) -> float:
        return self.flow_decision.duration_ms

    @property
    def escalate(self) -> bool:
        """Whether the turn needs safety escalation."""
        return (
            self.crisis.level.rank >= CrisisLevel.HIGH.rank
            or self.crisis.urgency in (Urgency.HIGH, Urgency.IMMEDIATE)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "turn_number": self.turn_number,
            "should_speak_now": self.should_speak_now,
            "delay_ms": round(self.delay_ms, 1),
            "escalate": self.escalate,
            "emotional_state": self.emotional_state.to_dict(),
            "crisis": self.crisis.to_dict(),
            "flow_decision": self.flow_decision.to_dict(),
            "voice_params": self.voice_params.to_dict(),
            "prompt_context": dict(self.prompt_context),
            "degraded_stages": list(self.degraded_stages),
            "no_input": self.no_input,
            "processing_time_ms": round(self.processing_time_ms, 2),
        }


@dataclass
class GenerationRequest:
    """Arguments for the text generation collaborator."""

    system_prompt: str
    conversation_history: List[Dict[str, str]]
    latest_user_text: str


__all__ = [
    "clamp",
    "PAD",
    "NEUTRAL_PAD",
    "EmotionCandidate",
    "EmotionalState",
    "AudioFeatures",
    "CrisisAssessment",
    "FlowPhase",
    "FlowAction",
    "FlowPriority",
    "FlowReason",
    "FlowState",
    "FlowDecision",
    "ResumeStrategy",
    "IntentionSignals",
    "PlaybackProgress",
    "InterruptionDecision",
    "InterruptionStyle",
    "InteractionRecord",
    "InterruptionPatterns",
    "VoiceParams",
    "RelationshipStage",
    "CommunicationStyle",
    "RecentEmotion",
    "HistoryEntry",
    "SessionSnapshot",
    "TurnResult",
    "GenerationRequest",
]
