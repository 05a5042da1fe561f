"""
Voice Behavior Mapper.

Projects the fused emotional state and crisis level onto speech synthesis
delivery parameters.
"""

from dataclasses import dataclass
from typing import Dict, Optional

import structlog

from ..config import EmotionCategory, MemoryConfig, VoiceConfig, get_settings
from ..models import (
    CrisisAssessment,
    EmotionalState,
    SessionSnapshot,
    VoiceParams,
    clamp,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class VoicePreset:
    """Delivery preset for an emotion."""

    rate: float
    pitch: float
    volume: float
    style: str


# Presets mirror the user's emotion: brighter for joy, softer and slower for
# sadness and fear, steady for anger
VOICE_PRESETS: Dict[EmotionCategory, VoicePreset] = {
    EmotionCategory.JOY: VoicePreset(1.05, 1.1, 1.05, "happy"),
    EmotionCategory.SADNESS: VoicePreset(0.9, 0.9, 0.9, "caring"),
    EmotionCategory.ANGER: VoicePreset(0.95, 0.95, 0.95, "calm"),
    EmotionCategory.ANXIETY: VoicePreset(0.9, 0.95, 0.9, "calm"),
    EmotionCategory.SURPRISE: VoicePreset(1.1, 1.2, 1.1, "surprised"),
    EmotionCategory.FEAR: VoicePreset(0.9, 0.9, 0.85, "protective"),
    EmotionCategory.DISGUST: VoicePreset(0.95, 0.9, 0.9, "neutral"),
    EmotionCategory.CONTEMPT: VoicePreset(0.95, 0.95, 0.9, "calm"),
    EmotionCategory.RELIEF: VoicePreset(0.95, 1.0, 0.95, "relieved"),
    EmotionCategory.PRIDE: VoicePreset(1.0, 1.1, 1.05, "proud"),
    EmotionCategory.BITTERSWEET: VoicePreset(0.95, 1.0, 0.95, "understanding"),
    EmotionCategory.NOSTALGIC: VoicePreset(0.9, 1.0, 0.9, "warm"),
    EmotionCategory.CURIOUS: VoicePreset(1.0, 1.05, 1.0, "curious"),
    EmotionCategory.NEUTRAL: VoicePreset(1.0, 1.0, 1.0, "warm"),
}

COMFORTING_PRESET = VoicePreset(0.85, 0.95, 0.9, "comforting")

MAX_ANCHOR_PULL = 0.5


class VoiceBehaviorMapper:
    """
    Maps (EmotionalState, CrisisAssessment) to VoiceParams.

    A critical crisis always uses the comforting preset. Otherwise the
    emotion's preset is scaled by intensity, slowed slightly late in long
    sessions and pulled back toward neutral delivery when the session has
    drifted from its role baseline. Every multiplier is clamped to the
    configured safe range.
    """

    def __init__(
        self,
        config: Optional[VoiceConfig] = None,
        drift_threshold: Optional[float] = None,
    ):
        self.config = config or get_settings().voice
        self.drift_threshold = (
            drift_threshold if drift_threshold is not None else MemoryConfig().drift_threshold
        )

    def map(
        self,
        state: EmotionalState,
        crisis: CrisisAssessment,
        session: Optional[SessionSnapshot] = None,
    ) -> VoiceParams:
        if crisis.is_critical:
            return self._params(
                COMFORTING_PRESET.rate,
                COMFORTING_PRESET.pitch,
                COMFORTING_PRESET.volume,
                COMFORTING_PRESET.style,
            )

        preset = VOICE_PRESETS.get(state.primary_emotion, VOICE_PRESETS[EmotionCategory.NEUTRAL])
        scale = 0.5 + clamp(state.intensity, 0.0, 1.0)

        rate = 1 + (preset.rate - 1) * scale
        pitch = 1 + (preset.pitch - 1) * scale
        volume = 1 + (preset.volume - 1) * scale

        if session is not None:
            if session.turn_number > self.config.fatigue_turn:
                rate -= self.config.fatigue_rate_drop
                volume -= self.config.fatigue_volume_drop

            deviation = session.role_deviation
            if deviation > self.drift_threshold:
                pull = min(MAX_ANCHOR_PULL, deviation)
                rate += (1 - rate) * pull
                pitch += (1 - pitch) * pull
                volume += (1 - volume) * pull
                logger.debug(
                    "Voice anchored to role baseline",
                    session_id=session.session_id,
                    deviation=round(deviation, 3),
                )

        return self._params(rate, pitch, volume, preset.style)

    def _params(self, rate: float, pitch: float, volume: float, style: str) -> VoiceParams:
        low, high = self.config.min_multiplier, self.config.max_multiplier
        return VoiceParams(
            rate_multiplier=clamp(rate, low, high),
            pitch_multiplier=clamp(pitch, low, high),
            volume_multiplier=clamp(volume, low, high),
            style_tag=style,
        )
