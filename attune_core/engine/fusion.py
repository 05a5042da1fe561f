"""
Emotion Fusion Engine.

Combines lexical, contextual, override and prosodic candidates into one
ranked emotional estimate per utterance.
"""

import re
from typing import Dict, List, Optional, Tuple

import structlog

from ..config import CandidateSource, EmotionCategory, FusionConfig, get_settings
from ..models import (
    AudioFeatures,
    EmotionalState,
    EmotionCandidate,
    PAD,
    SessionSnapshot,
)
from ..phrases import PhraseMatcher
from .scoring import KeywordScoringStrategy, ScoringStrategy

logger = structlog.get_logger()


SOURCE_PRIORITY: Dict[CandidateSource, int] = {
    CandidateSource.OVERRIDE: 3,
    CandidateSource.LEXICAL: 2,
    CandidateSource.CONTEXTUAL: 1,
    CandidateSource.PROSODIC: 1,
}

SARCASM_MARKERS = (
    "yeah right",
    "oh great",
    "just great",
    "like i care",
    "as if",
    "thanks a lot",
    "whatever you say",
    "big surprise",
)

# Delivery directive word -> (emotion, intensity)
OVERRIDE_TARGETS: Dict[str, Tuple[EmotionCategory, float]] = {
    "laughing": (EmotionCategory.JOY, 0.8),
    "happy": (EmotionCategory.JOY, 0.8),
    "excited": (EmotionCategory.JOY, 0.9),
    "angry": (EmotionCategory.ANGER, 0.7),
    "sad": (EmotionCategory.SADNESS, 0.7),
    "scared": (EmotionCategory.FEAR, 0.8),
    "calm": (EmotionCategory.RELIEF, 0.6),
    "surprised": (EmotionCategory.SURPRISE, 0.8),
}

OVERRIDE_PATTERN = re.compile(
    r"\b(?:sound|act|speak|talk|say it|(?:can you|could you|please) be)\s+"
    r"(?:more\s+|really\s+|so\s+)?"
    r"(" + "|".join(OVERRIDE_TARGETS) + r")\b"
)
LAUGH_PATTERN = re.compile(r"\b(?:laugh with me|make me laugh)\b")

OVERRIDE_CONFIDENCE = 0.9
GREETING_BIAS = (0.6, 0.5)  # confidence, intensity
CONTINUITY_CONFIDENCE = 0.45


class EmotionFusionEngine:
    """
    Fuses independent emotion detectors.

    Ranking: source priority (override > lexical > contextual = prosodic),
    then confidence. The top candidate is primary; the first candidate with a
    different emotion is secondary and marks the state as blended.

    Sarcasm is applied before blending: a positive primary pleasure is
    inverted and attenuated, then the result is pulled toward the secondary
    emotion's coordinates.
    """

    def __init__(
        self,
        config: Optional[FusionConfig] = None,
        strategy: Optional[ScoringStrategy] = None,
    ):
        self.config = config or get_settings().fusion
        self.strategy = strategy or KeywordScoringStrategy(
            min_confidence=self.config.confidence_threshold
        )
        self._sarcasm = PhraseMatcher(SARCASM_MARKERS)
        self.logger = logger.bind(component="fusion")

    def fuse(
        self,
        text: str,
        session: SessionSnapshot,
        audio_features: Optional[AudioFeatures] = None,
    ) -> EmotionalState:
        """
        Produce the emotional state for one utterance.

        Reads the session snapshot; never mutates anything.
        """
        candidates: List[EmotionCandidate] = []
        candidates.extend(self.strategy.score(text))
        candidates.extend(self.detect_contextual(text, session))
        candidates.extend(self.detect_overrides(text))
        if audio_features is not None:
            candidates.extend(self.detect_prosodic(audio_features))

        threshold = self.config.confidence_threshold
        ranked = sorted(
            (c for c in candidates if c.confidence >= threshold),
            key=lambda c: (SOURCE_PRIORITY[c.source], c.confidence),
            reverse=True,
        )

        if not ranked:
            return EmotionalState.neutral()

        primary = ranked[0]
        secondary = next((c for c in ranked[1:] if c.emotion != primary.emotion), None)
        sarcastic = self._sarcasm.any(text)

        pad = self._pad_for(primary.emotion)
        if sarcastic and pad.pleasure > 0:
            pad = PAD(
                -pad.pleasure * self.config.sarcasm_attenuation,
                pad.arousal,
                pad.dominance,
            )

        if secondary is not None:
            weight = min(
                self.config.blend_max_weight,
                self.config.blend_max_weight * secondary.confidence / max(primary.confidence, 1e-6),
            )
            pad = pad.blend(self._pad_for(secondary.emotion), weight)

        pad = pad.clamped()

        self.logger.debug(
            "Emotion fused",
            primary=primary.emotion.value,
            confidence=round(primary.confidence, 3),
            candidates=len(ranked),
            sarcasm=sarcastic,
        )

        return EmotionalState(
            pleasure=pad.pleasure,
            arousal=pad.arousal,
            dominance=pad.dominance,
            primary_emotion=primary.emotion,
            secondary_emotion=secondary.emotion if secondary else EmotionCategory.NEUTRAL,
            intensity=primary.intensity,
            confidence=primary.confidence,
            is_blended=secondary is not None,
            sarcasm_suspected=sarcastic,
            detected_candidates=tuple(ranked),
        )

    def detect_contextual(
        self,
        text: str,
        session: SessionSnapshot,
    ) -> List[EmotionCandidate]:
        """Session-shape heuristics."""
        detected = []
        current_turn = session.turn_number + 1

        if current_turn == 1:
            confidence, intensity = GREETING_BIAS
            detected.append(
                EmotionCandidate(
                    emotion=EmotionCategory.NEUTRAL,
                    confidence=confidence,
                    intensity=intensity,
                    source=CandidateSource.CONTEXTUAL,
                )
            )

        # Emotional continuity across the last two turns
        recent = session.recent_emotions[-2:]
        if (
            len(recent) == 2
            and recent[0].emotion == recent[1].emotion
            and recent[0].emotion != EmotionCategory.NEUTRAL
        ):
            detected.append(
                EmotionCandidate(
                    emotion=recent[1].emotion,
                    confidence=CONTINUITY_CONFIDENCE,
                    intensity=(recent[0].intensity + recent[1].intensity) / 2,
                    source=CandidateSource.CONTEXTUAL,
                )
            )

        return detected

    def detect_overrides(self, text: str) -> List[EmotionCandidate]:
        """Explicit delivery directives such as "sound excited"."""
        lowered = text.lower()
        detected = []
        seen = set()

        for match in OVERRIDE_PATTERN.finditer(lowered):
            emotion, intensity = OVERRIDE_TARGETS[match.group(1)]
            if emotion not in seen:
                seen.add(emotion)
                detected.append(self._override(emotion, intensity))

        if LAUGH_PATTERN.search(lowered) and EmotionCategory.JOY not in seen:
            detected.append(self._override(EmotionCategory.JOY, 0.8))

        return detected

    def detect_prosodic(self, features: AudioFeatures) -> List[EmotionCandidate]:
        """Map voice indicators onto emotions."""
        detected = []

        def add(emotion: EmotionCategory, confidence: float) -> None:
            detected.append(
                EmotionCandidate(
                    emotion=emotion,
                    confidence=confidence,
                    intensity=features.intensity,
                    source=CandidateSource.PROSODIC,
                )
            )

        if features.excitement > 0.6:
            add(EmotionCategory.JOY, features.excitement)
        if features.stress > 0.6:
            add(EmotionCategory.ANXIETY, features.stress)
        if features.calmness > 0.7:
            add(EmotionCategory.RELIEF, features.calmness)
        if features.intensity > 0.8 and features.stress > 0.5:
            add(EmotionCategory.ANGER, features.intensity)

        return detected

    def _pad_for(self, emotion: EmotionCategory) -> PAD:
        if emotion == EmotionCategory.NEUTRAL:
            return EmotionalState.neutral().pad
        return self.strategy.pad_for(emotion)

    @staticmethod
    def _override(emotion: EmotionCategory, intensity: float) -> EmotionCandidate:
        return EmotionCandidate(
            emotion=emotion,
            confidence=OVERRIDE_CONFIDENCE,
            intensity=intensity,
            source=CandidateSource.OVERRIDE,
        )
