"""
Crisis Risk Assessor.

Scores text, voice and behavioral-history indicators into a weighted risk
estimate, a categorical level and an urgency.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from ..config import CrisisConfig, CrisisLevel, Urgency, get_settings
from ..models import AudioFeatures, CrisisAssessment, SessionSnapshot
from ..phrases import PhraseMatcher

logger = structlog.get_logger()


@dataclass(frozen=True)
class RiskCategory:
    """Keyword family contributing to text risk."""

    name: str
    weight: float
    keywords: Tuple[str, ...]


# =============================================================================
# Indicator Tables
# =============================================================================

RISK_CATEGORIES: Tuple[RiskCategory, ...] = (
    RiskCategory(
        name="suicidal",
        weight=0.9,
        keywords=(
            "kill myself", "end my life", "want to die", "suicide", "take my life",
            "don't want to live", "better off dead", "no reason to live", "end it all",
            "give up", "can't go on", "tired of living",
        ),
    ),
    RiskCategory(
        name="self_harm",
        weight=0.8,
        keywords=(
            "hurt myself", "cut myself", "self harm", "self injury", "bleeding", "scars",
            "burn myself", "hit myself", "bang my head",
        ),
    ),
    RiskCategory(
        name="hopelessness",
        weight=0.7,
        keywords=(
            "hopeless", "helpless", "worthless", "useless", "no hope", "nothing matters",
            "pointless", "meaningless", "no future", "everything is wrong",
            "can't fix this", "no way out",
        ),
    ),
    RiskCategory(
        name="isolation",
        weight=0.6,
        keywords=(
            "alone", "lonely", "no friends", "no one cares", "no one understands",
            "isolated", "abandoned", "rejected", "no support", "no one to talk to",
        ),
    ),
    RiskCategory(
        name="substance",
        weight=0.6,
        keywords=(
            "drunk", "high", "drugs", "alcohol", "overdose", "substance", "medication",
            "pills", "smoking", "drinking too much",
        ),
    ),
    RiskCategory(
        name="violence",
        weight=0.8,
        keywords=(
            "hurt someone", "kill someone", "attack", "violent", "rage", "angry",
            "furious", "hate", "revenge", "payback",
        ),
    ),
    RiskCategory(
        name="acute_distress",
        weight=0.7,
        keywords=(
            "panic", "anxiety attack", "can't breathe", "heart racing", "overwhelmed",
            "breaking down", "losing control", "freaking out", "mental breakdown",
            "nervous breakdown",
        ),
    ),
)

# Category importance in the text risk sum (isolation and substance are
# reported as indicators but do not contribute)
TEXT_RISK_WEIGHTS: Dict[str, float] = {
    "suicidal": 0.30,
    "self_harm": 0.25,
    "hopelessness": 0.20,
    "violence": 0.15,
    "acute_distress": 0.10,
}

VOICE_RISK_WEIGHTS: Dict[str, float] = {
    "stress": 0.25,
    "breath_irregularity": 0.20,
    "tremor": 0.20,
    "pitch_instability": 0.15,
    "volume_inconsistency": 0.10,
    "speech_rate": 0.10,
}

BEHAVIORAL_WEIGHTS: Dict[str, float] = {
    "mood_swings": 0.30,
    "withdrawal": 0.25,
    "agitation": 0.25,
    "impulsivity": 0.20,
}

# Explicit statements that floor the level regardless of density
ACUTE_SUICIDAL_PHRASES = (
    "kill myself", "want to die", "end it all", "suicide", "end my life",
    "take my life", "better off dead", "no reason to live",
)
DIRECT_SELF_HARM_PHRASES = ("hurt myself", "cut myself", "burn myself", "hit myself")

RECOMMENDED_ACTIONS: Dict[CrisisLevel, str] = {
    CrisisLevel.CRITICAL: (
        "Immediate intervention required. Provide crisis hotline information "
        "and encourage professional help."
    ),
    CrisisLevel.HIGH: (
        "High risk detected. Offer emotional support and suggest professional counseling."
    ),
    CrisisLevel.MEDIUM: (
        "Moderate risk. Continue supportive conversation and monitor for escalation."
    ),
    CrisisLevel.LOW: (
        "Low risk. Maintain supportive presence and encourage healthy coping strategies."
    ),
    CrisisLevel.NONE: "No immediate risk detected. Continue normal conversation.",
}

WITHDRAWAL_MAX_WORDS = 3
AGITATION_SCORE = 0.7
CALM_TREND_SCORE = 0.2


class CrisisRiskAssessor:
    """
    Per-turn crisis risk assessment.

    overall = text_weight * text + voice_weight * voice
              + behavioral_weight * behavioral

    Missing voice features or session history contribute zero; assessment
    never raises for absent signals.
    """

    def __init__(self, config: Optional[CrisisConfig] = None):
        self.config = config or get_settings().crisis
        self._categories = [(c, PhraseMatcher(c.keywords)) for c in RISK_CATEGORIES]
        self._acute = PhraseMatcher(ACUTE_SUICIDAL_PHRASES)
        self._suicidal = PhraseMatcher(RISK_CATEGORIES[0].keywords)
        self._self_harm = PhraseMatcher(DIRECT_SELF_HARM_PHRASES)
        self.logger = logger.bind(component="crisis")

    def assess(
        self,
        text: str,
        voice_features: Optional[AudioFeatures],
        session: SessionSnapshot,
    ) -> CrisisAssessment:
        """
        Assess one turn.

        Args:
            text: User utterance
            voice_features: Sampler output, or None when no audio was captured
            session: Read-only session view (history before this turn)
        """
        text_indicators = self.text_indicators(text)
        voice_indicators = self.voice_indicators(voice_features)
        behavioral_indicators = self.behavioral_indicators(session)

        text_risk = sum(
            TEXT_RISK_WEIGHTS[name] * text_indicators[name] for name in TEXT_RISK_WEIGHTS
        )
        voice_risk = sum(
            VOICE_RISK_WEIGHTS[name] * voice_indicators[name] for name in VOICE_RISK_WEIGHTS
        )
        behavioral_risk = sum(
            BEHAVIORAL_WEIGHTS[name] * behavioral_indicators[name]
            for name in BEHAVIORAL_WEIGHTS
        )

        overall = (
            self.config.text_weight * text_risk
            + self.config.voice_weight * voice_risk
            + self.config.behavioral_weight * behavioral_risk
        )
        overall = min(1.0, max(0.0, overall))
        level = self.level_for(overall)

        floor, direct = self._direct_statement_floor(text)
        if floor is not None and floor.rank > level.rank:
            level = floor
            overall = max(overall, self.config.level_thresholds.for_level(floor))

        urgency = self._urgency(level, text_indicators)
        confidence = self._confidence(text_risk, voice_risk, behavioral_risk, direct)

        assessment = CrisisAssessment(
            text_risk=text_risk,
            voice_risk=voice_risk,
            behavioral_risk=behavioral_risk,
            overall_risk=overall,
            level=level,
            confidence=confidence,
            urgency=urgency,
            recommended_action=RECOMMENDED_ACTIONS[level],
            text_indicators=text_indicators,
            voice_indicators=voice_indicators,
            behavioral_indicators=behavioral_indicators,
            direct_statement=direct,
        )

        if level.rank >= CrisisLevel.HIGH.rank:
            self.logger.warning(
                "Crisis risk elevated",
                session_id=session.session_id,
                level=level.value,
                urgency=urgency.value,
                overall_risk=round(overall, 3),
                direct_statement=direct,
            )

        return assessment

    def level_for(self, overall_risk: float) -> CrisisLevel:
        """Map overall risk to a categorical level using the thresholds."""
        thresholds = self.config.level_thresholds
        if overall_risk >= thresholds.critical:
            return CrisisLevel.CRITICAL
        if overall_risk >= thresholds.high:
            return CrisisLevel.HIGH
        if overall_risk >= thresholds.medium:
            return CrisisLevel.MEDIUM
        if overall_risk >= thresholds.low:
            return CrisisLevel.LOW
        return CrisisLevel.NONE

    def text_indicators(self, text: str) -> Dict[str, float]:
        """Per-category score: min(1, matches / keywords * weight)."""
        indicators = {}
        for category, matcher in self._categories:
            matches = matcher.count(text)
            indicators[category.name] = min(1.0, matches / len(matcher) * category.weight)
        return indicators

    @staticmethod
    def voice_indicators(features: Optional[AudioFeatures]) -> Dict[str, float]:
        if features is None:
            return {name: 0.0 for name in VOICE_RISK_WEIGHTS}
        return {name: float(getattr(features, name)) for name in VOICE_RISK_WEIGHTS}

    def behavioral_indicators(self, session: SessionSnapshot) -> Dict[str, float]:
        """Patterns in the recent crisis-level history."""
        ranks = [level.rank for level in session.crisis_levels][-self.config.behavioral_window:]

        return {
            "mood_swings": self._mood_swings(ranks),
            "withdrawal": self._withdrawal(session),
            "agitation": self._agitation(ranks),
            "impulsivity": self._impulsivity(ranks),
        }

    @staticmethod
    def _mood_swings(ranks: List[int]) -> float:
        if len(ranks) < 3:
            return 0.0
        return min(1.0, float(np.std(ranks)) / 4)

    @staticmethod
    def _agitation(ranks: List[int]) -> float:
        """Escalation detector: three consecutive non-decreasing levels."""
        if len(ranks) < 2:
            return 0.0
        last = ranks[-3:]
        if len(last) == 3 and last[0] <= last[1] <= last[2]:
            return AGITATION_SCORE
        return CALM_TREND_SCORE

    @staticmethod
    def _impulsivity(ranks: List[int]) -> float:
        """Share of turn-to-turn jumps of two or more levels."""
        if len(ranks) < 3:
            return 0.0
        jumps = sum(1 for a, b in zip(ranks, ranks[1:]) if abs(b - a) >= 2)
        return jumps / len(ranks)

    @staticmethod
    def _withdrawal(session: SessionSnapshot) -> float:
        history = session.conversation_history
        if len(history) < 3:
            return 0.0
        recent = history[-5:]
        short = sum(1 for entry in recent if len(entry.text.split()) <= WITHDRAWAL_MAX_WORDS)
        return short / len(recent)

    def _direct_statement_floor(self, text: str) -> Tuple[Optional[CrisisLevel], bool]:
        if self._acute.any(text):
            return CrisisLevel.CRITICAL, True

        if self._suicidal.any(text) or self._self_harm.any(text):
            return CrisisLevel.HIGH, True

        return None, False

    @staticmethod
    def _urgency(level: CrisisLevel, text_indicators: Dict[str, float]) -> Urgency:
        if level == CrisisLevel.CRITICAL or text_indicators["suicidal"] > 0.7:
            return Urgency.IMMEDIATE
        if level == CrisisLevel.HIGH or text_indicators["self_harm"] > 0.6:
            return Urgency.HIGH
        if level == CrisisLevel.MEDIUM:
            return Urgency.MEDIUM
        return Urgency.LOW

    @staticmethod
    def _confidence(
        text_risk: float,
        voice_risk: float,
        behavioral_risk: float,
        direct: bool,
    ) -> float:
        components = [
            0.8 if text_risk > 0.5 or direct else 0.3,
            0.7 if voice_risk > 0.5 else 0.4,
            0.6 if behavioral_risk > 0.5 else 0.3,
        ]
        return float(np.mean(components))
