"""Unit tests for crisis risk assessment."""

import pytest

from attune_core.config import (
    CrisisConfig,
    CrisisLevel,
    CrisisLevelThresholds,
    EmotionCategory,
    Urgency,
)
from attune_core.engine.crisis import VOICE_RISK_WEIGHTS, CrisisRiskAssessor
from attune_core.models import AudioFeatures, CrisisAssessment, HistoryEntry, SessionSnapshot


@pytest.fixture
def assessor() -> CrisisRiskAssessor:
    return CrisisRiskAssessor(CrisisConfig())


class TestDirectStatements:
    """Tests for explicit suicidal and self-harm statements."""

    def test_kill_myself_is_critical(self, assessor, snapshot):
        """Test an explicit suicidal statement is critical and immediate."""
        result = assessor.assess("I want to kill myself", None, snapshot)

        assert result.level == CrisisLevel.CRITICAL
        assert result.urgency == Urgency.IMMEDIATE
        assert result.direct_statement
        assert result.overall_risk >= 0.8
        assert result.is_critical

    @pytest.mark.parametrize(
        "text",
        [
            "I just want to give up",
            "sometimes I hurt myself when it gets bad",
            "I can't go on like this",
        ],
    )
    def test_suicidal_or_self_harm_at_least_high(self, assessor, snapshot, text):
        """Test any suicidal or direct self-harm phrase floors the level to high."""
        result = assessor.assess(text, None, snapshot)

        assert result.level.rank >= CrisisLevel.HIGH.rank
        assert result.urgency in (Urgency.HIGH, Urgency.IMMEDIATE)
        assert result.overall_risk >= 0.6

    @pytest.mark.parametrize(
        "text",
        [
            "I don’t want to live anymore",
            "I can’t go on",
            "I don‘t want to live anymore",
            "I CANʼT GO ON",
        ],
    )
    def test_typographic_apostrophes(self, assessor, snapshot, text):
        """Test curly apostrophes from keyboards and transcripts still match."""
        result = assessor.assess(text, None, snapshot)
        ascii_result = assessor.assess(
            text.replace("’", "'").replace("‘", "'").replace("ʼ", "'"),
            None,
            snapshot,
        )

        assert result.direct_statement
        assert result.level.rank >= CrisisLevel.HIGH.rank
        assert result.level == ascii_result.level
        assert result.overall_risk == pytest.approx(ascii_result.overall_risk)

    def test_confidence_raised_by_direct_statement(self, assessor, snapshot):
        """Test direct statements lift text confidence."""
        result = assessor.assess("I want to end my life", None, snapshot)

        assert result.confidence == pytest.approx((0.8 + 0.4 + 0.3) / 3)


class TestIndicators:
    """Tests for indicator scoring."""

    def test_calm_text(self, assessor, snapshot):
        """Test ordinary conversation carries no risk."""
        result = assessor.assess("We went for a walk in the park", None, snapshot)

        assert result.level == CrisisLevel.NONE
        assert result.urgency == Urgency.LOW
        assert result.overall_risk == 0.0
        assert not result.direct_statement

    def test_text_indicator_density(self, assessor):
        """Test a category scores matches over keywords times weight."""
        indicators = assessor.text_indicators("I feel hopeless and worthless")

        assert indicators["hopelessness"] == pytest.approx(2 / 12 * 0.7)
        assert indicators["suicidal"] == 0.0

    def test_missing_voice_contributes_zero(self, assessor, snapshot):
        """Test absent audio features give zero voice indicators."""
        result = assessor.assess("hello", None, snapshot)

        assert result.voice_risk == 0.0
        assert set(result.voice_indicators) == set(VOICE_RISK_WEIGHTS)
        assert all(v == 0.0 for v in result.voice_indicators.values())

    def test_voice_risk_weighted(self, assessor, snapshot):
        """Test voice indicators are combined with their weights."""
        features = AudioFeatures(stress=1.0, tremor=1.0)

        result = assessor.assess("hello", features, snapshot)

        assert result.voice_risk == pytest.approx(0.45)
        assert result.overall_risk == pytest.approx(0.25 * 0.45)

    def test_overall_clamped(self, assessor, snapshot):
        """Test overall risk stays within [0, 1]."""
        features = AudioFeatures(
            stress=1.0,
            breath_irregularity=1.0,
            tremor=1.0,
            pitch_instability=1.0,
            volume_inconsistency=1.0,
            speech_rate=1.0,
        )
        text = (
            "kill myself end my life want to die suicide take my life hurt myself "
            "cut myself hopeless worthless panic breaking down"
        )

        result = assessor.assess(text, features, snapshot)

        assert 0.0 <= result.overall_risk <= 1.0
        assert result.level == CrisisLevel.CRITICAL


class TestBehavioralIndicators:
    """Tests for history-based patterns."""

    def test_no_history(self, assessor, session_id):
        """Test a new session has no behavioral signal."""
        indicators = assessor.behavioral_indicators(SessionSnapshot(session_id=session_id))

        assert all(v == 0.0 for v in indicators.values())

    def test_escalation_is_agitation(self, assessor, session_id):
        """Test three non-decreasing levels read as agitation."""
        snapshot = SessionSnapshot(
            session_id=session_id,
            crisis_levels=(CrisisLevel.NONE, CrisisLevel.LOW, CrisisLevel.MEDIUM),
        )

        assert assessor.behavioral_indicators(snapshot)["agitation"] == pytest.approx(0.7)

    def test_swings_and_jumps(self, assessor, session_id):
        """Test large level jumps register as mood swings and impulsivity."""
        snapshot = SessionSnapshot(
            session_id=session_id,
            crisis_levels=(CrisisLevel.HIGH, CrisisLevel.NONE, CrisisLevel.HIGH),
        )

        indicators = assessor.behavioral_indicators(snapshot)

        assert indicators["impulsivity"] == pytest.approx(2 / 3)
        assert indicators["mood_swings"] == pytest.approx(1.4142 / 4, abs=1e-3)
        assert indicators["agitation"] == pytest.approx(0.2)

    def test_withdrawal(self, assessor, session_id):
        """Test a run of very short replies reads as withdrawal."""
        history = tuple(
            HistoryEntry(text="fine", emotion=EmotionCategory.NEUTRAL, timestamp_ms=float(i))
            for i in range(5)
        )
        snapshot = SessionSnapshot(session_id=session_id, conversation_history=history)

        assert assessor.behavioral_indicators(snapshot)["withdrawal"] == 1.0


class TestLevels:
    """Tests for threshold mapping."""

    @pytest.mark.parametrize(
        "risk,level",
        [
            (0.0, CrisisLevel.NONE),
            (0.19, CrisisLevel.NONE),
            (0.2, CrisisLevel.LOW),
            (0.45, CrisisLevel.MEDIUM),
            (0.65, CrisisLevel.HIGH),
            (0.8, CrisisLevel.CRITICAL),
            (1.0, CrisisLevel.CRITICAL),
        ],
    )
    def test_level_for(self, assessor, risk, level):
        """Test default thresholds."""
        assert assessor.level_for(risk) == level

    def test_custom_thresholds(self, snapshot):
        """Test configurable thresholds."""
        config = CrisisConfig(
            level_thresholds=CrisisLevelThresholds(low=0.05, medium=0.1, high=0.15, critical=0.2)
        )
        assessor = CrisisRiskAssessor(config)

        assert assessor.level_for(0.12) == CrisisLevel.MEDIUM

    def test_fallback_assessment(self):
        """Test the fault fallback is cautious."""
        fallback = CrisisAssessment.fallback()

        assert fallback.level == CrisisLevel.MEDIUM
        assert fallback.urgency == Urgency.MEDIUM
        assert fallback.is_fallback
        assert fallback.recommended_action
