"""Unit tests for voice mapping, SSML rendering and prompt context."""

import pytest

from attune_core.config import CrisisLevel, EmotionCategory, Urgency, VoiceConfig
from attune_core.engine.prompt_context import (
    CONTEXT_KEYS,
    CRISIS_GUIDANCE,
    build_generation_request,
    build_prompt_context,
    build_system_prompt,
    render_prompt_context,
)
from attune_core.engine.ssml import SSMLBuilder, render_ssml, sentence_break_ms
from attune_core.engine.voice import COMFORTING_PRESET, VoiceBehaviorMapper
from attune_core.models import (
    PAD,
    CrisisAssessment,
    EmotionalState,
    FlowAction,
    FlowDecision,
    FlowPriority,
    FlowReason,
    HistoryEntry,
    RecentEmotion,
    SessionSnapshot,
    VoiceParams,
)


@pytest.fixture
def mapper() -> VoiceBehaviorMapper:
    return VoiceBehaviorMapper(VoiceConfig(), drift_threshold=0.3)


def state_for(emotion: EmotionCategory, intensity: float = 0.5) -> EmotionalState:
    return EmotionalState(primary_emotion=emotion, intensity=intensity)


class TestVoiceBehaviorMapper:
    """Tests for VoiceBehaviorMapper."""

    def test_critical_uses_comforting_preset(self, mapper):
        """Test a critical crisis overrides the emotion preset."""
        params = mapper.map(
            state_for(EmotionCategory.JOY, 1.0),
            CrisisAssessment(level=CrisisLevel.CRITICAL, urgency=Urgency.IMMEDIATE),
        )

        assert params.style_tag == COMFORTING_PRESET.style
        assert params.rate_multiplier == pytest.approx(0.85)
        assert params.pitch_multiplier == pytest.approx(0.95)
        assert params.volume_multiplier == pytest.approx(0.9)

    def test_high_keeps_emotion_preset(self, mapper):
        """Test only a critical crisis switches to the comforting preset."""
        params = mapper.map(
            state_for(EmotionCategory.SADNESS, 0.5),
            CrisisAssessment(level=CrisisLevel.HIGH, urgency=Urgency.HIGH),
        )

        assert params.style_tag != COMFORTING_PRESET.style
        assert params == mapper.map(state_for(EmotionCategory.SADNESS, 0.5), CrisisAssessment())

    def test_joy_preset(self, mapper):
        """Test mid intensity applies the preset unscaled."""
        params = mapper.map(state_for(EmotionCategory.JOY, 0.5), CrisisAssessment())

        assert params.rate_multiplier == pytest.approx(1.05)
        assert params.pitch_multiplier == pytest.approx(1.1)
        assert params.style_tag == "happy"

    def test_intensity_scales_deviation(self, mapper):
        """Test stronger emotion moves delivery further from neutral."""
        mild = mapper.map(state_for(EmotionCategory.SADNESS, 0.0), CrisisAssessment())
        strong = mapper.map(state_for(EmotionCategory.SADNESS, 1.0), CrisisAssessment())

        assert mild.rate_multiplier == pytest.approx(0.95)
        assert strong.rate_multiplier == pytest.approx(0.85)

    def test_fatigue_late_in_session(self, mapper, session_id):
        """Test long sessions slow delivery slightly."""
        session = SessionSnapshot(session_id=session_id, turn_number=25)

        params = mapper.map(state_for(EmotionCategory.NEUTRAL), CrisisAssessment(), session)

        assert params.rate_multiplier == pytest.approx(0.95)
        assert params.volume_multiplier == pytest.approx(0.97)

    def test_role_anchor_pulls_toward_neutral(self, mapper, session_id):
        """Test drift from the role baseline softens the preset."""
        session = SessionSnapshot(
            session_id=session_id,
            turn_number=3,
            baseline=PAD(-0.8, 0.2, -0.3),
            role_baseline=PAD(0.9, 0.7, 0.6),
        )

        params = mapper.map(state_for(EmotionCategory.JOY, 0.5), CrisisAssessment(), session)

        assert params.rate_multiplier == pytest.approx(1.025)
        assert params.pitch_multiplier == pytest.approx(1.05)

    @pytest.mark.parametrize("emotion", list(EmotionCategory))
    @pytest.mark.parametrize("level", list(CrisisLevel))
    def test_multipliers_within_range(self, mapper, session_id, emotion, level):
        """Test every combination stays within the safe range."""
        sessions = [
            None,
            SessionSnapshot(session_id=session_id, turn_number=40),
            SessionSnapshot(
                session_id=session_id,
                turn_number=40,
                baseline=PAD(-1.0, 0.0, -1.0),
                role_baseline=PAD(1.0, 1.0, 1.0),
            ),
        ]
        for intensity in (0.0, 0.5, 1.0):
            for session in sessions:
                params = mapper.map(
                    state_for(emotion, intensity), CrisisAssessment(level=level), session
                )
                for value in (
                    params.rate_multiplier,
                    params.pitch_multiplier,
                    params.volume_multiplier,
                ):
                    assert 0.5 <= value <= 2.0

    def test_narrow_range_clamps(self, session_id):
        """Test configured bounds are enforced."""
        mapper = VoiceBehaviorMapper(VoiceConfig(min_multiplier=0.98, max_multiplier=1.02))

        params = mapper.map(state_for(EmotionCategory.SURPRISE, 1.0), CrisisAssessment())

        assert params.rate_multiplier == pytest.approx(1.02)
        assert params.pitch_multiplier == pytest.approx(1.02)


class TestSSML:
    """Tests for SSML rendering."""

    def test_render_with_breaks(self):
        """Test prosody attributes and sentence breaks."""
        ssml = render_ssml(
            "Hello there. How are you?",
            VoiceParams(rate_multiplier=0.9, pitch_multiplier=1.1, volume_multiplier=0.9),
        )

        assert ssml == (
            '<speak><prosody rate="90%" pitch="+10%" volume="-10%">'
            'Hello there.<break time="444ms"/>How are you?'
            "</prosody></speak>"
        )

    def test_escapes_markup(self):
        """Test user-visible text is escaped."""
        ssml = render_ssml("Tom & Jerry <3", VoiceParams())

        assert "Tom &amp; Jerry &lt;3" in ssml
        assert 'rate="100%" pitch="+0%" volume="+0%"' in ssml

    def test_break_bounds(self):
        """Test sentence breaks are clamped."""
        assert sentence_break_ms(0.1) == 800
        assert sentence_break_ms(10.0) == 100
        assert sentence_break_ms(1.0) == 400

    def test_builder(self):
        """Test the builder API."""
        ssml = SSMLBuilder().text("Hi").pause(250).text("there").build()

        assert ssml == '<speak>Hi<break time="250ms"/>there</speak>'


class TestPromptContext:
    """Tests for prompt context assembly."""

    @pytest.fixture
    def session(self, session_id) -> SessionSnapshot:
        emotions = tuple(
            RecentEmotion(emotion=e, intensity=0.5, timestamp_ms=float(i))
            for i, e in enumerate(
                [
                    EmotionCategory.NEUTRAL,
                    EmotionCategory.JOY,
                    EmotionCategory.SADNESS,
                    EmotionCategory.ANXIETY,
                ]
            )
        )
        history = (
            HistoryEntry(text="Hi there", emotion=EmotionCategory.NEUTRAL, timestamp_ms=0.0),
            HistoryEntry(text="I'm worried", emotion=EmotionCategory.ANXIETY, timestamp_ms=1.0),
        )
        return SessionSnapshot(
            session_id=session_id,
            turn_number=4,
            recent_emotions=emotions,
            conversation_history=history,
        )

    def decision(self) -> FlowDecision:
        return FlowDecision(FlowAction.SPEAK, 600, FlowPriority.HIGH, FlowReason.RESPONSE_READY)

    def test_context_keys(self, session):
        """Test every key is present and formatted."""
        context = build_prompt_context(
            session,
            state_for(EmotionCategory.ANXIETY),
            CrisisAssessment(),
            self.decision(),
            VoiceParams(style_tag="calm"),
        )

        assert tuple(context) == CONTEXT_KEYS
        assert context["recent_emotions"] == "joy, sadness, anxiety"
        assert context["trust_level"] == "0.30"
        assert context["voice_style"] == "calm"
        assert context["response_action"] == "speak"

    def test_empty_history(self, session_id):
        """Test a fresh session reports no recent emotions."""
        context = build_prompt_context(
            SessionSnapshot(session_id=session_id),
            EmotionalState.neutral(),
            CrisisAssessment(),
            self.decision(),
            VoiceParams(),
        )

        assert context["recent_emotions"] == "none"

    def test_render_order(self):
        """Test rendering follows the canonical key order."""
        rendered = render_prompt_context({"crisis_level": "none", "trust_level": "0.30"})

        assert rendered == "trust_level: 0.30\ncrisis_level: none"

    def test_system_prompt_crisis_guidance(self, session):
        """Test high risk adds crisis guidance."""
        context = build_prompt_context(
            session,
            state_for(EmotionCategory.SADNESS),
            CrisisAssessment(level=CrisisLevel.HIGH),
            self.decision(),
            VoiceParams(),
        )

        prompt = build_system_prompt(context, persona_prompt="You are Ada.")

        assert prompt.startswith("You are Ada.")
        assert CRISIS_GUIDANCE in prompt
        assert "crisis_level: high" in prompt

    def test_system_prompt_without_crisis(self, session):
        """Test guidance is omitted when risk is low."""
        context = build_prompt_context(
            session, EmotionalState.neutral(), CrisisAssessment(), self.decision(), VoiceParams()
        )

        assert CRISIS_GUIDANCE not in build_system_prompt(context)

    def test_generation_request(self, session):
        """Test history and latest text are handed to the generator."""
        request = build_generation_request(session, {}, "What should I do?")

        assert request.latest_user_text == "What should I do?"
        assert request.conversation_history[1] == {
            "role": "user",
            "content": "I'm worried",
            "emotion": "anxiety",
        }
