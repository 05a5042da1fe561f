"""Unit tests for lexical scoring and emotion fusion."""

from typing import List

import pytest

from attune_core.config import CandidateSource, EmotionCategory, FusionConfig
from attune_core.engine.fusion import EmotionFusionEngine
from attune_core.engine.scoring import KeywordScoringStrategy, ScoringStrategy
from attune_core.models import (
    AudioFeatures,
    EmotionCandidate,
    EmotionalState,
    RecentEmotion,
    SessionSnapshot,
)
from attune_core.phrases import PhraseMatcher, normalize_text


@pytest.fixture
def fusion() -> EmotionFusionEngine:
    return EmotionFusionEngine(FusionConfig())


class TestPhraseMatcher:
    """Tests for word-boundary phrase matching."""

    def test_whole_words_only(self):
        """Test substrings inside other words do not match."""
        matcher = PhraseMatcher(["sad", "high"])

        assert matcher.matches("I feel sad") == ["sad"]
        assert matcher.count("saddle up, highway ahead") == 0

    def test_multi_word_phrase(self):
        """Test phrases spanning several words."""
        matcher = PhraseMatcher(["end it all"])

        assert matcher.any("I just want to End It All.")
        assert not matcher.any("at the end of it all")

    def test_apostrophe_variants(self):
        """Test typographic apostrophes match the ASCII phrase."""
        matcher = PhraseMatcher(["can't go on"])

        assert matcher.matches("I can’t go on") == ["can't go on"]
        assert matcher.any("I CAN‘T GO ON")
        assert normalize_text("Don’t") == "don't"


class TestKeywordScoringStrategy:
    """Tests for KeywordScoringStrategy."""

    def test_scores_joy(self):
        """Test keyword density scoring."""
        strategy = KeywordScoringStrategy()

        candidates = strategy.score("I feel so happy today, everything is amazing!")

        assert candidates[0].emotion == EmotionCategory.JOY
        assert candidates[0].source == CandidateSource.LEXICAL
        assert candidates[0].intensity == pytest.approx(0.4)
        assert candidates[0].confidence == pytest.approx(0.52)

    def test_no_keywords(self):
        """Test neutral text yields nothing."""
        assert KeywordScoringStrategy().score("the table is brown") == []

    def test_sorted_by_confidence(self):
        """Test candidates are returned in descending confidence."""
        candidates = KeywordScoringStrategy(min_confidence=0.0).score(
            "I'm so angry and furious and mad, but also a bit sad"
        )
        confidences = [c.confidence for c in candidates]

        assert confidences == sorted(confidences, reverse=True)


class TestEmotionFusionEngine:
    """Tests for EmotionFusionEngine."""

    def test_happy_first_turn(self, fusion, session_id):
        """Test a happy opening line is joy with positive pleasure."""
        state = fusion.fuse(
            "I feel so happy today, everything is amazing!",
            SessionSnapshot(session_id=session_id),
        )

        assert state.primary_emotion == EmotionCategory.JOY
        assert state.secondary_emotion == EmotionCategory.NEUTRAL
        assert state.is_blended
        assert state.pleasure > 0.5
        assert state.pleasure == pytest.approx(0.675)

    def test_primary_is_first_candidate(self, fusion, snapshot):
        """Test the ranked list starts with the primary emotion."""
        state = fusion.fuse("I'm worried and anxious about tomorrow", snapshot)

        assert state.detected_candidates
        assert state.detected_candidates[0].emotion == state.primary_emotion

    def test_nothing_detected_is_neutral(self, fusion, snapshot):
        """Test the neutral baseline when no detector fires."""
        state = fusion.fuse("the table is brown", snapshot)

        assert state == EmotionalState.neutral()
        assert state.confidence == 0.5
        assert state.intensity == 0.5

    def test_override_outranks_lexical(self, fusion, snapshot):
        """Test explicit delivery directives win."""
        state = fusion.fuse("Can you sound excited about this?", snapshot)

        assert state.primary_emotion == EmotionCategory.JOY
        assert state.detected_candidates[0].source == CandidateSource.OVERRIDE
        assert state.confidence == pytest.approx(0.9)

    def test_laugh_override(self, fusion, snapshot):
        """Test "make me laugh" requests joy."""
        candidates = fusion.detect_overrides("please make me laugh")

        assert len(candidates) == 1
        assert candidates[0].emotion == EmotionCategory.JOY

    def test_sarcasm_inverts_pleasure(self, fusion, snapshot):
        """Test suspected sarcasm flips positive pleasure."""
        state = fusion.fuse("Oh great, this is just wonderful", snapshot)

        assert state.sarcasm_suspected
        assert state.primary_emotion == EmotionCategory.JOY
        assert state.pleasure == pytest.approx(-0.45)

    def test_greeting_bias_only_on_first_turn(self, fusion, session_id):
        """Test the first turn gets a neutral contextual candidate."""
        first = fusion.detect_contextual("hi", SessionSnapshot(session_id=session_id))
        later = fusion.detect_contextual("hi", SessionSnapshot(session_id=session_id, turn_number=4))

        assert [c.emotion for c in first] == [EmotionCategory.NEUTRAL]
        assert later == []

    def test_emotional_continuity(self, fusion, session_id):
        """Test two matching recent emotions carry forward."""
        recent = tuple(
            RecentEmotion(emotion=EmotionCategory.SADNESS, intensity=0.6, timestamp_ms=t)
            for t in (0.0, 1.0)
        )
        snapshot = SessionSnapshot(session_id=session_id, turn_number=2, recent_emotions=recent)

        candidates = fusion.detect_contextual("ok", snapshot)

        assert len(candidates) == 1
        assert candidates[0].emotion == EmotionCategory.SADNESS
        assert candidates[0].source == CandidateSource.CONTEXTUAL
        assert candidates[0].intensity == pytest.approx(0.6)

    def test_prosodic_candidates(self, fusion, snapshot):
        """Test excited delivery contributes a joy candidate."""
        features = AudioFeatures(excitement=0.9, intensity=0.7)

        candidates = fusion.detect_prosodic(features)

        assert [c.emotion for c in candidates] == [EmotionCategory.JOY]
        assert candidates[0].source == CandidateSource.PROSODIC

    def test_prosody_alone_drives_state(self, fusion, snapshot):
        """Test audio-only evidence when text is neutral."""
        state = fusion.fuse("the table is brown", snapshot, AudioFeatures(stress=0.9, intensity=0.6))

        assert state.primary_emotion == EmotionCategory.ANXIETY

    @pytest.mark.parametrize(
        "text",
        [
            "I feel so happy today, everything is amazing!",
            "Oh great, this is just wonderful",
            "Can you sound excited about this?",
            "the table is brown",
        ],
    )
    def test_deterministic_without_audio(self, session_id, text):
        """Test the same text and snapshot always fuse to the same state."""
        recent = (RecentEmotion(emotion=EmotionCategory.SADNESS, intensity=0.6, timestamp_ms=0.0),)
        snapshot = SessionSnapshot(session_id=session_id, turn_number=2, recent_emotions=recent)

        first = EmotionFusionEngine(FusionConfig()).fuse(text, snapshot)
        repeated = [EmotionFusionEngine(FusionConfig()).fuse(text, snapshot) for _ in range(3)]

        assert all(state == first for state in repeated)
        assert all(state.to_dict() == first.to_dict() for state in repeated)

    def test_pad_in_range(self, fusion, snapshot):
        """Test fused PAD values are clamped."""
        state = fusion.fuse("I'm terrified, scared and afraid, I dread this", snapshot)

        assert -1.0 <= state.pleasure <= 1.0
        assert 0.0 <= state.arousal <= 1.0
        assert -1.0 <= state.dominance <= 1.0

    def test_custom_strategy(self, snapshot):
        """Test a replacement scoring strategy feeds fusion."""

        class AlwaysCurious(ScoringStrategy):
            def score(self, text: str) -> List[EmotionCandidate]:
                return [
                    EmotionCandidate(
                        emotion=EmotionCategory.CURIOUS,
                        confidence=0.8,
                        intensity=0.6,
                        source=CandidateSource.LEXICAL,
                    )
                ]

        engine = EmotionFusionEngine(FusionConfig(), strategy=AlwaysCurious())

        state = engine.fuse("anything", snapshot)

        assert state.primary_emotion == EmotionCategory.CURIOUS
        assert state.pleasure == pytest.approx(0.3)
