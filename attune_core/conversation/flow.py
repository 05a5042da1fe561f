"""
Conversation Flow State Machine.

Turn-taking controller: phases, transition rules, response-delay calculation
and interruption admission. Transitions are pure functions from a FlowState
to a (FlowDecision, FlowState) pair; the session store persists the result.
"""

import random
import re
from dataclasses import replace
from typing import Optional, Tuple

import structlog

from ..config import EmotionCategory, FlowConfig, get_settings
from ..models import (
    CrisisAssessment,
    EmotionalState,
    FlowAction,
    FlowDecision,
    FlowPhase,
    FlowPriority,
    FlowReason,
    FlowState,
    InterruptionDecision,
    ResumeStrategy,
    clamp,
)
from ..phrases import PhraseMatcher

logger = structlog.get_logger()


GREETING_PATTERN = re.compile(
    r"^\s*(?:hi|hello|hey|good (?:morning|afternoon|evening)|how are you)\b",
    re.IGNORECASE,
)

EMOTIONAL_KEYWORDS = (
    "love", "hate", "sad", "happy", "angry", "scared", "excited", "worried",
)
ENGAGEMENT_KEYWORDS = (
    "really", "interesting", "tell me more", "what do you think",
    "how", "why", "when", "where", "who", "what",
)
DISENGAGEMENT_KEYWORDS = (
    "whatever", "i don't care", "not interested", "boring", "stop talking",
    "shut up", "leave me alone",
)
URGENT_KEYWORDS = ("help", "emergency", "urgent", "stop", "wait", "no")

COMPLEX_EMOTIONS = frozenset({
    EmotionCategory.SADNESS,
    EmotionCategory.ANGER,
    EmotionCategory.ANXIETY,
    EmotionCategory.FEAR,
    EmotionCategory.SURPRISE,
})

# Engagement adjustments
EMOTIONAL_BOOST = 0.2
QUESTION_BOOST = 0.15
KEYWORD_BOOST = 0.1
DISENGAGEMENT_PENALTY = 0.2  # fraction of current engagement

# Response delay context multipliers
DELAY_CONTEXT = {
    "greeting": 0.8,
    "responding": 1.2,
    "emotional": 0.9,
}

URGENT_SIGNAL_THRESHOLD = 0.9
COMPLEXITY_FACTOR = 1.5


class ConversationFlowStateMachine:
    """
    Per-session turn-taking controller.

    Rules are evaluated in priority order:
    1. Critical crisis or urgent intention signal: interrupt and hold.
    2. Admitted user interrupt (urgent keyword, high engagement, under cap).
    3. Phase handler (greeting, listening, processing, responding,
       transitioning, paused).

    A crisis hold is only released by new input.
    """

    def __init__(
        self,
        config: Optional[FlowConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or get_settings().flow
        self.rng = rng or random.Random()

        self._emotional = PhraseMatcher(EMOTIONAL_KEYWORDS)
        self._engaging = PhraseMatcher(ENGAGEMENT_KEYWORDS)
        self._disengaging = PhraseMatcher(DISENGAGEMENT_KEYWORDS)
        self._urgent = PhraseMatcher(URGENT_KEYWORDS)

        self.logger = logger.bind(component="flow")

    def initial_state(self) -> FlowState:
        return FlowState(engagement=self.config.initial_engagement)

    def decide(
        self,
        text: str,
        emotional_state: EmotionalState,
        crisis: CrisisAssessment,
        state: FlowState,
        now_ms: Optional[float] = None,
        intention_urgency: Optional[float] = None,
    ) -> Tuple[FlowDecision, FlowState]:
        """
        Decide the next action for a user turn.

        Args:
            text: User utterance (non-empty)
            emotional_state: Fused emotion for this turn
            crisis: Crisis assessment for this turn
            state: Current flow state
            now_ms: Current time; elapsed time since the last update ticks
                down pending countdowns
            intention_urgency: Latest barge-in urgency, if playback is active

        Returns:
            The decision and the new flow state
        """
        state = self._elapse(state, now_ms)
        engagement = self.update_engagement(state.engagement, text, emotional_state)
        state = replace(
            state,
            engagement=engagement,
            last_update_ms=now_ms if now_ms is not None else state.last_update_ms,
        )

        # Rule 1: safety override
        urgent_signal = (
            intention_urgency is not None and intention_urgency > URGENT_SIGNAL_THRESHOLD
        )
        if crisis.is_critical or urgent_signal:
            reason = FlowReason.CRISIS_INTERRUPT if crisis.is_critical else FlowReason.URGENT_SIGNAL_INTERRUPT
            self.logger.warning(
                "Interrupt forced",
                reason=reason.value,
                phase=state.phase.value,
            )
            return (
                FlowDecision(FlowAction.INTERRUPT, 0, FlowPriority.HIGH, reason),
                replace(state, phase=FlowPhase.PAUSED, crisis_hold=True, countdown_ms=0.0),
            )

        if state.crisis_hold:
            self.logger.info("Crisis hold released by new input")
            state = replace(
                state, phase=FlowPhase.LISTENING, crisis_hold=False, countdown_ms=0.0
            )

        if self._admit_user_interrupt(text, state):
            return (
                FlowDecision(FlowAction.INTERRUPT, 0, FlowPriority.HIGH, FlowReason.USER_INTERRUPT),
                replace(
                    state,
                    phase=FlowPhase.RESPONDING,
                    interruption_count=state.interruption_count + 1,
                    countdown_ms=0.0,
                ),
            )

        phase = state.phase
        if phase == FlowPhase.GREETING:
            return self._greeting(text, state)
        if phase == FlowPhase.PROCESSING:
            return self._processing(emotional_state, state)
        if phase == FlowPhase.RESPONDING:
            return (
                self._speak(state, self._delay_context(emotional_state), FlowReason.CONTINUE_RESPONSE),
                state,
            )
        if phase in (FlowPhase.TRANSITIONING, FlowPhase.PAUSED) and state.countdown_ms > 0:
            return (
                FlowDecision(FlowAction.PAUSE, state.countdown_ms, FlowPriority.LOW, FlowReason.HOLDING),
                state,
            )

        return self._listening(text, emotional_state, replace(state, phase=FlowPhase.LISTENING))

    def advance(
        self,
        state: FlowState,
        elapsed_ms: float,
    ) -> Tuple[Optional[FlowDecision], FlowState]:
        """
        Tick pending countdowns without user input.

        Returns a decision only when a countdown completes. A crisis hold
        never resumes on its own.
        """
        if state.crisis_hold or elapsed_ms <= 0:
            return None, state

        last = state.last_update_ms + elapsed_ms if state.last_update_ms is not None else None
        remaining = max(0.0, state.countdown_ms - elapsed_ms)
        state = replace(state, countdown_ms=remaining, last_update_ms=last)

        if remaining > 0:
            return None, state

        if state.phase == FlowPhase.PROCESSING:
            responding = replace(state, phase=FlowPhase.RESPONDING)
            return self._speak(responding, "responding", FlowReason.RESPONSE_READY), responding

        if state.phase in (FlowPhase.TRANSITIONING, FlowPhase.PAUSED):
            listening = replace(state, phase=FlowPhase.LISTENING)
            return self._listen(FlowReason.RESUME_LISTENING), listening

        return None, state

    def on_playback_complete(self, state: FlowState) -> Tuple[FlowDecision, FlowState]:
        """Synthesized response finished playing."""
        if state.crisis_hold:
            return self._hold(), state

        if state.phase == FlowPhase.RESPONDING:
            duration = self.transition_time(state.engagement)
            return (
                FlowDecision(FlowAction.TRANSITION, duration, FlowPriority.LOW, FlowReason.PLAYBACK_COMPLETE),
                replace(state, phase=FlowPhase.TRANSITIONING, countdown_ms=duration),
            )

        return (
            self._listen(FlowReason.PLAYBACK_COMPLETE),
            replace(state, phase=FlowPhase.LISTENING, countdown_ms=0.0),
        )

    def on_barge_in(self, state: FlowState, decision: InterruptionDecision) -> FlowState:
        """The user took the floor during playback."""
        if decision.resume_strategy == ResumeStrategy.PAUSE_INDEFINITELY:
            return replace(state, phase=FlowPhase.PAUSED, crisis_hold=True, countdown_ms=0.0)
        if state.crisis_hold or not decision.should_yield:
            return state
        return replace(state, phase=FlowPhase.LISTENING, countdown_ms=0.0)

    def no_input(self, state: FlowState) -> Tuple[FlowDecision, FlowState]:
        """Empty transcription: nothing was said this turn."""
        if state.crisis_hold:
            return self._hold(), state

        return (
            self._listen(FlowReason.NO_INPUT),
            replace(state, phase=FlowPhase.LISTENING, countdown_ms=0.0),
        )

    # -------------------------------------------------------------------------
    # Engagement and timing
    # -------------------------------------------------------------------------

    def update_engagement(
        self,
        engagement: float,
        text: str,
        emotional_state: EmotionalState,
    ) -> float:
        """Geometric decay plus content-driven adjustments, clamped to [0, 1]."""
        engagement *= self.config.engagement_decay

        if self._is_emotional(text, emotional_state):
            engagement += EMOTIONAL_BOOST
        if "?" in text:
            engagement += QUESTION_BOOST
        if self._engaging.any(text):
            engagement += KEYWORD_BOOST
        if self._disengaging.any(text):
            engagement -= DISENGAGEMENT_PENALTY * engagement

        return clamp(engagement, 0.0, 1.0)

    def response_delay(self, context: str, engagement: float) -> float:
        """
        delay = min_delay * context * engagement_factor * (1 +/- jitter),
        clamped to [min_delay, max_delay].
        """
        delay = self.config.min_response_delay_ms * DELAY_CONTEXT.get(context, 1.0)

        if engagement > 0.8:
            delay *= 0.8
        elif engagement < 0.3:
            delay *= 1.3

        delay *= 1 + self.rng.uniform(-self.config.jitter, self.config.jitter)

        return clamp(
            delay,
            self.config.min_response_delay_ms,
            self.config.max_response_delay_ms,
        )

    def processing_time(self, text: str, emotional_state: EmotionalState) -> float:
        """Word-count proportional thinking time, longer for complex emotions."""
        time_ms = len(text.split()) * self.config.processing_ms_per_word
        if emotional_state.primary_emotion in COMPLEX_EMOTIONS:
            time_ms *= COMPLEXITY_FACTOR
        return min(float(time_ms), float(self.config.max_processing_ms))

    def transition_time(self, engagement: float) -> float:
        return self.config.base_transition_ms * (1 + (1 - engagement))

    def is_complete_input(self, text: str) -> bool:
        stripped = text.strip()
        return (
            stripped.endswith((".", "!", "?"))
            or "?" in stripped
            or len(stripped) > self.config.complete_input_chars
        )

    # -------------------------------------------------------------------------
    # Phase handlers
    # -------------------------------------------------------------------------

    def _greeting(self, text: str, state: FlowState) -> Tuple[FlowDecision, FlowState]:
        if GREETING_PATTERN.search(text):
            responding = replace(state, phase=FlowPhase.RESPONDING)
            decision = FlowDecision(
                FlowAction.SPEAK,
                self.response_delay("greeting", state.engagement),
                FlowPriority.HIGH,
                FlowReason.GREETING_RESPONSE,
            )
            return decision, responding

        return self._listen(FlowReason.BEGIN_LISTENING), replace(state, phase=FlowPhase.LISTENING)

    def _listening(
        self,
        text: str,
        emotional_state: EmotionalState,
        state: FlowState,
    ) -> Tuple[FlowDecision, FlowState]:
        if self.is_complete_input(text):
            processing = replace(
                state,
                phase=FlowPhase.PROCESSING,
                countdown_ms=self.processing_time(text, emotional_state),
            )
            decision = FlowDecision(
                FlowAction.PAUSE,
                self.config.natural_pause_ms,
                FlowPriority.MEDIUM,
                FlowReason.INPUT_COMPLETE,
            )
            return decision, processing

        return self._listen(FlowReason.AWAITING_INPUT), state

    def _processing(
        self,
        emotional_state: EmotionalState,
        state: FlowState,
    ) -> Tuple[FlowDecision, FlowState]:
        if state.countdown_ms > 0:
            decision = FlowDecision(
                FlowAction.PAUSE,
                state.countdown_ms,
                FlowPriority.MEDIUM,
                FlowReason.PROCESSING_INPUT,
            )
            return decision, state

        responding = replace(state, phase=FlowPhase.RESPONDING)
        context = self._delay_context(emotional_state, default="responding")
        return self._speak(responding, context, FlowReason.RESPONSE_READY), responding

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _admit_user_interrupt(self, text: str, state: FlowState) -> bool:
        return (
            self._urgent.any(text)
            and state.engagement > self.config.interruption_threshold
            and state.interruption_count < self.config.interruption_count_cap
        )

    def _is_emotional(self, text: str, emotional_state: EmotionalState) -> bool:
        return (
            self._emotional.any(text)
            or emotional_state.primary_emotion != EmotionCategory.NEUTRAL
        )

    @staticmethod
    def _delay_context(emotional_state: EmotionalState, default: str = "responding") -> str:
        if emotional_state.primary_emotion in COMPLEX_EMOTIONS:
            return "emotional"
        return default

    @staticmethod
    def _elapse(state: FlowState, now_ms: Optional[float]) -> FlowState:
        if now_ms is None or state.last_update_ms is None or state.countdown_ms <= 0:
            return state
        elapsed = max(0.0, now_ms - state.last_update_ms)
        return replace(state, countdown_ms=max(0.0, state.countdown_ms - elapsed))

    def _speak(self, state: FlowState, context: str, reason: FlowReason) -> FlowDecision:
        return FlowDecision(
            FlowAction.SPEAK,
            self.response_delay(context, state.engagement),
            FlowPriority.HIGH,
            reason,
        )

    def _listen(self, reason: FlowReason) -> FlowDecision:
        return FlowDecision(
            FlowAction.LISTEN,
            self.config.turn_timeout_ms,
            FlowPriority.MEDIUM,
            reason,
        )

    @staticmethod
    def _hold() -> FlowDecision:
        return FlowDecision(FlowAction.PAUSE, 0, FlowPriority.HIGH, FlowReason.CRISIS_HOLD)
