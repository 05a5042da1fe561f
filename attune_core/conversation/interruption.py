"""
Interruption Arbiter.

While synthesized speech plays, live microphone frames are turned into
intention-to-interrupt signals over a short sliding window and the arbiter
decides whether, when and how the system yields the floor.
"""

import inspect
import re
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple, Union

import numpy as np
import structlog

from ..config import ArbiterConfig, EmotionCategory, get_settings
from ..models import (
    CrisisAssessment,
    EmotionalState,
    FlowPriority,
    IntentionSignals,
    InteractionRecord,
    InterruptionDecision,
    InterruptionPatterns,
    InterruptionStyle,
    PlaybackProgress,
    ResumeStrategy,
    clamp,
)
from ..phrases import PhraseMatcher
from .scheduler import CancellationToken, Clock, SystemClock, TickingTask

logger = structlog.get_logger()


# Barge-in probability weights
SIGNAL_WEIGHTS = {
    "breath_intake": 0.30,
    "micromovement": 0.20,
    "background_prep": 0.15,
    "pause_pattern_likelihood": 0.25,
    "urgency": 0.10,
}

COMPLETION_MARKERS = (
    "so", "therefore", "in conclusion", "finally", "ultimately",
    "that's why", "anyway", "basically", "essentially",
)
_COMPLETION_MATCHER = PhraseMatcher(COMPLETION_MARKERS)
STRUCTURE_PATTERN = re.compile(r"\b(?:and|but|so|because|when|if|that)\b", re.IGNORECASE)

CRISIS_YIELD_CONFIDENCE = 0.95
URGENT_SIGNAL_THRESHOLD = 0.9
WORDS_PER_SENTENCE = 15

# Signal extraction
LOW_BAND_HZ = 500.0
HIGH_BAND_HZ = 2000.0
MICROMOVEMENT_SCALE = 0.003
SILENCE_RMS = 0.01
BURST_WINDOW = 64
BURST_RANGE = (0.05, 0.2)


_PRIORITY_RANK = {FlowPriority.LOW: 0, FlowPriority.MEDIUM: 1, FlowPriority.HIGH: 2}

# Pattern learning
STYLE_BONUS = {InterruptionStyle.ASSERTIVE: 0.1, InterruptionStyle.HESITANT: 0.2}
DEFAULT_TRIGGERS = (EmotionCategory.ANXIETY, EmotionCategory.ANGER)
DEFAULT_TURN_LENGTH_MS = 3000.0
DEFAULT_PAUSE_MS = 500.0
ASSERTIVE_MAX_TURN_MS = 2000.0
POLITE_MIN_TURN_MS = 10_000.0
TURN_LENGTH_ALPHA = 0.1
PAUSE_ALPHA = 0.2
RECENT_INTERACTIONS = 5
ENGAGEMENT_PENALTY = 0.3
MS_PER_HOUR = 3_600_000


def thought_completeness(sentence: str) -> float:
    """Heuristic estimate that the current sentence is a finished idea."""
    stripped = sentence.strip()
    if not stripped:
        return 0.0

    completeness = 0.5
    if _COMPLETION_MATCHER.any(stripped):
        completeness += 0.3
    if STRUCTURE_PATTERN.search(stripped):
        completeness += 0.2
    if stripped.endswith("."):
        completeness += 0.2

    return min(completeness, 1.0)


def contextual_priority(emotional_state: Optional[EmotionalState]) -> FlowPriority:
    """Priority of letting the user speak, from their emotional state."""
    if emotional_state is None:
        return FlowPriority.LOW

    emotion = emotional_state.primary_emotion
    if emotion in (EmotionCategory.ANXIETY, EmotionCategory.ANGER) or emotional_state.arousal > 0.8:
        return FlowPriority.HIGH
    if emotion == EmotionCategory.SADNESS or emotional_state.pleasure < -0.3:
        return FlowPriority.MEDIUM
    return FlowPriority.LOW


class IntentionSignalExtractor:
    """
    Derives intention signals from a sliding window of audio frames.

    Each pushed frame yields per-frame scores; the reported signals are the
    window means, so a single cough or click cannot trigger a barge-in.
    """

    def __init__(self, config: Optional[ArbiterConfig] = None):
        self.config = config or get_settings().arbiter
        self._frames: Deque[IntentionSignals] = deque(maxlen=self.config.window_frames)
        self._previous: Optional[np.ndarray] = None
        self._previous_peak = 0.0
        self._previous_silent: Optional[bool] = None
        self._last_breath_ms: Optional[float] = None
        self._silence_started_ms: Optional[float] = None
        self.last_pause_ms: Optional[float] = None

    def __len__(self) -> int:
        return len(self._frames)

    def reset(self) -> None:
        self._frames.clear()
        self._previous = None
        self._previous_peak = 0.0
        self._previous_silent = None
        self._last_breath_ms = None
        self._silence_started_ms = None
        self.last_pause_ms = None

    def push(self, frame: np.ndarray, now_ms: float) -> IntentionSignals:
        """Add one frame and return the windowed signals."""
        samples = np.asarray(frame, dtype=np.float32)
        rms = float(np.sqrt(np.mean(samples ** 2))) if samples.size else 0.0
        silent = rms < SILENCE_RMS

        self._frames.append(
            IntentionSignals(
                breath_intake=self._breath_intake(samples, now_ms),
                micromovement=self._micromovement(samples),
                background_prep=self._background_prep(samples),
                pause_pattern_likelihood=self._pause_pattern(silent),
            )
        )

        self._previous = samples
        self._previous_peak = float(np.max(np.abs(samples))) if samples.size else 0.0
        self._previous_silent = silent
        self._track_pause(silent, now_ms)

        return self.signals()

    def signals(self) -> IntentionSignals:
        if not self._frames:
            return IntentionSignals()

        breath = float(np.mean([f.breath_intake for f in self._frames]))
        micro = float(np.mean([f.micromovement for f in self._frames]))
        background = float(np.mean([f.background_prep for f in self._frames]))
        pause = float(np.mean([f.pause_pattern_likelihood for f in self._frames]))

        return IntentionSignals(
            breath_intake=breath,
            micromovement=micro,
            background_prep=background,
            pause_pattern_likelihood=pause,
            urgency=((breath + micro + background) / 3) ** 1.5,
        )

    def _breath_intake(self, samples: np.ndarray, now_ms: float) -> float:
        """Low-frequency energy with an amplitude rise; refractory after a hit."""
        if (
            self._last_breath_ms is not None
            and now_ms - self._last_breath_ms < self.config.breath_refractory_ms
        ):
            return 0.0

        low_ratio, _ = self._band_split(samples, LOW_BAND_HZ)
        peak = float(np.max(np.abs(samples))) if samples.size else 0.0
        spike = min(1.0, max(0.0, peak - self._previous_peak) * 5) if self._previous is not None else 0.0

        score = low_ratio * 0.6 + spike * 0.4
        if score > 0.5:
            self._last_breath_ms = now_ms
        return min(score, 1.0)

    def _micromovement(self, samples: np.ndarray) -> float:
        if self._previous is None or not samples.size:
            return 0.0
        n = min(samples.size, self._previous.size)
        difference = float(np.mean(np.abs(samples[:n] - self._previous[:n])))
        return min(difference / MICROMOVEMENT_SCALE, 1.0)

    def _background_prep(self, samples: np.ndarray) -> float:
        """Preparation sounds: high-band energy and short energy bursts."""
        _, high_ratio = self._band_split(samples, HIGH_BAND_HZ)

        bursts = 0
        for start in range(0, samples.size - BURST_WINDOW, BURST_WINDOW):
            window = samples[start:start + BURST_WINDOW]
            energy = float(np.sqrt(np.mean(window ** 2)))
            if BURST_RANGE[0] < energy < BURST_RANGE[1]:
                bursts += 1

        return min(high_ratio * 0.4 + min(bursts / 10, 1.0) * 0.6, 1.0)

    def _pause_pattern(self, silent: bool) -> float:
        """Speech onset right after silence is the classic turn-grab."""
        if self._previous_silent is None:
            return 0.5
        if self._previous_silent and not silent:
            return 0.8
        if silent and self._previous_silent:
            return 0.2
        return 0.5

    def _track_pause(self, silent: bool, now_ms: float) -> None:
        """Remember how long the user stayed quiet before speaking."""
        if silent:
            if self._silence_started_ms is None:
                self._silence_started_ms = now_ms
        elif self._silence_started_ms is not None:
            self.last_pause_ms = now_ms - self._silence_started_ms
            self._silence_started_ms = None

    def _band_split(self, samples: np.ndarray, split_hz: float) -> Tuple[float, float]:
        """Shares of spectral energy below and above `split_hz`."""
        if samples.size < 2:
            return 0.0, 0.0
        spectrum = np.abs(np.fft.rfft(samples)) ** 2
        freqs = np.fft.rfftfreq(samples.size, 1 / self.config.sample_rate)
        total = float(np.sum(spectrum))
        if total <= 0:
            return 0.0, 0.0
        below = float(np.sum(spectrum[freqs < split_hz])) / total
        return below, 1.0 - below


class InterruptionPatternLearner:
    """
    Learns one user's barge-in habits from monitored responses.

    Each response the system speaks ends either interrupted or not. The
    outcomes, kept in a bounded history, drive the user's interruption
    style, a history-based pause likelihood and an engagement penalty that
    the arbiter folds into its probability.
    """

    def __init__(
        self,
        config: Optional[ArbiterConfig] = None,
        style: InterruptionStyle = InterruptionStyle.POLITE,
    ):
        self.config = config or get_settings().arbiter
        self.style = style
        self.average_turn_length_ms = DEFAULT_TURN_LENGTH_MS
        self.preferred_pause_ms = DEFAULT_PAUSE_MS
        self.emotional_triggers: List[EmotionCategory] = list(DEFAULT_TRIGGERS)
        self.hourly_interruptions: Dict[int, int] = {}
        self._history: Deque[InteractionRecord] = deque(maxlen=self.config.pattern_history_size)

    def __len__(self) -> int:
        return len(self._history)

    def learn(
        self,
        was_interrupted: bool,
        duration_ms: float,
        now_ms: float,
        emotion: Optional[EmotionCategory] = None,
        pause_ms: Optional[float] = None,
    ) -> None:
        """Record the outcome of one response."""
        self._history.append(
            InteractionRecord(
                timestamp_ms=now_ms,
                duration_ms=duration_ms,
                was_interrupted=was_interrupted,
                emotion=emotion,
            )
        )

        self.average_turn_length_ms = (
            (1 - TURN_LENGTH_ALPHA) * self.average_turn_length_ms
            + TURN_LENGTH_ALPHA * duration_ms
        )

        if was_interrupted and duration_ms < ASSERTIVE_MAX_TURN_MS:
            self.style = InterruptionStyle.ASSERTIVE
        elif not was_interrupted and duration_ms > POLITE_MIN_TURN_MS:
            self.style = InterruptionStyle.POLITE

        if was_interrupted and emotion is not None and emotion not in self.emotional_triggers:
            self.emotional_triggers.append(emotion)

        if was_interrupted and pause_ms is not None:
            self.preferred_pause_ms = (
                (1 - PAUSE_ALPHA) * self.preferred_pause_ms + PAUSE_ALPHA * pause_ms
            )

        hour = int(now_ms // MS_PER_HOUR) % 24
        self.hourly_interruptions[hour] = (
            self.hourly_interruptions.get(hour, 0) + (1 if was_interrupted else 0)
        )

        logger.debug(
            "Learned from interaction",
            interrupted=was_interrupted,
            duration_ms=round(duration_ms, 1),
            style=self.style.value,
        )

    def pause_likelihood(self, now_ms: float) -> Optional[float]:
        """Share of recent responses the user interrupted; None until enough history."""
        if len(self._history) < self.config.pattern_min_history:
            return None

        recent = [
            r for r in self._history if now_ms - r.timestamp_ms < self.config.pattern_window_ms
        ]
        if not recent:
            return None
        return sum(1 for r in recent if r.was_interrupted) / len(recent)

    def engagement_penalty(self) -> float:
        """Frequent interruptions mean the user is not engaged with the speech."""
        recent = list(self._history)[-RECENT_INTERACTIONS:]
        interrupted = sum(1 for r in recent if r.was_interrupted)
        return interrupted / RECENT_INTERACTIONS * ENGAGEMENT_PENALTY

    def style_bonus(self) -> float:
        return STYLE_BONUS.get(self.style, 0.0)

    def patterns(self) -> InterruptionPatterns:
        return InterruptionPatterns(
            interruption_style=self.style,
            average_turn_length_ms=self.average_turn_length_ms,
            preferred_pause_ms=self.preferred_pause_ms,
            emotional_triggers=tuple(self.emotional_triggers),
            hourly_interruptions=dict(self.hourly_interruptions),
            interactions=len(self._history),
        )


class InterruptionArbiter:
    """
    Decides whether the system yields the floor during playback.

    Crisis always yields immediately and pauses indefinitely. Otherwise the
    weighted signal probability is adjusted by thought completeness, sentence
    progress, engagement and the user's emotional state.
    """

    def __init__(self, config: Optional[ArbiterConfig] = None):
        self.config = config or get_settings().arbiter

    def evaluate(
        self,
        signals: IntentionSignals,
        progress: PlaybackProgress,
        crisis: CrisisAssessment,
        emotional_state: Optional[EmotionalState] = None,
        patterns: Optional[InterruptionPatternLearner] = None,
        now_ms: Optional[float] = None,
    ) -> InterruptionDecision:
        """
        Decide whether to yield the floor.

        With `patterns`, the user's learned habits adjust the decision: the
        history-based pause likelihood is averaged into the acoustic one,
        recent interruptions lower engagement, and assertive or hesitant
        users get a bonus.
        """
        if crisis.is_critical or signals.urgency > URGENT_SIGNAL_THRESHOLD:
            return InterruptionDecision(
                should_yield=True,
                confidence=CRISIS_YIELD_CONFIDENCE,
                delay_ms=0.0,
                resume_strategy=ResumeStrategy.PAUSE_INDEFINITELY,
                probability=1.0,
            )

        completeness = thought_completeness(progress.current_sentence)
        sentence_progress = self._sentence_progress(progress)

        values = {name: getattr(signals, name) for name in SIGNAL_WEIGHTS}
        engagement = progress.engagement
        if patterns is not None:
            learned = patterns.pause_likelihood(now_ms) if now_ms is not None else None
            if learned is not None:
                values["pause_pattern_likelihood"] = (values["pause_pattern_likelihood"] + learned) / 2
            engagement -= patterns.engagement_penalty()

        probability = sum(weight * values[name] for name, weight in SIGNAL_WEIGHTS.items())

        if completeness > 0.8:
            probability += 0.2
        elif sentence_progress < 0.3:
            probability -= 0.3

        if engagement < 0.4:
            probability += 0.3

        if emotional_state is not None and (
            emotional_state.primary_emotion == EmotionCategory.ANXIETY
            or emotional_state.arousal > 0.7
        ):
            probability += 0.2

        if patterns is not None:
            probability += patterns.style_bonus()

        should_yield = probability > self.config.yield_threshold
        confidence = min(1.0, abs(probability - self.config.yield_threshold) * 2)

        delay_ms = 0.0
        if should_yield and completeness < 0.7:
            delay_ms = min(
                float(self.config.max_yield_delay_ms),
                max(500.0, (0.7 - completeness) * 2000),
            )
            if signals.urgency > 0.6:
                delay_ms = min(delay_ms, float(self.config.urgent_delay_cap_ms))

        priority = max(
            progress.priority,
            contextual_priority(emotional_state),
            key=_PRIORITY_RANK.get,
        )
        if priority == FlowPriority.HIGH or signals.urgency > 0.7:
            resume = ResumeStrategy.REDIRECT
        elif completeness < 0.5:
            resume = ResumeStrategy.SUMMARIZE
        else:
            resume = ResumeStrategy.CONTINUE

        return InterruptionDecision(
            should_yield=should_yield,
            confidence=confidence,
            delay_ms=delay_ms,
            resume_strategy=resume,
            probability=clamp(probability, 0.0, 1.0),
        )

    @staticmethod
    def _sentence_progress(progress: PlaybackProgress) -> float:
        if progress.sentence_progress is not None:
            return clamp(progress.sentence_progress, 0.0, 1.0)
        return min(1.0, len(progress.current_sentence.split()) / WORDS_PER_SENTENCE)


FrameSource = Callable[[], Optional[np.ndarray]]
ProgressSource = Callable[[], PlaybackProgress]
YieldCallback = Callable[[InterruptionDecision], Union[Awaitable[Any], Any]]


class BargeInMonitor:
    """
    Polls live audio during playback and fires `on_yield` once.

    Each tick reads one frame, updates the signal window and asks the
    arbiter; the first yield decision invokes the callback and stops the
    loop. `cancel()` stops monitoring when playback ends or a new turn
    starts. With a pattern learner, the outcome of the response (yielded
    or not) is recorded once.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        progress_source: ProgressSource,
        crisis: CrisisAssessment,
        on_yield: YieldCallback,
        arbiter: Optional[InterruptionArbiter] = None,
        extractor: Optional[IntentionSignalExtractor] = None,
        emotional_state: Optional[EmotionalState] = None,
        config: Optional[ArbiterConfig] = None,
        clock: Optional[Clock] = None,
        session_id: Optional[str] = None,
        patterns: Optional[InterruptionPatternLearner] = None,
    ):
        self.config = config or get_settings().arbiter
        self.frame_source = frame_source
        self.progress_source = progress_source
        self.crisis = crisis
        self.on_yield = on_yield
        self.arbiter = arbiter or InterruptionArbiter(self.config)
        self.extractor = extractor or IntentionSignalExtractor(self.config)
        self.emotional_state = emotional_state
        self.clock = clock or SystemClock()
        self.patterns = patterns

        self.token = CancellationToken()
        self.last_signals: Optional[IntentionSignals] = None
        self.last_decision: Optional[InterruptionDecision] = None
        self.yielded = False

        self._started_ms: Optional[float] = None
        self._outcome_recorded = False
        self._task = TickingTask(
            self._tick,
            self.config.poll_interval_ms,
            clock=self.clock,
            token=self.token,
            name="barge-in",
        )
        self.logger = logger.bind(component="barge_in", session_id=session_id)

    @property
    def is_running(self) -> bool:
        return self._task.is_running

    def start(self) -> None:
        if self._started_ms is None:
            self._started_ms = self.clock.now_ms()
        self._task.start()

    async def cancel(self) -> None:
        """Stop monitoring without yielding."""
        self._record_outcome(interrupted=False)
        await self._task.stop()

    def cancel_nowait(self) -> None:
        """Stop monitoring from synchronous code; the loop exits at its next wake-up."""
        self._record_outcome(interrupted=False)
        self._task.cancel_nowait()

    async def _tick(self, now_ms: float) -> None:
        frame = self.frame_source()
        if frame is None:
            return

        self.last_signals = self.extractor.push(frame, now_ms)
        self.last_decision = self.arbiter.evaluate(
            self.last_signals,
            self.progress_source(),
            self.crisis,
            self.emotional_state,
            patterns=self.patterns,
            now_ms=now_ms,
        )

        if not self.last_decision.should_yield:
            return

        self.yielded = True
        self.token.cancel()
        self._record_outcome(interrupted=True)
        self.logger.info(
            "Yielding floor",
            delay_ms=round(self.last_decision.delay_ms, 1),
            resume=self.last_decision.resume_strategy.value,
            confidence=round(self.last_decision.confidence, 3),
        )

        result = self.on_yield(self.last_decision)
        if inspect.isawaitable(result):
            await result

    def _record_outcome(self, interrupted: bool) -> None:
        if self.patterns is None or self._started_ms is None or self._outcome_recorded:
            return

        self._outcome_recorded = True
        now_ms = self.clock.now_ms()
        self.patterns.learn(
            was_interrupted=interrupted,
            duration_ms=now_ms - self._started_ms,
            now_ms=now_ms,
            emotion=self.emotional_state.primary_emotion if self.emotional_state else None,
            pause_ms=self.extractor.last_pause_ms,
        )
