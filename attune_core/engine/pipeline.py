"""
Dialogue Engine.

Main orchestrator: runs sampler, fusion, crisis assessment, flow control
and voice mapping for each user turn, with per-session serialization and
per-stage fallbacks.
"""

import asyncio
import inspect
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, TypeVar, Union

import numpy as np
import structlog

from ..collaborators import SpeechToTextInterface
from ..config import EmotionCategory, Settings, get_settings
from ..conversation.flow import ConversationFlowStateMachine
from ..conversation.interruption import (
    BargeInMonitor,
    FrameSource,
    InterruptionArbiter,
    InterruptionPatternLearner,
    ProgressSource,
    YieldCallback,
)
from ..conversation.scheduler import Clock, SystemClock
from ..exceptions import TranscriptionError, ValidationError
from ..models import (
    AudioFeatures,
    CrisisAssessment,
    EmotionalState,
    FlowDecision,
    GenerationRequest,
    InterruptionDecision,
    TurnResult,
    VoiceParams,
)
from .crisis import CrisisRiskAssessor
from .fusion import EmotionFusionEngine
from .memory import SessionMemoryStore
from .prompt_context import build_generation_request, build_prompt_context
from .sampler import AudioSignalSampler
from .scoring import ScoringStrategy
from .voice import VoiceBehaviorMapper

logger = structlog.get_logger()

T = TypeVar("T")
AudioInput = Union[np.ndarray, bytes]


@dataclass
class EngineMetrics:
    """Metrics for engine performance."""

    total_turns: int = 0
    degraded_turns: int = 0
    rejected_turns: int = 0
    no_input_turns: int = 0
    escalations: int = 0
    avg_processing_time_ms: float = 0.0
    min_processing_time_ms: float = float("inf")
    max_processing_time_ms: float = 0.0

    emotion_counts: Dict[str, int] = field(default_factory=dict)
    stage_failures: Dict[str, int] = field(default_factory=dict)

    def record_turn(
        self,
        processing_time_ms: float,
        emotion: Optional[EmotionCategory] = None,
        degraded_stages: Optional[List[str]] = None,
        escalated: bool = False,
    ) -> None:
        self.total_turns += 1

        if degraded_stages:
            self.degraded_turns += 1
            for stage in degraded_stages:
                self.stage_failures[stage] = self.stage_failures.get(stage, 0) + 1

        if escalated:
            self.escalations += 1

        self.min_processing_time_ms = min(self.min_processing_time_ms, processing_time_ms)
        self.max_processing_time_ms = max(self.max_processing_time_ms, processing_time_ms)

        # Running average
        alpha = 0.1
        if self.total_turns == 1:
            self.avg_processing_time_ms = processing_time_ms
        else:
            self.avg_processing_time_ms = (
                alpha * processing_time_ms + (1 - alpha) * self.avg_processing_time_ms
            )

        if emotion:
            key = emotion.value
            self.emotion_counts[key] = self.emotion_counts.get(key, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_turns": self.total_turns,
            "degraded_turns": self.degraded_turns,
            "rejected_turns": self.rejected_turns,
            "no_input_turns": self.no_input_turns,
            "escalations": self.escalations,
            "avg_processing_time_ms": round(self.avg_processing_time_ms, 2),
            "min_processing_time_ms": (
                round(self.min_processing_time_ms, 2) if self.total_turns else 0.0
            ),
            "max_processing_time_ms": round(self.max_processing_time_ms, 2),
            "emotion_distribution": dict(self.emotion_counts),
            "stage_failures": dict(self.stage_failures),
        }


class DialogueEngine:
    """
    Emotionally-aware turn controller.

    Usage:
        engine = DialogueEngine()
        await engine.initialize()

        result = await engine.process_turn("call-1", "Hi there!")
        if result.escalate:
            ...
        if result.should_speak_now:
            await synthesizer.synthesize(reply, result.voice_params)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[SessionMemoryStore] = None,
        clock: Optional[Clock] = None,
        scoring_strategy: Optional[ScoringStrategy] = None,
        flow: Optional[ConversationFlowStateMachine] = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()

        # Core components
        self.store = store or SessionMemoryStore(
            self.settings.memory,
            clock=self.clock,
            initial_engagement=self.settings.flow.initial_engagement,
        )
        self.sampler = AudioSignalSampler(self.settings.sampler)
        self.fusion = EmotionFusionEngine(self.settings.fusion, scoring_strategy)
        self.crisis = CrisisRiskAssessor(self.settings.crisis)
        self.flow = flow or ConversationFlowStateMachine(self.settings.flow)
        self.voice = VoiceBehaviorMapper(
            self.settings.voice,
            drift_threshold=self.settings.memory.drift_threshold,
        )
        self.arbiter = InterruptionArbiter(self.settings.arbiter)

        # State
        self._initialized = False
        self._metrics = EngineMetrics()
        self._session_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._last_turn: Dict[str, TurnResult] = {}
        self._monitors: Dict[str, BargeInMonitor] = {}
        self._patterns: Dict[str, InterruptionPatternLearner] = {}

        self.store.add_expiry_listener(self._forget_sessions)
        self.logger = logger.bind(component="engine")

    async def initialize(self) -> None:
        if self._initialized:
            return

        await self.store.init()
        self._initialized = True
        self.logger.info("Dialogue engine initialized", service=self.settings.service_name)

    async def shutdown(self) -> None:
        self.logger.info("Shutting down dialogue engine")

        for session_id in list(self._monitors):
            await self._cancel_monitor(session_id)
        await self.store.shutdown()
        for session_id in list(self._session_locks):
            if session_id not in self._lock_users:
                del self._session_locks[session_id]
        self._last_turn.clear()
        self._patterns.clear()

        self._initialized = False
        self.logger.info("Dialogue engine shutdown complete")

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    async def process_turn(
        self,
        session_id: str,
        text: str,
        audio: Optional[AudioInput] = None,
        sample_rate: Optional[int] = None,
        now_ms: Optional[float] = None,
        intention_urgency: Optional[float] = None,
    ) -> TurnResult:
        """
        Process one user utterance.

        Args:
            session_id: Opaque, non-empty session identifier
            text: User utterance (non-empty, at most max_text_length chars)
            audio: Optional raw audio of the utterance
            sample_rate: Audio sample rate in Hz
            now_ms: Turn timestamp (defaults to the engine clock)
            intention_urgency: Latest barge-in urgency if playback is active

        Returns:
            TurnResult with the flow decision, voice params and escalation flag

        Raises:
            ValidationError: Empty session id, empty or oversized text
        """
        self._validate(session_id, text)

        if not self._initialized:
            await self.initialize()

        async with self._session_lock(session_id):
            await self._cancel_monitor(session_id)
            return await self._run_turn(
                session_id, text, audio, sample_rate, now_ms, intention_urgency
            )

    async def process_transcript(
        self,
        session_id: str,
        transcript: Optional[str],
        audio: Optional[AudioInput] = None,
        sample_rate: Optional[int] = None,
        now_ms: Optional[float] = None,
    ) -> TurnResult:
        """Process a transcription; empty means no input this turn."""
        if not transcript or not transcript.strip():
            return await self.handle_no_input(session_id, now_ms=now_ms)
        return await self.process_turn(
            session_id, transcript.strip(), audio, sample_rate, now_ms
        )

    async def process_audio_turn(
        self,
        session_id: str,
        audio: bytes,
        transcriber: SpeechToTextInterface,
        sample_rate: Optional[int] = None,
        now_ms: Optional[float] = None,
    ) -> TurnResult:
        """Transcribe audio with the collaborator and process the result."""
        sample_rate = sample_rate or self.settings.sampler.sample_rate

        try:
            transcript = await transcriber.transcribe(audio, sample_rate)
        except TranscriptionError as e:
            self.logger.warning(
                "Transcription failed, treating as no input",
                session_id=session_id,
                provider=e.provider,
                error=e.message,
            )
            transcript = ""

        return await self.process_transcript(
            session_id, transcript, audio=audio, sample_rate=sample_rate, now_ms=now_ms
        )

    async def handle_no_input(
        self,
        session_id: str,
        now_ms: Optional[float] = None,
    ) -> TurnResult:
        """Nothing was said: re-enter listening unless a crisis hold is active."""
        self._validate_session_id(session_id)

        async with self._session_lock(session_id):
            await self._cancel_monitor(session_id)
            snapshot = self.store.snapshot(session_id)
            decision, flow_state = self.flow.no_input(snapshot.flow)
            self.store.update_flow(session_id, flow_state, now_ms=now_ms)

        self._metrics.no_input_turns += 1
        self.logger.debug("No input this turn", session_id=session_id)

        return TurnResult(
            session_id=session_id,
            turn_number=snapshot.turn_number,
            emotional_state=EmotionalState.neutral(),
            crisis=CrisisAssessment(),
            flow_decision=decision,
            voice_params=VoiceParams.default(),
            no_input=True,
        )

    async def playback_complete(self, session_id: str) -> FlowDecision:
        """Synthesized response finished playing."""
        self._validate_session_id(session_id)

        async with self._session_lock(session_id):
            await self._cancel_monitor(session_id)
            snapshot = self.store.snapshot(session_id)
            decision, flow_state = self.flow.on_playback_complete(snapshot.flow)
            self.store.update_flow(session_id, flow_state)

        return decision

    async def advance_flow(self, session_id: str, elapsed_ms: float) -> Optional[FlowDecision]:
        """Tick the session's flow countdowns; returns a decision when one completes."""
        self._validate_session_id(session_id)

        async with self._session_lock(session_id):
            snapshot = self.store.snapshot(session_id)
            decision, flow_state = self.flow.advance(snapshot.flow, elapsed_ms)
            if flow_state != snapshot.flow:
                self.store.update_flow(session_id, flow_state)

        return decision

    # -------------------------------------------------------------------------
    # Barge-in
    # -------------------------------------------------------------------------

    def create_barge_in_monitor(
        self,
        session_id: str,
        frame_source: FrameSource,
        progress_source: ProgressSource,
        on_yield: Optional[YieldCallback] = None,
        clock: Optional[Clock] = None,
    ) -> BargeInMonitor:
        """
        Build a monitor for the response now playing.

        The monitor uses the session's latest crisis assessment and emotional
        state. When it yields, the session's flow state is updated before
        `on_yield` runs. One monitor is live per session: creating another,
        a new turn, playback completion or ending the session cancels it, and
        a yield from a monitor built for an earlier turn is dropped.
        """
        self._validate_session_id(session_id)
        last = self._last_turn.get(session_id)
        turn_number = last.turn_number if last else 0

        previous = self._monitors.pop(session_id, None)
        if previous is not None:
            previous.cancel_nowait()

        async def handle_yield(decision: InterruptionDecision) -> None:
            async with self._session_lock(session_id):
                current = (
                    self._monitors.get(session_id) is monitor
                    and session_id in self.store
                    and self.store.snapshot(session_id).turn_number == turn_number
                )
                if not current:
                    self.logger.debug(
                        "Stale barge-in ignored", session_id=session_id, turn=turn_number
                    )
                    return

                del self._monitors[session_id]
                snapshot = self.store.snapshot(session_id)
                self.store.update_flow(session_id, self.flow.on_barge_in(snapshot.flow, decision))

            if on_yield is not None:
                result = on_yield(decision)
                if inspect.isawaitable(result):
                    await result

        monitor = BargeInMonitor(
            frame_source=frame_source,
            progress_source=progress_source,
            crisis=last.crisis if last else CrisisAssessment(),
            on_yield=handle_yield,
            arbiter=self.arbiter,
            emotional_state=last.emotional_state if last else None,
            config=self.settings.arbiter,
            clock=clock or self.clock,
            session_id=session_id,
            patterns=self._patterns.setdefault(
                session_id, InterruptionPatternLearner(self.settings.arbiter)
            ),
        )
        self._monitors[session_id] = monitor
        return monitor

    def get_interruption_patterns(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Learned barge-in habits for a session (None before any monitor)."""
        learner = self._patterns.get(session_id)
        return learner.patterns().to_dict() if learner else None

    # -------------------------------------------------------------------------
    # Collaborator context
    # -------------------------------------------------------------------------

    def build_generation_request(
        self,
        session_id: str,
        latest_user_text: str,
        persona_prompt: Optional[str] = None,
    ) -> GenerationRequest:
        """Arguments for the text generation collaborator after a turn."""
        snapshot = self.store.snapshot(session_id)
        last = self._last_turn.get(session_id)
        context = last.prompt_context if last else {}
        return build_generation_request(snapshot, context, latest_user_text, persona_prompt)

    # -------------------------------------------------------------------------
    # Sessions and metrics
    # -------------------------------------------------------------------------

    async def end_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """End a session and return its summary (None if unknown).

        Waits for an in-flight turn on the session to finish first.
        """
        async with self._session_lock(session_id):
            await self._cancel_monitor(session_id)
            self._last_turn.pop(session_id, None)
            self._patterns.pop(session_id, None)
            return self.store.end_session(session_id)

    def sweep_expired(self, now_ms: Optional[float] = None) -> List[str]:
        return self.store.sweep_expired(now_ms)

    def get_session_state(self, session_id: str) -> Optional[Dict[str, Any]]:
        if session_id not in self.store:
            return None
        return self.store.snapshot(session_id).to_dict()

    def get_metrics(self) -> Dict[str, Any]:
        return {
            **self._metrics.to_dict(),
            "active_sessions": len(self.store),
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _run_turn(
        self,
        session_id: str,
        text: str,
        audio: Optional[AudioInput],
        sample_rate: Optional[int],
        now_ms: Optional[float],
        intention_urgency: Optional[float],
    ) -> TurnResult:
        start = time.perf_counter()
        now = self.clock.now_ms() if now_ms is None else now_ms
        snapshot = self.store.snapshot(session_id)
        degraded: List[str] = []

        features: Optional[AudioFeatures] = None
        if audio is not None:
            features = await asyncio.to_thread(
                self._run_stage,
                "sampler",
                lambda: self.sampler.analyze(audio, sample_rate),
                lambda: None,
                degraded,
                session_id,
            )

        state = self._run_stage(
            "fusion",
            lambda: self.fusion.fuse(text, snapshot, features),
            EmotionalState.neutral,
            degraded,
            session_id,
        )
        crisis = self._run_stage(
            "crisis",
            lambda: self.crisis.assess(text, features, snapshot),
            CrisisAssessment.fallback,
            degraded,
            session_id,
        )
        decision, flow_state = self._run_stage(
            "flow",
            lambda: self.flow.decide(
                text,
                state,
                crisis,
                snapshot.flow,
                now_ms=now,
                intention_urgency=intention_urgency,
            ),
            lambda: (FlowDecision.fallback(self.settings.flow.turn_timeout_ms), snapshot.flow),
            degraded,
            session_id,
        )
        voice = self._run_stage(
            "voice",
            lambda: self.voice.map(state, crisis, snapshot),
            VoiceParams.default,
            degraded,
            session_id,
        )

        updated = self.store.record(
            session_id,
            state,
            text,
            crisis_level=crisis.level,
            flow=flow_state,
            now_ms=now,
        )

        result = TurnResult(
            session_id=session_id,
            turn_number=updated.turn_number,
            emotional_state=state,
            crisis=crisis,
            flow_decision=decision,
            voice_params=voice,
            prompt_context=build_prompt_context(updated, state, crisis, decision, voice),
            degraded_stages=degraded,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )
        self._last_turn[session_id] = result

        self._metrics.record_turn(
            result.processing_time_ms,
            state.primary_emotion,
            degraded,
            escalated=result.escalate,
        )

        self.logger.info(
            "Turn processed",
            session_id=session_id,
            turn=result.turn_number,
            emotion=state.primary_emotion.value,
            crisis_level=crisis.level.value,
            action=decision.action.value,
            degraded=degraded or None,
        )
        if result.escalate:
            self.logger.warning(
                "Crisis escalation",
                session_id=session_id,
                level=crisis.level.value,
                urgency=crisis.urgency.value,
                fallback=crisis.is_fallback,
            )

        return result

    def _run_stage(
        self,
        name: str,
        operation: Callable[[], T],
        fallback: Callable[[], T],
        degraded: List[str],
        session_id: str,
    ) -> T:
        """Run one stage; on any fault log it and substitute the fallback."""
        try:
            return operation()
        except Exception as e:
            self.logger.error(
                "Stage failed, using fallback",
                stage=name,
                session_id=session_id,
                error=str(e),
                exc_info=True,
            )
            degraded.append(name)
            return fallback()

    def _validate(self, session_id: str, text: str) -> None:
        self._validate_session_id(session_id)

        if not isinstance(text, str) or not text.strip():
            self._metrics.rejected_turns += 1
            raise ValidationError("Text must not be empty", field="text")

        if len(text) > self.settings.max_text_length:
            self._metrics.rejected_turns += 1
            raise ValidationError(
                f"Text exceeds {self.settings.max_text_length} characters",
                field="text",
                details={"length": len(text), "max_length": self.settings.max_text_length},
            )

    def _validate_session_id(self, session_id: str) -> None:
        if not isinstance(session_id, str) or not session_id.strip():
            self._metrics.rejected_turns += 1
            raise ValidationError("Session id must not be empty", field="session_id")

    @asynccontextmanager
    async def _session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Serialize work on one session.

        A session's lock is dropped only once nothing holds or awaits it and
        the session is gone, so a later turn never gets a second lock while
        an earlier one is still running.
        """
        lock = self._session_locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                if session_id not in self.store:
                    self._session_locks.pop(session_id, None)

    async def _cancel_monitor(self, session_id: str) -> None:
        monitor = self._monitors.pop(session_id, None)
        if monitor is not None:
            await monitor.cancel()

    def _forget_sessions(self, session_ids: List[str]) -> None:
        for session_id in session_ids:
            monitor = self._monitors.pop(session_id, None)
            if monitor is not None:
                monitor.cancel_nowait()
            if session_id not in self._lock_users:
                self._session_locks.pop(session_id, None)
            self._last_turn.pop(session_id, None)
            self._patterns.pop(session_id, None)
