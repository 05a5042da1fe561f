"""
Session Memory Store.

Owns all mutable per-session state: short emotion and history buffers, the
smoothed PAD baseline, drift, relationship stage and the flow state. Every
other component receives a frozen SessionSnapshot.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

import numpy as np
import structlog

from ..config import CrisisLevel, EmotionCategory, MemoryConfig, get_settings
from ..conversation.scheduler import Clock, SystemClock, TickingTask
from ..exceptions import SessionNotFoundError
from ..models import (
    NEUTRAL_PAD,
    PAD,
    CommunicationStyle,
    EmotionalState,
    FlowState,
    HistoryEntry,
    RecentEmotion,
    RelationshipStage,
    SessionSnapshot,
)

logger = structlog.get_logger()


POSITIVE_EMOTIONS = frozenset({
    EmotionCategory.JOY,
    EmotionCategory.PRIDE,
    EmotionCategory.RELIEF,
    EmotionCategory.CURIOUS,
})
NEGATIVE_EMOTIONS = frozenset({
    EmotionCategory.SADNESS,
    EmotionCategory.ANXIETY,
    EmotionCategory.FEAR,
})


@dataclass
class SessionContext:
    """Mutable state for one live conversation."""

    session_id: str
    created_at_ms: float
    last_activity_ms: float

    recent_emotions: Deque[RecentEmotion]
    conversation_history: Deque[HistoryEntry]
    crisis_levels: Deque[CrisisLevel]

    turn_number: int = 0
    baseline: PAD = NEUTRAL_PAD
    role_baseline: Optional[PAD] = None
    drift: float = 0.0

    flow: FlowState = field(default_factory=FlowState)

    trust_level: float = 0.3
    comfort_level: float = 0.3
    relationship_stage: RelationshipStage = RelationshipStage.NEW
    communication_style: CommunicationStyle = CommunicationStyle.SUPPORTIVE

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            created_at_ms=self.created_at_ms,
            turn_number=self.turn_number,
            recent_emotions=tuple(self.recent_emotions),
            conversation_history=tuple(self.conversation_history),
            baseline=self.baseline,
            role_baseline=self.role_baseline,
            drift=self.drift,
            flow=self.flow,
            crisis_levels=tuple(self.crisis_levels),
            trust_level=self.trust_level,
            comfort_level=self.comfort_level,
            relationship_stage=self.relationship_stage,
            communication_style=self.communication_style,
            last_activity_ms=self.last_activity_ms,
        )


class SessionMemoryStore:
    """
    In-memory map of live sessions.

    Sessions are created lazily and removed either explicitly by
    `end_session()` or by the inactivity sweep.
    """

    def __init__(
        self,
        config: Optional[MemoryConfig] = None,
        clock: Optional[Clock] = None,
        initial_engagement: float = 0.5,
    ):
        self.config = config or get_settings().memory
        self.clock = clock or SystemClock()
        self.initial_engagement = initial_engagement

        self._sessions: Dict[str, SessionContext] = {}
        self._lock = threading.RLock()
        self._sweeper: Optional[TickingTask] = None
        self._expiry_listeners: List[Callable[[List[str]], None]] = []

        self.logger = logger.bind(component="memory")

    async def init(self) -> None:
        """Start the periodic inactivity sweep."""
        if self._sweeper is not None and self._sweeper.is_running:
            return

        self._sweeper = TickingTask(
            self.sweep_expired,
            self.config.sweep_interval_ms,
            clock=self.clock,
            name="session-sweep",
        )
        self._sweeper.start()
        self.logger.info(
            "Session store started",
            timeout_ms=self.config.inactivity_timeout_ms,
            sweep_interval_ms=self.config.sweep_interval_ms,
        )

    async def shutdown(self) -> None:
        if self._sweeper:
            await self._sweeper.stop()
            self._sweeper = None

        with self._lock:
            count = len(self._sessions)
            self._sessions.clear()

        self.logger.info("Session store stopped", sessions_dropped=count)

    def add_expiry_listener(self, listener: Callable[[List[str]], None]) -> None:
        """Call `listener` with the ids removed by each sweep."""
        self._expiry_listeners.append(listener)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    @property
    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def get_or_create(self, session_id: str) -> SessionContext:
        """Return the session, creating a fresh one on first use."""
        with self._lock:
            context = self._sessions.get(session_id)
            if context is None:
                context = self._new_context(session_id)
                self._sessions[session_id] = context
                self.logger.debug("Session created", session_id=session_id)
            return context

    def get(self, session_id: str) -> SessionContext:
        with self._lock:
            context = self._sessions.get(session_id)
        if context is None:
            raise SessionNotFoundError(session_id)
        return context

    def snapshot(self, session_id: str) -> SessionSnapshot:
        return self.get_or_create(session_id).snapshot()

    def record(
        self,
        session_id: str,
        state: EmotionalState,
        input_excerpt: str,
        crisis_level: Optional[CrisisLevel] = None,
        flow: Optional[FlowState] = None,
        now_ms: Optional[float] = None,
    ) -> SessionSnapshot:
        """
        Commit one completed turn.

        Appends to the ring buffers, updates the smoothed baseline and drift,
        advances the turn counter and refreshes relationship metrics.

        Returns:
            Snapshot of the session after the update
        """
        context = self.get_or_create(session_id)
        now = self.clock.now_ms() if now_ms is None else now_ms
        pad = state.pad

        context.recent_emotions.append(
            RecentEmotion(
                emotion=state.primary_emotion,
                intensity=state.intensity,
                timestamp_ms=now,
                pad=pad,
            )
        )
        context.conversation_history.append(
            HistoryEntry(
                text=input_excerpt[: self.config.excerpt_length],
                emotion=state.primary_emotion,
                timestamp_ms=now,
            )
        )

        if context.role_baseline is None:
            context.role_baseline = pad

        self._update_baseline(context, pad)
        context.drift = self._calculate_drift(context)

        if crisis_level is not None:
            context.crisis_levels.append(crisis_level)
        if flow is not None:
            context.flow = flow

        context.turn_number += 1
        context.last_activity_ms = now
        self._update_relationship(context, state)

        if context.drift > self.config.drift_threshold:
            self.logger.warning(
                "Emotional drift above threshold",
                session_id=session_id,
                drift=round(context.drift, 3),
                turn=context.turn_number,
            )

        return context.snapshot()

    def update_flow(
        self,
        session_id: str,
        flow: FlowState,
        now_ms: Optional[float] = None,
    ) -> SessionSnapshot:
        """Persist a flow transition that is not a user turn."""
        context = self.get_or_create(session_id)
        context.flow = flow
        context.last_activity_ms = self.clock.now_ms() if now_ms is None else now_ms
        return context.snapshot()

    def sweep_expired(self, now_ms: Optional[float] = None) -> List[str]:
        """
        Remove sessions idle for longer than the inactivity timeout.

        Returns:
            Ids of the removed sessions (empty when nothing expired)
        """
        now = self.clock.now_ms() if now_ms is None else now_ms
        cutoff = now - self.config.inactivity_timeout_ms

        with self._lock:
            expired = [
                sid for sid, ctx in self._sessions.items()
                if ctx.last_activity_ms < cutoff
            ]
            for sid in expired:
                del self._sessions[sid]

        if expired:
            self.logger.info("Expired sessions swept", count=len(expired))
            for listener in self._expiry_listeners:
                listener(expired)

        return expired

    def end_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Remove a session and return its summary (None if absent)."""
        with self._lock:
            context = self._sessions.pop(session_id, None)

        if context is None:
            return None

        summary = self.get_session_summary(context)
        self.logger.info(
            "Session ended",
            session_id=session_id,
            turns=context.turn_number,
        )
        return summary

    def get_session_summary(self, context: SessionContext) -> Dict[str, Any]:
        """Summary of a session's emotional course."""
        emotion_counts: Dict[str, int] = {}
        for entry in context.recent_emotions:
            key = entry.emotion.value
            emotion_counts[key] = emotion_counts.get(key, 0) + 1

        dominant = max(emotion_counts, key=emotion_counts.get) if emotion_counts else None
        peak_crisis = max(
            context.crisis_levels,
            key=lambda level: level.rank,
            default=CrisisLevel.NONE,
        )

        return {
            "session_id": context.session_id,
            "turns": context.turn_number,
            "duration_ms": round(context.last_activity_ms - context.created_at_ms, 1),
            "dominant_emotion": dominant,
            "emotion_counts": emotion_counts,
            "baseline": context.baseline.to_dict(),
            "drift": round(context.drift, 3),
            "peak_crisis_level": peak_crisis.value,
            "relationship_stage": context.relationship_stage.value,
            "communication_style": context.communication_style.value,
        }

    def _new_context(self, session_id: str) -> SessionContext:
        now = self.clock.now_ms()
        return SessionContext(
            session_id=session_id,
            created_at_ms=now,
            last_activity_ms=now,
            recent_emotions=deque(maxlen=self.config.recent_emotions_capacity),
            conversation_history=deque(maxlen=self.config.history_capacity),
            crisis_levels=deque(maxlen=self.config.crisis_history_capacity),
            flow=FlowState(engagement=self.initial_engagement),
        )

    def _update_baseline(self, context: SessionContext, pad: PAD) -> None:
        """Exponential moving average toward the latest state."""
        alpha = self.config.baseline_alpha
        context.baseline = PAD(
            pleasure=alpha * pad.pleasure + (1 - alpha) * context.baseline.pleasure,
            arousal=alpha * pad.arousal + (1 - alpha) * context.baseline.arousal,
            dominance=alpha * pad.dominance + (1 - alpha) * context.baseline.dominance,
        )

    def _calculate_drift(self, context: SessionContext) -> float:
        """Mean deviation of the latest states from the baseline."""
        window = list(context.recent_emotions)[-self.config.drift_window:]
        if not window:
            return 0.0
        return float(np.mean([entry.pad.deviation(context.baseline) for entry in window]))

    @staticmethod
    def _update_relationship(context: SessionContext, state: EmotionalState) -> None:
        if state.intensity > 0.6:
            context.trust_level = min(1.0, context.trust_level + 0.05)
        if context.turn_number > 10:
            context.comfort_level = min(1.0, context.comfort_level + 0.02)

        if context.turn_number > 50:
            context.relationship_stage = RelationshipStage.CLOSE
        elif context.turn_number > 20:
            context.relationship_stage = RelationshipStage.ESTABLISHED
        elif context.turn_number > 5:
            context.relationship_stage = RelationshipStage.BUILDING

        positives = sum(1 for e in context.recent_emotions if e.emotion in POSITIVE_EMOTIONS)
        negatives = sum(1 for e in context.recent_emotions if e.emotion in NEGATIVE_EMOTIONS)

        if positives > negatives * 2:
            context.communication_style = CommunicationStyle.PLAYFUL
        elif negatives > positives:
            context.communication_style = CommunicationStyle.SUPPORTIVE
        else:
            context.communication_style = CommunicationStyle.CASUAL
