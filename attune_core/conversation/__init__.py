"""
Turn-taking and barge-in.

- ConversationFlowStateMachine: Per-session phases and response timing
- InterruptionArbiter: Decides whether to yield the floor during playback
- InterruptionPatternLearner: Learns a user's barge-in habits across responses
- BargeInMonitor: Polls live audio while a response plays
- TickingTask / VirtualClock: Scheduler abstraction for polling loops
"""

from .scheduler import CancellationToken, Clock, SystemClock, TickingTask, VirtualClock
from .flow import ConversationFlowStateMachine
from .interruption import (
    BargeInMonitor,
    IntentionSignalExtractor,
    InterruptionArbiter,
    InterruptionPatternLearner,
    thought_completeness,
)

__all__ = [
    "Clock",
    "SystemClock",
    "VirtualClock",
    "CancellationToken",
    "TickingTask",
    "ConversationFlowStateMachine",
    "InterruptionArbiter",
    "IntentionSignalExtractor",
    "InterruptionPatternLearner",
    "BargeInMonitor",
    "thought_completeness",
]
