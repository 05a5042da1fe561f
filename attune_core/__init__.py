"""
Attune Dialogue Core

Emotionally-aware spoken-dialogue controller: per-session emotional memory,
turn-taking, crisis escalation, barge-in arbitration and voice delivery
parameters.

Quick Start:

    import asyncio
    from attune_core import DialogueEngine

    async def main():
        engine = DialogueEngine()
        await engine.initialize()

        result = await engine.process_turn("call-1", "Hello! How are you?")
        print(result.flow_decision.action, result.voice_params)

        await engine.shutdown()

    asyncio.run(main())

"""

__version__ = "1.0.0"
__author__ = "Attune"

from .config import (
    CrisisLevel,
    EmotionCategory,
    Settings,
    Urgency,
    get_settings,
)
from .exceptions import (
    AttuneError,
    SessionNotFoundError,
    TranscriptionError,
    ValidationError,
)
from .models import (
    CrisisAssessment,
    EmotionalState,
    FlowAction,
    FlowDecision,
    FlowPhase,
    InterruptionDecision,
    TurnResult,
    VoiceParams,
)
from .engine import DialogueEngine, SessionMemoryStore
from .logging import configure_logging

__all__ = [
    "__version__",
    # Engine
    "DialogueEngine",
    "SessionMemoryStore",
    "configure_logging",
    # Config
    "Settings",
    "get_settings",
    "EmotionCategory",
    "CrisisLevel",
    "Urgency",
    # Models
    "EmotionalState",
    "CrisisAssessment",
    "FlowAction",
    "FlowPhase",
    "FlowDecision",
    "InterruptionDecision",
    "VoiceParams",
    "TurnResult",
    # Exceptions
    "AttuneError",
    "ValidationError",
    "SessionNotFoundError",
    "TranscriptionError",
]
