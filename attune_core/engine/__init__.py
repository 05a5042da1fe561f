"""
Dialogue Engine Core Components.

This module provides the per-turn analysis pipeline:
- AudioSignalSampler: Extracts energy, pitch and spectral features from audio
- EmotionFusionEngine: Fuses lexical, contextual, override and prosodic signals
- SessionMemoryStore: Owns per-session emotional memory and flow state
- CrisisRiskAssessor: Scores text, voice and behavioral crisis risk
- VoiceBehaviorMapper: Maps emotion and risk onto synthesis parameters
- DialogueEngine: Main orchestrator combining all components
"""

from .sampler import AudioSignalSampler
from .scoring import KeywordScoringStrategy, ScoringStrategy
from .fusion import EmotionFusionEngine
from .memory import SessionContext, SessionMemoryStore
from .crisis import CrisisRiskAssessor
from .voice import VoiceBehaviorMapper
from .ssml import render_ssml
from .prompt_context import build_prompt_context, render_prompt_context
from .pipeline import DialogueEngine, EngineMetrics

__all__ = [
    "AudioSignalSampler",
    "ScoringStrategy",
    "KeywordScoringStrategy",
    "EmotionFusionEngine",
    "SessionContext",
    "SessionMemoryStore",
    "CrisisRiskAssessor",
    "VoiceBehaviorMapper",
    "render_ssml",
    "build_prompt_context",
    "render_prompt_context",
    "DialogueEngine",
    "EngineMetrics",
]
