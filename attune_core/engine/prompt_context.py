"""
Prompt context for the text generation collaborator.

The core never calls a language model; it only supplies enumerated key/value
context to embed in the system prompt.
"""

from typing import Dict, List, Optional

from ..config import CrisisLevel
from ..models import (
    CrisisAssessment,
    EmotionalState,
    FlowDecision,
    GenerationRequest,
    SessionSnapshot,
    VoiceParams,
)

RECENT_EMOTION_COUNT = 3

CONTEXT_KEYS = (
    "relationship_stage",
    "trust_level",
    "comfort_level",
    "communication_style",
    "recent_emotions",
    "current_emotion",
    "crisis_level",
    "voice_style",
    "response_action",
)

STYLE_GUIDANCE = {
    "casual": "relaxed and natural",
    "playful": "light and playful",
    "supportive": "gentle and supportive",
}

DEFAULT_PERSONA_PROMPT = (
    "You are a caring conversational companion. Listen closely, respond "
    "briefly and naturally, and match the person's emotional state."
)

CRISIS_GUIDANCE = (
    "The person may be in crisis. Stay calm and present, take them seriously, "
    "and encourage them to reach a crisis line or emergency services."
)


def build_prompt_context(
    session: SessionSnapshot,
    state: EmotionalState,
    crisis: CrisisAssessment,
    decision: FlowDecision,
    voice: VoiceParams,
) -> Dict[str, str]:
    """Enumerated key/value context for one turn."""
    recent: List[str] = [
        entry.emotion.value for entry in session.recent_emotions[-RECENT_EMOTION_COUNT:]
    ]

    return {
        "relationship_stage": session.relationship_stage.value,
        "trust_level": f"{session.trust_level:.2f}",
        "comfort_level": f"{session.comfort_level:.2f}",
        "communication_style": session.communication_style.value,
        "recent_emotions": ", ".join(recent) if recent else "none",
        "current_emotion": state.primary_emotion.value,
        "crisis_level": crisis.level.value,
        "voice_style": voice.style_tag,
        "response_action": decision.action.value,
    }


def render_prompt_context(context: Dict[str, str]) -> str:
    """Format context as `key: value` lines in a stable order."""
    keys = [k for k in CONTEXT_KEYS if k in context]
    keys.extend(k for k in context if k not in CONTEXT_KEYS)
    return "\n".join(f"{key}: {context[key]}" for key in keys)


def build_system_prompt(
    context: Dict[str, str],
    persona_prompt: Optional[str] = None,
) -> str:
    """System prompt with the turn context appended."""
    parts = [persona_prompt or DEFAULT_PERSONA_PROMPT]

    style = STYLE_GUIDANCE.get(context.get("communication_style", ""))
    if style:
        parts.append(f" Keep your tone {style}.")

    level = context.get("crisis_level")
    if level in (CrisisLevel.HIGH.value, CrisisLevel.CRITICAL.value):
        parts.append(f" {CRISIS_GUIDANCE}")

    parts.append("\n\nConversation context:\n")
    parts.append(render_prompt_context(context))

    return "".join(parts)


def build_generation_request(
    session: SessionSnapshot,
    context: Dict[str, str],
    latest_user_text: str,
    persona_prompt: Optional[str] = None,
) -> GenerationRequest:
    """Assemble arguments for the text generation collaborator."""
    history = [
        {"role": "user", "content": entry.text, "emotion": entry.emotion.value}
        for entry in session.conversation_history
    ]
    return GenerationRequest(
        system_prompt=build_system_prompt(context, persona_prompt),
        conversation_history=history,
        latest_user_text=latest_user_text,
    )
