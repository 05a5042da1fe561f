"""SSML rendering for synthesized responses."""

import re
from typing import List

from ..models import VoiceParams, clamp

SENTENCE_END = re.compile(r"(?<=[.!?])\s+")

MIN_BREAK_MS = 100
MAX_BREAK_MS = 800
BASE_BREAK_MS = 400


class SSMLBuilder:
    """
    SSML markup builder.

    Creates Speech Synthesis Markup Language for the synthesis collaborator.
    """

    def __init__(self) -> None:
        self._parts: List[str] = []

    def text(self, content: str) -> "SSMLBuilder":
        self._parts.append(self._escape(content))
        return self

    def pause(self, duration_ms: int = 500) -> "SSMLBuilder":
        self._parts.append(f'<break time="{duration_ms}ms"/>')
        return self

    def prosody(self, inner: str, rate: str, pitch: str, volume: str) -> "SSMLBuilder":
        """Wrap already-built markup in a prosody element."""
        self._parts.append(
            f'<prosody rate="{rate}" pitch="{pitch}" volume="{volume}">{inner}</prosody>'
        )
        return self

    def content(self) -> str:
        return "".join(self._parts)

    def build(self) -> str:
        return f"<speak>{self.content()}</speak>"

    @staticmethod
    def _escape(text: str) -> str:
        return (
            text
            .replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
            .replace('"', "&quot;")
            .replace("'", "&apos;")
        )


def sentence_break_ms(rate_multiplier: float) -> int:
    """Pause between sentences; slower delivery gets longer breaks."""
    return int(clamp(BASE_BREAK_MS / max(rate_multiplier, 1e-6), MIN_BREAK_MS, MAX_BREAK_MS))


def render_ssml(text: str, params: VoiceParams) -> str:
    """Render response text with prosody and sentence breaks."""
    sentences = [s for s in SENTENCE_END.split(text.strip()) if s]
    pause_ms = sentence_break_ms(params.rate_multiplier)

    body = SSMLBuilder()
    for index, sentence in enumerate(sentences):
        if index:
            body.pause(pause_ms)
        body.text(sentence)

    return (
        SSMLBuilder()
        .prosody(
            body.content(),
            rate=f"{params.rate_multiplier * 100:.0f}%",
            pitch=f"{(params.pitch_multiplier - 1) * 100:+.0f}%",
            volume=f"{(params.volume_multiplier - 1) * 100:+.0f}%",
        )
        .build()
    )
