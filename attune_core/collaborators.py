"""
External collaborator interfaces.

The core never talks to speech or language providers directly. Hosts plug in
implementations of these interfaces.
"""

from abc import ABC, abstractmethod
from typing import Dict, List

from .models import VoiceParams


class SpeechToTextInterface(ABC):
    """Transcribes an audio buffer."""

    @abstractmethod
    async def transcribe(self, audio_data: bytes, sample_rate: int) -> str:
        """Return the transcript, or an empty string when nothing was said.

        Implementations raise ``TranscriptionError`` on provider failure.
        """
        pass


class TextGeneratorInterface(ABC):
    """Generates the assistant's reply."""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        conversation_history: List[Dict[str, str]],
        latest_user_text: str,
    ) -> str:
        """Return response text."""
        pass


class SpeechSynthesizerInterface(ABC):
    """Synthesizes reply audio."""

    @abstractmethod
    async def synthesize(self, text: str, voice_params: VoiceParams) -> bytes:
        """Return synthesized audio."""
        pass
