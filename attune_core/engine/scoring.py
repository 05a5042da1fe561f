"""
Lexical Scoring Strategies.

The fusion engine asks a ScoringStrategy for lexical emotion candidates.
KeywordScoringStrategy is the default heuristic; a statistical classifier can
be swapped in without touching fusion or ranking.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..config import CandidateSource, EmotionCategory
from ..models import PAD, EmotionCandidate
from ..phrases import PhraseMatcher


@dataclass(frozen=True)
class EmotionProfile:
    """Lexical cues and affect coordinates for an emotion."""

    keywords: Tuple[str, ...]
    context_phrases: Tuple[str, ...]
    pad: PAD


# Keyword table; context phrases count half a keyword
EMOTION_PROFILES: Dict[EmotionCategory, EmotionProfile] = {
    EmotionCategory.JOY: EmotionProfile(
        keywords=(
            "happy", "joy", "excited", "thrilled", "amazing", "wonderful", "great",
            "love", "good", "nice", "fantastic", "brilliant", "awesome", "delighted",
            "ecstatic",
        ),
        context_phrases=("laugh", "smile", "cheer", "celebrate", "win", "success", "achievement"),
        pad=PAD(0.9, 0.7, 0.6),
    ),
    EmotionCategory.SADNESS: EmotionProfile(
        keywords=(
            "sad", "depressed", "down", "lonely", "hurt", "crying", "empty", "hopeless",
            "bad", "terrible", "miserable", "grief", "heartbroken", "devastated",
        ),
        context_phrases=("miss", "lost", "gone", "alone", "nobody", "never", "always"),
        pad=PAD(-0.8, 0.2, -0.3),
    ),
    EmotionCategory.ANGER: EmotionProfile(
        keywords=(
            "angry", "mad", "furious", "hate", "annoyed", "frustrated", "rage", "upset",
            "livid", "enraged", "irritated", "pissed",
        ),
        context_phrases=("unfair", "wrong", "stupid", "idiot", "never", "always", "everyone"),
        pad=PAD(-0.4, 0.9, 0.2),
    ),
    EmotionCategory.ANXIETY: EmotionProfile(
        keywords=(
            "anxious", "worried", "scared", "nervous", "panic", "stress", "overwhelmed",
            "afraid", "fear", "terrified", "dread", "anxiety",
        ),
        context_phrases=("what if", "maybe", "could", "might", "should", "need to", "have to"),
        pad=PAD(-0.6, 0.8, -0.4),
    ),
    EmotionCategory.SURPRISE: EmotionProfile(
        keywords=(
            "surprised", "shocked", "amazed", "astonished", "stunned", "wow",
            "unexpected", "incredible", "unbelievable", "omg",
        ),
        context_phrases=("really", "seriously", "no way", "what", "how"),
        pad=PAD(0.3, 0.8, 0.1),
    ),
    EmotionCategory.FEAR: EmotionProfile(
        keywords=(
            "fear", "terrified", "horrified", "petrified", "dread", "terror", "scared",
            "afraid", "frightened",
        ),
        context_phrases=("danger", "threat", "attack", "kill", "die", "hurt", "pain", "dangerous"),
        pad=PAD(-0.9, 0.9, -0.8),
    ),
    EmotionCategory.DISGUST: EmotionProfile(
        keywords=(
            "disgusted", "revolted", "sickened", "gross", "nasty", "repulsive", "awful",
            "terrible",
        ),
        context_phrases=("ew", "yuck", "disgusting"),
        pad=PAD(-0.9, 0.6, -0.2),
    ),
    EmotionCategory.CONTEMPT: EmotionProfile(
        keywords=(
            "contempt", "disdain", "scorn", "mock", "ridicule", "sarcastic", "hate",
            "despise", "loathe",
        ),
        context_phrases=("whatever", "yeah right", "sure", "obviously"),
        pad=PAD(-0.7, 0.4, 0.3),
    ),
    EmotionCategory.RELIEF: EmotionProfile(
        keywords=(
            "relieved", "thankful", "grateful", "peaceful", "calm", "serene", "better",
            "okay", "phew",
        ),
        context_phrases=("finally", "at last", "thank god", "good"),
        pad=PAD(0.7, 0.2, 0.4),
    ),
    EmotionCategory.PRIDE: EmotionProfile(
        keywords=(
            "proud", "accomplished", "achieved", "successful", "confident", "triumphant",
            "did it", "made it",
        ),
        context_phrases=("finally", "succeeded", "won", "completed"),
        pad=PAD(0.8, 0.6, 0.8),
    ),
    EmotionCategory.BITTERSWEET: EmotionProfile(
        keywords=("bittersweet", "mixed feelings", "conflicted", "torn", "complicated", "confused"),
        context_phrases=("but", "however", "though", "although", "mixed"),
        pad=PAD(0.1, 0.5, 0.0),
    ),
    EmotionCategory.NOSTALGIC: EmotionProfile(
        keywords=("remember", "back then", "good old days", "nostalgic", "miss", "used to"),
        context_phrases=("remember when", "back in the day", "those were the days"),
        pad=PAD(0.4, 0.3, 0.2),
    ),
    EmotionCategory.CURIOUS: EmotionProfile(
        keywords=("wonder", "curious", "interesting", "tell me more", "what", "how", "why"),
        context_phrases=("really", "tell me", "what happened"),
        pad=PAD(0.3, 0.6, 0.1),
    ),
}


def profile_pad(emotion: EmotionCategory) -> PAD:
    """PAD coordinates for an emotion (neutral for unknown entries)."""
    profile = EMOTION_PROFILES.get(emotion)
    return profile.pad if profile else PAD()


class ScoringStrategy(ABC):
    """Produces lexical emotion candidates for an utterance."""

    @abstractmethod
    def score(self, text: str) -> List[EmotionCandidate]:
        """Return candidates sorted by descending confidence."""
        pass

    def pad_for(self, emotion: EmotionCategory) -> PAD:
        """Affect coordinates the strategy associates with an emotion."""
        return profile_pad(emotion)


class KeywordScoringStrategy(ScoringStrategy):
    """
    Keyword/phrase membership scoring.

    intensity = min(1, (keywords + 0.5 * context) / max(1, |keywords| / 3))
    confidence = min(1, intensity * (1 + 0.15 * (keywords + context)))
    """

    def __init__(
        self,
        profiles: Optional[Dict[EmotionCategory, EmotionProfile]] = None,
        min_confidence: float = 0.4,
    ):
        self.profiles = profiles or EMOTION_PROFILES
        self.min_confidence = min_confidence
        self._matchers = {
            emotion: (PhraseMatcher(p.keywords), PhraseMatcher(p.context_phrases))
            for emotion, p in self.profiles.items()
        }

    def score(self, text: str) -> List[EmotionCandidate]:
        candidates = []

        for emotion, (keywords, context) in self._matchers.items():
            keyword_matches = keywords.count(text)
            context_matches = context.count(text)

            if keyword_matches == 0 and context_matches == 0:
                continue

            intensity = min(
                1.0,
                (keyword_matches + context_matches * 0.5) / max(1.0, len(keywords) / 3),
            )
            confidence = min(
                1.0,
                intensity * (1 + (keyword_matches + context_matches) * 0.15),
            )

            if confidence >= self.min_confidence:
                candidates.append(
                    EmotionCandidate(
                        emotion=emotion,
                        confidence=confidence,
                        intensity=intensity,
                        source=CandidateSource.LEXICAL,
                    )
                )

        candidates.sort(key=lambda c: c.confidence, reverse=True)
        return candidates

    def pad_for(self, emotion: EmotionCategory) -> PAD:
        profile = self.profiles.get(emotion)
        return profile.pad if profile else PAD()
