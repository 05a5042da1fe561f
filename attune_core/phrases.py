"""Word-boundary phrase matching shared by the text detectors."""

import re
from typing import Iterable, List, Pattern, Tuple

# Typographic apostrophes and look-alikes produced by keyboards and STT
APOSTROPHES = str.maketrans({
    "‘": "'",
    "’": "'",
    "‛": "'",
    "ʼ": "'",
    "′": "'",
    "＇": "'",
    "`": "'",
    "´": "'",
})


def normalize_text(text: str) -> str:
    """Lower-case `text` and fold apostrophe variants to ASCII."""
    return text.translate(APOSTROPHES).lower()


def phrase_pattern(phrase: str) -> Pattern:
    """Compile a case-insensitive pattern matching `phrase` as whole words."""
    return re.compile(r"(?<![\w'])" + re.escape(normalize_text(phrase)) + r"(?![\w'])")


class PhraseMatcher:
    """Matches a fixed phrase list against normalized text."""

    def __init__(self, phrases: Iterable[str]):
        self.phrases: Tuple[str, ...] = tuple(phrases)
        self._patterns = [(p, phrase_pattern(p)) for p in self.phrases]

    def __len__(self) -> int:
        return len(self.phrases)

    def matches(self, text: str) -> List[str]:
        """Phrases present in `text`."""
        normalized = normalize_text(text)
        return [phrase for phrase, pattern in self._patterns if pattern.search(normalized)]

    def count(self, text: str) -> int:
        return len(self.matches(text))

    def any(self, text: str) -> bool:
        normalized = normalize_text(text)
        return any(pattern.search(normalized) for _, pattern in self._patterns)
