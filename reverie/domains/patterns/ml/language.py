"""Dominant-language detection for choosing a prompt template."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Mapping, Pattern, Sequence

# Tie-break order when two languages score the same.
LANGUAGE_PRIORITY: Sequence[str] = ("en", "sl", "de", "es")

FUNCTION_WORDS: Mapping[str, Iterable[str]] = {
    "en": ("the", "and", "was", "with", "that", "have", "this", "were", "from", "they", "but", "my"),
    "sl": ("je", "sem", "da", "se", "na", "so", "bil", "bila", "ki", "pa", "tudi", "ampak", "kot", "ker"),
    "de": ("der", "und", "ich", "nicht", "ein", "eine", "mit", "war", "ist", "auch", "sich", "dem", "den"),
    "es": ("el", "los", "las", "que", "una", "con", "por", "pero", "estaba", "muy", "del", "como"),
}


class LanguageDetector(ABC):
    """Strategy interface; swap in a trained classifier without touching the pipeline."""

    @abstractmethod
    def detect(self, text: str) -> str:
        """Return a language code from ``supported_languages``."""

    @property
    @abstractmethod
    def supported_languages(self) -> Sequence[str]:
        ...


class FunctionWordLanguageDetector(LanguageDetector):
    """Bag-of-words classifier over high-frequency function words."""

    def __init__(
        self,
        *,
        fallback: str = "en",
        min_matches: int = 10,
        words: Mapping[str, Iterable[str]] = FUNCTION_WORDS,
        priority: Sequence[str] = LANGUAGE_PRIORITY,
    ) -> None:
        self.fallback = fallback
        self.min_matches = min_matches
        self.priority = tuple(lang for lang in priority if lang in words)
        self._patterns: Dict[str, Pattern[str]] = {
            lang: re.compile(r"\b(?:" + "|".join(re.escape(w) for w in ws) + r")\b", re.IGNORECASE)
            for lang, ws in words.items()
        }

    @property
    def supported_languages(self) -> Sequence[str]:
        return self.priority

    def scores(self, text: str) -> Dict[str, int]:
        return {lang: len(self._patterns[lang].findall(text or "")) for lang in self.priority}

    def detect(self, text: str) -> str:
        counts = self.scores(text)
        if sum(counts.values()) < self.min_matches:
            return self.fallback
        # max() keeps the first of equal scores, so priority order breaks ties.
        return max(self.priority, key=lambda lang: counts[lang])


__all__ = [
    "FUNCTION_WORDS",
    "FunctionWordLanguageDetector",
    "LANGUAGE_PRIORITY",
    "LanguageDetector",
]
