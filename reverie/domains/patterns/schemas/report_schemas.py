"""Versioned aggregate report payloads.

Stored payloads are a tagged union on ``schema_version``: each version of the
output contract is its own model, so code reading a report branches on the
variant instead of probing for optional fields.
"""

from __future__ import annotations

from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Frequency = Union[Annotated[int, Field(strict=True, ge=0)], NonEmptyStr]

# Field names are identical in every prompt language.
ARRAY_FIELDS = (
    "themes",
    "emotions",
    "symbols",
    "recommendations",
    "exercises",
    "reflection_questions",
)
LONG_TEXT_FIELDS = (
    "overall_insights",
    "temporal_patterns",
    "emotional_landscape",
    "personal_growth",
    "integration_guidance",
)


class _Element(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ThemePattern(_Element):
    name: NonEmptyStr
    frequency: Frequency
    significance: NonEmptyStr
    evolution: NonEmptyStr


class EmotionPattern(_Element):
    emotion: NonEmptyStr
    frequency: Frequency
    trend: NonEmptyStr
    context: NonEmptyStr


class SymbolPattern(_Element):
    symbol: NonEmptyStr
    frequency: Frequency
    interpretation: NonEmptyStr
    personal_meaning: NonEmptyStr


class Recommendation(_Element):
    area: NonEmptyStr
    action: NonEmptyStr
    rationale: NonEmptyStr


class Exercise(_Element):
    title: NonEmptyStr
    instructions: NonEmptyStr
    duration: NonEmptyStr


# Element model per object-shaped array; None means plain non-empty strings.
ARRAY_ELEMENT_MODELS = {
    "themes": ThemePattern,
    "emotions": EmotionPattern,
    "symbols": SymbolPattern,
    "recommendations": Recommendation,
    "exercises": Exercise,
    "reflection_questions": None,
}


class PatternReportV2(BaseModel):
    """Current output contract."""

    model_config = ConfigDict(extra="ignore")

    schema_version: Literal[2] = 2
    overall_insights: str
    temporal_patterns: str
    emotional_landscape: str
    personal_growth: str
    integration_guidance: str
    themes: List[ThemePattern]
    emotions: List[EmotionPattern]
    symbols: List[SymbolPattern]
    recommendations: List[Recommendation]
    exercises: List[Exercise]
    reflection_questions: List[NonEmptyStr]


class LegacyThemePattern(_Element):
    theme: str
    frequency: Union[int, str] = 0
    significance: str = ""


class LegacyEmotionPattern(_Element):
    emotion: str
    frequency: Union[int, str] = 0
    trend: str = ""


class LegacySymbolMeaning(_Element):
    symbol: str
    frequency: Union[int, str] = 0
    interpretation: str = ""


class PatternReportV1(BaseModel):
    """First-generation report shape, still readable from older rows."""

    model_config = ConfigDict(extra="ignore")

    schema_version: Literal[1] = 1
    overall_insights: str = ""
    theme_patterns: List[LegacyThemePattern] = Field(default_factory=list)
    emotional_journey: List[LegacyEmotionPattern] = Field(default_factory=list)
    symbol_meanings: List[LegacySymbolMeaning] = Field(default_factory=list)
    temporal_patterns: str = ""
    recommendations: List[str] = Field(default_factory=list)
    personal_growth: str = ""


PatternReport = Annotated[Union[PatternReportV1, PatternReportV2], Field(discriminator="schema_version")]

_report_adapter: TypeAdapter = TypeAdapter(PatternReport)


def load_report(payload: dict, schema_version: int) -> Union[PatternReportV1, PatternReportV2]:
    """Load a stored payload into the variant named by its row's version."""
    data = dict(payload or {})
    data["schema_version"] = schema_version
    return _report_adapter.validate_python(data)


def dump_report(report: Union[PatternReportV1, PatternReportV2]) -> dict:
    return report.model_dump(mode="json")


__all__ = [
    "ARRAY_ELEMENT_MODELS",
    "ARRAY_FIELDS",
    "LONG_TEXT_FIELDS",
    "PatternReport",
    "PatternReportV1",
    "PatternReportV2",
    "dump_report",
    "load_report",
]
