"""Structured JSON output schemas for every judge reply family.

Models are tolerant: missing fields fall back to defaults (score -> 0.0,
booleans -> False, strings -> None) and unit-interval numbers are clamped on
read. Malformed values still raise a ``ValidationError``.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


class _JudgeOutput(BaseModel):
    model_config = {"extra": "ignore"}


class ScoreOutput(_JudgeOutput):
    score: float = 0.0
    reasoning: str | None = None

    @field_validator("score", mode="before")
    @classmethod
    def _null_score(cls, value):  # noqa: ANN001
        return 0.0 if value is None else value

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, value: float) -> float:
        return clamp_unit(value)


class ClaimOut(_JudgeOutput):
    claim: str | None = None
    supported: bool = False

    @field_validator("supported", mode="before")
    @classmethod
    def _null_supported(cls, value):  # noqa: ANN001
        return False if value is None else value


class FaithfulnessOutput(ScoreOutput):
    claims: list[ClaimOut] | None = None


class AnswerabilityOutput(ScoreOutput):
    answerable: bool = False
    evidence: str | None = None

    @field_validator("answerable", mode="before")
    @classmethod
    def _null_answerable(cls, value):  # noqa: ANN001
        return False if value is None else value


class RelationshipOut(_JudgeOutput):
    type: str | None = None
    confidence: float = 0.5
    explanation: str | None = None
    bidirectional: bool = False

    @field_validator("bidirectional", mode="before")
    @classmethod
    def _null_bidirectional(cls, value):  # noqa: ANN001
        return False if value is None else value

    @field_validator("confidence", mode="before")
    @classmethod
    def _null_confidence(cls, value):  # noqa: ANN001
        return 0.5 if value is None else value

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return clamp_unit(value)


class QAPairOut(_JudgeOutput):
    question: str | None = None
    answer: str | None = None


class QAGenerationOutput(_JudgeOutput):
    qa_pairs: list[QAPairOut] = Field(default_factory=list)


class SuggestionOut(_JudgeOutput):
    text: str | None = None
    category: str | None = None
    relevance: float = 1.0
    reasoning: str | None = None

    @field_validator("relevance", mode="before")
    @classmethod
    def _null_relevance(cls, value):  # noqa: ANN001
        return 1.0 if value is None else value

    @field_validator("relevance")
    @classmethod
    def _clamp_relevance(cls, value: float) -> float:
        return clamp_unit(value)
