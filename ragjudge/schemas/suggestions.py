"""Follow-up question suggestions."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class QuestionCategory(StrEnum):
    FOLLOW_UP = "FollowUp"
    CLARIFICATION = "Clarification"
    DEEP_DIVE = "DeepDive"
    RELATED = "Related"
    ALTERNATIVE = "Alternative"

    @classmethod
    def parse(cls, name: str | None) -> QuestionCategory | None:
        """Case-insensitive lookup by wire name; None for unknown names."""
        if not name or not name.strip():
            return None
        wanted = name.strip().lower()
        return next((m for m in cls if m.value.lower() == wanted), None)


CATEGORY_DEFINITIONS: dict[QuestionCategory, str] = {
    QuestionCategory.FOLLOW_UP: "Questions that naturally continue from the context",
    QuestionCategory.CLARIFICATION: "Questions that clarify ambiguous points",
    QuestionCategory.DEEP_DIVE: "Questions that explore a topic more deeply",
    QuestionCategory.RELATED: "Questions about related topics",
    QuestionCategory.ALTERNATIVE: "Questions from different perspectives",
}


class SuggestedQuestion(BaseModel):
    model_config = {"frozen": True}

    text: str
    category: QuestionCategory = QuestionCategory.FOLLOW_UP
    relevance: float = Field(default=1.0, ge=0.0, le=1.0)
    reasoning: str | None = None
