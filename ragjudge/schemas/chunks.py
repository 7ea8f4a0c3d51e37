"""Chunk quality assessments produced by the chunk filter."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ragjudge.schemas.fragments import Fragment


class AssessmentFactor(BaseModel):
    """One signal behind an assessment; ``contribution`` is signed."""

    model_config = {"frozen": True}

    name: str
    contribution: float
    explanation: str = ""


class ChunkAssessment(BaseModel):
    """Staged assessment of one chunk.

    ``reflection_score`` and ``critic_score`` are None when their stage is
    switched off.
    """

    model_config = {"frozen": True}

    initial_score: float = Field(ge=0.0, le=1.0)
    reflection_score: float | None = Field(default=None, ge=0.0, le=1.0)
    critic_score: float | None = Field(default=None, ge=0.0, le=1.0)
    final_score: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    factors: tuple[AssessmentFactor, ...] = ()
    suggestions: tuple[str, ...] = ()
    reasoning: dict[str, str] = Field(default_factory=dict)

    def factor(self, name: str) -> AssessmentFactor | None:
        return next((f for f in self.factors if f.name == name), None)


class FilteredChunk(BaseModel):
    model_config = {"frozen": True}

    fragment: Fragment
    relevance_score: float = Field(ge=0.0, le=1.0)
    quality_score: float = Field(ge=0.0, le=1.0)
    combined_score: float = Field(ge=0.0, le=1.0)
    passed: bool
    assessment: ChunkAssessment
    reason: str = ""
