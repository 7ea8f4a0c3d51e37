"""Score and candidate records produced by the scorers, quality gate and pipeline.

All records are frozen: annotating a candidate with its evaluation produces a
new value instead of mutating the old one.
"""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, Field

PASS_SCORE = 0.5


class MetricResult(BaseModel):
    """Result of a single metric scorer invocation."""

    model_config = {"frozen": True}

    metric_name: str
    score: float = Field(ge=0.0, le=1.0)
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_passed(self) -> bool:
        return self.score >= PASS_SCORE

    @property
    def failure_reason(self) -> str | None:
        """Diagnostic reason recorded by :meth:`failed`, if any."""
        return self.details.get("reason")

    @classmethod
    def failed(cls, metric_name: str, reason: str | None = None) -> MetricResult:
        """Zero-score result carrying an optional diagnostic reason."""
        details: dict[str, Any] = {}
        if reason is not None:
            details["reason"] = reason
        return cls(metric_name=metric_name, score=0.0, details=details)


class CompositeEvaluation(BaseModel):
    """Faithfulness / relevancy / answerability scores for one QA pair.

    An absent metric counts as 0 both in ``overall_score`` and in
    ``passes_thresholds``.
    """

    model_config = {"frozen": True}

    faithfulness: float | None = Field(default=None, ge=0.0, le=1.0)
    relevancy: float | None = Field(default=None, ge=0.0, le=1.0)
    answerability: float | None = Field(default=None, ge=0.0, le=1.0)
    results: dict[str, MetricResult] = Field(default_factory=dict)

    @property
    def overall_score(self) -> float:
        return (
            (self.faithfulness or 0.0)
            + (self.relevancy or 0.0)
            + (self.answerability or 0.0)
        ) / 3.0

    def passes_thresholds(
        self,
        min_faithfulness: float = 0.5,
        min_relevancy: float = 0.5,
        min_answerability: float = 0.5,
    ) -> bool:
        return (
            (self.faithfulness or 0.0) >= min_faithfulness
            and (self.relevancy or 0.0) >= min_relevancy
            and (self.answerability or 0.0) >= min_answerability
        )


class QAPair(BaseModel):
    """A generated question/answer pair with its source context."""

    model_config = {"frozen": True}

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    question: str
    answer: str
    context: str | None = None
    source_id: str | None = None
    evaluation: CompositeEvaluation | None = None

    def with_evaluation(self, evaluation: CompositeEvaluation) -> QAPair:
        return self.model_copy(update={"evaluation": evaluation})


class PipelineResult(BaseModel):
    """Outcome of one generate-then-filter pipeline run."""

    model_config = {"frozen": True}

    qa_pairs: tuple[QAPair, ...] = ()
    generated_count: int = 0
    filtered_count: int = 0

    @property
    def filtered_out_count(self) -> int:
        return self.generated_count - self.filtered_count

    @property
    def pass_rate(self) -> float:
        if self.generated_count == 0:
            return 0.0
        return self.filtered_count / self.generated_count

    @classmethod
    def empty(cls) -> PipelineResult:
        return cls()
