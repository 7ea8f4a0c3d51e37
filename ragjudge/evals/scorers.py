"""LLM-as-a-judge metric scorers.

Three strategies share one contract:
validate -> prompt -> one JSON-mode completion -> extract -> parse -> clamp -> map.

- Blank required input returns ``MetricResult.failed`` without calling the model.
- An unusable reply (no JSON, bad JSON, wrong field types) returns
  ``MetricResult.failed`` with the reason in ``details["reason"]``.
- Errors raised by the completion service, and cancellation, propagate.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, ClassVar

import structlog
from pydantic import ValidationError

from ragjudge.completion import CompletionOptions, TextCompletionService
from ragjudge.config import EvaluationOptions
from ragjudge.prompts.library import PromptLibrary, PromptName, PromptTemplate, build_prompt_library
from ragjudge.prompts.templates import RELEVANCY_CONTEXT_SECTION
from ragjudge.schemas.evaluation import MetricResult
from ragjudge.schemas.judge_outputs import AnswerabilityOutput, FaithfulnessOutput, ScoreOutput
from ragjudge.utils.cancellation import raise_if_cancelled
from ragjudge.utils.json_extraction import JsonExtractionError, parse_json_payload

logger = structlog.get_logger(__name__)

EXTRACT_FAILURE = "Failed to extract JSON from response"
PARSE_FAILURE = "Failed to parse evaluation response"


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


class MetricScorer(ABC):
    """Base judge: subclasses supply the prompt builder and detail mapper."""

    metric_name: ClassVar[str]
    prompt_name: ClassVar[PromptName]
    output_schema: ClassVar[type[ScoreOutput]] = ScoreOutput
    required_fields: ClassVar[tuple[str, ...]]

    def __init__(
        self,
        completion: TextCompletionService,
        prompts: PromptLibrary | None = None,
    ) -> None:
        self._completion = completion
        self._prompts = prompts or build_prompt_library()

    @property
    def empty_reason(self) -> str:
        return "Empty " + " or ".join(self.required_fields)

    @abstractmethod
    def build_prompt(self, template: PromptTemplate, fields: Mapping[str, str | None]) -> str:
        """Render the task prompt for the given inputs."""

    @abstractmethod
    async def evaluate(
        self,
        first: str | None,
        second: str | None,
        options: EvaluationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> MetricResult:
        """Score one input pair; argument order is defined by each metric."""

    def map_details(self, parsed: ScoreOutput) -> dict[str, Any]:
        """Variant-specific detail fields (beyond ``reasoning``)."""
        return {}

    async def _judge(
        self,
        fields: Mapping[str, str | None],
        options: EvaluationOptions | None,
        cancel: asyncio.Event | None,
    ) -> MetricResult:
        if any(_is_blank(fields.get(name)) for name in self.required_fields):
            logger.debug("metric_skipped", metric=self.metric_name, reason=self.empty_reason)
            return MetricResult.failed(self.metric_name, self.empty_reason)

        options = options or EvaluationOptions()
        template = self._prompts.get(self.prompt_name)
        completion_options = CompletionOptions(
            system_prompt=template.system,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            json_mode=True,
        )

        response = await self._completion.complete(
            self.build_prompt(template, fields), completion_options, cancel=cancel
        )
        result = self.parse_response(response)
        logger.info(
            "metric_eval",
            metric=self.metric_name,
            score=result.score,
            reason=result.failure_reason,
        )
        return result

    def parse_response(self, response: str) -> MetricResult:
        try:
            parsed = self.output_schema.model_validate(parse_json_payload(response))
        except JsonExtractionError:
            return MetricResult.failed(self.metric_name, EXTRACT_FAILURE)
        except (ValueError, ValidationError):
            return MetricResult.failed(self.metric_name, PARSE_FAILURE)

        details: dict[str, Any] = {"reasoning": parsed.reasoning}
        details.update(self.map_details(parsed))
        return MetricResult(metric_name=self.metric_name, score=parsed.score, details=details)

    async def evaluate_batch(
        self,
        pairs: Iterable[tuple[str | None, str | None]],
        options: EvaluationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[MetricResult]:
        """Score pairs one after another, preserving input order.

        Each pair is passed positionally to the subclass ``evaluate``.
        """
        results: list[MetricResult] = []
        for first, second in pairs:
            raise_if_cancelled(cancel)
            results.append(await self.evaluate(first, second, options, cancel=cancel))
        return results


class FaithfulnessScorer(MetricScorer):
    """Is the answer grounded in the context? Verifies claim by claim."""

    metric_name = "Faithfulness"
    prompt_name = PromptName.FAITHFULNESS
    output_schema = FaithfulnessOutput
    required_fields = ("context", "answer")

    def build_prompt(self, template: PromptTemplate, fields: Mapping[str, str | None]) -> str:
        return template.render(context=fields["context"], answer=fields["answer"])

    def map_details(self, parsed: FaithfulnessOutput) -> dict[str, Any]:
        if parsed.claims is None:
            return {}
        return {
            "claims": [
                {"claim": claim.claim, "supported": claim.supported}
                for claim in parsed.claims
            ]
        }

    async def evaluate(
        self,
        context: str | None,
        answer: str | None,
        options: EvaluationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> MetricResult:
        return await self._judge({"context": context, "answer": answer}, options, cancel)


class RelevancyScorer(MetricScorer):
    """Does the answer address the question? Context is optional reference."""

    metric_name = "Relevancy"
    prompt_name = PromptName.RELEVANCY
    required_fields = ("question", "answer")

    def build_prompt(self, template: PromptTemplate, fields: Mapping[str, str | None]) -> str:
        context = fields.get("context")
        context_section = (
            "" if _is_blank(context) else RELEVANCY_CONTEXT_SECTION.format(context=context)
        )
        return template.render(
            question=fields["question"],
            answer=fields["answer"],
            context_section=context_section,
        )

    async def evaluate(
        self,
        question: str | None,
        answer: str | None,
        options: EvaluationOptions | None = None,
        context: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> MetricResult:
        return await self._judge(
            {"question": question, "answer": answer, "context": context}, options, cancel
        )


class AnswerabilityScorer(MetricScorer):
    """Does the context hold enough information to answer the question?"""

    metric_name = "Answerability"
    prompt_name = PromptName.ANSWERABILITY
    output_schema = AnswerabilityOutput
    required_fields = ("context", "question")

    def build_prompt(self, template: PromptTemplate, fields: Mapping[str, str | None]) -> str:
        return template.render(context=fields["context"], question=fields["question"])

    def map_details(self, parsed: AnswerabilityOutput) -> dict[str, Any]:
        return {"answerable": parsed.answerable, "evidence": parsed.evidence}

    async def evaluate(
        self,
        context: str | None,
        question: str | None,
        options: EvaluationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> MetricResult:
        return await self._judge({"context": context, "question": question}, options, cancel)

    async def evaluate_with_multiple_contexts(
        self,
        contexts: Iterable[str | None],
        question: str | None,
        options: EvaluationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> MetricResult:
        """Join the non-blank contexts and score them as one."""
        combined = "\n\n".join(c for c in contexts if not _is_blank(c))
        return await self.evaluate(combined, question, options, cancel=cancel)
