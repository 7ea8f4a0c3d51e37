"""Quality gate: score QA pairs on three metrics and keep those above threshold.

Metrics run one after another (faithfulness, relevancy, answerability) with
the same options. There is no retry: a scorer exception aborts the call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog

from ragjudge.completion import TextCompletionService
from ragjudge.config import EvaluationOptions, QAFilterOptions
from ragjudge.evals.scorers import AnswerabilityScorer, FaithfulnessScorer, RelevancyScorer
from ragjudge.prompts.library import PromptLibrary
from ragjudge.schemas.evaluation import CompositeEvaluation, QAPair
from ragjudge.utils.cancellation import raise_if_cancelled

logger = structlog.get_logger(__name__)


def _has_context(pair: QAPair) -> bool:
    return pair.context is not None and bool(pair.context.strip())


class QualityGate:
    def __init__(
        self,
        faithfulness: FaithfulnessScorer,
        relevancy: RelevancyScorer,
        answerability: AnswerabilityScorer,
    ) -> None:
        self._faithfulness = faithfulness
        self._relevancy = relevancy
        self._answerability = answerability

    @classmethod
    def from_completion(
        cls,
        completion: TextCompletionService,
        prompts: PromptLibrary | None = None,
    ) -> QualityGate:
        """Build a gate whose three scorers share one completion service."""
        return cls(
            FaithfulnessScorer(completion, prompts),
            RelevancyScorer(completion, prompts),
            AnswerabilityScorer(completion, prompts),
        )

    async def evaluate(
        self,
        pair: QAPair,
        options: EvaluationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> QAPair:
        """Return ``pair`` annotated with its scores, without filtering.

        A pair without context gets all-zero scores and costs no model calls.
        """
        if not _has_context(pair):
            return pair.with_evaluation(
                CompositeEvaluation(faithfulness=0.0, relevancy=0.0, answerability=0.0)
            )

        faithfulness = await self._faithfulness.evaluate(
            pair.context, pair.answer, options, cancel=cancel
        )
        relevancy = await self._relevancy.evaluate(
            pair.question, pair.answer, options, context=pair.context, cancel=cancel
        )
        answerability = await self._answerability.evaluate(
            pair.context, pair.question, options, cancel=cancel
        )

        evaluation = CompositeEvaluation(
            faithfulness=faithfulness.score,
            relevancy=relevancy.score,
            answerability=answerability.score,
            results={
                result.metric_name: result
                for result in (faithfulness, relevancy, answerability)
            },
        )
        return pair.with_evaluation(evaluation)

    async def filter(
        self,
        pairs: Iterable[QAPair],
        filter_options: QAFilterOptions | None = None,
        options: EvaluationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[QAPair]:
        """Score each pair and keep the ones meeting every per-metric minimum.

        Pairs without context are dropped unscored. Order is preserved.
        """
        filter_options = filter_options or QAFilterOptions()
        kept: list[QAPair] = []

        for pair in pairs:
            raise_if_cancelled(cancel)

            if not _has_context(pair):
                logger.debug("qa_pair_dropped_no_context", pair_id=pair.id)
                continue

            evaluated = await self.evaluate(pair, options, cancel=cancel)
            evaluation = evaluated.evaluation
            passed = evaluation is not None and evaluation.passes_thresholds(
                filter_options.min_faithfulness,
                filter_options.min_relevancy,
                filter_options.min_answerability,
            )
            logger.info(
                "qa_pair_judged",
                pair_id=pair.id,
                faithfulness=evaluation.faithfulness if evaluation else None,
                relevancy=evaluation.relevancy if evaluation else None,
                answerability=evaluation.answerability if evaluation else None,
                passed=passed,
            )
            if passed:
                kept.append(evaluated)

        return kept

    async def evaluate_batch(
        self,
        pairs: Iterable[QAPair],
        options: EvaluationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[QAPair]:
        """Annotate every pair in order, without filtering."""
        results: list[QAPair] = []
        for pair in pairs:
            raise_if_cancelled(cancel)
            results.append(await self.evaluate(pair, options, cancel=cancel))
        return results
