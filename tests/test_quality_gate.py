"""Tests for the three-metric quality gate."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from ragjudge.config import QAFilterOptions
from ragjudge.evals.quality_gate import QualityGate
from ragjudge.prompts import templates
from ragjudge.schemas.evaluation import QAPair


class _ScriptedCompletion:
    """Replies by judge kind (picked from the system prompt) and records the call order."""

    def __init__(self, faithfulness=0.9, relevancy=0.9, answerability=0.9):
        self.scores = {
            templates.FAITHFULNESS_SYSTEM: faithfulness,
            templates.RELEVANCY_SYSTEM: relevancy,
            templates.ANSWERABILITY_SYSTEM: answerability,
        }
        self.names = {
            templates.FAITHFULNESS_SYSTEM: "faithfulness",
            templates.RELEVANCY_SYSTEM: "relevancy",
            templates.ANSWERABILITY_SYSTEM: "answerability",
        }
        self.calls: list[str] = []

    async def complete(self, prompt, options=None, *, cancel=None):
        self.calls.append(self.names[options.system_prompt])
        score = self.scores[options.system_prompt]
        if isinstance(score, BaseException):
            raise score
        return f'{{"score": {score}, "reasoning": "scripted"}}'

    async def stream(self, prompt, options=None, *, cancel=None):
        yield await self.complete(prompt, options, cancel=cancel)


def _pair(question="What is the capital of France?", context="Paris is the capital of France."):
    return QAPair(question=question, answer="Paris.", context=context)


# ---------------------------------------------------------------------------
# evaluate
# ---------------------------------------------------------------------------


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_annotates_all_three_metrics(self):
        completion = _ScriptedCompletion(0.9, 0.8, 0.7)
        pair = await QualityGate.from_completion(completion).evaluate(_pair())
        evaluation = pair.evaluation
        assert (evaluation.faithfulness, evaluation.relevancy, evaluation.answerability) == (
            0.9,
            0.8,
            0.7,
        )
        assert set(evaluation.results) == {"Faithfulness", "Relevancy", "Answerability"}
        assert evaluation.overall_score == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_metrics_run_in_fixed_order(self):
        completion = _ScriptedCompletion()
        await QualityGate.from_completion(completion).evaluate(_pair())
        assert completion.calls == ["faithfulness", "relevancy", "answerability"]

    @pytest.mark.asyncio
    async def test_missing_context_scores_zero_without_calls(self):
        completion = AsyncMock()
        pair = await QualityGate.from_completion(completion).evaluate(_pair(context=None))
        assert pair.evaluation.overall_score == 0.0
        assert pair.evaluation.faithfulness == 0.0
        completion.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_original_pair_untouched(self):
        original = _pair()
        await QualityGate.from_completion(_ScriptedCompletion()).evaluate(original)
        assert original.evaluation is None


# ---------------------------------------------------------------------------
# filter
# ---------------------------------------------------------------------------


class TestFilter:
    @pytest.mark.asyncio
    async def test_keeps_pair_above_all_thresholds(self):
        gate = QualityGate.from_completion(_ScriptedCompletion(0.9, 0.9, 0.9))
        kept = await gate.filter([_pair()])
        assert len(kept) == 1
        assert kept[0].evaluation is not None

    @pytest.mark.asyncio
    async def test_rejects_pair_with_one_low_metric(self):
        gate = QualityGate.from_completion(_ScriptedCompletion(0.9, 0.9, 0.3))
        assert await gate.filter([_pair()]) == []

    @pytest.mark.asyncio
    async def test_custom_thresholds(self):
        gate = QualityGate.from_completion(_ScriptedCompletion(0.9, 0.9, 0.3))
        kept = await gate.filter([_pair()], QAFilterOptions(min_answerability=0.2))
        assert len(kept) == 1

    @pytest.mark.asyncio
    async def test_pair_without_context_dropped_unscored(self):
        completion = _ScriptedCompletion()
        gate = QualityGate.from_completion(completion)
        kept = await gate.filter([_pair(context="  "), _pair(question="Second?")])
        assert [p.question for p in kept] == ["Second?"]
        assert len(completion.calls) == 3

    @pytest.mark.asyncio
    async def test_order_preserved(self):
        gate = QualityGate.from_completion(_ScriptedCompletion())
        pairs = [_pair(question=f"Q{i}?") for i in range(4)]
        kept = await gate.filter(pairs)
        assert [p.question for p in kept] == ["Q0?", "Q1?", "Q2?", "Q3?"]

    @pytest.mark.asyncio
    async def test_scorer_error_aborts(self):
        gate = QualityGate.from_completion(
            _ScriptedCompletion(relevancy=RuntimeError("judge unavailable"))
        )
        with pytest.raises(RuntimeError, match="judge unavailable"):
            await gate.filter([_pair(), _pair()])

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        completion = _ScriptedCompletion()
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(asyncio.CancelledError):
            await QualityGate.from_completion(completion).filter([_pair()], cancel=cancel)
        assert completion.calls == []


class TestEvaluateBatch:
    @pytest.mark.asyncio
    async def test_annotates_without_filtering(self):
        gate = QualityGate.from_completion(_ScriptedCompletion(0.9, 0.9, 0.1))
        results = await gate.evaluate_batch([_pair(), _pair(context=None)])
        assert len(results) == 2
        assert results[0].evaluation.answerability == 0.1
        assert results[1].evaluation.overall_score == 0.0
