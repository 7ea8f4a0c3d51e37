"""Tests for staged chunk assessment and filtering."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from ragjudge.config import ChunkFilterOptions
from ragjudge.evals.chunk_filter import (
    COMPLETENESS_ADJUSTMENT,
    EDGE_CASE_DETECTION,
    INFORMATION_DENSITY,
    LLM_ASSESSMENT,
    ChunkFilter,
    ChunkRelevanceScorer,
    _merge_factors,
    completeness,
    content_relevance,
    edge_case_adjustment,
    information_density,
    structural_importance,
)
from ragjudge.prompts import templates
from ragjudge.schemas.chunks import AssessmentFactor, ChunkAssessment
from ragjudge.schemas.fragments import Fragment

# initial stage only, so scores are the plain mean of the heuristics
INITIAL_ONLY = {"use_self_reflection": False, "use_critic_validation": False}


def _completion(reply='{"score": 0.9}'):
    completion = AsyncMock()
    completion.complete.return_value = reply
    return completion


def _fragment(fid, content, index=None):
    metadata = {} if index is None else {"index": index}
    return Fragment(id=fid, content=content, metadata=metadata)


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------


class TestHeuristics:
    def test_content_relevance_counts_query_words(self):
        assert content_relevance("The treaty was signed", "treaty signed") == 1.0
        assert content_relevance("The treaty was signed", "treaty peace") == 0.5

    def test_content_relevance_without_query(self):
        assert content_relevance("anything", None) == 0.5
        assert content_relevance("anything", "   ") == 0.5

    def test_information_density(self):
        assert information_density("a a a a") == 0.25
        assert information_density("") == 0.0
        assert information_density("Signed in 1648.") == 1.0

    def test_structural_importance(self):
        assert structural_importance(_fragment("a", "plain text")) == 0.5
        assert structural_importance(_fragment("a", "# Title")) == pytest.approx(0.7)
        assert structural_importance(_fragment("a", "plain text", index=0)) == pytest.approx(0.6)
        assert structural_importance(_fragment("a", "plain text", index=7)) == 0.5

    def test_completeness(self):
        assert completeness("The end.") == 1.0
        assert completeness("The end") == 0.5
        assert completeness("the end") == 0.0
        assert completeness("   ") == 0.0

    def test_edge_cases(self):
        assert edge_case_adjustment("short") == pytest.approx(-0.3)
        assert edge_case_adjustment("1 2 3") == pytest.approx(-0.5)
        assert edge_case_adjustment("A sentence long enough to clear the short-chunk check.") == 0.0

    def test_same_named_factors_are_averaged(self):
        factors = [AssessmentFactor(name="X", contribution=0.2, explanation="first")]
        _merge_factors(
            factors,
            [
                AssessmentFactor(name="X", contribution=0.6, explanation="second"),
                AssessmentFactor(name="Y", contribution=-0.1),
            ],
        )
        assert [f.name for f in factors] == ["X", "Y"]
        assert factors[0].contribution == pytest.approx(0.4)
        assert factors[0].explanation == "first | second"


# ---------------------------------------------------------------------------
# Relevance judge
# ---------------------------------------------------------------------------


class TestChunkRelevanceScorer:
    @pytest.mark.asyncio
    async def test_long_chunk_is_previewed(self):
        completion = _completion()
        await ChunkRelevanceScorer(completion).evaluate("q", "x" * 600)
        prompt = completion.complete.call_args.args[0]
        assert "x" * 500 + "..." in prompt
        assert "x" * 501 not in prompt

    @pytest.mark.asyncio
    async def test_uses_chunk_relevance_prompt(self):
        completion = _completion('{"score": 0.4}')
        result = await ChunkRelevanceScorer(completion).evaluate("query", "content")
        assert result.metric_name == "ChunkRelevance"
        assert result.score == 0.4
        options = completion.complete.call_args.args[1]
        assert options.system_prompt == templates.CHUNK_RELEVANCE_SYSTEM
        assert options.json_mode is True


# ---------------------------------------------------------------------------
# Assessment
# ---------------------------------------------------------------------------


class TestAssess:
    @pytest.mark.asyncio
    async def test_no_query_makes_no_call(self):
        completion = _completion()
        assessment = await ChunkFilter(completion).assess(
            _fragment("a", "plain text"), None, ChunkFilterOptions(**INITIAL_ONLY)
        )
        completion.complete.assert_not_called()
        assert assessment.initial_score == pytest.approx(2 / 3)
        assert assessment.final_score == pytest.approx(2 / 3)
        assert assessment.reflection_score is None
        assert assessment.critic_score is None
        assert assessment.factor(LLM_ASSESSMENT) is None

    @pytest.mark.asyncio
    async def test_blank_query_makes_no_call(self):
        completion = _completion()
        await ChunkFilter(completion).assess(_fragment("a", "plain text"), "   ")
        completion.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_judged_relevance_joins_initial_mean(self):
        completion = _completion('{"score": 0.9}')
        assessment = await ChunkFilter(completion).assess(
            _fragment("a", "The treaty was signed in 1648."),
            "treaty signed",
            ChunkFilterOptions(**INITIAL_ONLY),
        )
        assert completion.complete.await_count == 1
        assert assessment.initial_score == pytest.approx(0.85)
        assert assessment.factor(LLM_ASSESSMENT).contribution == pytest.approx(0.72)

    @pytest.mark.asyncio
    async def test_unusable_reply_falls_back_to_keywords(self):
        assessment = await ChunkFilter(_completion("no idea")).assess(
            _fragment("a", "The treaty was signed in 1648."),
            "treaty signed",
            ChunkFilterOptions(**INITIAL_ONLY),
        )
        assert assessment.factor(LLM_ASSESSMENT).contribution == pytest.approx(0.8)
        assert assessment.initial_score == pytest.approx(0.875)

    @pytest.mark.asyncio
    async def test_completion_error_propagates(self):
        completion = AsyncMock()
        completion.complete.side_effect = TimeoutError("slow provider")
        with pytest.raises(TimeoutError):
            await ChunkFilter(completion).assess(_fragment("a", "text"), "query")

    @pytest.mark.asyncio
    async def test_all_stages_run_by_default(self):
        assessment = await ChunkFilter(_completion()).assess(
            _fragment("a", "The treaty was signed in 1648."), "treaty signed"
        )
        assert set(assessment.reasoning) == {"initial", "reflection", "critic"}
        assert 0.0 <= assessment.reflection_score <= 1.0
        assert 0.0 <= assessment.critic_score <= 1.0
        assert 0.0 <= assessment.final_score <= 1.0
        assert 0.0 <= assessment.confidence <= 1.0

    @pytest.mark.asyncio
    async def test_short_chunk_flagged_as_edge_case(self):
        assessment = await ChunkFilter(_completion()).assess(_fragment("a", "Hi"))
        edge = assessment.factor(EDGE_CASE_DETECTION)
        assert edge.contribution == pytest.approx(-0.3)
        assert "Edge case detected: review chunk extraction logic" in assessment.suggestions

    def test_quality_score_from_factors(self):
        assessment = ChunkAssessment(
            initial_score=0.5,
            final_score=0.5,
            confidence=0.5,
            factors=(
                AssessmentFactor(name=INFORMATION_DENSITY, contribution=0.4),
                AssessmentFactor(name=COMPLETENESS_ADJUSTMENT, contribution=-0.1),
            ),
        )
        assert ChunkFilter.quality_score(assessment) == pytest.approx(0.85)

    def test_quality_score_defaults_to_half(self):
        assessment = ChunkAssessment(initial_score=0.5, final_score=0.5, confidence=0.5)
        assert ChunkFilter.quality_score(assessment) == 0.5


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _three_chunks():
    # initial means: heading 0.73, plain 0.67, repeated 0.42
    return [
        _fragment("heading", "# Heading here", index=12),
        _fragment("plain", "plain text", index=10),
        _fragment("repeated", "a a a a", index=11),
    ]


def _options(**overrides):
    values = {**INITIAL_ONLY, "min_relevance_score": 0.5, "quality_weight": 0.0}
    values.update(overrides)
    return ChunkFilterOptions(**values)


class TestFilter:
    @pytest.mark.asyncio
    async def test_keeps_passing_chunks_by_score(self):
        kept = await ChunkFilter(_completion()).filter(_three_chunks(), None, _options())
        assert [c.fragment.id for c in kept] == ["heading", "plain"]
        assert all(c.passed for c in kept)
        assert kept[0].combined_score == pytest.approx(kept[0].relevance_score)
        assert kept[0].reason.startswith("Relevance: ")

    @pytest.mark.asyncio
    async def test_max_chunks_keeps_the_best(self):
        kept = await ChunkFilter(_completion()).filter(
            _three_chunks(), None, _options(max_chunks=1)
        )
        assert [c.fragment.id for c in kept] == ["heading"]

    @pytest.mark.asyncio
    async def test_preserve_order_uses_document_index(self):
        kept = await ChunkFilter(_completion()).filter(
            _three_chunks(), None, _options(preserve_order=True)
        )
        assert [c.fragment.id for c in kept] == ["plain", "heading"]

    @pytest.mark.asyncio
    async def test_quality_weight_mixes_quality_in(self):
        kept = await ChunkFilter(_completion()).filter(
            [_fragment("plain", "plain text")], None, _options(quality_weight=1.0)
        )
        assert kept[0].combined_score == pytest.approx(kept[0].quality_score)

    @pytest.mark.asyncio
    async def test_judge_called_once_per_chunk_across_batches(self):
        completion = _completion('{"score": 0.9}')
        await ChunkFilter(completion).filter(
            _three_chunks(), "heading", _options(batch_size=2)
        )
        assert completion.complete.await_count == 3

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assert await ChunkFilter(_completion()).filter([], "query") == []

    @pytest.mark.asyncio
    async def test_cancelled_before_first_batch(self):
        cancel = asyncio.Event()
        cancel.set()
        completion = _completion()
        with pytest.raises(asyncio.CancelledError):
            await ChunkFilter(completion).filter(_three_chunks(), "query", cancel=cancel)
        completion.complete.assert_not_called()
