"""Tests for QA generation and the generate-then-judge pipeline."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from ragjudge.config import PipelineOptions, QAFilterOptions, QAGenerationOptions, QuestionType
from ragjudge.evals.quality_gate import QualityGate
from ragjudge.generation.pipeline import GenerationPipeline
from ragjudge.generation.qa_generator import QAGenerator
from ragjudge.prompts import templates
from ragjudge.schemas.evaluation import CompositeEvaluation, QAPair
from ragjudge.schemas.fragments import Fragment

CONTEXT = "The Treaty of Westphalia was signed in 1648 and ended the Thirty Years' War."


def _qa_reply(*pairs):
    return json.dumps({"qa_pairs": [{"question": q, "answer": a} for q, a in pairs]})


def _completion(*replies):
    completion = AsyncMock()
    completion.complete.side_effect = list(replies)
    return completion


def _sent_prompt(completion, call=0):
    args, _ = completion.complete.call_args_list[call]
    return args[0]


# ---------------------------------------------------------------------------
# QAGenerator
# ---------------------------------------------------------------------------


class TestQAGenerator:
    @pytest.mark.asyncio
    async def test_parses_pairs_and_sets_context(self):
        completion = _completion(_qa_reply(("When was it signed?", "In 1648.")))
        pairs = await QAGenerator(completion).generate(CONTEXT, source_id="doc-1")
        assert len(pairs) == 1
        assert pairs[0].question == "When was it signed?"
        assert pairs[0].context == CONTEXT
        assert pairs[0].source_id == "doc-1"
        assert pairs[0].evaluation is None

    @pytest.mark.asyncio
    async def test_blank_context_makes_no_call(self):
        completion = _completion()
        assert await QAGenerator(completion).generate("  ") == []
        completion.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_drops_items_missing_question_or_answer(self):
        reply = json.dumps(
            {
                "qa_pairs": [
                    {"question": "Q1?", "answer": "A1."},
                    {"question": "", "answer": "orphan"},
                    {"question": "Q3?"},
                    {"question": "Q4?", "answer": "  "},
                ]
            }
        )
        pairs = await QAGenerator(_completion(reply)).generate(CONTEXT)
        assert [p.question for p in pairs] == ["Q1?"]

    @pytest.mark.asyncio
    async def test_unparseable_reply_gives_empty(self):
        assert await QAGenerator(_completion("Sorry, I cannot help.")).generate(CONTEXT) == []

    @pytest.mark.asyncio
    async def test_wrong_shape_gives_empty(self):
        assert await QAGenerator(_completion('{"qa_pairs": "none"}')).generate(CONTEXT) == []

    @pytest.mark.asyncio
    async def test_prompt_reflects_options(self):
        completion = _completion(_qa_reply())
        options = QAGenerationOptions(
            pairs_per_chunk=5,
            include_multi_hop=True,
            include_reasoning=False,
            question_types=(QuestionType.FACTUAL, QuestionType.CONDITIONAL),
        )
        await QAGenerator(completion).generate(CONTEXT, options)
        prompt = _sent_prompt(completion)
        assert "Generate 5 question-answer pairs" in prompt
        assert "factual, conditional" in prompt
        assert templates.QA_MULTI_HOP_INSTRUCTION in prompt
        assert templates.QA_REASONING_INSTRUCTION not in prompt

    @pytest.mark.asyncio
    async def test_from_fragment_uses_fragment_id(self):
        completion = _completion(_qa_reply(("Q?", "A.")))
        pairs = await QAGenerator(completion).generate_from_fragment(
            Fragment(id="frag-7", content=CONTEXT)
        )
        assert pairs[0].source_id == "frag-7"

    @pytest.mark.asyncio
    async def test_batch_order(self):
        completion = _completion(_qa_reply(("Q1?", "A.")), _qa_reply(("Q2?", "A."), ("Q3?", "A.")))
        results = await QAGenerator(completion).generate_batch(["first", "second"])
        assert [[p.question for p in r] for r in results] == [["Q1?"], ["Q2?", "Q3?"]]


# ---------------------------------------------------------------------------
# GenerationPipeline
# ---------------------------------------------------------------------------


def _gate(keep=lambda pair: True):
    gate = AsyncMock(spec=QualityGate)

    async def fake_filter(pairs, filter_options=None, options=None, *, cancel=None):
        scored = [
            p.with_evaluation(
                CompositeEvaluation(faithfulness=1.0, relevancy=1.0, answerability=1.0)
            )
            for p in pairs
        ]
        return [p for p in scored if keep(p)]

    gate.filter.side_effect = fake_filter
    return gate


def _generator(*batches):
    generator = AsyncMock(spec=QAGenerator)
    generator.generate.side_effect = [
        [QAPair(question=q, answer="A.", context=CONTEXT) for q in batch] for batch in batches
    ]
    return generator


class TestGenerationPipeline:
    @pytest.mark.asyncio
    async def test_nothing_generated_skips_gate(self):
        gate = _gate()
        result = await GenerationPipeline(_generator([]), gate).execute(CONTEXT)
        assert result.generated_count == 0
        assert result.qa_pairs == ()
        assert result.pass_rate == 0.0
        gate.filter.assert_not_called()

    @pytest.mark.asyncio
    async def test_filtering_counts(self):
        gate = _gate(keep=lambda p: p.question != "Q2?")
        result = await GenerationPipeline(_generator(["Q1?", "Q2?", "Q3?", "Q4?"]), gate).execute(
            CONTEXT
        )
        assert result.generated_count == 4
        assert result.filtered_count == 3
        assert result.filtered_out_count == 1
        assert result.pass_rate == pytest.approx(0.75)
        assert [p.question for p in result.qa_pairs] == ["Q1?", "Q3?", "Q4?"]

    @pytest.mark.asyncio
    async def test_skip_filtering_keeps_everything(self):
        gate = _gate(keep=lambda p: False)
        result = await GenerationPipeline(_generator(["Q1?", "Q2?"]), gate).execute(
            CONTEXT, PipelineOptions(skip_filtering=True)
        )
        assert result.filtered_count == 2
        assert result.pass_rate == 1.0
        gate.filter.assert_not_called()

    @pytest.mark.asyncio
    async def test_passes_filter_and_evaluation_options(self):
        gate = _gate()
        options = PipelineOptions(filter=QAFilterOptions(min_relevancy=0.9))
        await GenerationPipeline(_generator(["Q1?"]), gate).execute(CONTEXT, options)
        args, kwargs = gate.filter.call_args
        assert args[1] == options.filter
        assert args[2] == options.evaluation

    @pytest.mark.asyncio
    async def test_source_id_from_options(self):
        generator = _generator(["Q1?"])
        await GenerationPipeline(generator, _gate()).execute(
            CONTEXT, PipelineOptions(source_id="doc-9")
        )
        args, _ = generator.generate.call_args
        assert args[2] == "doc-9"

    @pytest.mark.asyncio
    async def test_from_fragment_overrides_source_id(self):
        generator = _generator(["Q1?"])
        await GenerationPipeline(generator, _gate()).execute_from_fragment(
            Fragment(id="frag-2", content=CONTEXT), PipelineOptions(source_id="ignored")
        )
        args, _ = generator.generate.call_args
        assert args[0] == CONTEXT
        assert args[2] == "frag-2"

    @pytest.mark.asyncio
    async def test_batch_preserves_order(self):
        pipeline = GenerationPipeline(_generator(["A?"], [], ["B?", "C?"]), _gate())
        results = await pipeline.execute_batch(["one", "two", "three"])
        assert [r.generated_count for r in results] == [1, 0, 2]

    @pytest.mark.asyncio
    async def test_fragments_batch(self):
        generator = _generator(["A?"], ["B?"])
        fragments = [Fragment(id="p1", content="x"), Fragment(id="p2", content="y")]
        results = await GenerationPipeline(generator, _gate()).execute_from_fragments_batch(
            fragments
        )
        assert len(results) == 2
        assert [c.args[2] for c in generator.generate.call_args_list] == ["p1", "p2"]

    @pytest.mark.asyncio
    async def test_cancel_between_inputs(self):
        cancel = asyncio.Event()
        generator = AsyncMock(spec=QAGenerator)

        async def generate(*args, **kwargs):
            cancel.set()
            return []

        generator.generate.side_effect = generate
        with pytest.raises(asyncio.CancelledError):
            await GenerationPipeline(generator, _gate()).execute_batch(
                ["one", "two"], cancel=cancel
            )
        assert generator.generate.await_count == 1

    @pytest.mark.asyncio
    async def test_end_to_end_with_real_gate(self):
        replies = [
            _qa_reply(("When was it signed?", "In 1648."), ("Who won?", "Nobody.")),
            '{"score": 0.9}', '{"score": 0.9}', '{"score": 0.9}',
            '{"score": 0.9}', '{"score": 0.2}', '{"score": 0.9}',
        ]
        pipeline = GenerationPipeline.from_completion(_completion(*replies))
        result = await pipeline.execute(CONTEXT)
        assert result.generated_count == 2
        assert [p.question for p in result.qa_pairs] == ["When was it signed?"]
