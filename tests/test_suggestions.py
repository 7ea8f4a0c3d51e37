"""Tests for follow-up question suggestion."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from ragjudge.completion import ChatMessage
from ragjudge.config import SuggestionOptions
from ragjudge.generation.suggestions import QuestionSuggester
from ragjudge.prompts import templates
from ragjudge.schemas.evaluation import QAPair
from ragjudge.schemas.suggestions import QuestionCategory


def _completion(reply):
    completion = AsyncMock()
    completion.complete.return_value = reply
    return completion


def _reply(*items):
    return json.dumps({"suggestions": list(items)})


def _sent_prompt(completion):
    return completion.complete.call_args.args[0]


class TestQuestionCategory:
    def test_parse_is_case_insensitive(self):
        assert QuestionCategory.parse("deepdive") is QuestionCategory.DEEP_DIVE
        assert QuestionCategory.parse(" FollowUp ") is QuestionCategory.FOLLOW_UP

    def test_unknown_name(self):
        assert QuestionCategory.parse("Tangent") is None
        assert QuestionCategory.parse("") is None
        assert QuestionCategory.parse(None) is None


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


class TestParseResponse:
    def test_filters_sorts_and_defaults(self):
        reply = _reply(
            {"text": "Why then?", "category": "deepdive", "relevance": 0.6},
            {"text": "What next?", "category": "Tangent", "relevance": 0.9},
            {"text": "   ", "relevance": 1.0},
            {"text": "Barely related?", "relevance": 0.2},
        )
        suggestions = QuestionSuggester.parse_response(reply, SuggestionOptions())
        assert [s.text for s in suggestions] == ["What next?", "Why then?"]
        assert suggestions[0].category is QuestionCategory.FOLLOW_UP
        assert suggestions[1].category is QuestionCategory.DEEP_DIVE

    def test_capped_at_max_suggestions(self):
        reply = _reply({"text": "A?", "relevance": 0.7}, {"text": "B?", "relevance": 0.8})
        suggestions = QuestionSuggester.parse_response(reply, SuggestionOptions(max_suggestions=1))
        assert [s.text for s in suggestions] == ["B?"]

    def test_missing_relevance_counts_as_full(self):
        suggestions = QuestionSuggester.parse_response(
            _reply({"text": "A?", "reasoning": "natural next step"}), SuggestionOptions()
        )
        assert suggestions[0].relevance == 1.0
        assert suggestions[0].reasoning == "natural next step"

    def test_malformed_items_are_skipped(self):
        reply = _reply("just a string", {"text": "Kept?", "relevance": "high"}, {"text": "Ok?"})
        suggestions = QuestionSuggester.parse_response(reply, SuggestionOptions())
        assert [s.text for s in suggestions] == ["Ok?"]

    def test_bare_array_reply(self):
        suggestions = QuestionSuggester.parse_response(
            '[{"text": "A?", "category": "Related"}]', SuggestionOptions()
        )
        assert suggestions[0].category is QuestionCategory.RELATED

    def test_non_json_reply(self):
        assert QuestionSuggester.parse_response("No questions today.", SuggestionOptions()) == []


# ---------------------------------------------------------------------------
# Suggest
# ---------------------------------------------------------------------------


class TestSuggest:
    @pytest.mark.asyncio
    async def test_blank_context_makes_no_call(self):
        completion = _completion(_reply())
        assert await QuestionSuggester(completion).suggest("  ") == []
        completion.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_prompt_and_options(self):
        completion = _completion(_reply({"text": "A?"}))
        options = SuggestionOptions(
            max_suggestions=3,
            max_tokens=300,
            include_reasoning=True,
            categories=(QuestionCategory.CLARIFICATION,),
        )
        await QuestionSuggester(completion).suggest("The treaty was signed in 1648.", options)
        prompt = _sent_prompt(completion)
        assert "suggest 3 follow-up questions" in prompt
        assert "Question categories to include: Clarification" in prompt
        assert templates.SUGGESTION_REASONING_INSTRUCTION in prompt
        assert "- Clarification: Questions that clarify ambiguous points" in prompt
        assert "DeepDive: Questions" not in prompt
        sent = completion.complete.call_args.args[1]
        assert sent.json_mode is True
        assert sent.max_tokens == 300
        assert sent.system_prompt == templates.QUESTION_SUGGESTION_SYSTEM

    @pytest.mark.asyncio
    async def test_reasoning_instruction_omitted_by_default(self):
        completion = _completion(_reply())
        await QuestionSuggester(completion).suggest("context")
        assert templates.SUGGESTION_REASONING_INSTRUCTION not in _sent_prompt(completion)

    @pytest.mark.asyncio
    async def test_from_qa_pair(self):
        completion = _completion(_reply({"text": "Who signed it?"}))
        pair = QAPair(question="When was it signed?", answer="In 1648.")
        suggestions = await QuestionSuggester(completion).suggest_from_qa(pair)
        assert "Question: When was it signed?\nAnswer: In 1648." in _sent_prompt(completion)
        assert [s.text for s in suggestions] == ["Who signed it?"]

    @pytest.mark.asyncio
    async def test_from_conversation_uses_recent_turns(self):
        completion = _completion(_reply())
        history = [
            ChatMessage(role="user" if i % 2 else "assistant", content=f"turn {i}")
            for i in range(1, 8)
        ]
        await QuestionSuggester(completion).suggest_from_conversation(
            history, SuggestionOptions(context_window_size=2)
        )
        prompt = _sent_prompt(completion)
        assert "assistant: turn 6\n\nuser: turn 7" in prompt
        assert "turn 5" not in prompt

    @pytest.mark.asyncio
    async def test_empty_conversation_makes_no_call(self):
        completion = _completion(_reply())
        assert await QuestionSuggester(completion).suggest_from_conversation([]) == []
        completion.complete.assert_not_called()
