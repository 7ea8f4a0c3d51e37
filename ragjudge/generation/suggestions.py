"""Follow-up question suggestion from a passage, a QA pair or a conversation."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from ragjudge.completion import ChatMessage, CompletionOptions, TextCompletionService
from ragjudge.config import SuggestionOptions
from ragjudge.prompts.library import PromptLibrary, PromptName, build_prompt_library
from ragjudge.prompts.templates import SUGGESTION_REASONING_INSTRUCTION
from ragjudge.schemas.evaluation import QAPair
from ragjudge.schemas.judge_outputs import SuggestionOut
from ragjudge.schemas.suggestions import CATEGORY_DEFINITIONS, QuestionCategory, SuggestedQuestion
from ragjudge.utils.json_extraction import JsonExtractionError, parse_json_payload

logger = structlog.get_logger(__name__)


def _suggestion_items(payload: Any) -> list[Any]:
    if isinstance(payload, dict):
        payload = payload.get("suggestions")
    return payload if isinstance(payload, list) else []


class QuestionSuggester:
    def __init__(
        self,
        completion: TextCompletionService,
        prompts: PromptLibrary | None = None,
    ) -> None:
        self._completion = completion
        self._prompts = prompts or build_prompt_library()

    def build_prompt(self, context: str, options: SuggestionOptions) -> str:
        definitions = "\n".join(
            f"- {category.value}: {CATEGORY_DEFINITIONS[category]}"
            for category in options.categories
        )
        return self._prompts.get(PromptName.QUESTION_SUGGESTION).render(
            max_suggestions=options.max_suggestions,
            categories=", ".join(category.value for category in options.categories),
            reasoning_instruction=(
                SUGGESTION_REASONING_INSTRUCTION if options.include_reasoning else ""
            ),
            context=context,
            category_definitions=definitions,
        )

    async def suggest(
        self,
        context: str | None,
        options: SuggestionOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[SuggestedQuestion]:
        """Suggest follow-up questions for ``context``.

        Blank context returns ``[]`` without calling the model; an unusable
        reply also yields ``[]``.
        """
        if context is None or not context.strip():
            return []

        options = options or SuggestionOptions()
        completion_options = CompletionOptions(
            system_prompt=self._prompts.get(PromptName.QUESTION_SUGGESTION).system,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            json_mode=True,
        )

        response = await self._completion.complete(
            self.build_prompt(context, options), completion_options, cancel=cancel
        )
        suggestions = self.parse_response(response, options)
        logger.info("questions_suggested", count=len(suggestions))
        return suggestions

    async def suggest_from_qa(
        self,
        pair: QAPair,
        options: SuggestionOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[SuggestedQuestion]:
        context = f"Question: {pair.question}\nAnswer: {pair.answer}"
        return await self.suggest(context, options, cancel=cancel)

    async def suggest_from_conversation(
        self,
        history: Sequence[ChatMessage],
        options: SuggestionOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[SuggestedQuestion]:
        """Suggest questions from the last ``context_window_size`` turns."""
        options = options or SuggestionOptions()
        recent = list(history)[-options.context_window_size :]
        context = "\n\n".join(f"{turn.role}: {turn.content}" for turn in recent)
        return await self.suggest(context, options, cancel=cancel)

    @staticmethod
    def parse_response(response: str, options: SuggestionOptions) -> list[SuggestedQuestion]:
        """Keep non-blank questions at or above ``min_relevance_score``.

        Unknown categories become FollowUp. The result is sorted by relevance
        (descending) and capped at ``max_suggestions``.
        """
        try:
            items = _suggestion_items(parse_json_payload(response))
        except JsonExtractionError:
            logger.warning("question_suggestion_no_json")
            return []
        except ValueError as exc:
            logger.warning("question_suggestion_parse_failed", error=str(exc))
            return []

        suggestions: list[SuggestedQuestion] = []
        for item in items:
            try:
                parsed = SuggestionOut.model_validate(item)
            except ValidationError:
                continue
            if not parsed.text or not parsed.text.strip():
                continue
            if parsed.relevance < options.min_relevance_score:
                continue
            suggestions.append(
                SuggestedQuestion(
                    text=parsed.text.strip(),
                    category=QuestionCategory.parse(parsed.category)
                    or QuestionCategory.FOLLOW_UP,
                    relevance=parsed.relevance,
                    reasoning=parsed.reasoning,
                )
            )

        suggestions.sort(key=lambda suggestion: suggestion.relevance, reverse=True)
        return suggestions[: options.max_suggestions]
