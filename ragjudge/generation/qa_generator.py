"""Question/answer pair generation from source passages."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog
from pydantic import ValidationError

from ragjudge.completion import CompletionOptions, TextCompletionService
from ragjudge.config import QAGenerationOptions
from ragjudge.prompts.library import PromptLibrary, PromptName, build_prompt_library
from ragjudge.prompts.templates import QA_MULTI_HOP_INSTRUCTION, QA_REASONING_INSTRUCTION
from ragjudge.schemas.evaluation import QAPair
from ragjudge.schemas.fragments import Fragment
from ragjudge.schemas.judge_outputs import QAGenerationOutput
from ragjudge.utils.cancellation import raise_if_cancelled
from ragjudge.utils.json_extraction import JsonExtractionError, parse_json_payload

logger = structlog.get_logger(__name__)


class QAGenerator:
    def __init__(
        self,
        completion: TextCompletionService,
        prompts: PromptLibrary | None = None,
    ) -> None:
        self._completion = completion
        self._prompts = prompts or build_prompt_library()

    def build_prompt(self, context: str, options: QAGenerationOptions) -> str:
        return self._prompts.get(PromptName.QA_GENERATION).render(
            pairs_per_chunk=options.pairs_per_chunk,
            min_answer_length=options.min_answer_length,
            max_answer_length=options.max_answer_length,
            question_types=", ".join(t.value for t in options.question_types),
            multi_hop_instruction=QA_MULTI_HOP_INSTRUCTION if options.include_multi_hop else "",
            reasoning_instruction=QA_REASONING_INSTRUCTION if options.include_reasoning else "",
            context=context,
        )

    async def generate(
        self,
        context: str | None,
        options: QAGenerationOptions | None = None,
        source_id: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[QAPair]:
        """Generate QA pairs grounded in ``context``.

        Blank context returns ``[]`` without calling the model; an unusable
        reply also yields ``[]``.
        """
        if context is None or not context.strip():
            return []

        options = options or QAGenerationOptions()
        completion_options = CompletionOptions(
            system_prompt=self._prompts.get(PromptName.QA_GENERATION).system,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            json_mode=True,
        )

        response = await self._completion.complete(
            self.build_prompt(context, options), completion_options, cancel=cancel
        )
        pairs = self.parse_response(response, context, source_id)
        logger.info("qa_generated", source_id=source_id, count=len(pairs))
        return pairs

    @staticmethod
    def parse_response(response: str, context: str, source_id: str | None) -> list[QAPair]:
        try:
            parsed = QAGenerationOutput.model_validate(parse_json_payload(response))
        except JsonExtractionError:
            logger.warning("qa_generation_no_json", source_id=source_id)
            return []
        except (ValueError, ValidationError) as exc:
            logger.warning("qa_generation_parse_failed", source_id=source_id, error=str(exc))
            return []

        return [
            QAPair(
                question=item.question,
                answer=item.answer,
                context=context,
                source_id=source_id,
            )
            for item in parsed.qa_pairs
            if item.question and item.question.strip() and item.answer and item.answer.strip()
        ]

    async def generate_from_fragment(
        self,
        fragment: Fragment,
        options: QAGenerationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[QAPair]:
        return await self.generate(fragment.content, options, fragment.id, cancel=cancel)

    async def generate_batch(
        self,
        contexts: Iterable[str],
        options: QAGenerationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[list[QAPair]]:
        results: list[list[QAPair]] = []
        for context in contexts:
            raise_if_cancelled(cancel)
            results.append(await self.generate(context, options, cancel=cancel))
        return results
