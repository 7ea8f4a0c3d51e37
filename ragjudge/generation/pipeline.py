"""Generate-then-judge pipeline for QA dataset building."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog

from ragjudge.completion import TextCompletionService
from ragjudge.config import PipelineOptions
from ragjudge.evals.quality_gate import QualityGate
from ragjudge.generation.qa_generator import QAGenerator
from ragjudge.prompts.library import PromptLibrary
from ragjudge.schemas.evaluation import PipelineResult
from ragjudge.schemas.fragments import Fragment
from ragjudge.utils.cancellation import raise_if_cancelled

logger = structlog.get_logger(__name__)


class GenerationPipeline:
    def __init__(self, generator: QAGenerator, gate: QualityGate) -> None:
        self._generator = generator
        self._gate = gate

    @classmethod
    def from_completion(
        cls,
        completion: TextCompletionService,
        prompts: PromptLibrary | None = None,
    ) -> GenerationPipeline:
        return cls(
            QAGenerator(completion, prompts),
            QualityGate.from_completion(completion, prompts),
        )

    async def execute(
        self,
        context: str,
        options: PipelineOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> PipelineResult:
        """Generate QA pairs for one context and run them through the gate.

        When nothing is generated the gate is never called.
        """
        options = options or PipelineOptions()
        raise_if_cancelled(cancel)

        generated = await self._generator.generate(
            context, options.generation, options.source_id, cancel=cancel
        )
        if not generated:
            logger.info("pipeline_nothing_generated", source_id=options.source_id)
            return PipelineResult.empty()

        if options.skip_filtering:
            kept = generated
        else:
            kept = await self._gate.filter(
                generated, options.filter, options.evaluation, cancel=cancel
            )

        result = PipelineResult(
            qa_pairs=tuple(kept),
            generated_count=len(generated),
            filtered_count=len(kept),
        )
        logger.info(
            "pipeline_done",
            source_id=options.source_id,
            generated=result.generated_count,
            kept=result.filtered_count,
            pass_rate=round(result.pass_rate, 3),
        )
        return result

    async def execute_from_fragment(
        self,
        fragment: Fragment,
        options: PipelineOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> PipelineResult:
        options = (options or PipelineOptions()).model_copy(update={"source_id": fragment.id})
        return await self.execute(fragment.content, options, cancel=cancel)

    async def execute_batch(
        self,
        contexts: Iterable[str],
        options: PipelineOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[PipelineResult]:
        results: list[PipelineResult] = []
        for context in contexts:
            raise_if_cancelled(cancel)
            results.append(await self.execute(context, options, cancel=cancel))
        return results

    async def execute_from_fragments_batch(
        self,
        fragments: Iterable[Fragment],
        options: PipelineOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[PipelineResult]:
        results: list[PipelineResult] = []
        for fragment in fragments:
            raise_if_cancelled(cancel)
            results.append(await self.execute_from_fragment(fragment, options, cancel=cancel))
        return results
