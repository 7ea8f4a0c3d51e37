"""Pairwise semantic relationship discovery between fragments.

``analyze_pair`` asks the model about one ordered pair. ``analyze_relationships``
fans one source out over many candidates through a fixed-size worker pool and
degrades to a partial result on failure. ``discover_all`` walks every
unordered pair once and fails fast.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from ragjudge.completion import CompletionOptions, TextCompletionService
from ragjudge.config import RelationshipOptions
from ragjudge.prompts.library import PromptLibrary, PromptName, build_prompt_library
from ragjudge.prompts.templates import (
    RELATIONSHIP_WITH_EXPLANATIONS,
    RELATIONSHIP_WITHOUT_EXPLANATIONS,
)
from ragjudge.schemas.fragments import Fragment
from ragjudge.schemas.judge_outputs import RelationshipOut
from ragjudge.schemas.relationships import (
    RELATIONSHIP_DEFINITIONS,
    Relationship,
    RelationshipAnalysis,
    RelationshipType,
    pair_key,
)
from ragjudge.utils.cancellation import raise_if_cancelled
from ragjudge.utils.json_extraction import parse_json_payload

logger = structlog.get_logger(__name__)


def _type_definitions() -> str:
    return "\n".join(
        f"- {rel_type.value}: {definition}"
        for rel_type, definition in RELATIONSHIP_DEFINITIONS.items()
    )


def _relationship_items(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("relationships"), list):
        return payload["relationships"]
    return []


def _by_confidence(relationships: Iterable[Relationship]) -> list[Relationship]:
    return sorted(relationships, key=lambda rel: rel.confidence, reverse=True)


class RelationshipDiscoveryEngine:
    def __init__(
        self,
        completion: TextCompletionService,
        prompts: PromptLibrary | None = None,
    ) -> None:
        self._completion = completion
        self._prompts = prompts or build_prompt_library()

    def build_prompt(
        self, source: Fragment, target: Fragment, options: RelationshipOptions
    ) -> str:
        return self._prompts.render(
            PromptName.RELATIONSHIP,
            source_id=source.id,
            source_content=source.content,
            target_id=target.id,
            target_content=target.content,
            relationship_types=", ".join(t.value for t in options.relationship_types),
            type_definitions=_type_definitions(),
            min_confidence=options.min_confidence,
            max_relationships=options.max_relationships_per_pair,
            explanation_instruction=(
                RELATIONSHIP_WITH_EXPLANATIONS
                if options.include_explanations
                else RELATIONSHIP_WITHOUT_EXPLANATIONS
            ),
        )

    async def analyze_pair(
        self,
        source: Fragment,
        target: Fragment,
        options: RelationshipOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[Relationship]:
        """Ask the model which relationships hold from ``source`` to ``target``.

        An unusable reply yields ``[]``. Errors from the completion service
        are not caught here.
        """
        options = options or RelationshipOptions()
        completion_options = CompletionOptions(
            system_prompt=self._prompts.get(PromptName.RELATIONSHIP).system,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            json_mode=True,
        )

        response = await self._completion.complete(
            self.build_prompt(source, target, options), completion_options, cancel=cancel
        )
        relationships = self.parse_response(response, source.id, target.id, options)
        logger.debug(
            "relationship_pair",
            source_id=source.id,
            target_id=target.id,
            found=len(relationships),
        )
        return relationships

    @staticmethod
    def parse_response(
        response: str,
        source_id: str,
        target_id: str,
        options: RelationshipOptions,
    ) -> list[Relationship]:
        try:
            items = _relationship_items(parse_json_payload(response))
        except ValueError:
            return []

        allowed = set(options.relationship_types)
        relationships: list[Relationship] = []
        for item in items:
            try:
                parsed = RelationshipOut.model_validate(item)
            except ValidationError:
                continue

            rel_type = RelationshipType.parse(parsed.type)
            if rel_type is None or rel_type not in allowed:
                continue
            if parsed.confidence < options.min_confidence:
                continue

            relationships.append(
                Relationship(
                    source_id=source_id,
                    target_id=target_id,
                    type=rel_type,
                    confidence=parsed.confidence,
                    explanation=parsed.explanation,
                    is_bidirectional=parsed.bidirectional,
                )
            )

        return _by_confidence(relationships)[: options.max_relationships_per_pair]

    async def _analyze_parallel(
        self,
        source: Fragment,
        candidates: Sequence[Fragment],
        options: RelationshipOptions,
        cancel: asyncio.Event | None,
        collected: list[tuple[int, list[Relationship]]],
    ) -> None:
        work: asyncio.Queue[tuple[int, Fragment]] = asyncio.Queue()
        for item in enumerate(candidates):
            work.put_nowait(item)
        done: asyncio.Queue[tuple[int, list[Relationship]]] = asyncio.Queue()

        async def worker() -> None:
            while True:
                try:
                    index, candidate = work.get_nowait()
                except asyncio.QueueEmpty:
                    return
                raise_if_cancelled(cancel)
                relationships = await self.analyze_pair(
                    source, candidate, options, cancel=cancel
                )
                done.put_nowait((index, relationships))

        worker_count = min(options.max_degree_of_parallelism, len(candidates))
        workers = [asyncio.create_task(worker()) for _ in range(worker_count)]
        try:
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            while not done.empty():
                collected.append(done.get_nowait())

    async def analyze_relationships(
        self,
        source: Fragment,
        candidates: Iterable[Fragment],
        options: RelationshipOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> RelationshipAnalysis:
        """Analyze ``source`` against every candidate.

        Failures other than cancellation are reported through
        ``success=False`` together with whatever finished before the failure.
        """
        options = options or RelationshipOptions()
        candidates = list(candidates)
        collected: list[tuple[int, list[Relationship]]] = []

        try:
            if options.enable_parallel_processing and len(candidates) > 1:
                await self._analyze_parallel(source, candidates, options, cancel, collected)
            else:
                for index, candidate in enumerate(candidates):
                    raise_if_cancelled(cancel)
                    relationships = await self.analyze_pair(
                        source, candidate, options, cancel=cancel
                    )
                    collected.append((index, relationships))
        except Exception as exc:
            logger.warning(
                "relationship_analysis_failed",
                fragment_id=source.id,
                completed=len(collected),
                total=len(candidates),
                error=str(exc),
            )
            return RelationshipAnalysis(
                fragment_id=source.id,
                relationships=tuple(self._merge(collected)),
                success=False,
                error_message=str(exc) or type(exc).__name__,
            )

        relationships = self._merge(collected)
        logger.info(
            "relationship_analysis_done",
            fragment_id=source.id,
            candidates=len(candidates),
            relationships=len(relationships),
        )
        return RelationshipAnalysis(fragment_id=source.id, relationships=tuple(relationships))

    @staticmethod
    def _merge(collected: list[tuple[int, list[Relationship]]]) -> list[Relationship]:
        # candidate order breaks confidence ties
        ordered = [rel for _, rels in sorted(collected, key=lambda entry: entry[0]) for rel in rels]
        return _by_confidence(ordered)

    async def discover_all(
        self,
        fragments: Iterable[Fragment],
        options: RelationshipOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[Relationship]:
        """Analyze every unordered pair of fragments exactly once, in order.

        Pairs whose ids were already seen (duplicate ids) are skipped. The
        first error aborts the whole run.
        """
        options = options or RelationshipOptions()
        fragments = list(fragments)
        seen: set[tuple[str, str]] = set()
        discovered: list[Relationship] = []

        for i, first in enumerate(fragments):
            for second in fragments[i + 1 :]:
                raise_if_cancelled(cancel)
                key = pair_key(first.id, second.id)
                if key in seen:
                    continue
                seen.add(key)
                discovered.extend(await self.analyze_pair(first, second, options, cancel=cancel))

        logger.info(
            "relationships_discovered",
            fragments=len(fragments),
            pairs=len(seen),
            count=len(discovered),
        )
        return discovered
