"""Staged chunk assessment and filtering.

Stage 1 scores a chunk from content heuristics plus, when a query is given,
one JSON-mode relevance judgment. Stage 2 (self-reflection) corrects for a
single dominant factor, incomplete text and a keyword-based second opinion.
Stage 3 (critic) checks factor consistency, shape and edge cases. The final
relevance is a weighted blend of the stage scores; a quality estimate is
mixed in by ``quality_weight`` and the result is compared with
``min_relevance_score``.

An unusable judge reply falls back to keyword overlap. Errors raised by the
completion service, and cancellation, propagate.
"""

from __future__ import annotations

import asyncio
import re
import sys
from collections.abc import Iterable, Mapping
from statistics import fmean, pvariance

import structlog

from ragjudge.completion import TextCompletionService
from ragjudge.config import ChunkFilterOptions, EvaluationOptions
from ragjudge.evals.scorers import MetricScorer
from ragjudge.prompts.library import PromptLibrary, PromptName, PromptTemplate
from ragjudge.schemas.chunks import AssessmentFactor, ChunkAssessment, FilteredChunk
from ragjudge.schemas.evaluation import MetricResult
from ragjudge.schemas.fragments import Fragment
from ragjudge.schemas.judge_outputs import clamp_unit
from ragjudge.utils.cancellation import raise_if_cancelled

logger = structlog.get_logger(__name__)

PREVIEW_CHARS = 500
STAGE_WEIGHTS = {"initial": 0.4, "reflection": 0.3, "critic": 0.3}

CONTENT_RELEVANCE = "Content Relevance"
INFORMATION_DENSITY = "Information Density"
STRUCTURAL_IMPORTANCE = "Structural Importance"
LLM_ASSESSMENT = "LLM Assessment"
BIAS_CORRECTION = "Bias Correction"
COMPLETENESS_ADJUSTMENT = "Completeness Adjustment"
ALTERNATIVE_PERSPECTIVE = "Alternative Perspective"
CONSISTENCY_ISSUE = "Consistency Issue"
PATTERN_VALIDATION = "Pattern Validation"
EDGE_CASE_DETECTION = "Edge Case Detection"

_NUMERIC_WORD = re.compile(r"[\d.,]+")


# ---------------------------------------------------------------------------
# Content heuristics
# ---------------------------------------------------------------------------


def content_relevance(content: str, query: str | None) -> float:
    """Share of query words found in the content; 0.5 without a query."""
    words = (query or "").lower().split()
    if not words:
        return 0.5
    lowered = content.lower()
    return sum(1 for word in words if word in lowered) / len(words)


def information_density(content: str) -> float:
    words = content.split()
    if not words:
        return 0.0
    density = len({word.lower() for word in words}) / len(words)
    if any(char.isdigit() for char in content):
        density += 0.1
    if any(mark in content for mark in "_-."):
        density += 0.1
    return min(1.0, density)


def structural_importance(fragment: Fragment) -> float:
    content = fragment.content
    upper = content.upper()
    score = 0.5
    if content.startswith("#") or "HEADING" in upper:
        score += 0.2
    if "```" in content or "CODE" in upper:
        score += 0.15
    if "TABLE" in upper or "|" in content:
        score += 0.15
    index = fragment.metadata.get("index")
    if isinstance(index, int) and not isinstance(index, bool) and index < 3:
        score += 0.1
    return min(1.0, score)


def completeness(content: str) -> float:
    """0.5 for a capitalized start plus 0.5 for a sentence-final end."""
    stripped = content.strip()
    if not stripped:
        return 0.0
    starts = 0.5 if stripped[0].isupper() else 0.0
    ends = 0.5 if stripped[-1] in ".!?" else 0.0
    return starts + ends


def pattern_validation(content: str) -> float:
    score = 0.5
    if 100 < len(content) < 2000:
        score += 0.1
    if ". " in content or ".\n" in content:
        score += 0.1
    if len(content) < 50:
        score -= 0.2
    if content and content.count("\n") / len(content) > 0.05:
        score -= 0.1
    return clamp_unit(score)


def edge_case_adjustment(content: str) -> float:
    """Penalty (<= 0) for very short, numeric-only or repetitive chunks."""
    adjustment = 0.0
    if len(content) < 50:
        adjustment -= 0.3
    words = content.split()
    if words:
        numeric = sum(1 for word in words if _NUMERIC_WORD.fullmatch(word))
        if numeric / len(words) > 0.8:
            adjustment -= 0.2
        if len(words) > 10 and len({word.lower() for word in words}) / len(words) < 0.3:
            adjustment -= 0.2
    return adjustment


def _bias(factors: list[AssessmentFactor]) -> float:
    magnitudes = [abs(factor.contribution) for factor in factors]
    total = sum(magnitudes)
    if total == 0:
        return 0.0
    concentration = max(magnitudes) / total
    return (concentration - 0.7) * 0.5 if concentration > 0.7 else 0.0


def _consistency(values: list[float]) -> float:
    if len(values) < 2:
        return 1.0
    return max(0.0, 1 - pvariance(values) * 2)


def _merge_factors(target: list[AssessmentFactor], extra: list[AssessmentFactor]) -> None:
    # same-named factors are averaged rather than duplicated
    for factor in extra:
        for i, existing in enumerate(target):
            if existing.name == factor.name:
                target[i] = AssessmentFactor(
                    name=existing.name,
                    contribution=(existing.contribution + factor.contribution) / 2,
                    explanation=f"{existing.explanation} | {factor.explanation}",
                )
                break
        else:
            target.append(factor)


def _chunk_index(fragment: Fragment) -> int:
    value = fragment.metadata.get("index")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value))
    except ValueError:
        return sys.maxsize


# ---------------------------------------------------------------------------
# LLM relevance judge
# ---------------------------------------------------------------------------


class ChunkRelevanceScorer(MetricScorer):
    """Does the chunk help answer the query? Long chunks are previewed."""

    metric_name = "ChunkRelevance"
    prompt_name = PromptName.CHUNK_RELEVANCE
    required_fields = ("query", "content")

    def build_prompt(self, template: PromptTemplate, fields: Mapping[str, str | None]) -> str:
        content = fields["content"] or ""
        if len(content) > PREVIEW_CHARS:
            content = content[:PREVIEW_CHARS] + "..."
        return template.render(query=fields["query"], content=content)

    async def evaluate(
        self,
        query: str | None,
        content: str | None,
        options: EvaluationOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> MetricResult:
        return await self._judge({"query": query, "content": content}, options, cancel)


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class ChunkFilter:
    def __init__(
        self,
        completion: TextCompletionService,
        prompts: PromptLibrary | None = None,
    ) -> None:
        self._scorer = ChunkRelevanceScorer(completion, prompts)

    async def _judged_relevance(
        self,
        fragment: Fragment,
        query: str,
        options: ChunkFilterOptions,
        cancel: asyncio.Event | None,
    ) -> float:
        result = await self._scorer.evaluate(
            query,
            fragment.content,
            EvaluationOptions(temperature=options.temperature, max_tokens=options.max_tokens),
            cancel=cancel,
        )
        if result.failure_reason is None:
            return result.score
        fallback = content_relevance(fragment.content, query)
        logger.warning(
            "chunk_relevance_fallback",
            fragment_id=fragment.id,
            reason=result.failure_reason,
            score=fallback,
        )
        return fallback

    @staticmethod
    def _initial_stage(
        fragment: Fragment, query: str | None, judged: float | None
    ) -> tuple[float, str, list[AssessmentFactor]]:
        relevance = content_relevance(fragment.content, query)
        density = information_density(fragment.content)
        structure = structural_importance(fragment)
        factors = [
            AssessmentFactor(
                name=CONTENT_RELEVANCE,
                contribution=relevance,
                explanation=f"Content alignment with query: {relevance:.2f}",
            ),
            AssessmentFactor(
                name=INFORMATION_DENSITY,
                contribution=density * 0.5,
                explanation=f"Information richness: {density:.2f}",
            ),
            AssessmentFactor(
                name=STRUCTURAL_IMPORTANCE,
                contribution=structure * 0.3,
                explanation=f"Document structure relevance: {structure:.2f}",
            ),
        ]
        scores = [relevance, density, structure]
        if judged is not None:
            factors.append(
                AssessmentFactor(
                    name=LLM_ASSESSMENT,
                    contribution=judged * 0.8,
                    explanation=f"LLM relevance assessment: {judged:.2f}",
                )
            )
            scores.append(judged)

        score = clamp_unit(fmean(scores))
        primary = max(factors, key=lambda factor: abs(factor.contribution))
        reasoning = (
            f"Initial assessment based on {len(factors)} factors. Primary factor: {primary.name}"
        )
        return score, reasoning, factors

    @staticmethod
    def _reflection_stage(
        fragment: Fragment,
        query: str | None,
        initial: float,
        initial_factors: list[AssessmentFactor],
    ) -> tuple[float, str, list[AssessmentFactor]]:
        factors: list[AssessmentFactor] = []

        bias = _bias(initial_factors)
        if abs(bias) > 0.1:
            factors.append(
                AssessmentFactor(
                    name=BIAS_CORRECTION,
                    contribution=-bias,
                    explanation=f"Correcting for assessment bias: {bias:.2f}",
                )
            )

        complete = completeness(fragment.content)
        if complete < 0.7:
            factors.append(
                AssessmentFactor(
                    name=COMPLETENESS_ADJUSTMENT,
                    contribution=(complete - 0.7) * 0.5,
                    explanation=f"Adjusting for incomplete coverage: {complete:.2f}",
                )
            )

        if query and query.strip():
            direct = content_relevance(fragment.content, query)
            alternative = 0.3 if direct < 0.2 else direct
        else:
            alternative = 0.5
        if abs(alternative - initial) > 0.2:
            factors.append(
                AssessmentFactor(
                    name=ALTERNATIVE_PERSPECTIVE,
                    contribution=(alternative - initial) * 0.3,
                    explanation=f"Alternative view suggests: {alternative:.2f}",
                )
            )

        score = clamp_unit(initial + sum(f.contribution for f in factors))
        reasoning = (
            f"Self-reflection identified {len(factors)} adjustments. "
            f"Score adjusted from {initial:.2f} to {score:.2f}"
        )
        return score, reasoning, factors

    @staticmethod
    def _critic_stage(
        fragment: Fragment,
        previous: float,
        existing: list[AssessmentFactor],
    ) -> tuple[float, str, list[AssessmentFactor]]:
        factors: list[AssessmentFactor] = []

        consistency = _consistency([f.contribution for f in existing])
        if consistency < 0.8:
            factors.append(
                AssessmentFactor(
                    name=CONSISTENCY_ISSUE,
                    contribution=(consistency - 1) * 0.3,
                    explanation=f"Inconsistency detected: {consistency:.2f}",
                )
            )

        validation = pattern_validation(fragment.content)
        factors.append(
            AssessmentFactor(
                name=PATTERN_VALIDATION,
                contribution=(validation - 0.5) * 0.5,
                explanation=f"Pattern matching validation: {validation:.2f}",
            )
        )

        edge = edge_case_adjustment(fragment.content)
        if edge != 0:
            factors.append(
                AssessmentFactor(
                    name=EDGE_CASE_DETECTION,
                    contribution=edge,
                    explanation=f"Edge case adjustment: {edge:.2f}",
                )
            )

        score = clamp_unit(previous + sum(f.contribution for f in factors))
        reasoning = (
            f"Critic validation performed {len(factors)} checks. "
            f"Final validation score: {score:.2f}"
        )
        return score, reasoning, factors

    async def assess(
        self,
        fragment: Fragment,
        query: str | None = None,
        options: ChunkFilterOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ChunkAssessment:
        """Run the enabled stages for one chunk.

        The judge is only called when ``query`` is non-blank.
        """
        options = options or ChunkFilterOptions()
        judged = None
        if query and query.strip():
            judged = await self._judged_relevance(fragment, query, options, cancel)

        initial, initial_reasoning, initial_factors = self._initial_stage(
            fragment, query, judged
        )
        factors = list(initial_factors)
        reasoning = {"initial": initial_reasoning}
        stage_scores = {"initial": initial}

        if options.use_self_reflection:
            score, text, extra = self._reflection_stage(fragment, query, initial, initial_factors)
            stage_scores["reflection"] = score
            reasoning["reflection"] = text
            _merge_factors(factors, extra)

        if options.use_critic_validation:
            previous = stage_scores.get("reflection", initial)
            score, text, extra = self._critic_stage(fragment, previous, factors)
            stage_scores["critic"] = score
            reasoning["critic"] = text
            _merge_factors(factors, extra)

        total_weight = sum(STAGE_WEIGHTS[stage] for stage in stage_scores)
        final = clamp_unit(
            sum(score * STAGE_WEIGHTS[stage] / total_weight for stage, score in stage_scores.items())
        )

        values = list(stage_scores.values())
        mean = fmean(values)
        confidence = clamp_unit(
            _consistency(values) * 0.5
            + min(1.0, len(factors) / 10) * 0.3
            + abs(mean - 0.5) * 2 * 0.2
        )

        suggestions: list[str] = []
        if final < 0.5:
            suggestions.append(
                "Consider refining chunk boundaries to capture more complete context"
            )
        density = next((f for f in factors if f.name == INFORMATION_DENSITY), None)
        if density is not None and density.contribution < 0.3:
            suggestions.append("Low information density: consider merging with adjacent chunks")
        edge = next((f for f in factors if f.name == EDGE_CASE_DETECTION), None)
        if edge is not None and edge.contribution < -0.1:
            suggestions.append("Edge case detected: review chunk extraction logic")

        return ChunkAssessment(
            initial_score=initial,
            reflection_score=stage_scores.get("reflection"),
            critic_score=stage_scores.get("critic"),
            final_score=final,
            confidence=confidence,
            factors=tuple(factors),
            suggestions=tuple(suggestions),
            reasoning=reasoning,
        )

    @staticmethod
    def quality_score(assessment: ChunkAssessment) -> float:
        quality = 0.5
        density = assessment.factor(INFORMATION_DENSITY)
        if density is not None:
            quality = max(quality, density.contribution + 0.5)
        complete = assessment.factor(COMPLETENESS_ADJUSTMENT)
        if complete is not None:
            quality += complete.contribution * 0.5
        return clamp_unit(quality)

    @staticmethod
    def _reason(assessment: ChunkAssessment, passed: bool, options: ChunkFilterOptions) -> str:
        reasons: list[str] = []
        if passed:
            reasons.append(f"Relevance: {assessment.final_score:.2f}")
            if assessment.factors:
                key = max(assessment.factors, key=lambda f: abs(f.contribution))
                reasons.append(f"Key factor: {key.name}")
        else:
            reasons.append(f"Below threshold ({options.min_relevance_score:.2f})")
            if assessment.factors:
                worst = min(assessment.factors, key=lambda f: f.contribution)
                reasons.append(f"Issue: {worst.name}")
        if assessment.confidence < 0.5:
            reasons.append("Low confidence assessment")
        return ", ".join(reasons)

    async def _filter_one(
        self,
        fragment: Fragment,
        query: str | None,
        options: ChunkFilterOptions,
        cancel: asyncio.Event | None,
    ) -> FilteredChunk:
        assessment = await self.assess(fragment, query, options, cancel=cancel)
        relevance = assessment.final_score
        quality = self.quality_score(assessment)
        combined = clamp_unit(
            relevance * (1 - options.quality_weight) + quality * options.quality_weight
        )
        passed = combined >= options.min_relevance_score
        return FilteredChunk(
            fragment=fragment,
            relevance_score=relevance,
            quality_score=quality,
            combined_score=combined,
            passed=passed,
            assessment=assessment,
            reason=self._reason(assessment, passed, options),
        )

    async def filter(
        self,
        fragments: Iterable[Fragment],
        query: str | None = None,
        options: ChunkFilterOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[FilteredChunk]:
        """Assess chunks ``batch_size`` at a time and return those that pass.

        Survivors are ordered by combined score (descending) and cut to
        ``max_chunks``; with ``preserve_order`` they are then put back in
        document order (``metadata["index"]``, then input position).
        """
        options = options or ChunkFilterOptions()
        fragments = list(fragments)
        assessed: list[FilteredChunk] = []

        for start in range(0, len(fragments), options.batch_size):
            raise_if_cancelled(cancel)
            batch = fragments[start : start + options.batch_size]
            assessed.extend(
                await asyncio.gather(
                    *(self._filter_one(fragment, query, options, cancel) for fragment in batch)
                )
            )

        kept = [(position, chunk) for position, chunk in enumerate(assessed) if chunk.passed]
        kept.sort(key=lambda entry: entry[1].combined_score, reverse=True)
        if options.max_chunks is not None:
            kept = kept[: options.max_chunks]
        if options.preserve_order:
            kept.sort(key=lambda entry: (_chunk_index(entry[1].fragment), entry[0]))

        logger.info(
            "chunks_filtered",
            total=len(fragments),
            passed=sum(1 for chunk in assessed if chunk.passed),
            returned=len(kept),
        )
        return [chunk for _, chunk in kept]
