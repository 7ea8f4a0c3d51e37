"""Immutable prompt lookup shared by scorers, generator and relationship engine.

Build one ``PromptLibrary`` at startup with ``build_prompt_library()`` and pass
it to the components that need it. Overrides replace individual templates
without touching any module-level state.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType

from ragjudge.prompts import templates


class PromptName(StrEnum):
    FAITHFULNESS = "faithfulness"
    RELEVANCY = "relevancy"
    ANSWERABILITY = "answerability"
    QA_GENERATION = "qa_generation"
    RELATIONSHIP = "relationship"
    CHUNK_RELEVANCE = "chunk_relevance"
    QUESTION_SUGGESTION = "question_suggestion"


@dataclass(frozen=True)
class PromptTemplate:
    """System prompt plus a ``str.format`` task template."""

    system: str
    task: str

    def render(self, **variables: object) -> str:
        return self.task.format(**variables)


@dataclass(frozen=True)
class PromptLibrary:
    templates: Mapping[str, PromptTemplate] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "templates", MappingProxyType(dict(self.templates)))

    def get(self, name: str) -> PromptTemplate:
        try:
            return self.templates[name]
        except KeyError:
            raise KeyError(f"Unknown prompt template: {name!r}") from None

    def render(self, name: str, **variables: object) -> str:
        return self.get(name).render(**variables)


_DEFAULT_TEMPLATES = {
    PromptName.FAITHFULNESS: PromptTemplate(
        templates.FAITHFULNESS_SYSTEM, templates.FAITHFULNESS_TASK
    ),
    PromptName.RELEVANCY: PromptTemplate(
        templates.RELEVANCY_SYSTEM, templates.RELEVANCY_TASK
    ),
    PromptName.ANSWERABILITY: PromptTemplate(
        templates.ANSWERABILITY_SYSTEM, templates.ANSWERABILITY_TASK
    ),
    PromptName.QA_GENERATION: PromptTemplate(
        templates.QA_GENERATION_SYSTEM, templates.QA_GENERATION_TASK
    ),
    PromptName.RELATIONSHIP: PromptTemplate(
        templates.RELATIONSHIP_SYSTEM, templates.RELATIONSHIP_TASK
    ),
    PromptName.CHUNK_RELEVANCE: PromptTemplate(
        templates.CHUNK_RELEVANCE_SYSTEM, templates.CHUNK_RELEVANCE_TASK
    ),
    PromptName.QUESTION_SUGGESTION: PromptTemplate(
        templates.QUESTION_SUGGESTION_SYSTEM, templates.QUESTION_SUGGESTION_TASK
    ),
}


def build_prompt_library(
    overrides: Mapping[str, PromptTemplate] | None = None,
) -> PromptLibrary:
    """Resolve the built-in templates (plus any overrides) into a library."""
    resolved: dict[str, PromptTemplate] = dict(_DEFAULT_TEMPLATES)
    if overrides:
        resolved.update(overrides)
    return PromptLibrary(resolved)
