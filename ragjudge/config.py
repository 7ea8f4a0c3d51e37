"""Configuration for ragjudge.

Secrets and endpoints come from RAGJUDGE_* environment variables or .env
(pydantic-settings). Judge behavior (model, temperatures, thresholds, relationship
discovery parameters) is loaded from ragjudge.toml.
"""

from __future__ import annotations

import tomllib
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ragjudge.schemas.relationships import RelationshipType
from ragjudge.schemas.suggestions import QuestionCategory

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "ragjudge.toml"


# ---------------------------------------------------------------------------
# Per-operation options
# ---------------------------------------------------------------------------


class EvaluationOptions(BaseModel):
    """Options shared by the three metric scorers."""

    model_config = {"frozen": True}

    # None lets the backend use its own default (some models reject others)
    temperature: float | None = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1)


class QAFilterOptions(BaseModel):
    """Per-metric minimum scores applied by the quality gate."""

    model_config = {"frozen": True}

    min_faithfulness: float = Field(default=0.5, ge=0.0, le=1.0)
    min_relevancy: float = Field(default=0.5, ge=0.0, le=1.0)
    min_answerability: float = Field(default=0.5, ge=0.0, le=1.0)


class QuestionType(StrEnum):
    FACTUAL = "factual"
    REASONING = "reasoning"
    COMPARATIVE = "comparative"
    MULTI_HOP = "multi_hop"
    CONDITIONAL = "conditional"


class QAGenerationOptions(BaseModel):
    model_config = {"frozen": True}

    pairs_per_chunk: int = Field(default=3, ge=1)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1)
    include_multi_hop: bool = False
    include_reasoning: bool = True
    min_answer_length: int = Field(default=10, ge=1)
    max_answer_length: int = Field(default=500, ge=1)
    question_types: tuple[QuestionType, ...] = (
        QuestionType.FACTUAL,
        QuestionType.REASONING,
        QuestionType.COMPARATIVE,
    )

    @model_validator(mode="after")
    def _check_answer_length_range(self) -> QAGenerationOptions:
        if self.min_answer_length > self.max_answer_length:
            raise ValueError(
                f"min_answer_length ({self.min_answer_length}) cannot be greater "
                f"than max_answer_length ({self.max_answer_length})"
            )
        return self


class PipelineOptions(BaseModel):
    """Options for a single generate-then-filter pipeline run."""

    model_config = {"frozen": True}

    generation: QAGenerationOptions = Field(default_factory=QAGenerationOptions)
    filter: QAFilterOptions = Field(default_factory=QAFilterOptions)
    evaluation: EvaluationOptions = Field(default_factory=EvaluationOptions)
    skip_filtering: bool = False
    source_id: str | None = None


class RelationshipOptions(BaseModel):
    """Options for pairwise relationship discovery."""

    model_config = {"frozen": True}

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1)
    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    relationship_types: tuple[RelationshipType, ...] = tuple(RelationshipType)
    max_relationships_per_pair: int = Field(default=3, ge=1)
    enable_parallel_processing: bool = True
    max_degree_of_parallelism: int = Field(default=4, ge=1)
    include_explanations: bool = True


class ChunkFilterOptions(BaseModel):
    """Options for staged chunk assessment and filtering."""

    model_config = {"frozen": True}

    min_relevance_score: float = Field(default=0.7, ge=0.0, le=1.0)
    max_chunks: int | None = Field(default=None, ge=1)
    use_self_reflection: bool = True
    use_critic_validation: bool = True
    # 0 = pure relevance, 1 = pure quality
    quality_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    preserve_order: bool = False
    batch_size: int = Field(default=5, ge=1)
    temperature: float | None = Field(default=0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(default=256, ge=1)


class SuggestionOptions(BaseModel):
    """Options for follow-up question suggestion."""

    model_config = {"frozen": True}

    max_suggestions: int = Field(default=5, ge=1)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1)
    include_reasoning: bool = False
    min_relevance_score: float = Field(default=0.5, ge=0.0, le=1.0)
    categories: tuple[QuestionCategory, ...] = (
        QuestionCategory.FOLLOW_UP,
        QuestionCategory.CLARIFICATION,
        QuestionCategory.DEEP_DIVE,
        QuestionCategory.RELATED,
    )
    # most recent conversation turns used as context
    context_window_size: int = Field(default=5, ge=1)


# ---------------------------------------------------------------------------
# Judge settings from ragjudge.toml
# ---------------------------------------------------------------------------


class DefaultsTable(BaseModel):
    """The [defaults] table from ragjudge.toml."""

    model: str = "openai/gpt-4o-mini"
    timeout: int = 120
    min_response_length: int = 2


class ProviderConfig(BaseModel):
    """A backup judge provider."""

    enabled: bool = False
    default_model: str = ""
    base_url: str = ""


class ProvidersTable(BaseModel):
    """The [providers] table from ragjudge.toml."""

    groq: ProviderConfig = Field(default_factory=ProviderConfig)
    ollama: ProviderConfig = Field(default_factory=ProviderConfig)


class JudgeSettings(BaseModel):
    """Configuration loaded from ragjudge.toml."""

    defaults: DefaultsTable = Field(default_factory=DefaultsTable)
    evaluation: EvaluationOptions = Field(default_factory=EvaluationOptions)
    qa_filter: QAFilterOptions = Field(default_factory=QAFilterOptions)
    qa_generation: QAGenerationOptions = Field(default_factory=QAGenerationOptions)
    relationships: RelationshipOptions = Field(default_factory=RelationshipOptions)
    chunk_filter: ChunkFilterOptions = Field(default_factory=ChunkFilterOptions)
    suggestions: SuggestionOptions = Field(default_factory=SuggestionOptions)
    providers: ProvidersTable = Field(default_factory=ProvidersTable)

    def pipeline_options(self, *, skip_filtering: bool = False) -> PipelineOptions:
        """Assemble pipeline options from the configured tables."""
        return PipelineOptions(
            generation=self.qa_generation,
            filter=self.qa_filter,
            evaluation=self.evaluation,
            skip_filtering=skip_filtering,
        )


def load_judge_settings(path: Path | None = None) -> JudgeSettings:
    """Load judge settings from a TOML file (defaults if the file is absent).

    The result is immutable data; load it once at startup and pass it on.
    """
    toml_path = path or DEFAULT_CONFIG_PATH
    if not toml_path.exists():
        return JudgeSettings()

    with open(toml_path, "rb") as f:
        data = tomllib.load(f)
    return JudgeSettings.model_validate(data)


# ---------------------------------------------------------------------------
# Environment settings (API keys, endpoint, log level)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RAGJUDGE_",
        extra="ignore",
    )

    # OpenAI-compatible endpoint (OpenAI, OpenRouter, vLLM, ...)
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"

    # Optional fallback providers
    groq_api_key: str = ""

    # Logging
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
