"""Judge model construction.

The primary judge is any OpenAI-compatible chat endpoint. Groq and a local
Ollama server can be enabled in ragjudge.toml as backups; each model is
followed by a reply-length guard, so an empty reply moves on to the next
model in the chain.
"""

from __future__ import annotations

from typing import Any

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.runnables import Runnable, RunnableLambda
from langchain_openai import ChatOpenAI

from ragjudge.completion import LangChainCompletionService
from ragjudge.config import JudgeSettings, Settings, get_settings, load_judge_settings

logger = structlog.get_logger(__name__)

OLLAMA_DEFAULT_URL = "http://localhost:11434"


def _make_length_validator(min_chars: int) -> RunnableLambda:
    """Guard that rejects replies shorter than ``min_chars`` after stripping.

    The ``ValueError`` it raises is what ``with_fallbacks()`` reacts to.
    """

    def check_reply(message: BaseMessage) -> BaseMessage:
        text = message.content or ""
        if not isinstance(text, str):
            text = str(text)
        length = len(text.strip())
        if length < min_chars:
            raise ValueError(
                f"Judge reply too short: {length} chars, need at least {min_chars}"
            )
        return message

    return RunnableLambda(check_reply)


def ollama_call_params(**kwargs: Any) -> dict[str, Any]:
    """Translate OpenAI-style call arguments into Ollama's ``options`` / ``format``.

    ``ollama.AsyncClient.chat`` has no ``temperature`` or ``max_tokens``
    parameters; sampling goes in ``options`` and JSON mode is ``format="json"``.
    """
    options: dict[str, Any] = {}
    if kwargs.get("temperature") is not None:
        options["temperature"] = kwargs["temperature"]
    if kwargs.get("max_tokens") is not None:
        options["num_predict"] = kwargs["max_tokens"]

    params: dict[str, Any] = {}
    if options:
        params["options"] = options
    if kwargs.get("response_format"):
        params["format"] = "json"
    return params


def _ollama_backup(model: BaseChatModel) -> Runnable:
    """Wrap an Ollama chat model so per-call arguments reach it in its own terms."""

    def call(messages: list[BaseMessage], **kwargs: Any) -> BaseMessage:
        return model.invoke(messages, **ollama_call_params(**kwargs))

    async def acall(messages: list[BaseMessage], **kwargs: Any) -> BaseMessage:
        return await model.ainvoke(messages, **ollama_call_params(**kwargs))

    return RunnableLambda(call, afunc=acall, name="ollama_backup")


def _backup_models(judge_settings: JudgeSettings, settings: Settings) -> list[Runnable]:
    backups: list[Runnable] = []
    timeout = judge_settings.defaults.timeout

    groq = judge_settings.providers.groq
    if groq.enabled and not settings.groq_api_key:
        logger.warning("groq_backup_skipped", reason="RAGJUDGE_GROQ_API_KEY not set")
    elif groq.enabled:
        from langchain_groq import ChatGroq

        backups.append(
            ChatGroq(model=groq.default_model, api_key=settings.groq_api_key, timeout=timeout)
        )
        logger.debug("judge_backup", provider="groq", model=groq.default_model)

    ollama = judge_settings.providers.ollama
    if ollama.enabled:
        from langchain_ollama import ChatOllama

        backups.append(
            _ollama_backup(
                ChatOllama(
                    model=ollama.default_model,
                    base_url=ollama.base_url or OLLAMA_DEFAULT_URL,
                )
            )
        )
        logger.debug("judge_backup", provider="ollama", model=ollama.default_model)

    return backups


def create_llm(
    judge_settings: JudgeSettings | None = None,
    settings: Settings | None = None,
) -> Runnable:
    """Build the judge runnable: ``primary | guard``, plus guarded backups if any.

    Temperature, max tokens and JSON mode are per-call arguments supplied by
    ``LangChainCompletionService``, not fixed on the model.
    """
    settings = settings or get_settings()
    judge_settings = judge_settings or load_judge_settings()
    defaults = judge_settings.defaults

    guard = _make_length_validator(defaults.min_response_length)
    primary = ChatOpenAI(
        model=defaults.model,
        openai_api_key=settings.api_key,
        openai_api_base=settings.base_url,
        timeout=defaults.timeout,
    )
    chain: Runnable = primary | guard

    backups = [model | guard for model in _backup_models(judge_settings, settings)]
    if not backups:
        return chain
    return chain.with_fallbacks(backups)


def create_completion_service(
    judge_settings: JudgeSettings | None = None,
    settings: Settings | None = None,
) -> LangChainCompletionService:
    return LangChainCompletionService(create_llm(judge_settings, settings))
