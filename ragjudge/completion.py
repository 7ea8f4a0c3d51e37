"""Text completion capability used by every judge call.

``TextCompletionService`` is the only seam to the language model: a prompt
goes in, free-form text comes out. ``LangChainCompletionService`` adapts any
LangChain chat model (see ``ragjudge.models.create_llm``) to that contract.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_core.runnables import Runnable

from ragjudge.utils.cancellation import await_cancellable, raise_if_cancelled

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ChatMessage:
    """A prior conversation turn (role is system, user or assistant)."""

    role: str
    content: str


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float | None = None
    max_tokens: int | None = None
    system_prompt: str | None = None
    messages: Sequence[ChatMessage] = field(default_factory=tuple)
    json_mode: bool = False
    response_schema: str | None = None


class TextCompletionService(Protocol):
    """Prompt -> text capability backed by an arbitrary model."""

    async def complete(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str: ...

    def stream(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[str]: ...


def _to_langchain_message(message: ChatMessage) -> BaseMessage:
    role = message.role.lower()
    if role == "system":
        return SystemMessage(content=message.content)
    if role == "assistant":
        return AIMessage(content=message.content)
    return HumanMessage(content=message.content)


def _content_text(content) -> str:  # noqa: ANN001
    if not content:
        return ""
    if isinstance(content, str):
        return content
    # Multi-part content blocks
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LangChainCompletionService:
    """Completion service over a LangChain chat model or runnable chain."""

    def __init__(self, llm: Runnable) -> None:
        self._llm = llm

    @staticmethod
    def build_messages(prompt: str, options: CompletionOptions) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        if options.system_prompt:
            messages.append(SystemMessage(content=options.system_prompt))
        messages.extend(_to_langchain_message(m) for m in options.messages)
        messages.append(HumanMessage(content=prompt))
        return messages

    @staticmethod
    def call_kwargs(options: CompletionOptions) -> dict:
        """Per-call model parameters forwarded to ``ainvoke`` / ``astream``."""
        kwargs: dict = {}
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens
        if options.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def complete(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        raise_if_cancelled(cancel)
        options = options or CompletionOptions()
        messages = self.build_messages(prompt, options)
        response = await await_cancellable(
            self._llm.ainvoke(messages, **self.call_kwargs(options)), cancel
        )
        text = _content_text(response.content)
        logger.debug("completion_done", prompt_chars=len(prompt), response_chars=len(text))
        return text

    async def stream(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        options = options or CompletionOptions()
        messages = self.build_messages(prompt, options)
        raise_if_cancelled(cancel)
        async for chunk in self._llm.astream(messages, **self.call_kwargs(options)):
            raise_if_cancelled(cancel)
            text = _content_text(chunk.content)
            if text:
                yield text
