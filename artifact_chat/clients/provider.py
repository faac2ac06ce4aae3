"""Model provider interface shared by the orchestrator and the artifact agents."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

from artifact_chat.chat.models import ProviderEvent, TextDelta, ToolSchema


@runtime_checkable
class ModelProvider(Protocol):
    """Streaming text generation with optional tool calling.

    One ``generate`` call is one model step: it yields text and reasoning
    deltas as they arrive, then every complete tool call in emission order,
    then a single ``FinishEvent``. Providers without tool support ignore
    ``tools`` and never yield tool calls.
    """

    def generate(
        self,
        system_prompt: str | None,
        messages: list[dict[str, Any]],
        tools: list[ToolSchema] | None = None,
        temperature: float | None = None,
        model: str | None = None,
        options: dict[str, Any] | None = None,
        api_key: str | None = None,
    ) -> AsyncIterator[ProviderEvent]: ...


async def collect_text(
    provider: ModelProvider,
    system_prompt: str | None,
    messages: list[dict[str, Any]],
    **kwargs: Any,
) -> str:
    """Run one tool-less generation and return the concatenated text."""
    parts: list[str] = []
    async for event in provider.generate(system_prompt, messages, **kwargs):
        if isinstance(event, TextDelta):
            parts.append(event.text)
    return "".join(parts)
