"""
Streaming Response Handler

Consumes one model generation:
- forwards text and reasoning deltas to the output channel as they arrive
- collects complete tool calls for the executor
- reports the finish reason

Streaming bugs are hard to debug, so this is kept apart from the hop loop
to make it easy to log exactly what goes to the UI.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from .logging_utils import log_llm_reply
from .models import (
    ConversationHistory,
    FinishEvent,
    ModelConfig,
    ReasoningDelta,
    TextDelta,
    ToolCallRequest,
    ToolSchema,
)

if TYPE_CHECKING:
    from artifact_chat.clients.provider import ModelProvider

    from .output_channel import OutputChannel

logger = logging.getLogger(__name__)


class ModelStep(BaseModel):
    """Everything one model generation produced."""

    content: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    finish_reason: str | None = None


class StreamingHandler:
    """Runs single model generations and mirrors them onto the output channel."""

    def __init__(
        self,
        provider: ModelProvider,
        output_channel: OutputChannel,
        chat_conf: dict[str, Any],
    ):
        self.provider = provider
        self.output_channel = output_channel
        self.chat_conf = chat_conf

    async def stream_model_step(
        self,
        conv: ConversationHistory,
        model_config: ModelConfig,
        tools: list[ToolSchema] | None,
        hop_number: int = 0,
    ) -> ModelStep:
        """
        Stream one generation.

        Text streams to the UI immediately while tool calls are collected
        for execution after the generation ends. Provider errors propagate.
        """
        logger.info("→ LLM: starting streaming request (hop %d)", hop_number)

        message_parts: list[str] = []
        reasoning_parts: list[str] = []
        tool_calls: list[ToolCallRequest] = []
        finish_reason: str | None = None

        async for event in self.provider.generate(
            model_config.system_prompt or None,
            conv.get_api_format(),
            tools=tools or None,
            temperature=model_config.temperature,
            model=model_config.model_id,
            options=model_config.options or None,
        ):
            if isinstance(event, TextDelta):
                if not event.text:
                    continue
                message_parts.append(event.text)
                await self.output_channel.emit("text", event.text)
            elif isinstance(event, ReasoningDelta):
                reasoning_parts.append(event.text)
                await self.output_channel.emit("reasoning", event.text)
            elif isinstance(event, ToolCallRequest):
                tool_calls.append(event)
            elif isinstance(event, FinishEvent):
                finish_reason = event.finish_reason

        logger.info(
            "← LLM: streaming completed (hop %d), finish_reason=%s",
            hop_number,
            finish_reason,
        )

        step = ModelStep(
            content="".join(message_parts),
            reasoning="".join(reasoning_parts),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )
        log_llm_reply(
            step.content,
            [call.name for call in tool_calls],
            f"hop {hop_number}",
            model_config.model_id,
            self.chat_conf.get("logging", {}).get("llm_reply_truncate", 500),
        )

        for call in tool_calls:
            await self.output_channel.emit(
                "tool_call",
                {"id": call.id, "name": call.name, "arguments": call.arguments},
            )
        return step
