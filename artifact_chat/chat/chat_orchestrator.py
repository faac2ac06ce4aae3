"""
Chat Orchestrator

Runs the bounded tool-calling loop for one user turn:

1. Stream a model reply with the per-request tool schemas attached
2. Execute any tool calls it contains, in order, and append the results
3. Ask the model again, until it answers without tools or the hop limit hits

With an empty tool map the loop degrades to a single plain chat step.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from artifact_chat.errors import ArtifactChatError

from .models import (
    AssistantMessage,
    AssistantTurn,
    ConversationHistory,
    ModelConfig,
    RunStatus,
    SystemMessage,
    ToolDefinition,
    ToolMessage,
)
from .streaming_handler import ModelStep, StreamingHandler
from .tool_executor import ToolExecutor

if TYPE_CHECKING:
    from artifact_chat.clients.provider import ModelProvider

    from .output_channel import OutputChannel

logger = logging.getLogger(__name__)

TOOL_LIMIT_FINISH_REASON = "tool_limit_reached"

_LIMIT_NOTICE = (
    "The tool call limit for this turn has been reached. Do not call any more "
    "tools. Answer the user with what you have so far and mention anything "
    "that is still unfinished."
)


def tool_limit_warning(max_tool_hops: int) -> str:
    return f"⚠️ Reached maximum tool call limit ({max_tool_hops}). Stopping to prevent infinite recursion."


class ChatOrchestrator:
    """One orchestrator per request; it holds the request's tool map."""

    def __init__(
        self,
        provider: ModelProvider,
        output_channel: OutputChannel,
        tools: Mapping[str, ToolDefinition] | None = None,
        chat_conf: dict[str, Any] | None = None,
    ):
        self.provider = provider
        self.output_channel = output_channel
        self.tools: Mapping[str, ToolDefinition] = tools or {}
        self.chat_conf = chat_conf or {}
        self.streaming_handler = StreamingHandler(provider, output_channel, self.chat_conf)
        self.tool_executor = ToolExecutor(self.tools, self.chat_conf)

    async def run(
        self,
        conv: ConversationHistory,
        model_config: ModelConfig,
        turn: AssistantTurn | None = None,
    ) -> AssistantTurn:
        """
        Run the loop to completion and return the aggregated turn.

        ``turn`` is filled in place as the run progresses, so a caller that
        cancels the run (for example on a deadline) still holds the partial
        result. ``conv`` gains the assistant and tool messages of the run.
        Provider errors propagate.
        """
        turn = turn if turn is not None else AssistantTurn()
        tool_schemas = [tool.to_schema() for tool in self.tools.values()] or None
        if tool_schemas is None:
            logger.info("→ Orchestrator: no tools available, running plain chat")

        step = await self.streaming_handler.stream_model_step(conv, model_config, tool_schemas, hop_number=0)
        self._absorb(turn, step)

        while step.tool_calls:
            if turn.hops >= model_config.max_tool_hops:
                logger.warning("Maximum tool hops (%d) reached, stopping recursion", model_config.max_tool_hops)
                await self._finish_at_limit(conv, model_config, turn, step)
                return turn

            turn.hops += 1
            logger.info("Starting tool call iteration %d", turn.hops)
            conv.add_message(
                AssistantMessage(
                    content=step.content or None,
                    tool_calls=[call.to_tool_call() for call in step.tool_calls],
                )
            )

            records = await self.tool_executor.execute_tool_calls(step.tool_calls, hop=turn.hops)
            for record in records:
                conv.add_message(ToolMessage(content=record.result.to_content(), tool_call_id=record.tool_call_id))
                turn.tool_results.append(record)
                await self.output_channel.emit(
                    "tool_result",
                    {
                        "tool_call_id": record.tool_call_id,
                        "name": record.name,
                        "success": record.result.success,
                        "output": record.result.output,
                        "error": record.result.error,
                        "error_kind": record.result.error_kind,
                    },
                )

            logger.info("→ LLM: requesting follow-up response for hop %d", turn.hops)
            step = await self.streaming_handler.stream_model_step(
                conv, model_config, tool_schemas, hop_number=turn.hops
            )
            self._absorb(turn, step)

        if step.content:
            conv.add_message(AssistantMessage(content=step.content))
        turn.status = RunStatus.COMPLETED
        turn.finish_reason = step.finish_reason or "stop"
        logger.info("← Orchestrator: turn completed after %d tool hops", turn.hops)
        return turn

    async def _finish_at_limit(
        self,
        conv: ConversationHistory,
        model_config: ModelConfig,
        turn: AssistantTurn,
        pending: ModelStep,
    ) -> None:
        """
        Close a run whose model still wants tools after the last allowed hop.

        The pending calls are dropped. When enabled, the model gets one more
        step with tools withheld so the user still receives a real answer;
        otherwise, or if that step fails, a fixed warning is appended.
        """
        turn.status = RunStatus.STEP_BOUND_REACHED
        turn.finish_reason = TOOL_LIMIT_FINISH_REASON
        logger.info("Dropping %d tool calls past the hop limit", len(pending.tool_calls))

        if pending.content:
            conv.add_message(AssistantMessage(content=pending.content))

        if self.chat_conf.get("final_turn_on_limit", True):
            conv.add_message(SystemMessage(content=_LIMIT_NOTICE))
            try:
                final = await self.streaming_handler.stream_model_step(
                    conv, model_config, None, hop_number=turn.hops + 1
                )
            except ArtifactChatError as e:
                logger.warning("Final tool-less step failed: %s", e.message)
            else:
                self._absorb(turn, final)
                if final.content.strip():
                    conv.add_message(AssistantMessage(content=final.content))
                    return

        warning = tool_limit_warning(model_config.max_tool_hops)
        turn.content = f"{turn.content}\n\n{warning}" if turn.content else warning
        await self.output_channel.emit("text", warning)

    @staticmethod
    def _absorb(turn: AssistantTurn, step: ModelStep) -> None:
        if step.content:
            turn.content = f"{turn.content}\n\n{step.content}" if turn.content else step.content
        if step.reasoning:
            turn.reasoning += step.reasoning
