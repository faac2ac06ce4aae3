"""
Repository Agent

Answers questions about GitHub repositories. Each call opens a session to
the configured read-only GitHub MCP server, offers the server's tools to a
nested, bounded orchestrator run and returns that run's final answer.

The token comes from the ``credentials.github_pat`` override when the caller
supplies one, otherwise from the server environment.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from artifact_chat.agent_config import AgentType
from artifact_chat.chat.chat_orchestrator import ChatOrchestrator
from artifact_chat.chat.logging_utils import log_performance
from artifact_chat.chat.models import ConversationHistory, ModelConfig, ToolDefinition, ToolResult, UserMessage
from artifact_chat.chat.output_channel import OutputChannel
from artifact_chat.clients.repository_mcp import RepositoryMCPClient, tool_result_text
from artifact_chat.errors import ErrorCode

from .base import ToolAgent

logger = logging.getLogger(__name__)


class RepositoryToolInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    query: str = Field(min_length=1)


class RepositoryAgent(ToolAgent):
    agent_type = AgentType.GIT_MCP
    required_parameters = ("query",)
    parameter_types = {"query": "string"}

    async def execute(self, raw_input: dict[str, Any]) -> ToolResult:
        try:
            params = RepositoryToolInput.model_validate(raw_input)
        except ValidationError as e:
            return ToolResult.failure(
                "; ".join(err["msg"] for err in e.errors(include_url=False)),
                ErrorCode.INPUT_VALIDATION_FAILED.value,
            )

        token = self.config.credentials.get("github_pat") or self.deps.settings.get("github_pat")
        if not token:
            return ToolResult.failure(
                "No GitHub personal access token is configured",
                ErrorCode.INVALID_CONFIGURATION.value,
            )
        mcp_config = self.deps.settings.get("repository_mcp", {})
        url = mcp_config.get("url")
        if not url:
            return ToolResult.failure("No repository MCP server URL is configured", ErrorCode.INVALID_CONFIGURATION.value)

        async with log_performance(f"{self.tool_name()} query"):
            try:
                async with RepositoryMCPClient(url, token, mcp_config.get("connection_timeout", 30.0)) as client:
                    tools = await self._build_tools(client)
                    answer = await self._answer(params.query, tools, mcp_config.get("max_tool_hops", 5))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Repository query failed: %s", e)
                return ToolResult.failure(f"Repository query failed: {e!s}", ErrorCode.PROVIDER_ERROR.value)

        if not answer.strip():
            return ToolResult.failure("The repository agent returned no answer", ErrorCode.GENERATION_FAILED.value)
        return ToolResult.ok(answer)

    async def _build_tools(self, client: RepositoryMCPClient) -> dict[str, ToolDefinition]:
        tools: dict[str, ToolDefinition] = {}
        for mcp_tool in await client.list_tools():

            async def call(args: dict[str, Any], _name: str = mcp_tool.name) -> ToolResult:
                result = await client.call_tool(_name, args)
                text = tool_result_text(result)
                if result.isError:
                    return ToolResult.failure(text, "tool_error")
                return ToolResult.ok(text)

            tools[mcp_tool.name] = ToolDefinition(
                name=mcp_tool.name,
                description=mcp_tool.description or "",
                input_schema=mcp_tool.inputSchema,
                execute=call,
            )
        logger.info("← MCP: %d repository tools available", len(tools))
        return tools

    async def _answer(self, query: str, tools: dict[str, ToolDefinition], max_tool_hops: int) -> str:
        # The nested run's events are internal; drain them so sends never block
        channel = OutputChannel()
        drain_task = asyncio.create_task(channel.drain())
        try:
            orchestrator = ChatOrchestrator(self.deps.provider, channel, tools)
            turn = await orchestrator.run(
                ConversationHistory(messages=[UserMessage(content=query)]),
                ModelConfig(
                    model_id=self.config.model_id,
                    system_prompt=self.config.system_prompt,
                    temperature=self.config.temperature,
                    max_tool_hops=max_tool_hops,
                    options=dict(self.config.provider_options),
                ),
            )
        finally:
            await channel.close()
            events = await drain_task
            logger.debug("Nested repository run produced %d events", len(events))
        return turn.content
