"""
Web Search Agent

Answers a question with the provider's built-in tools, such as web search
enabled through ``providerOptions`` (OpenRouter: ``plugins: [{"id": "web"}]``).
Returns plain text to the calling model; nothing is persisted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from artifact_chat.agent_config import AgentType
from artifact_chat.chat.logging_utils import log_performance
from artifact_chat.chat.models import ToolResult
from artifact_chat.clients.provider import collect_text
from artifact_chat.errors import ArtifactChatError, ErrorCode

from .base import ToolAgent

logger = logging.getLogger(__name__)


class SearchToolInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    query: str = Field(min_length=1)


class WebSearchAgent(ToolAgent):
    agent_type = AgentType.PROVIDER_TOOLS
    required_parameters = ("query",)
    parameter_types = {"query": "string"}

    async def execute(self, raw_input: dict[str, Any]) -> ToolResult:
        try:
            params = SearchToolInput.model_validate(raw_input)
        except ValidationError as e:
            return ToolResult.failure(
                "; ".join(err["msg"] for err in e.errors(include_url=False)),
                ErrorCode.INPUT_VALIDATION_FAILED.value,
            )

        async with log_performance(f"{self.tool_name()} query"):
            try:
                answer = await collect_text(
                    self.deps.provider,
                    self.config.system_prompt,
                    [{"role": "user", "content": params.query}],
                    **self._generation_kwargs(),
                )
            except asyncio.CancelledError:
                raise
            except ArtifactChatError as e:
                logger.warning("Web search failed: %s", e.message)
                return ToolResult.failure(f"Search failed: {e.message}", ErrorCode.GENERATION_FAILED.value)
            except Exception as e:
                logger.warning("Web search failed: %s", e)
                return ToolResult.failure(f"Search failed: {e!s}", ErrorCode.GENERATION_FAILED.value)

        if not answer.strip():
            return ToolResult.failure("The search returned no answer", ErrorCode.GENERATION_FAILED.value)
        return ToolResult.ok(answer)
