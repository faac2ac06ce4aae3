"""
Chat Service

Entry point for one conversation turn:
1. Snapshots the agent config registry for this request and applies overrides
2. Resolves the top-level model settings and the enabled agents
3. Builds the request's tool map and runs the orchestrator under a deadline
4. Closes the output channel, whatever happened

Terminal events and the close never wait on the consumer, so a stalled UI
cannot keep a timed-out turn from returning.

The caller always gets an ``AssistantTurn`` back; failures are reported in
its ``status`` and ``error`` fields and as an ``error`` event on the channel.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from artifact_chat.agent_config import AgentConfigRegistry, AgentType
from artifact_chat.agents import AgentDependencies
from artifact_chat.artifacts import ArtifactVersionStore
from artifact_chat.chat.chat_orchestrator import ChatOrchestrator
from artifact_chat.chat.models import AssistantTurn, ConversationHistory, ModelConfig, RunStatus
from artifact_chat.chat.output_channel import OutputChannel
from artifact_chat.clients.provider import ModelProvider
from artifact_chat.config import Configuration
from artifact_chat.errors import (
    AgentDisabled,
    ArtifactChatError,
    InvalidConfiguration,
    OrchestrationTimeout,
)
from artifact_chat.tool_registry import ToolRegistry, resolve_configs

logger = logging.getLogger(__name__)


class ChatService:
    """
    Conversation turn runner.

    One instance serves every request; all per-request state (registry view,
    agents, tool map, orchestrator) is created inside ``run_turn``.
    """

    class ChatServiceConfig(BaseModel):
        model_config = ConfigDict(arbitrary_types_allowed=True)

        provider: ModelProvider
        registry: AgentConfigRegistry
        store: ArtifactVersionStore
        configuration: Configuration
        tool_registry: ToolRegistry | None = None

    def __init__(self, service_config: ChatServiceConfig):
        self.provider = service_config.provider
        self.registry = service_config.registry
        self.store = service_config.store
        self.configuration = service_config.configuration
        self.tool_registry = service_config.tool_registry or ToolRegistry()

    def open_channel(self) -> OutputChannel:
        """A new output channel sized from configuration."""
        return OutputChannel(self.configuration.get_output_channel_config()["capacity"])

    async def run_turn(
        self,
        messages: ConversationHistory | list[dict[str, Any]],
        output_channel: OutputChannel,
        user_id: str | None = None,
        chat_id: str | None = None,
        overrides: Mapping[str, Mapping[str, Any]] | None = None,
        provider_name: str | None = None,
    ) -> AssistantTurn:
        """
        Run one turn and close ``output_channel`` when done.

        Args:
            messages: Conversation so far, ending with the user's message
            output_channel: Sink for streamed text, tool and artifact events
            user_id: Owner recorded on artifact versions
            chat_id: Conversation recorded on artifact versions
            overrides: ``agent type -> {field: value}`` applied for this
                request only, e.g. ``{"python_agent": {"model_id": "..."}}``
            provider_name: Provider whose agent configs to use; defaults to
                the active provider
        """
        provider_name = provider_name or self.configuration.active_provider
        conv = (
            messages.copy_messages()
            if isinstance(messages, ConversationHistory)
            else ConversationHistory.from_dicts(messages)
        )
        turn = AssistantTurn()
        timeout_seconds = self.configuration.get_run_timeout_seconds()
        logger.info("→ Service: starting turn (provider=%s, chat=%s)", provider_name, chat_id)

        try:
            registry = self.registry.for_request()
            for agent_type, fields in (overrides or {}).items():
                for field, value in fields.items():
                    registry.set_override(agent_type, field, value)

            async with asyncio.timeout(timeout_seconds):
                model_config, descriptions = await self._resolve_chat_model(registry, provider_name)
                configs = await resolve_configs(
                    registry, provider_name, self.configuration.get_enabled_agent_types()
                )
                deps = AgentDependencies(
                    provider=self.provider,
                    store=self.store,
                    output_channel=output_channel,
                    user_id=user_id,
                    chat_id=chat_id,
                    delta_chunk_size=self.configuration.get_output_channel_config()["delta_chunk_size"],
                    max_rebase_attempts=self.configuration.get_max_rebase_attempts(),
                    settings={
                        "github_pat": self.configuration.github_pat,
                        "repository_mcp": self.configuration.get_repository_mcp_config(),
                    },
                )
                tools = self.tool_registry.build(configs, deps, descriptions)
                orchestrator = ChatOrchestrator(
                    self.provider,
                    output_channel,
                    tools,
                    self.configuration.get_chat_service_config(),
                )
                await orchestrator.run(conv, model_config, turn)

        except TimeoutError:
            error = OrchestrationTimeout(
                f"Turn exceeded {timeout_seconds:g}s",
                details={"timeout_seconds": timeout_seconds, "hops": turn.hops},
            )
            logger.warning("Turn timed out after %d tool hops", turn.hops)
            turn.status = RunStatus.TIMEOUT
            turn.finish_reason = "timeout"
            turn.error = error.to_dict()
            output_channel.offer("error", {"error_kind": error.code.value, "message": error.user_message()})
        except ArtifactChatError as e:
            logger.error("Turn failed: %s", e.message)
            turn.status = RunStatus.FAILED
            turn.finish_reason = "error"
            turn.error = e.to_dict()
            output_channel.offer("error", {"error_kind": e.code.value, "message": e.user_message()})
        finally:
            await output_channel.close()

        logger.info(
            "← Service: turn finished (status=%s, hops=%d, tools=%d)",
            turn.status.value,
            turn.hops,
            len(turn.tool_results),
        )
        return turn

    async def _resolve_chat_model(
        self, registry: AgentConfigRegistry, provider_name: str
    ) -> tuple[ModelConfig, dict[str, str]]:
        """Top-level model settings, from the chat model agent config if one is usable."""
        max_tool_hops = self.configuration.get_max_tool_hops()
        try:
            config = await registry.load(AgentType.CHAT_MODEL, provider_name)
        except (AgentDisabled, InvalidConfiguration) as e:
            logger.info("Using configured chat model defaults: %s", e.message)
            defaults = self.configuration.get_chat_model_defaults()
            return (
                ModelConfig(
                    model_id=defaults.get("model_id"),
                    system_prompt=defaults["system_prompt"],
                    temperature=defaults.get("temperature"),
                    max_tool_hops=max_tool_hops,
                ),
                {},
            )

        return (
            ModelConfig(
                model_id=config.model_id,
                system_prompt=config.system_prompt,
                temperature=config.temperature,
                max_tool_hops=max_tool_hops,
                options=dict(config.provider_options),
            ),
            dict(config.tool_descriptions),
        )

    async def close(self) -> None:
        await self.store.close()
        close = getattr(self.provider, "close", None)
        if close is not None:
            await close()
