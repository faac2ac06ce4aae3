"""
Tool Registry

Turns resolved agent configs into the per-request tool map offered to the
top-level model. An agent is offered only when its config is enabled and its
tool schema describes every input the agent accepts; anything else is left
out of the map, so the model never sees it.

Design goals:
- Closed lookup table from agent type to implementation, no reflection
- One bad config never breaks the build; it only drops that tool
- Tool definitions are rebuilt for every request and never persisted
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from artifact_chat.agent_config import AgentConfig, AgentType
from artifact_chat.agents import AGENT_CLASSES, AgentDependencies, ToolAgent
from artifact_chat.chat.models import ToolDefinition, ToolResult
from artifact_chat.errors import AgentDisabled, InvalidConfiguration

if TYPE_CHECKING:
    from artifact_chat.agent_config import AgentConfigRegistry

logger = logging.getLogger(__name__)


def build_input_schema(agent_cls: type[ToolAgent], config: AgentConfig) -> dict[str, Any]:
    """
    JSON schema for the agent's input, with descriptions taken from config.

    Raises:
        InvalidConfiguration: The tool description is empty or a parameter
            the agent accepts has no description.
    """
    name = agent_cls.tool_name()
    if not config.tool_description.strip():
        raise InvalidConfiguration(f"{name} has no tool description", details={"tool": name})

    properties: dict[str, Any] = {}
    for param in (*agent_cls.required_parameters, *agent_cls.optional_parameters):
        spec = config.parameter(param)
        if spec is None or not spec.description.strip():
            raise InvalidConfiguration(
                f"{name} parameter '{param}' has no description",
                details={"tool": name, "parameter": param},
            )
        prop = spec.to_json_schema()
        prop["type"] = agent_cls.parameter_types.get(param, spec.type)
        properties[param] = prop

    operations = agent_cls.operation_choices(config)
    if operations is not None:
        if not operations:
            raise InvalidConfiguration(f"{name} has every operation disabled", details={"tool": name})
        properties["operation"]["enum"] = operations

    return {
        "type": "object",
        "properties": properties,
        "required": list(agent_cls.required_parameters),
        "additionalProperties": False,
    }


class ToolRegistry:
    """Builds tool maps from the agent lookup table."""

    def __init__(self, agent_classes: Mapping[AgentType, type[ToolAgent]] | None = None) -> None:
        self.agent_classes = dict(agent_classes if agent_classes is not None else AGENT_CLASSES)

    def build(
        self,
        configs: Mapping[AgentType, AgentConfig],
        deps: AgentDependencies,
        description_overrides: Mapping[str, str] | None = None,
    ) -> dict[str, ToolDefinition]:
        """
        Build ``tool name -> ToolDefinition`` for every usable config.

        ``deps`` binds the tools to this request's output channel, user and
        chat. Each tool closes over its own freshly constructed agent.
        """
        description_overrides = description_overrides or {}
        tools: dict[str, ToolDefinition] = {}

        for agent_type, config in configs.items():
            agent_cls = self.agent_classes.get(agent_type)
            if agent_cls is None:
                logger.warning("No agent implementation for %s, skipping", agent_type.value)
                continue
            if not config.enabled:
                logger.info("Skipping disabled agent %s", agent_type.value)
                continue

            try:
                input_schema = build_input_schema(agent_cls, config)
            except InvalidConfiguration as e:
                logger.warning("Skipping %s: %s", agent_type.value, e.message)
                continue

            name = agent_cls.tool_name()
            tools[name] = ToolDefinition(
                name=name,
                description=description_overrides.get(name) or config.tool_description,
                input_schema=input_schema,
                execute=_bind(agent_cls(config, deps)),
            )

        logger.info("← Tools: built %d tools: %s", len(tools), ", ".join(tools) or "none")
        return tools


def _bind(agent: ToolAgent):
    async def execute(args: dict[str, Any]) -> ToolResult:
        return await agent.execute(args)

    return execute


async def resolve_configs(
    registry: AgentConfigRegistry,
    provider: str,
    agent_types: Iterable[AgentType | str],
) -> dict[AgentType, AgentConfig]:
    """
    Load configs for ``agent_types``, in order, leaving out the unusable ones.

    Disabled and invalid agents are skipped. ``ConfigFetchFailed`` propagates:
    a backend that cannot be reached is a failure of the whole turn.
    """
    configs: dict[AgentType, AgentConfig] = {}
    for raw_type in agent_types:
        try:
            agent_type = AgentType(raw_type)
        except ValueError:
            logger.warning("Unknown agent type %r in configuration, skipping", raw_type)
            continue

        try:
            configs[agent_type] = await registry.load(agent_type, provider)
        except AgentDisabled:
            logger.info("Agent %s is disabled for %s", agent_type.value, provider)
        except InvalidConfiguration as e:
            logger.warning("Agent %s unavailable: %s", agent_type.value, e.message)
    return configs
