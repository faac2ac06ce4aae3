"""
Agent Configuration Models

Validated, immutable views of the per-agent configuration stored under
``<agent_type>_<provider>`` keys in the config backend. Stored JSON uses
camelCase keys; snake_case is accepted as well.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AgentType(str, Enum):
    CHAT_MODEL = "chat_model_agent"
    DOCUMENT = "document_agent"
    PYTHON = "python_agent"
    MERMAID = "mermaid_agent"
    PROVIDER_TOOLS = "provider_tools_agent"
    GIT_MCP = "git_mcp_agent"


def config_key(agent_type: AgentType | str, provider: str) -> str:
    """Backend key for one agent/provider pair, e.g. ``python_agent_google``."""
    value = agent_type.value if isinstance(agent_type, AgentType) else agent_type
    return f"{value}_{provider}"


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
    )


class RateLimit(_ConfigModel):
    """Requests allowed per window; 0 means unlimited."""

    per_minute: int = Field(default=0, ge=0)
    per_hour: int = Field(default=0, ge=0)
    per_day: int = Field(default=0, ge=0)


class ParameterSpec(_ConfigModel):
    """One field of a tool's input, as described to the model."""

    name: str = Field(min_length=1)
    description: str = ""
    type: str = "string"
    enum: list[str] | None = None

    def to_json_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


class OperationPrompt(_ConfigModel):
    """Per-operation prompt overrides.

    ``user_prompt_template`` may use ``{instruction}``, ``{current_content}``
    and ``{error_info}`` placeholders.
    """

    enabled: bool = True
    system_prompt: str | None = None
    user_prompt_template: str | None = None


class AgentConfig(_ConfigModel):
    enabled: bool = False
    system_prompt: str = Field(min_length=1)
    model_id: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    rate_limit: RateLimit = Field(default_factory=RateLimit)
    tool_description: str = ""
    tool_schema: list[ParameterSpec] = Field(default_factory=list)
    # Chat model config only: description overrides keyed by tool name
    tool_descriptions: dict[str, str] = Field(default_factory=dict)
    operations: dict[str, OperationPrompt] = Field(default_factory=dict)
    provider_options: dict[str, Any] = Field(default_factory=dict)
    credentials: dict[str, str] = Field(default_factory=dict, repr=False)

    @field_validator("system_prompt")
    @classmethod
    def _strip_prompt(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("systemPrompt must not be blank")
        return v

    def parameter(self, name: str) -> ParameterSpec | None:
        return next((p for p in self.tool_schema if p.name == name), None)

    def operation_enabled(self, operation: str) -> bool:
        prompt = self.operations.get(operation)
        return prompt is None or prompt.enabled

    def with_overrides(self, overrides: dict[str, Any]) -> AgentConfig:
        """Return a validated copy with ``overrides`` applied.

        Keys are field names (either spelling) or dotted paths into dict
        fields such as ``credentials.api_key``.
        """
        if not overrides:
            return self
        data = self.model_dump()
        for path, value in overrides.items():
            head, _, rest = path.partition(".")
            field = resolve_field_name(head)
            if rest:
                nested = dict(data.get(field) or {})
                nested[rest] = value
                data[field] = nested
            else:
                data[field] = value
        return AgentConfig.model_validate(data)


def resolve_field_name(name: str) -> str:
    """Map a camelCase or snake_case key to the AgentConfig field name."""
    if name in AgentConfig.model_fields:
        return name
    for field_name in AgentConfig.model_fields:
        if to_camel(field_name) == name:
            return field_name
    raise KeyError(f"Unknown agent config field: {name}")
