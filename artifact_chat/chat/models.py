"""
Chat Data Models

Data structures for the orchestration loop: LLM message types, tool schemas
and runtime tool bindings, provider stream events, output channel events and
the aggregated assistant turn. All typed with Pydantic.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ==============================================================================
# CORE CHAT MESSAGES (LLM API Types)
# ==============================================================================


class SystemMessage(BaseModel):
    """System message for setting context."""

    role: Literal["system"] = "system"
    content: str


class UserMessage(BaseModel):
    """User message."""

    role: Literal["user"] = "user"
    content: str


class FunctionCall(BaseModel):
    """Function call within a tool call."""

    name: str
    arguments: str = Field(default="{}")  # JSON string


class ToolCall(BaseModel):
    """Tool call from LLM."""

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class AssistantMessage(BaseModel):
    """Assistant message with optional tool calls."""

    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] | None = None

    @field_validator("tool_calls")
    @classmethod
    def validate_tool_calls(cls, v: list[ToolCall] | None) -> list[ToolCall] | None:
        """Convert empty tool_calls list to None to avoid API errors."""
        if v is not None and len(v) == 0:
            return None
        return v

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssistantMessage:
        """Create AssistantMessage from an OpenAI-style dict."""
        tool_calls = None
        if data.get("tool_calls"):
            tool_calls = [
                ToolCall(
                    id=tc["id"],
                    type=tc.get("type", "function"),
                    function=FunctionCall(
                        name=tc["function"]["name"],
                        arguments=tc["function"].get("arguments") or "{}",
                    ),
                )
                for tc in data["tool_calls"]
            ]

        return cls(content=data.get("content"), tool_calls=tool_calls)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            result["tool_calls"] = [tc.model_dump() for tc in self.tool_calls]
        return result


class ToolMessage(BaseModel):
    """Tool response message."""

    role: Literal["tool"] = "tool"
    content: str
    tool_call_id: str


ChatCompletionMessage = SystemMessage | UserMessage | AssistantMessage | ToolMessage


class ConversationHistory(BaseModel):
    """Ordered message list handed to the model provider."""

    messages: list[ChatCompletionMessage] = Field(default_factory=list)

    def add_message(self, message: ChatCompletionMessage) -> None:
        self.messages.append(message)

    def extend(self, messages: list[ChatCompletionMessage]) -> None:
        self.messages.extend(messages)

    def get_api_format(self) -> list[dict[str, Any]]:
        """Messages as plain dicts, omitting unset fields."""
        out: list[dict[str, Any]] = []
        for msg in self.messages:
            if isinstance(msg, AssistantMessage):
                out.append(msg.to_dict())
            else:
                out.append(msg.model_dump(exclude_none=True))
        return out

    def copy_messages(self) -> ConversationHistory:
        return ConversationHistory(messages=list(self.messages))

    @classmethod
    def from_dicts(cls, messages: list[dict[str, Any]]) -> ConversationHistory:
        """Build a history from ``{"role", "content"}`` dicts."""
        history = cls()
        for raw in messages:
            role = raw.get("role")
            if role == "system":
                history.add_message(SystemMessage(content=raw["content"]))
            elif role == "user":
                history.add_message(UserMessage(content=raw["content"]))
            elif role == "assistant":
                history.add_message(AssistantMessage.from_dict(raw))
            elif role == "tool":
                history.add_message(ToolMessage(content=raw["content"], tool_call_id=raw["tool_call_id"]))
            else:
                raise ValueError(f"Unknown message role: {role!r}")
        return history

    def __len__(self) -> int:
        return len(self.messages)


# ==============================================================================
# TOOL DEFINITIONS AND SCHEMAS
# ==============================================================================


class ToolFunctionDefinition(BaseModel):
    """Tool function definition."""

    name: str
    description: str
    parameters: dict[str, Any]


class ToolSchema(BaseModel):
    """Model-facing tool definition in OpenAI function format."""

    type: Literal["function"] = "function"
    function: ToolFunctionDefinition


class ToolResult(BaseModel):
    """
    Value returned from a tool call to the model.

    ``output`` is either a structured summary (artifact id, version, status)
    or a plain string. It never carries full artifact content.
    """

    success: bool = True
    output: dict[str, Any] | str = ""
    error: str | None = None
    error_kind: str | None = None

    @classmethod
    def ok(cls, output: dict[str, Any] | str) -> ToolResult:
        return cls(success=True, output=output)

    @classmethod
    def failure(cls, error: str, error_kind: str, output: dict[str, Any] | str = "") -> ToolResult:
        return cls(success=False, output=output, error=error, error_kind=error_kind)

    def to_content(self) -> str:
        """Serialize for a tool message in model context."""
        if self.success:
            if isinstance(self.output, str):
                return self.output
            return json.dumps(self.output, default=str)
        payload: dict[str, Any] = {"error": self.error, "error_kind": self.error_kind}
        if self.output:
            payload["details"] = self.output
        return json.dumps(payload, default=str)


ToolExecute = Callable[[dict[str, Any]], Awaitable[ToolResult]]


class ToolDefinition(BaseModel):
    """Runtime tool binding: schema plus the coroutine that executes it.

    Rebuilt for every request and never persisted.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    input_schema: dict[str, Any]
    execute: ToolExecute

    def to_schema(self) -> ToolSchema:
        return ToolSchema(
            function=ToolFunctionDefinition(
                name=self.name,
                description=self.description,
                parameters=self.input_schema,
            )
        )


# ==============================================================================
# STREAMING MODELS
# ==============================================================================


class FunctionCallDelta(BaseModel):
    """Partial function call data in streaming response."""

    name: str | None = None
    arguments: str | None = None


class ToolCallDelta(BaseModel):
    """Partial tool call data in streaming response."""

    index: int | None = None
    id: str | None = None
    type: Literal["function"] | None = None
    function: FunctionCallDelta | None = None


class TextDelta(BaseModel):
    """A piece of generated text."""

    kind: Literal["text"] = "text"
    text: str


class ReasoningDelta(BaseModel):
    """A piece of the provider's thinking side channel."""

    kind: Literal["reasoning"] = "reasoning"
    text: str


class ToolCallRequest(BaseModel):
    """A complete tool call emitted by the model."""

    kind: Literal["tool_call"] = "tool_call"
    id: str
    name: str
    arguments: str = "{}"

    def to_tool_call(self) -> ToolCall:
        return ToolCall(id=self.id, function=FunctionCall(name=self.name, arguments=self.arguments))


class FinishEvent(BaseModel):
    """End of one model generation."""

    kind: Literal["finish"] = "finish"
    finish_reason: str | None = None


ProviderEvent = TextDelta | ReasoningDelta | ToolCallRequest | FinishEvent


# ==============================================================================
# OUTPUT CHANNEL EVENTS
# ==============================================================================


OutputEventType = Literal[
    "metadata",
    "clear",
    "delta",
    "finish",
    "text",
    "reasoning",
    "tool_call",
    "tool_result",
    "suggestion",
    "error",
]


class OutputEvent(BaseModel):
    """Tagged event written to the output channel for the UI layer."""

    model_config = ConfigDict(frozen=True)

    type: OutputEventType
    artifact_kind: str | None = None
    payload: Any = None


# ==============================================================================
# ORCHESTRATION MODELS
# ==============================================================================


class RunStatus(str, Enum):
    COMPLETED = "completed"
    STEP_BOUND_REACHED = "step_bound_reached"
    TIMEOUT = "timeout"
    FAILED = "failed"


class ModelConfig(BaseModel):
    """Per-run settings for the top-level model."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str | None = None
    system_prompt: str = ""
    temperature: float | None = None
    max_tool_hops: int = Field(default=8, ge=1)
    options: dict[str, Any] = Field(default_factory=dict)


class ToolExecutionRecord(BaseModel):
    """One executed tool call and its result."""

    tool_call_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    result: ToolResult
    hop: int = 0


class AssistantTurn(BaseModel):
    """Aggregate of everything a single orchestration run produced."""

    content: str = ""
    reasoning: str = ""
    tool_results: list[ToolExecutionRecord] = Field(default_factory=list)
    status: RunStatus = RunStatus.COMPLETED
    finish_reason: str | None = None
    hops: int = 0
    error: dict[str, Any] | None = None
