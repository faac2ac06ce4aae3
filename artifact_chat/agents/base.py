"""
Artifact Agent Base

Every model-callable agent implements ``ToolAgent``: it is constructed per
request from its validated config plus the request's dependencies, and its
``execute`` turns a raw tool-call argument dict into a ``ToolResult``.

``StreamingArtifactAgent`` is the shared state machine for the document,
code and diagram agents:

    IDLE -> GENERATING -> STREAMING -> PERSISTING -> DONE
                 ^                            |
                 +---------- rebase ----------+

    GENERATING | STREAMING | PERSISTING -> FAILED

A write whose base version is no longer the latest is rejected by the
store; the agent then starts over from the new latest version, up to
``max_rebase_attempts`` times. Operations that write nothing go straight
from STREAMING to DONE.

Failures never escape ``execute``; they come back as failure results so the
top-level model can react to them in conversation.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar, Literal, cast

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from artifact_chat.agent_config import AgentConfig, AgentType
from artifact_chat.artifacts import ArtifactKind, ArtifactVersion, ArtifactVersionStore
from artifact_chat.chat.logging_utils import log_performance
from artifact_chat.chat.models import ReasoningDelta, TextDelta, ToolResult
from artifact_chat.chat.output_channel import OutputChannel
from artifact_chat.clients.provider import ModelProvider
from artifact_chat.errors import (
    ArtifactChatError,
    ErrorCode,
    GenerationFailed,
    InputValidationFailed,
    PersistenceFailed,
    StaleParentVersion,
)

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 100

_FENCE_RE = re.compile(r"^\s*```[\w+-]*\s*\n(?P<body>.*?)\n?```\s*$", re.DOTALL)


class AgentDependencies(BaseModel):
    """Per-request collaborators shared by every agent built for one turn."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    provider: ModelProvider
    store: ArtifactVersionStore
    output_channel: OutputChannel
    user_id: str | None = None
    chat_id: str | None = None
    delta_chunk_size: int = Field(default=400, ge=1)
    max_rebase_attempts: int = Field(default=3, ge=0)
    settings: dict[str, Any] = Field(default_factory=dict)


class ToolAgent(ABC):
    """Uniform interface behind every tool in the tool map."""

    agent_type: ClassVar[AgentType]
    # Input fields the model-facing schema must describe
    required_parameters: ClassVar[tuple[str, ...]] = ()
    optional_parameters: ClassVar[tuple[str, ...]] = ()
    parameter_types: ClassVar[dict[str, str]] = {}

    def __init__(self, config: AgentConfig, deps: AgentDependencies) -> None:
        self.config = config
        self.deps = deps

    @classmethod
    def tool_name(cls) -> str:
        return cls.agent_type.value

    @classmethod
    def operation_choices(cls, config: AgentConfig) -> list[str] | None:
        """Enum values for the ``operation`` parameter, if the agent has one."""
        return None

    @abstractmethod
    async def execute(self, raw_input: dict[str, Any]) -> ToolResult: ...

    def _generation_kwargs(self) -> dict[str, Any]:
        return {
            "temperature": self.config.temperature,
            "model": self.config.model_id,
            "options": dict(self.config.provider_options) or None,
            "api_key": self.config.credentials.get("api_key"),
        }


# ==============================================================================
# ARTIFACT TOOL INPUT
# ==============================================================================


Operation = Literal["create", "update", "revert", "fix", "explain", "suggestion"]


class ArtifactToolInput(BaseModel):
    """``{operation, instruction, artifactId?, targetVersion?}``."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    operation: Operation
    instruction: str = ""
    artifact_id: str | None = Field(default=None, alias="artifactId")
    target_version: int | None = Field(default=None, alias="targetVersion", ge=1)

    @model_validator(mode="after")
    def _check_operation_fields(self) -> ArtifactToolInput:
        if self.operation == "create":
            if self.artifact_id is not None:
                raise ValueError("artifactId is not allowed for create")
        elif not self.artifact_id:
            raise ValueError(f"artifactId is required for {self.operation}")

        if self.target_version is not None and self.operation != "revert":
            raise ValueError("targetVersion is only allowed for revert")

        if self.operation != "revert" and not self.instruction.strip():
            raise ValueError(f"instruction is required for {self.operation}")
        return self


# ==============================================================================
# STREAMING ARTIFACT AGENT
# ==============================================================================


class AgentState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    STREAMING = "streaming"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[AgentState, frozenset[AgentState]] = {
    AgentState.IDLE: frozenset({AgentState.GENERATING}),
    AgentState.GENERATING: frozenset({AgentState.STREAMING, AgentState.FAILED}),
    AgentState.STREAMING: frozenset({AgentState.PERSISTING, AgentState.DONE, AgentState.FAILED}),
    AgentState.PERSISTING: frozenset({AgentState.DONE, AgentState.FAILED, AgentState.GENERATING}),
    AgentState.DONE: frozenset(),
    AgentState.FAILED: frozenset(),
}


def derive_title(instruction: str, kind: ArtifactKind) -> str:
    """First non-empty line of the instruction, capped at TITLE_MAX_LENGTH."""
    for line in instruction.splitlines():
        line = line.strip()
        if line:
            return line[:TITLE_MAX_LENGTH]
    return f"Untitled {kind.value}"


class _PromptValues(dict[str, str]):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class StreamingArtifactAgent(ToolAgent):
    """Generates or edits one artifact kind and writes it as a new version."""

    kind: ClassVar[ArtifactKind]
    operations: ClassVar[tuple[str, ...]] = ("create", "update", "revert")
    required_parameters = ("operation", "instruction")
    optional_parameters = ("artifactId", "targetVersion")
    parameter_types = {"operation": "string", "instruction": "string", "artifactId": "string", "targetVersion": "integer"}

    # Appended to the configured system prompt
    output_rules: ClassVar[str] = ""
    default_templates: ClassVar[dict[str, str]] = {
        "create": "{instruction}",
        "update": (
            "Here is the current content:\n\n{current_content}\n\n"
            "Apply this change and return the complete updated content:\n{instruction}"
        ),
    }

    def __init__(self, config: AgentConfig, deps: AgentDependencies) -> None:
        super().__init__(config, deps)
        self.state = AgentState.IDLE
        self.state_history: list[AgentState] = [AgentState.IDLE]

    @classmethod
    def operation_choices(cls, config: AgentConfig) -> list[str]:
        return [op for op in cls.operations if config.operation_enabled(op)]

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, new_state: AgentState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal agent transition {self.state.value} -> {new_state.value}")
        logger.debug("%s: %s -> %s", self.kind.value, self.state.value, new_state.value)
        self.state = new_state
        self.state_history.append(new_state)

    def _reset(self) -> None:
        self.state = AgentState.IDLE
        self.state_history = [AgentState.IDLE]

    def _fail(self, error: ArtifactChatError) -> ToolResult:
        if self.state not in (AgentState.IDLE, AgentState.DONE, AgentState.FAILED):
            self._transition(AgentState.FAILED)
        return ToolResult.failure(error.message, error.code.value, output=error.details)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def execute(self, raw_input: dict[str, Any]) -> ToolResult:
        """Tool entry point: validate the model's arguments and run the operation."""
        return await self._execute(raw_input)

    async def create(self, instruction: str, artifact_id: str | None = None) -> ToolResult:
        """Create a new artifact, optionally under a caller-chosen id."""
        return await self._execute({"operation": "create", "instruction": instruction}, new_artifact_id=artifact_id)

    async def update(self, artifact_id: str, instruction: str) -> ToolResult:
        return await self._execute({"operation": "update", "artifactId": artifact_id, "instruction": instruction})

    async def revert(self, artifact_id: str, target_version: int | None = None) -> ToolResult:
        raw: dict[str, Any] = {"operation": "revert", "artifactId": artifact_id}
        if target_version is not None:
            raw["targetVersion"] = target_version
        return await self._execute(raw)

    async def _execute(self, raw_input: dict[str, Any], new_artifact_id: str | None = None) -> ToolResult:
        try:
            params = ArtifactToolInput.model_validate(raw_input)
        except ValidationError as e:
            errors = [err["msg"] for err in e.errors(include_url=False)]
            logger.warning("Rejected %s input: %s", self.tool_name(), errors)
            return ToolResult.failure(
                "; ".join(errors),
                ErrorCode.INPUT_VALIDATION_FAILED.value,
            )

        if params.operation not in self.operation_choices(self.config):
            return ToolResult.failure(
                f"Operation '{params.operation}' is not available for {self.kind.value} artifacts",
                ErrorCode.INPUT_VALIDATION_FAILED.value,
            )

        self._reset()
        async with log_performance(f"{self.tool_name()} {params.operation}"):
            try:
                return await self._run_operation(params, new_artifact_id)
            except ArtifactChatError as e:
                logger.warning("%s %s failed: %s", self.tool_name(), params.operation, e.message)
                await self._emit_error(params.artifact_id or new_artifact_id, e)
                return self._fail(e)

    async def _run_operation(self, params: ArtifactToolInput, new_artifact_id: str | None) -> ToolResult:
        if params.operation == "revert":
            return await self._rebasing(self._revert, params)
        return await self._rebasing(self._generate, params, new_artifact_id)

    async def _rebasing(self, operation: Callable[..., Awaitable[ToolResult]], *args: Any) -> ToolResult:
        """Run ``operation``, starting over whenever another writer saved first."""
        attempts = self.deps.max_rebase_attempts
        rebases = 0
        while True:
            try:
                return await operation(*args)
            except StaleParentVersion as e:
                if rebases >= attempts:
                    raise
                rebases += 1
                logger.info(
                    "%s: %s moved on to %s, rebasing (%d/%d)",
                    self.tool_name(),
                    e.details.get("artifact_id"),
                    e.details.get("latest_version_id"),
                    rebases,
                    attempts,
                )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def _generate(self, params: ArtifactToolInput, new_artifact_id: str | None = None) -> ToolResult:
        """create / update / fix / explain."""
        self._transition(AgentState.GENERATING)

        latest: ArtifactVersion | None = None
        if params.operation == "create":
            artifact_id = new_artifact_id or str(uuid.uuid4())
            if new_artifact_id and await self.deps.store.list_versions(new_artifact_id):
                raise InputValidationFailed(
                    f"Artifact {new_artifact_id} already exists; use update",
                    details={"artifact_id": new_artifact_id},
                )
            title = derive_title(params.instruction, self.kind)
        else:
            latest = await self.deps.store.get_latest(cast(str, params.artifact_id))
            self._check_kind(latest)
            artifact_id = latest.id
            title = latest.title

        system_prompt, user_prompt = self.build_prompt(params, latest)
        await self._emit_start(artifact_id, title, params.operation)

        raw_content = await self._stream_generation(system_prompt, user_prompt)
        content = self.post_process(raw_content)
        if content != raw_content:
            # Replace what the UI has with the cleaned content
            await self.deps.output_channel.emit("clear", {"id": artifact_id}, self.kind.value)
            await self._emit_chunks(content)
        warnings = self.validate_content(content)

        self._transition(AgentState.PERSISTING)
        metadata: dict[str, Any] = {"update_type": params.operation}
        if warnings:
            metadata["warnings"] = warnings
        version = await self._persist(
            artifact_id=artifact_id,
            content=content,
            title=title,
            parent_version_id=latest.version_id if latest else None,
            metadata=metadata,
        )
        self._transition(AgentState.DONE)
        await self.deps.output_channel.emit(
            "finish", {"id": version.id, "version": version.version_number}, self.kind.value
        )

        output = version.summary()
        output["status"] = "created" if params.operation == "create" else "updated"
        output["operation"] = params.operation
        if warnings:
            output["warnings"] = warnings
        return ToolResult.ok(output)

    async def _revert(self, params: ArtifactToolInput) -> ToolResult:
        """Copy an earlier version's content into a new version, no model call."""
        self._transition(AgentState.GENERATING)

        latest = await self.deps.store.get_latest(cast(str, params.artifact_id))
        self._check_kind(latest)
        target_number = params.target_version or latest.version_number - 1
        if target_number < 1 or target_number >= latest.version_number:
            raise InputValidationFailed(
                f"Cannot revert {latest.id} to version {target_number}; "
                f"valid targets are 1..{latest.version_number - 1}",
                details={"artifact_id": latest.id, "latest_version": latest.version_number},
            )
        target = await self.deps.store.get_version(latest.id, target_number)

        await self._emit_start(latest.id, latest.title, "revert")
        self._transition(AgentState.STREAMING)
        await self._emit_chunks(target.content)

        self._transition(AgentState.PERSISTING)
        version = await self._persist(
            artifact_id=latest.id,
            content=target.content,
            title=target.title or latest.title,
            parent_version_id=latest.version_id,
            metadata={
                "update_type": "revert",
                "reverted_from": latest.version_number,
                "reverted_to": target_number,
            },
        )
        self._transition(AgentState.DONE)
        await self.deps.output_channel.emit(
            "finish", {"id": version.id, "version": version.version_number}, self.kind.value
        )

        output = version.summary()
        output.update(
            status="reverted",
            operation="revert",
            is_revert=True,
            reverted_from=latest.version_number,
            reverted_to=target_number,
        )
        return ToolResult.ok(output)

    def _check_kind(self, version: ArtifactVersion) -> None:
        if version.kind != self.kind:
            raise InputValidationFailed(
                f"Artifact {version.id} is a {version.kind.value}, not a {self.kind.value}",
                details={"artifact_id": version.id},
            )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def rules_for(self, operation: str) -> str:
        return self.output_rules

    def build_prompt(self, params: ArtifactToolInput, latest: ArtifactVersion | None) -> tuple[str, str]:
        """Return ``(system_prompt, user_prompt)`` for a generating operation."""
        op_config = self.config.operations.get(params.operation)
        system_prompt = (op_config.system_prompt if op_config and op_config.system_prompt else None) or self.config.system_prompt
        rules = self.rules_for(params.operation)
        if rules:
            system_prompt = f"{system_prompt}\n\n{rules}"

        template = (
            (op_config.user_prompt_template if op_config else None)
            or self.default_templates.get(params.operation)
            or self.default_templates["update"]
        )
        values = _PromptValues(
            instruction=params.instruction,
            current_content=latest.content if latest else "",
            error_info=params.instruction,
        )
        return system_prompt, template.format_map(values)

    async def _stream_generation(self, system_prompt: str, user_prompt: str, forward: bool = True) -> str:
        """Run the model and return its text, forwarding it as deltas when ``forward``."""
        parts: list[str] = []
        try:
            async for event in self.deps.provider.generate(
                system_prompt,
                [{"role": "user", "content": user_prompt}],
                **self._generation_kwargs(),
            ):
                if isinstance(event, TextDelta) and event.text:
                    parts.append(event.text)
                    if not forward:
                        continue
                    if self.state is AgentState.GENERATING:
                        self._transition(AgentState.STREAMING)
                    await self._emit_chunks(event.text)
                elif isinstance(event, ReasoningDelta):
                    logger.debug("%s reasoning: %d chars", self.tool_name(), len(event.text))
        except asyncio.CancelledError:
            raise
        except ArtifactChatError as e:
            raise GenerationFailed(f"Generation failed: {e.message}", details={"code": e.code.value}) from e
        except Exception as e:
            raise GenerationFailed(f"Generation failed: {e!s}") from e

        content = "".join(parts)
        if not content.strip():
            raise GenerationFailed("The model returned no content")
        return content

    def post_process(self, content: str) -> str:
        return content

    def validate_content(self, content: str) -> list[str]:
        """Non-fatal checks; returned strings are surfaced as warnings."""
        return []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(
        self,
        artifact_id: str,
        content: str,
        title: str,
        parent_version_id: str | None,
        metadata: dict[str, Any],
    ) -> ArtifactVersion:
        """
        Write the new version, retrying once.

        The write runs in its own task shielded from cancellation: if the run
        is cancelled mid-write the save is awaited to completion before the
        cancellation propagates, so the version chain is never half-written.
        """
        last_error: Exception | None = None
        for attempt in (1, 2):
            save_task = asyncio.ensure_future(
                self.deps.store.save(
                    artifact_id,
                    self.kind,
                    content,
                    self.deps.user_id,
                    self.deps.chat_id,
                    parent_version_id=parent_version_id,
                    metadata=metadata,
                    title=title,
                )
            )
            try:
                version = await asyncio.shield(save_task)
            except asyncio.CancelledError:
                logger.warning("Cancelled while saving %s; letting the write finish", artifact_id)
                try:
                    await save_task
                except Exception as e:
                    logger.error("Save of %s failed during cancellation: %s", artifact_id, e)
                raise
            except StaleParentVersion:
                # Saving again cannot help; the caller rebases
                raise
            except Exception as e:
                last_error = e
                logger.warning("Saving %s failed (attempt %d/2): %s", artifact_id, attempt, e)
                continue
            logger.info("← Store: %s saved as version %d", artifact_id, version.version_number)
            return version

        raise PersistenceFailed(
            f"Could not save {self.kind.value} {artifact_id}: {last_error}. "
            "The content shown was not saved.",
            details={"artifact_id": artifact_id},
        ) from last_error

    # ------------------------------------------------------------------
    # Output channel
    # ------------------------------------------------------------------

    async def _emit_start(self, artifact_id: str, title: str, operation: str) -> None:
        channel = self.deps.output_channel
        await channel.emit(
            "metadata",
            {"id": artifact_id, "title": title, "kind": self.kind.value, "operation": operation},
            self.kind.value,
        )
        await channel.emit("clear", {"id": artifact_id}, self.kind.value)

    async def _emit_chunks(self, text: str) -> None:
        """Push ``text`` as delta events of at most ``delta_chunk_size`` chars.

        Always emits at least one event, even for empty text.
        """
        size = self.deps.delta_chunk_size
        chunks = [text[i:i + size] for i in range(0, len(text), size)] or [""]
        for chunk in chunks:
            await self.deps.output_channel.emit("delta", chunk, self.kind.value)

    async def _emit_error(self, artifact_id: str | None, error: ArtifactChatError) -> None:
        await self.deps.output_channel.emit(
            "error",
            {"id": artifact_id, "error_kind": error.code.value, "message": error.user_message()},
            self.kind.value,
        )


def strip_code_fences(content: str) -> str:
    """Remove one surrounding Markdown code fence, if present."""
    match = _FENCE_RE.match(content)
    if match:
        return match.group("body")
    return content


__all__ = [
    "AgentDependencies",
    "AgentState",
    "ArtifactToolInput",
    "StreamingArtifactAgent",
    "ToolAgent",
    "derive_title",
    "strip_code_fences",
]
