"""
Markdown document artifacts.

Besides create/update/revert, documents support ``suggestion``: the model
reviews the latest version and proposes edits as structured JSON. Each
suggestion is sent to the UI as a ``suggestion`` event for the user to
accept or ignore; no new version is written.
"""

from __future__ import annotations

import logging
from typing import cast

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from artifact_chat.agent_config import AgentType
from artifact_chat.artifacts import ArtifactKind
from artifact_chat.chat.models import ToolResult
from artifact_chat.errors import GenerationFailed

from .base import AgentState, ArtifactToolInput, StreamingArtifactAgent, strip_code_fences

logger = logging.getLogger(__name__)


class Suggestion(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    original_text: str = Field(min_length=1)
    suggested_text: str = Field(min_length=1)
    description: str = Field(min_length=1)


class SuggestionSet(BaseModel):
    suggestions: list[Suggestion] = Field(default_factory=list)


def parse_suggestions(raw: str) -> list[Suggestion]:
    """Parse the model's JSON reply, tolerating a surrounding code fence."""
    try:
        return SuggestionSet.model_validate_json(strip_code_fences(raw.strip())).suggestions
    except ValidationError as e:
        raise GenerationFailed(
            "The model returned malformed suggestions",
            details={"errors": e.errors(include_url=False, include_input=False)},
        ) from e


class DocumentAgent(StreamingArtifactAgent):
    agent_type = AgentType.DOCUMENT
    kind = ArtifactKind.DOCUMENT
    operations = ("create", "update", "revert", "suggestion")

    output_rules = (
        "Respond with the document only, formatted as Markdown. "
        "Do not add commentary before or after it."
    )
    suggestion_rules = (
        'Respond with JSON only, shaped as {"suggestions": [{"originalText": ..., '
        '"suggestedText": ..., "description": ...}]}. originalText must be copied '
        "exactly from the document."
    )
    default_templates = {
        "create": "Write a document for the following request:\n{instruction}",
        "update": (
            "Here is the current document:\n\n{current_content}\n\n"
            "Revise it according to this instruction and return the complete "
            "updated document:\n{instruction}"
        ),
        "suggestion": (
            "Here is the current document:\n\n{current_content}\n\n"
            "Suggest specific improvements to it. Focus on: {instruction}"
        ),
    }

    def rules_for(self, operation: str) -> str:
        if operation == "suggestion":
            return self.suggestion_rules
        return self.output_rules

    async def _run_operation(self, params: ArtifactToolInput, new_artifact_id: str | None) -> ToolResult:
        if params.operation == "suggestion":
            return await self._suggest(params)
        return await super()._run_operation(params, new_artifact_id)

    async def _suggest(self, params: ArtifactToolInput) -> ToolResult:
        """Propose edits to the latest version without writing a new one."""
        self._transition(AgentState.GENERATING)

        latest = await self.deps.store.get_latest(cast(str, params.artifact_id))
        self._check_kind(latest)
        system_prompt, user_prompt = self.build_prompt(params, latest)
        raw = await self._stream_generation(system_prompt, user_prompt, forward=False)
        suggestions = parse_suggestions(raw)

        self._transition(AgentState.STREAMING)
        channel = self.deps.output_channel
        for index, suggestion in enumerate(suggestions):
            await channel.emit(
                "suggestion",
                {
                    "id": f"{latest.version_id}-suggestion-{index}",
                    "artifact_id": latest.id,
                    "version": latest.version_number,
                    "original_text": suggestion.original_text,
                    "suggested_text": suggestion.suggested_text,
                    "description": suggestion.description,
                },
                self.kind.value,
            )
        self._transition(AgentState.DONE)
        await channel.emit("finish", {"id": latest.id, "version": latest.version_number}, self.kind.value)
        logger.info("%s: %d suggestions for %s", self.tool_name(), len(suggestions), latest.version_id)

        return ToolResult.ok(
            {
                "id": latest.id,
                "kind": self.kind.value,
                "version": latest.version_number,
                "operation": "suggestion",
                "is_suggestion": True,
                "suggestion_count": len(suggestions),
            }
        )
