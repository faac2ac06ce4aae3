"""Shared fixtures: a scripted model provider, config data, stores and channels."""

from __future__ import annotations

import asyncio
import copy
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from artifact_chat.agent_config import AgentConfig, AgentConfigRegistry, InMemoryConfigBackend
from artifact_chat.agents import AgentDependencies
from artifact_chat.artifacts import ArtifactKind, ArtifactVersion, InMemoryArtifactStore, SQLiteArtifactStore
from artifact_chat.chat.models import FinishEvent, TextDelta, ToolCallRequest
from artifact_chat.chat.output_channel import OutputChannel
from artifact_chat.config import Configuration

# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------


@dataclass
class ProviderCall:
    system_prompt: str | None
    messages: list[dict[str, Any]]
    tools: list[Any] | None
    temperature: float | None
    model: str | None
    options: dict[str, Any] | None
    api_key: str | None


Step = list[Any] | Exception | Callable[[list[dict[str, Any]]], list[Any]]


@dataclass
class ScriptedProvider:
    """
    Plays back one scripted step per ``generate`` call.

    A step is a list of events (a float in the list sleeps that long), an
    exception to raise, or a callable receiving the messages and returning
    events. When the script runs out every call answers ``default_text``.
    """

    steps: list[Step] = field(default_factory=list)
    default_text: str = "Done."
    calls: list[ProviderCall] = field(default_factory=list)

    async def generate(
        self,
        system_prompt: str | None,
        messages: list[dict[str, Any]],
        tools: list[Any] | None = None,
        temperature: float | None = None,
        model: str | None = None,
        options: dict[str, Any] | None = None,
        api_key: str | None = None,
    ):
        self.calls.append(
            ProviderCall(system_prompt, copy.deepcopy(messages), tools, temperature, model, options, api_key)
        )
        step: Step = self.steps.pop(0) if self.steps else [TextDelta(text=self.default_text)]
        if isinstance(step, Exception):
            raise step
        if callable(step):
            step = step(messages)

        has_tool_calls = False
        for event in step:
            if isinstance(event, int | float):
                await asyncio.sleep(event)
                continue
            if isinstance(event, ToolCallRequest):
                has_tool_calls = True
            yield event
        yield FinishEvent(finish_reason="tool_calls" if has_tool_calls else "stop")


def text(*chunks: str) -> list[Any]:
    return [TextDelta(text=chunk) for chunk in chunks]


def tool_call(name: str, arguments: dict[str, Any] | str, call_id: str) -> ToolCallRequest:
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return ToolCallRequest(id=call_id, name=name, arguments=raw)


# ---------------------------------------------------------------------------
# Agent config data (camelCase, as stored in the config backend)
# ---------------------------------------------------------------------------


ARTIFACT_SCHEMA = [
    {"name": "operation", "description": "Which operation to run"},
    {"name": "instruction", "description": "What to write or change"},
    {"name": "artifactId", "description": "Existing artifact id"},
    {"name": "targetVersion", "type": "integer", "description": "Version to restore"},
]

QUERY_SCHEMA = [{"name": "query", "description": "The question to answer"}]


def artifact_config_data(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "enabled": True,
        "systemPrompt": "You write artifacts.",
        "modelId": "test-model",
        "temperature": 0.5,
        "rateLimit": {"perMinute": 10, "perHour": 100, "perDay": 1000},
        "toolDescription": "Creates and edits artifacts.",
        "toolSchema": copy.deepcopy(ARTIFACT_SCHEMA),
    }
    data.update(overrides)
    return data


def query_config_data(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "enabled": True,
        "systemPrompt": "You answer questions.",
        "modelId": "search-model",
        "toolDescription": "Answers questions.",
        "toolSchema": copy.deepcopy(QUERY_SCHEMA),
    }
    data.update(overrides)
    return data


def agent_config(**overrides: Any) -> AgentConfig:
    return AgentConfig.model_validate(artifact_config_data(**overrides))


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


async def save_next(
    store: Any,
    artifact_id: str,
    content: str,
    kind: ArtifactKind = ArtifactKind.DOCUMENT,
    **kwargs: Any,
) -> ArtifactVersion:
    """Append a version on top of whatever is latest for ``artifact_id``."""
    versions = await store.list_versions(artifact_id)
    parent = versions[-1].version_id if versions else None
    return await store.save(artifact_id, kind, content, "u", "c", parent_version_id=parent, **kwargs)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def memory_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
async def sqlite_store(tmp_path):
    store = SQLiteArtifactStore(str(tmp_path / "artifacts.db"))
    yield store
    await store.close()


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryArtifactStore()
    else:
        sqlite = SQLiteArtifactStore(str(tmp_path / "artifacts.db"))
        yield sqlite
        await sqlite.close()


@pytest.fixture
def channel() -> OutputChannel:
    # Large enough that tests without a consumer never block
    return OutputChannel(capacity=4096)


@pytest.fixture
def make_deps(provider, memory_store, channel):
    def _make(**overrides: Any) -> AgentDependencies:
        values: dict[str, Any] = {
            "provider": provider,
            "store": memory_store,
            "output_channel": channel,
            "user_id": "user-1",
            "chat_id": "chat-1",
            "delta_chunk_size": 400,
        }
        values.update(overrides)
        return AgentDependencies(**values)

    return _make


@pytest.fixture
def config_backend() -> InMemoryConfigBackend:
    return InMemoryConfigBackend(
        {
            "document_agent_openrouter": artifact_config_data(),
            "python_agent_openrouter": artifact_config_data(
                systemPrompt="You write Python.",
                toolSchema=copy.deepcopy(ARTIFACT_SCHEMA),
            ),
            "mermaid_agent_openrouter": artifact_config_data(systemPrompt="You draw diagrams."),
        }
    )


@pytest.fixture
def registry(config_backend) -> AgentConfigRegistry:
    return AgentConfigRegistry(config_backend)


@pytest.fixture
def configuration(tmp_path) -> Configuration:
    return Configuration(runtime_config_path=str(tmp_path / "runtime_config.yaml"))
