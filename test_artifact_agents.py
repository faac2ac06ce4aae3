"""
Tests for the artifact agents: streaming, versioning, validation and the
failure paths that come back as tool results.
"""

from __future__ import annotations

import asyncio

import pytest

from artifact_chat.agent_config import AgentConfig
from artifact_chat.agents import (
    AgentState,
    DocumentAgent,
    MermaidDiagramAgent,
    PythonCodeAgent,
    RepositoryAgent,
    WebSearchAgent,
)
from artifact_chat.agents.base import derive_title, strip_code_fences
from artifact_chat.artifacts import ArtifactKind, InMemoryArtifactStore
from conftest import agent_config, query_config_data, save_next, text


async def collected(channel):
    await channel.close()
    return await channel.drain()


class FailingStore(InMemoryArtifactStore):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def save(self, *args, **kwargs):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OSError("disk full")
        return await super().save(*args, **kwargs)


class SlowStore(InMemoryArtifactStore):
    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()

    async def save(self, *args, **kwargs):
        self.started.set()
        await asyncio.sleep(0.05)
        return await super().save(*args, **kwargs)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


async def test_create_streams_metadata_clear_deltas_finish(make_deps, provider, memory_store, channel):
    provider.steps = [text("# Notes\n", "Body text")]
    agent = DocumentAgent(agent_config(), make_deps())

    result = await agent.execute({"operation": "create", "instruction": "Write meeting notes\nfor Monday"})

    assert result.success
    assert result.output["status"] == "created"
    assert result.output["version"] == 1
    assert result.output["title"] == "Write meeting notes"
    assert "content" not in result.output

    events = await collected(channel)
    assert [e.type for e in events] == ["metadata", "clear", "delta", "delta", "finish"]
    assert all(e.artifact_kind == "document" for e in events)
    artifact_id = result.output["id"]
    assert events[0].payload == {
        "id": artifact_id,
        "title": "Write meeting notes",
        "kind": "document",
        "operation": "create",
    }
    assert "".join(e.payload for e in events if e.type == "delta") == "# Notes\nBody text"
    assert events[-1].payload == {"id": artifact_id, "version": 1}

    saved = await memory_store.get_latest(artifact_id)
    assert saved.content == "# Notes\nBody text"
    assert saved.parent_version_id is None
    assert saved.user_id == "user-1"
    assert saved.chat_id == "chat-1"
    assert saved.metadata == {"update_type": "create"}


async def test_create_walks_the_state_machine(make_deps, provider):
    provider.steps = [text("content")]
    agent = DocumentAgent(agent_config(), make_deps())

    await agent.create("Write something")

    assert agent.state_history == [
        AgentState.IDLE,
        AgentState.GENERATING,
        AgentState.STREAMING,
        AgentState.PERSISTING,
        AgentState.DONE,
    ]


async def test_deltas_are_split_by_chunk_size(make_deps, provider, channel):
    provider.steps = [text("abcdefghij")]
    agent = DocumentAgent(agent_config(), make_deps(delta_chunk_size=4))

    await agent.create("Letters")

    deltas = [e.payload for e in await collected(channel) if e.type == "delta"]
    assert deltas == ["abcd", "efgh", "ij"]


async def test_create_passes_config_to_provider(make_deps, provider):
    provider.steps = [text("x")]
    config = agent_config(credentials={"api_key": "sk-user"}, providerOptions={"top_p": 0.9})

    await DocumentAgent(config, make_deps()).create("Write x")

    call = provider.calls[0]
    assert call.model == "test-model"
    assert call.temperature == 0.5
    assert call.api_key == "sk-user"
    assert call.options == {"top_p": 0.9}
    assert call.tools is None
    assert call.system_prompt.startswith("You write artifacts.")
    assert "Markdown" in call.system_prompt
    assert "Write x" in call.messages[0]["content"]


async def test_create_with_existing_id_is_rejected(make_deps, provider, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "old", "u", "c")

    result = await DocumentAgent(agent_config(), make_deps()).create("New", artifact_id="doc-1")

    assert not result.success
    assert result.error_kind == "input_validation_failed"
    assert provider.calls == []
    assert len(await memory_store.list_versions("doc-1")) == 1


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------


async def test_update_includes_current_content_and_links_parent(make_deps, provider, memory_store):
    v1 = await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "Original body", "u", "c", title="Plan")
    provider.steps = [text("Revised body")]

    result = await DocumentAgent(agent_config(), make_deps()).update("doc-1", "Make it shorter")

    assert result.success
    assert result.output["status"] == "updated"
    assert result.output["version"] == 2
    prompt = provider.calls[0].messages[0]["content"]
    assert "Original body" in prompt
    assert "Make it shorter" in prompt

    latest = await memory_store.get_latest("doc-1")
    assert latest.content == "Revised body"
    assert latest.parent_version_id == v1.version_id
    assert latest.title == "Plan"
    assert latest.metadata["update_type"] == "update"


async def test_operation_template_from_config(make_deps, provider, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "Body", "u", "c")
    provider.steps = [text("New body")]
    config = agent_config(
        operations={
            "update": {
                "systemPrompt": "You are an editor.",
                "userPromptTemplate": "EDIT[{current_content}] WITH[{instruction}] {unknown}",
            }
        }
    )

    await DocumentAgent(config, make_deps()).update("doc-1", "tidy")

    call = provider.calls[0]
    assert call.system_prompt.startswith("You are an editor.")
    assert call.messages[0]["content"] == "EDIT[Body] WITH[tidy] {unknown}"


async def test_update_missing_artifact_fails_with_not_found(make_deps, provider, channel):
    result = await DocumentAgent(agent_config(), make_deps()).update("missing", "change it")

    assert not result.success
    assert result.error_kind == "artifact_not_found"
    assert provider.calls == []
    events = await collected(channel)
    assert [e.type for e in events] == ["error"]
    assert events[0].payload["error_kind"] == "artifact_not_found"


async def test_update_of_other_kind_is_rejected(make_deps, provider, memory_store):
    await memory_store.save("code-1", ArtifactKind.CODE, "print(1)", "u", "c")

    result = await DocumentAgent(agent_config(), make_deps()).update("code-1", "rewrite")

    assert not result.success
    assert result.error_kind == "input_validation_failed"
    assert "code" in result.error
    assert provider.calls == []


# ---------------------------------------------------------------------------
# revert
# ---------------------------------------------------------------------------


async def test_revert_copies_previous_version_without_model_call(make_deps, provider, memory_store, channel):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "first", "u", "c", title="Doc")
    v2 = await save_next(memory_store, "doc-1", "second", title="Doc")

    result = await DocumentAgent(agent_config(), make_deps()).revert("doc-1")

    assert result.success
    assert provider.calls == []
    assert result.output["is_revert"] is True
    assert result.output["reverted_from"] == 2
    assert result.output["reverted_to"] == 1

    latest = await memory_store.get_latest("doc-1")
    assert latest.version_number == 3
    assert latest.content == "first"
    assert latest.parent_version_id == v2.version_id
    assert latest.metadata == {"update_type": "revert", "reverted_from": 2, "reverted_to": 1}

    events = await collected(channel)
    assert [e.type for e in events] == ["metadata", "clear", "delta", "finish"]
    assert events[0].payload["operation"] == "revert"


async def test_revert_of_empty_content_still_emits_one_delta(make_deps, memory_store, channel):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "", "u", "c")
    await save_next(memory_store, "doc-1", "filled")

    result = await DocumentAgent(agent_config(), make_deps()).revert("doc-1", 1)

    assert result.success
    deltas = [e.payload for e in await collected(channel) if e.type == "delta"]
    assert deltas == [""]


@pytest.mark.parametrize("target", [2, 3, 9])
async def test_revert_to_latest_or_future_version_fails(make_deps, memory_store, target):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "one", "u", "c")
    await save_next(memory_store, "doc-1", "two")

    result = await DocumentAgent(agent_config(), make_deps()).revert("doc-1", target)

    assert not result.success
    assert result.error_kind == "input_validation_failed"
    assert len(await memory_store.list_versions("doc-1")) == 2


async def test_reverting_twice_to_same_target_appends_two_versions(make_deps, memory_store):
    v1 = await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "first", "u", "c")
    await save_next(memory_store, "doc-1", "second")
    agent = DocumentAgent(agent_config(), make_deps())

    first = await agent.revert("doc-1", 1)
    second = await agent.revert("doc-1", 1)

    assert first.success and second.success
    _, v2, v3, v4 = await memory_store.list_versions("doc-1")
    assert (v3.version_number, v4.version_number) == (3, 4)
    assert v3.content == v4.content == v1.content
    assert v3.parent_version_id == v2.version_id
    assert v4.parent_version_id == v3.version_id
    assert v4.metadata == {"update_type": "revert", "reverted_from": 3, "reverted_to": 1}


async def test_revert_single_version_artifact_fails(make_deps, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "only", "u", "c")

    result = await DocumentAgent(agent_config(), make_deps()).revert("doc-1")

    assert result.error_kind == "input_validation_failed"


# ---------------------------------------------------------------------------
# input validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw_input",
    [
        {"operation": "update", "instruction": "change it"},
        {"operation": "revert", "targetVersion": 1},
        {"operation": "suggestion", "instruction": "tighten it"},
        {"operation": "create", "instruction": "new", "artifactId": "doc-1"},
        {"operation": "update", "instruction": "x", "artifactId": "doc-1", "targetVersion": 1},
        {"operation": "revert", "artifactId": "doc-1", "targetVersion": 0},
        {"operation": "create", "instruction": "   "},
        {"operation": "delete", "artifactId": "doc-1"},
        {"operation": "create", "instruction": "x", "color": "blue"},
    ],
)
async def test_invalid_input_is_rejected_before_any_work(make_deps, provider, memory_store, channel, raw_input):
    result = await DocumentAgent(agent_config(), make_deps()).execute(raw_input)

    assert not result.success
    assert result.error_kind == "input_validation_failed"
    assert provider.calls == []
    assert await memory_store.list_versions("doc-1") == []
    assert channel.sent_count == 0


async def test_disabled_operation_is_rejected(make_deps, provider, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "body", "u", "c")
    config = agent_config(operations={"update": {"enabled": False}})

    result = await DocumentAgent(config, make_deps()).update("doc-1", "change")

    assert result.error_kind == "input_validation_failed"
    assert provider.calls == []


async def test_document_agent_has_no_fix_operation(make_deps, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "body", "u", "c")

    result = await DocumentAgent(agent_config(), make_deps()).execute(
        {"operation": "fix", "artifactId": "doc-1", "instruction": "broken"}
    )

    assert result.error_kind == "input_validation_failed"


# ---------------------------------------------------------------------------
# generation and persistence failures
# ---------------------------------------------------------------------------


async def test_provider_error_becomes_generation_failed(make_deps, provider, memory_store, channel):
    provider.steps = [RuntimeError("connection reset")]
    agent = DocumentAgent(agent_config(), make_deps())

    result = await agent.create("Write", artifact_id="doc-1")

    assert not result.success
    assert result.error_kind == "generation_failed"
    assert "connection reset" in result.error
    assert agent.state is AgentState.FAILED
    assert await memory_store.list_versions("doc-1") == []
    assert [e.type for e in await collected(channel)] == ["metadata", "clear", "error"]


async def test_blank_output_is_a_generation_failure(make_deps, provider, memory_store):
    provider.steps = [text("  ", "\n")]
    agent = DocumentAgent(agent_config(), make_deps())

    result = await agent.create("Write", artifact_id="doc-1")

    assert result.error_kind == "generation_failed"
    assert agent.state_history[-1] is AgentState.FAILED
    assert await memory_store.list_versions("doc-1") == []


async def test_save_failing_twice_is_persistence_failed(make_deps, provider, channel):
    store = FailingStore(failures=2)
    provider.steps = [text("content")]
    agent = DocumentAgent(agent_config(), make_deps(store=store))

    result = await agent.create("Write", artifact_id="doc-1")

    assert not result.success
    assert result.error_kind == "persistence_failed"
    assert "not saved" in result.error
    assert store.attempts == 2
    assert agent.state_history[-2:] == [AgentState.PERSISTING, AgentState.FAILED]
    events = await collected(channel)
    assert events[-1].type == "error"
    assert "finish" not in [e.type for e in events]


async def test_save_is_retried_once(make_deps, provider):
    store = FailingStore(failures=1)
    provider.steps = [text("content")]

    result = await DocumentAgent(agent_config(), make_deps(store=store)).create("Write", artifact_id="doc-1")

    assert result.success
    assert store.attempts == 2
    assert (await store.get_latest("doc-1")).content == "content"


async def test_cancellation_during_save_still_writes_version(make_deps, provider):
    store = SlowStore()
    provider.steps = [text("content")]
    agent = DocumentAgent(agent_config(), make_deps(store=store))

    task = asyncio.create_task(agent.create("Write", artifact_id="doc-1"))
    await store.started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    latest = await store.get_latest("doc-1")
    assert latest.version_number == 1
    assert latest.content == "content"


# ---------------------------------------------------------------------------
# code and diagram agents
# ---------------------------------------------------------------------------


async def test_code_agent_strips_fences_and_reemits(make_deps, provider, memory_store, channel):
    provider.steps = [text("```python\nprint('hi')\n```")]

    result = await PythonCodeAgent(agent_config(), make_deps()).create("Say hi", artifact_id="code-1")

    assert result.success
    assert "warnings" not in result.output
    assert (await memory_store.get_latest("code-1")).content == "print('hi')"
    events = await collected(channel)
    assert [e.type for e in events] == ["metadata", "clear", "delta", "clear", "delta", "finish"]
    assert events[4].payload == "print('hi')"
    assert all(e.artifact_kind == "code" for e in events)


async def test_code_agent_reports_syntax_error_as_warning(make_deps, provider, memory_store):
    provider.steps = [text("def broken(:\n    pass\n")]

    result = await PythonCodeAgent(agent_config(), make_deps()).create("Broken", artifact_id="code-1")

    assert result.success
    assert result.output["warnings"][0].startswith("Syntax error on line 1")
    saved = await memory_store.get_latest("code-1")
    assert saved.metadata["warnings"] == result.output["warnings"]


async def test_code_agent_fix_prompt_carries_error_output(make_deps, provider, memory_store):
    await memory_store.save("code-1", ArtifactKind.CODE, "print(x)", "u", "c")
    provider.steps = [text("x = 1\nprint(x)\n")]

    result = await PythonCodeAgent(agent_config(), make_deps()).execute(
        {"operation": "fix", "artifactId": "code-1", "instruction": "NameError: name 'x' is not defined"}
    )

    assert result.success
    assert result.output["operation"] == "fix"
    prompt = provider.calls[0].messages[0]["content"]
    assert "print(x)" in prompt
    assert "NameError: name 'x' is not defined" in prompt
    assert (await memory_store.get_latest("code-1")).metadata["update_type"] == "fix"


async def test_mermaid_agent_warns_on_unknown_diagram_type(make_deps, provider):
    provider.steps = [text("not a diagram")]

    result = await MermaidDiagramAgent(agent_config(), make_deps()).create("Draw")

    assert result.success
    assert result.output["warnings"] == ["Unrecognized Mermaid diagram type 'not'"]


async def test_mermaid_agent_accepts_known_diagram(make_deps, provider, memory_store):
    provider.steps = [text("```mermaid\n%% flow\ngraph TD\n  A-->B\n```")]

    result = await MermaidDiagramAgent(agent_config(), make_deps()).create("Draw", artifact_id="d-1")

    assert "warnings" not in result.output
    saved = await memory_store.get_latest("d-1")
    assert saved.kind is ArtifactKind.DIAGRAM
    assert saved.content == "%% flow\ngraph TD\n  A-->B"


def test_strip_code_fences_leaves_plain_text():
    assert strip_code_fences("plain") == "plain"
    assert strip_code_fences("```\nbody\n```") == "body"


def test_derive_title():
    assert derive_title("\n  First line  \nsecond", ArtifactKind.DOCUMENT) == "First line"
    assert derive_title("x" * 150, ArtifactKind.CODE) == "x" * 100
    assert derive_title("", ArtifactKind.DIAGRAM) == "Untitled diagram"


# ---------------------------------------------------------------------------
# suggestions
# ---------------------------------------------------------------------------


SUGGESTIONS_JSON = (
    '{"suggestions": [{"originalText": "teh plan", "suggestedText": "the plan", '
    '"description": "Fix typo"}, {"originalText": "ASAP", "suggestedText": '
    '"by Friday", "description": "Be specific"}]}'
)


async def test_suggestion_streams_events_without_new_version(make_deps, provider, memory_store, channel):
    v1 = await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "Review teh plan ASAP.", "u", "c")
    provider.steps = [text(SUGGESTIONS_JSON[:40], SUGGESTIONS_JSON[40:])]
    agent = DocumentAgent(agent_config(), make_deps())

    result = await agent.execute({"operation": "suggestion", "artifactId": "doc-1", "instruction": "wording"})

    assert result.success
    assert result.output == {
        "id": "doc-1",
        "kind": "document",
        "version": 1,
        "operation": "suggestion",
        "is_suggestion": True,
        "suggestion_count": 2,
    }
    assert await memory_store.list_versions("doc-1") == [v1]
    assert agent.state_history == [AgentState.IDLE, AgentState.GENERATING, AgentState.STREAMING, AgentState.DONE]

    call = provider.calls[0]
    assert "Review teh plan ASAP." in call.messages[0]["content"]
    assert "wording" in call.messages[0]["content"]
    assert '"suggestions"' in call.system_prompt

    events = await collected(channel)
    assert [e.type for e in events] == ["suggestion", "suggestion", "finish"]
    assert events[0].payload == {
        "id": "doc-1@v1-suggestion-0",
        "artifact_id": "doc-1",
        "version": 1,
        "original_text": "teh plan",
        "suggested_text": "the plan",
        "description": "Fix typo",
    }


async def test_suggestion_accepts_fenced_json_and_configured_prompt(make_deps, provider, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "Body", "u", "c")
    provider.steps = [text('```json\n{"suggestions": []}\n```')]
    config = agent_config(
        operations={"suggestion": {"systemPrompt": "You are an editor.", "userPromptTemplate": "REVIEW {current_content}"}}
    )

    result = await DocumentAgent(config, make_deps()).execute(
        {"operation": "suggestion", "artifactId": "doc-1", "instruction": "anything"}
    )

    assert result.output["suggestion_count"] == 0
    assert provider.calls[0].system_prompt.startswith("You are an editor.")
    assert provider.calls[0].messages[0]["content"] == "REVIEW Body"


async def test_malformed_suggestions_are_a_generation_failure(make_deps, provider, memory_store, channel):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "Body", "u", "c")
    provider.steps = [text("Looks fine to me!")]
    agent = DocumentAgent(agent_config(), make_deps())

    result = await agent.execute({"operation": "suggestion", "artifactId": "doc-1", "instruction": "check"})

    assert result.error_kind == "generation_failed"
    assert agent.state is AgentState.FAILED
    assert [e.type for e in await collected(channel)] == ["error"]


async def test_suggestion_is_gated_by_config_and_kind(make_deps, provider, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "Body", "u", "c")
    await memory_store.save("code-1", ArtifactKind.CODE, "print(1)", "u", "c")
    raw = {"operation": "suggestion", "artifactId": "doc-1", "instruction": "check"}

    disabled = agent_config(operations={"suggestion": {"enabled": False}})
    result = await DocumentAgent(disabled, make_deps()).execute(raw)
    assert result.error_kind == "input_validation_failed"

    result = await PythonCodeAgent(agent_config(), make_deps()).execute({**raw, "artifactId": "code-1"})
    assert result.error_kind == "input_validation_failed"

    result = await DocumentAgent(agent_config(), make_deps()).execute({"operation": "suggestion", "instruction": "x"})
    assert result.error_kind == "input_validation_failed"
    assert provider.calls == []


# ---------------------------------------------------------------------------
# concurrent edits
# ---------------------------------------------------------------------------


async def test_parallel_updates_keep_every_parent_linked(make_deps, provider, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "start", "u", "c")
    agent_deps = make_deps(max_rebase_attempts=10)

    results = await asyncio.gather(
        *(DocumentAgent(agent_config(), agent_deps).update("doc-1", f"edit {i}") for i in range(10))
    )

    assert all(r.success for r in results)
    assert sorted(r.output["version"] for r in results) == list(range(2, 12))
    versions = await memory_store.list_versions("doc-1")
    assert [v.version_number for v in versions] == list(range(1, 12))
    broken = [
        (current.version_number, current.parent_version_id)
        for previous, current in zip(versions, versions[1:])
        if current.parent_version_id != previous.version_id
    ]
    assert broken == []


async def test_update_rebases_onto_newer_version(make_deps, provider, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "start", "u", "c")
    provider.steps = [text("edit A"), text("edit B"), text("edit B on A")]
    deps = make_deps(max_rebase_attempts=1)

    first, second = await asyncio.gather(
        DocumentAgent(agent_config(), deps).update("doc-1", "A"),
        DocumentAgent(agent_config(), deps).update("doc-1", "B"),
    )

    assert first.output["version"] == 2
    assert second.output["version"] == 3
    assert len(provider.calls) == 3
    assert "edit A" in provider.calls[2].messages[0]["content"]
    v1, v2, v3 = await memory_store.list_versions("doc-1")
    assert v3.content == "edit B on A"
    assert v3.parent_version_id == v2.version_id


async def test_exhausted_rebases_fail_without_stale_write(make_deps, provider, memory_store):
    await memory_store.save("doc-1", ArtifactKind.DOCUMENT, "start", "u", "c")
    provider.steps = [text("edit A"), text("edit B")]
    deps = make_deps(max_rebase_attempts=0)

    first, second = await asyncio.gather(
        DocumentAgent(agent_config(), deps).update("doc-1", "A"),
        DocumentAgent(agent_config(), deps).update("doc-1", "B"),
    )

    assert first.success
    assert not second.success
    assert second.error_kind == "version_conflict"
    versions = await memory_store.list_versions("doc-1")
    assert [v.content for v in versions] == ["start", "edit A"]
    assert versions[1].parent_version_id == versions[0].version_id


# ---------------------------------------------------------------------------
# query agents
# ---------------------------------------------------------------------------


async def test_web_search_agent_uses_provider_options(make_deps, provider):
    provider.steps = [text("Paris is the capital.")]
    config = AgentConfig.model_validate(
        query_config_data(providerOptions={"plugins": [{"id": "web"}]}, credentials={"api_key": "sk-or"})
    )

    result = await WebSearchAgent(config, make_deps()).execute({"query": "capital of France"})

    assert result.success
    assert result.output == "Paris is the capital."
    call = provider.calls[0]
    assert call.options == {"plugins": [{"id": "web"}]}
    assert call.api_key == "sk-or"
    assert call.model == "search-model"
    assert call.messages == [{"role": "user", "content": "capital of France"}]


async def test_web_search_agent_failure_is_a_result(make_deps, provider):
    provider.steps = [RuntimeError("upstream 502")]
    config = AgentConfig.model_validate(query_config_data())

    result = await WebSearchAgent(config, make_deps()).execute({"query": "anything"})

    assert not result.success
    assert result.error_kind == "generation_failed"


async def test_web_search_agent_requires_query(make_deps, provider):
    config = AgentConfig.model_validate(query_config_data())

    result = await WebSearchAgent(config, make_deps()).execute({"question": "wrong field"})

    assert result.error_kind == "input_validation_failed"
    assert provider.calls == []


async def test_repository_agent_without_token_is_misconfigured(make_deps, provider):
    config = AgentConfig.model_validate(query_config_data())
    deps = make_deps(settings={"repository_mcp": {"url": "http://localhost:9/mcp"}})

    result = await RepositoryAgent(config, deps).execute({"query": "open issues?"})

    assert not result.success
    assert result.error_kind == "invalid_configuration"
    assert provider.calls == []


async def test_repository_agent_without_server_url_is_misconfigured(make_deps):
    config = AgentConfig.model_validate(query_config_data(credentials={"github_pat": "ghp_x"}))

    result = await RepositoryAgent(config, make_deps()).execute({"query": "open issues?"})

    assert result.error_kind == "invalid_configuration"


# ---------------------------------------------------------------------------
# end to end
# ---------------------------------------------------------------------------


async def test_create_update_revert_chain(make_deps, provider, memory_store):
    provider.steps = [text("Original note"), text("Edited note")]
    agent = DocumentAgent(agent_config(), make_deps())

    created = await agent.create("Write a short note", artifact_id="doc-1")
    updated = await agent.update("doc-1", "Rephrase it")
    reverted = await agent.revert("doc-1", 1)

    assert [r.output["version"] for r in (created, updated, reverted)] == [1, 2, 3]
    v1, v2, v3 = await memory_store.list_versions("doc-1")
    assert v1.parent_version_id is None
    assert v2.parent_version_id == v1.version_id
    assert v3.parent_version_id == v2.version_id
    assert v2.content == "Edited note"
    assert v3.content == v1.content == "Original note"
    assert len(provider.calls) == 2
