"""
LLM HTTP client for OpenAI-compatible chat completion endpoints.

Streams Server-Sent Events, turns each chunk into provider events, and
reassembles tool calls from their streamed fragments. Follows runtime
configuration changes through the Configuration observer hook, deferring the
swap until no stream is active.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from artifact_chat.chat.models import (
    FinishEvent,
    ProviderEvent,
    ReasoningDelta,
    TextDelta,
    ToolCallDelta,
    ToolCallRequest,
    ToolSchema,
)
from artifact_chat.config import Configuration
from artifact_chat.errors import ProviderError

logger = logging.getLogger(__name__)

# Fields providers use for the reasoning side channel in streamed deltas
_REASONING_FIELDS = ("reasoning", "reasoning_content", "thinking")

# Config keys that describe the connection rather than the request body
_EXCLUDED_PAYLOAD_KEYS = {"base_url", "model", "supports_tools", "api_key_env"}


class LLMClient:
    """
    Streaming chat-completions client.

    Implements the ``ModelProvider`` protocol. The active provider section of
    ``config.yaml`` is passed through to the request body, so new provider
    parameters need no code change.
    """

    def __init__(self, configuration: Configuration) -> None:
        self.configuration = configuration
        self._current_config: dict[str, Any] = {}
        self._current_api_key: str = ""
        self.client: httpx.AsyncClient | None = None
        self._active_streams = 0
        self._pending_config: dict[str, Any] | None = None
        self._config_lock = asyncio.Lock()
        self._background_tasks: set[asyncio.Task[Any]] = set()

        self._pool_config = self.configuration.get_connection_pool_config()
        self._build_client(self.configuration.get_llm_config(), self.configuration.llm_api_key)

        self.configuration.subscribe_to_changes(self._on_config_change)

    def _build_client(self, llm_config: dict[str, Any], api_key: str) -> None:
        self._current_config = llm_config
        self._current_api_key = api_key
        self.client = httpx.AsyncClient(
            base_url=llm_config["base_url"],
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=self._pool_config["request_timeout_seconds"],
            http2=True,
            limits=httpx.Limits(
                max_connections=self._pool_config["max_connections"],
                max_keepalive_connections=self._pool_config["max_keepalive_connections"],
                keepalive_expiry=self._pool_config["keepalive_expiry_seconds"],
            ),
            trust_env=False,
        )
        logger.info(
            "LLM client initialized: base_url=%s model=%s",
            llm_config["base_url"],
            llm_config.get("model", "unknown"),
        )

    @property
    def config(self) -> dict[str, Any]:
        return self._current_config

    @property
    def supports_tools(self) -> bool:
        return bool(self._current_config.get("supports_tools", True))

    # ------------------------------------------------------------------
    # Runtime configuration changes
    # ------------------------------------------------------------------

    def _on_config_change(self, new_config: dict[str, Any]) -> None:
        try:
            llm_config = self.configuration.get_llm_config()
        except ValueError as e:
            logger.error("Ignoring invalid LLM configuration change: %s", e)
            return
        if llm_config == self._current_config:
            return
        self._pending_config = llm_config
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; applied after the next stream ends
            return
        task = loop.create_task(self._apply_pending_config())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _apply_pending_config(self) -> None:
        async with self._config_lock:
            if self._pending_config is None or self._active_streams > 0:
                return
            llm_config, self._pending_config = self._pending_config, None
            old_client = self.client
            self._build_client(llm_config, self.configuration.llm_api_key)
            if old_client is not None:
                await old_client.aclose()
            logger.info("🔄 LLM client reconfigured for model %s", llm_config.get("model"))

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _build_payload(
        self,
        messages: list[dict[str, Any]],
        tools: list[ToolSchema] | None,
        temperature: float | None,
        model: str | None,
        options: dict[str, Any] | None,
    ) -> dict[str, Any]:
        """Build the request body, passing through provider config parameters."""
        payload: dict[str, Any] = {
            "model": model or self.config["model"],
            "messages": messages,
            "stream": True,
        }
        for key, value in self.config.items():
            if key not in _EXCLUDED_PAYLOAD_KEYS and value is not None:
                payload[key] = value
        if options:
            payload.update(options)
        if temperature is not None:
            payload["temperature"] = temperature
        if tools and self.supports_tools:
            payload["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]
        return {k: v for k, v in payload.items() if v is not None}

    async def generate(
        self,
        system_prompt: str | None,
        messages: list[dict[str, Any]],
        tools: list[ToolSchema] | None = None,
        temperature: float | None = None,
        model: str | None = None,
        options: dict[str, Any] | None = None,
        api_key: str | None = None,
    ) -> AsyncIterator[ProviderEvent]:
        """Stream one model step as provider events."""
        if not self.client:
            raise ProviderError("LLM client not initialized")

        api_messages = list(messages)
        if system_prompt:
            api_messages.insert(0, {"role": "system", "content": system_prompt})
        payload = self._build_payload(api_messages, tools, temperature, model, options)
        headers = {"Accept": "text/event-stream", "Accept-Encoding": "identity"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._active_streams += 1
        logger.info("→ LLM: streaming request, model=%s, tools=%d", payload["model"], len(payload.get("tools", [])))
        tool_calls: list[dict[str, Any]] = []
        finish_reason: str | None = None
        try:
            async with self.client.stream(
                "POST", "/chat/completions", json=payload, headers=headers
            ) as response:
                if response.status_code != 200:
                    error_text = (await response.aread()).decode(errors="replace")
                    raise ProviderError(
                        f"Streaming API error {response.status_code}: {error_text[:500]}",
                        status_code=response.status_code,
                    )

                chunk_count = 0
                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[6:].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk: dict[str, Any] = json.loads(data)
                    except json.JSONDecodeError as e:
                        raise ProviderError(f"Invalid JSON in stream chunk: {e}") from e
                    if "error" in chunk:
                        raise ProviderError(f"Provider error in stream: {chunk['error']}")

                    choices = chunk.get("choices") or []
                    if not choices:
                        continue
                    chunk_count += 1
                    choice = choices[0]
                    delta: dict[str, Any] = choice.get("delta") or {}

                    for field in _REASONING_FIELDS:
                        if delta.get(field):
                            yield ReasoningDelta(text=delta[field])
                            break

                    if delta.get("content"):
                        yield TextDelta(text=delta["content"])

                    for raw_delta in delta.get("tool_calls") or []:
                        self._accumulate_tool_call_delta(tool_calls, ToolCallDelta.model_validate(raw_delta))

                    if choice.get("finish_reason"):
                        finish_reason = choice["finish_reason"]

                if chunk_count == 0:
                    raise ProviderError("No streaming chunks received from API")

        except httpx.HTTPError as e:
            logger.error("HTTP error during streaming: %s", e)
            raise ProviderError(f"HTTP error: {e!s}") from e
        finally:
            self._active_streams -= 1
            if self._active_streams == 0 and self._pending_config is not None:
                task = asyncio.get_running_loop().create_task(self._apply_pending_config())
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        for call in tool_calls:
            # Drop fragments that never received an id or a name
            if call["id"] and call["function"]["name"]:
                yield ToolCallRequest(
                    id=call["id"],
                    name=call["function"]["name"],
                    arguments=call["function"]["arguments"] or "{}",
                )
        logger.info("← LLM: streaming completed, finish_reason=%s", finish_reason)
        yield FinishEvent(finish_reason=finish_reason)

    def _accumulate_tool_call_delta(self, current_tool_calls: list[dict[str, Any]], delta: ToolCallDelta) -> None:
        """
        Merge one streamed tool call fragment into the accumulated calls.

        Fragments carry the call index; id and name usually arrive once and
        the JSON arguments arrive in pieces that are concatenated.
        """
        index = delta.index if delta.index is not None else len(current_tool_calls)

        while len(current_tool_calls) <= index:
            current_tool_calls.append(
                {"id": None, "type": "function", "function": {"name": None, "arguments": ""}}
            )

        current_call = current_tool_calls[index]
        if delta.id:
            current_call["id"] = delta.id
        if delta.function:
            if delta.function.name:
                current_call["function"]["name"] = delta.function.name
            if delta.function.arguments:
                current_call["function"]["arguments"] += delta.function.arguments

    async def close(self) -> None:
        """Close the HTTP client and unsubscribe from config changes."""
        self.configuration.unsubscribe_from_changes(self._on_config_change)
        if self.client:
            await self.client.aclose()
            self.client = None

    async def __aenter__(self) -> LLMClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()
