"""
Repository MCP client.

Connects to a remote, read-only GitHub MCP server over streamable HTTP,
authenticating with a personal access token. Used by the repository agent
to expose the server's tools to a nested model run.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, McpError, types
from mcp.client.streamable_http import streamablehttp_client

logger = logging.getLogger(__name__)


class RepositoryMCPClient:
    """Session wrapper for one MCP server; use as an async context manager."""

    def __init__(self, url: str, token: str, connection_timeout: float = 30.0) -> None:
        self.url = url
        self._token = token
        self._connection_timeout = connection_timeout
        self.session: ClientSession | None = None
        self.exit_stack = AsyncExitStack()
        self.client_version = "0.1.0"

    async def connect(self) -> None:
        headers = {"Authorization": f"Bearer {self._token}"}
        read_stream, write_stream, _ = await self.exit_stack.enter_async_context(
            streamablehttp_client(self.url, headers=headers)
        )
        client_info = types.Implementation(name="artifact-chat-repository", version=self.client_version)
        self.session = await self.exit_stack.enter_async_context(
            ClientSession(read_stream, write_stream, client_info=client_info)
        )
        await asyncio.wait_for(self.session.initialize(), timeout=self._connection_timeout)
        logger.info("← MCP: connected to %s", self.url)

    def _require_session(self) -> ClientSession:
        if not self.session:
            raise McpError(
                error=types.ErrorData(
                    code=types.INTERNAL_ERROR,
                    message=f"Not connected to {self.url}",
                )
            )
        return self.session

    async def list_tools(self) -> list[types.Tool]:
        result = await self._require_session().list_tools()
        return result.tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> types.CallToolResult:
        logger.info("→ MCP: calling tool '%s'", name)
        return await self._require_session().call_tool(name, arguments)

    async def close(self) -> None:
        await self.exit_stack.aclose()
        self.session = None

    async def __aenter__(self) -> RepositoryMCPClient:
        try:
            await self.connect()
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def tool_result_text(result: types.CallToolResult) -> str:
    """Flatten an MCP tool result to text for the model's context."""
    if result.structuredContent:
        return json.dumps(result.structuredContent, indent=2)
    if not result.content:
        return "✓ done"

    out: list[str] = []
    for item in result.content:
        if isinstance(item, types.TextContent):
            out.append(item.text)
        elif isinstance(item, types.ImageContent):
            out.append(f"[Image: {item.mimeType}, {len(item.data)} bytes]")
        elif isinstance(item, types.EmbeddedResource):
            if isinstance(item.resource, types.TextResourceContents):
                out.append(item.resource.text)
            else:
                out.append(f"[Embedded resource: {type(item.resource).__name__}]")
        else:
            out.append(f"[{type(item).__name__}]")
    return "\n".join(out)
