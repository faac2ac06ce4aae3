"""Clients package containing the model provider and repository MCP clients."""

from __future__ import annotations

from .llm_client import LLMClient
from .provider import ModelProvider, collect_text
from .repository_mcp import RepositoryMCPClient

__all__ = ["LLMClient", "ModelProvider", "RepositoryMCPClient", "collect_text"]
