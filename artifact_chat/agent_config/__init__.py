"""Agent configuration: models, backends and the process-wide registry."""

from __future__ import annotations

from .backend import (
    ConfigBackend,
    InMemoryConfigBackend,
    SQLiteConfigBackend,
    YamlConfigBackend,
    create_config_backend,
)
from .models import AgentConfig, AgentType, OperationPrompt, ParameterSpec, RateLimit, config_key
from .registry import AgentConfigRegistry

__all__ = [
    "AgentConfig",
    "AgentConfigRegistry",
    "AgentType",
    "ConfigBackend",
    "InMemoryConfigBackend",
    "OperationPrompt",
    "ParameterSpec",
    "RateLimit",
    "SQLiteConfigBackend",
    "YamlConfigBackend",
    "config_key",
    "create_config_backend",
]
