"""
Agent Config Registry

Loads per-agent configuration from a config backend, validates it and caches
the validated result process-wide. Per-request overrides (selected model,
caller-supplied credentials) are layered on top without touching the
backend or the cache.

Concurrency: the cache and the override table are immutable mappings that
are replaced on write, so readers never take a lock. Backend fetches for the
same key are serialized by a per-key lock with a double-checked cache lookup,
which makes concurrent first loads hit the backend once.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from artifact_chat.errors import (
    AgentDisabled,
    ArtifactChatError,
    ConfigFetchFailed,
    InvalidConfiguration,
)
from artifact_chat.locks import KeyedLocks

from .backend import ConfigBackend
from .models import AgentConfig, AgentType, config_key, resolve_field_name

if TYPE_CHECKING:
    from artifact_chat.config import Configuration

logger = logging.getLogger(__name__)

_EMPTY: Mapping[str, Any] = MappingProxyType({})


class AgentConfigRegistry:
    """Process-wide registry; use ``for_request()`` to get a per-request view."""

    def __init__(self, backend: ConfigBackend, parent: AgentConfigRegistry | None = None) -> None:
        self.backend = backend
        self._parent = parent
        self._cache: Mapping[str, AgentConfig] = _EMPTY
        self._overrides: Mapping[str, Mapping[str, Any]] = _EMPTY
        self._key_locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, agent_type: AgentType | str, provider: str) -> AgentConfig:
        """
        Resolve the effective configuration for one agent.

        Raises:
            AgentDisabled: The agent is switched off or has no stored config
            ConfigFetchFailed: The backend could not be reached
            InvalidConfiguration: Stored config or overrides fail validation
        """
        agent_type = AgentType(agent_type)
        key = config_key(agent_type, provider)
        base = await self._root()._load_base(key)

        overrides = self._effective_overrides(agent_type)
        try:
            config = base.with_overrides(dict(overrides))
        except (ValidationError, KeyError) as e:
            raise InvalidConfiguration(
                f"Overrides for {agent_type.value} are invalid: {e}",
                details={"config_key": key},
            ) from e

        if not config.enabled:
            raise AgentDisabled(f"{agent_type.value} is disabled", details={"config_key": key})
        return config

    async def _load_base(self, key: str) -> AgentConfig:
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        async with self._key_locks.hold(key):
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            logger.debug("→ Config: fetching %s", key)
            try:
                raw = await self.backend.get(key)
            except ArtifactChatError:
                raise
            except Exception as e:
                raise ConfigFetchFailed(
                    f"Config backend failed for {key}: {e}",
                    details={"config_key": key},
                ) from e

            if raw is None:
                raise AgentDisabled(f"No configuration stored for {key}", details={"config_key": key})

            data = raw.get("configData", raw) if isinstance(raw, dict) else raw
            try:
                config = AgentConfig.model_validate(data)
            except ValidationError as e:
                logger.warning("Invalid stored config for %s: %s", key, e.errors(include_url=False))
                raise InvalidConfiguration(
                    f"Stored configuration for {key} is invalid",
                    details={"config_key": key, "errors": e.errors(include_url=False)},
                ) from e

            self._cache = MappingProxyType({**self._cache, key: config})
            logger.info("← Config: loaded %s (enabled=%s)", key, config.enabled)
            return config

    def _root(self) -> AgentConfigRegistry:
        registry = self
        while registry._parent is not None:
            registry = registry._parent
        return registry

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    def set_override(self, agent_type: AgentType | str, field: str, value: Any) -> None:
        """Override one field for ``agent_type``; last writer wins.

        ``field`` is a config field name (``model_id``/``modelId``) or a dotted
        path into a dict field (``credentials.api_key``).
        """
        agent_type = AgentType(agent_type)
        resolve_field_name(field.partition(".")[0])

        current = self._overrides.get(agent_type.value, _EMPTY)
        updated = MappingProxyType({**current, field: value})
        self._overrides = MappingProxyType({**self._overrides, agent_type.value: updated})

    def clear_overrides(self, agent_type: AgentType | str | None = None) -> None:
        if agent_type is None:
            self._overrides = _EMPTY
            return
        value = AgentType(agent_type).value
        self._overrides = MappingProxyType({k: v for k, v in self._overrides.items() if k != value})

    def _effective_overrides(self, agent_type: AgentType) -> Mapping[str, Any]:
        inherited = self._parent._effective_overrides(agent_type) if self._parent else _EMPTY
        own = self._overrides.get(agent_type.value, _EMPTY)
        if not inherited:
            return own
        return {**inherited, **own}

    def for_request(self) -> AgentConfigRegistry:
        """Child view sharing this registry's cache but holding its own overrides."""
        return AgentConfigRegistry(self.backend, parent=self)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, agent_type: AgentType | str | None = None, provider: str | None = None) -> None:
        """Drop cached configs, all of them or those matching the filters."""
        root = self._root()
        if agent_type is None and provider is None:
            root._cache = _EMPTY
            logger.info("Agent config cache cleared")
            return

        prefix = AgentType(agent_type).value + "_" if agent_type is not None else None
        suffix = "_" + provider if provider is not None else None
        root._cache = MappingProxyType({
            key: config
            for key, config in root._cache.items()
            if not ((prefix is None or key.startswith(prefix)) and (suffix is None or key.endswith(suffix)))
        })

    def watch_configuration(self, configuration: Configuration) -> None:
        """Clear the cache whenever the ``agents`` config section changes."""
        last_agents = dict(configuration.get_agents_config())

        def _on_change(new_config: dict[str, Any]) -> None:
            nonlocal last_agents
            agents = dict(new_config.get("agents", {}))
            if agents != last_agents:
                last_agents = agents
                self.invalidate()

        configuration.subscribe_to_changes(_on_change)

    @property
    def cached_keys(self) -> list[str]:
        return sorted(self._root()._cache)
