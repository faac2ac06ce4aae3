"""
Agent Config Backends

Keyed lookup of raw agent configuration: ``get(config_key)`` returns
``{"configData": {...}}`` (or the bare config dict) or ``None`` when the key
is unknown. Schema validation is the registry's job, not the backend's.

CONFIG: agents.backend.type = "yaml" | "sqlite" | "memory"
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
from typing import Any, Protocol, cast, runtime_checkable

import aiosqlite
import yaml

from artifact_chat.errors import ConfigFetchFailed

logger = logging.getLogger(__name__)

_PACKAGE_DIR = os.path.dirname(os.path.dirname(__file__))


@runtime_checkable
class ConfigBackend(Protocol):
    async def get(self, config_key: str) -> dict[str, Any] | None: ...


class InMemoryConfigBackend(ConfigBackend):
    """Dict-backed backend for tests and embedded use."""

    def __init__(self, configs: dict[str, dict[str, Any]] | None = None) -> None:
        self._configs: dict[str, dict[str, Any]] = dict(configs or {})
        self.fetch_count = 0

    async def get(self, config_key: str) -> dict[str, Any] | None:
        self.fetch_count += 1
        data = self._configs.get(config_key)
        return {"configData": data} if data is not None else None

    def put(self, config_key: str, config_data: dict[str, Any]) -> None:
        self._configs[config_key] = config_data


class YamlConfigBackend(ConfigBackend):
    """Reads a YAML mapping of ``config_key -> configData``.

    The file is re-read on every fetch; the registry caches the parsed
    result, so this only happens on first use or after invalidation.
    """

    def __init__(self, path: str) -> None:
        self.path = path if os.path.isabs(path) else os.path.join(_PACKAGE_DIR, path)

    def _read(self) -> dict[str, Any]:
        with open(self.path) as file:
            data = yaml.safe_load(file) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping of config keys")
        return cast(dict[str, Any], data)

    async def get(self, config_key: str) -> dict[str, Any] | None:
        try:
            data = await asyncio.to_thread(self._read)
        except (OSError, yaml.YAMLError, ValueError) as e:
            raise ConfigFetchFailed(
                f"Could not read agent configs from {self.path}: {e}",
                details={"config_key": config_key},
            ) from e
        config_data = data.get(config_key)
        return {"configData": config_data} if config_data is not None else None


class SQLiteConfigBackend(ConfigBackend):
    """``admin_config(config_key, config_data)`` table in SQLite."""

    def __init__(self, db_path: str = "agent_configs.db") -> None:
        self.db_path = db_path
        self._lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._lock:
            if self._initialized:
                return
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS admin_config (
                        config_key TEXT PRIMARY KEY,
                        config_data TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                await db.commit()
            self._initialized = True

    async def get(self, config_key: str) -> dict[str, Any] | None:
        try:
            await self._ensure_initialized()
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(
                    "SELECT config_data FROM admin_config WHERE config_key = ?",
                    (config_key,),
                ) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise ConfigFetchFailed(
                f"Config backend unavailable: {e}",
                details={"config_key": config_key},
            ) from e
        if row is None:
            return None
        return {"configData": json.loads(row[0])}

    async def put(self, config_key: str, config_data: dict[str, Any]) -> None:
        await self._ensure_initialized()
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO admin_config (config_key, config_data) VALUES (?, ?)
                ON CONFLICT(config_key) DO UPDATE SET
                    config_data = excluded.config_data,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (config_key, json.dumps(config_data)),
            )
            await db.commit()
        logger.info("← Config: stored %s", config_key)


def create_config_backend(backend_config: dict[str, Any]) -> ConfigBackend:
    backend_type = backend_config.get("type", "yaml")
    if backend_type == "yaml":
        return YamlConfigBackend(backend_config.get("path", "agent_configs.yaml"))
    if backend_type == "sqlite":
        return SQLiteConfigBackend(backend_config.get("db_path", "agent_configs.db"))
    if backend_type == "memory":
        return InMemoryConfigBackend()
    raise ValueError(f"Unknown agent config backend type '{backend_type}'")
