#!/usr/bin/env python3
"""
Artifact Store Factory

Factory function to create the artifact store based on configuration.
"""

from __future__ import annotations

import logging
from typing import Any

from .memory_repo import InMemoryArtifactStore
from .repository import ArtifactVersionStore
from .sqlite_repo import SQLiteArtifactStore

logger = logging.getLogger(__name__)


def create_artifact_store(storage_config: dict[str, Any]) -> ArtifactVersionStore:
    """Create the artifact store described by ``artifacts.storage``.

    Supported types are ``sqlite`` (default) and ``memory``.
    """
    store_type = storage_config.get("type", "sqlite")

    if store_type == "memory":
        logger.info("Using in-memory artifact store")
        return InMemoryArtifactStore()

    if store_type == "sqlite":
        db_path = storage_config.get("db_path", "artifacts.db")
        logger.info("Using SQLite artifact store at %s", db_path)
        return SQLiteArtifactStore(
            db_path=db_path,
            max_conflict_retries=int(storage_config.get("max_conflict_retries", 3)),
            busy_timeout_seconds=float(storage_config.get("busy_timeout_seconds", 5.0)),
        )

    raise ValueError(f"Unknown artifact storage type '{store_type}'")
