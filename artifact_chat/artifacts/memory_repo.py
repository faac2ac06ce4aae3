#!/usr/bin/env python3
"""
In-Memory Artifact Store

Fast in-memory storage for versioned artifacts.

CONFIG: artifacts.storage.type = "memory"
PURPOSE: Development/testing - all data lost on restart
FEATURES: Per-artifact locking, dense version numbering
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from artifact_chat.errors import ArtifactNotFound, VersionConflict
from artifact_chat.locks import KeyedLocks

from .models import ArtifactKind, ArtifactVersion
from .repository import ArtifactVersionStore, check_parent

logger = logging.getLogger(__name__)


class InMemoryArtifactStore(ArtifactVersionStore):
    """In-memory version chains - configure with type='memory'. Data lost on restart."""

    def __init__(self) -> None:
        self._versions: dict[str, list[ArtifactVersion]] = {}
        self._locks = KeyedLocks()

    async def save(
        self,
        artifact_id: str,
        kind: ArtifactKind,
        content: str,
        user_id: str | None,
        chat_id: str | None,
        parent_version_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        title: str = "",
    ) -> ArtifactVersion:
        async with self._locks.hold(artifact_id):
            chain = self._versions.get(artifact_id, [])
            previous_max = chain[-1].version_number if chain else 0
            check_parent(artifact_id, parent_version_id, previous_max)

            version = ArtifactVersion(
                id=artifact_id,
                version_number=previous_max + 1,
                parent_version_id=parent_version_id,
                kind=kind,
                title=title,
                content=content,
                chat_id=chat_id,
                user_id=user_id,
                metadata=dict(metadata or {}),
            )
            if chain and version.created_at < chain[-1].created_at:
                # Keep creation time monotonic within a chain
                version = version.model_copy(update={"created_at": chain[-1].created_at})

            if version.version_number != len(chain) + 1:
                raise VersionConflict(
                    f"Version chain for {artifact_id} is not dense",
                    details={"artifact_id": artifact_id, "expected": len(chain) + 1},
                )
            self._versions.setdefault(artifact_id, []).append(version)

        logger.debug("← Store: saved %s", version.version_id)
        return version

    async def get_latest(self, artifact_id: str) -> ArtifactVersion:
        chain = self._versions.get(artifact_id)
        if not chain:
            raise ArtifactNotFound(
                f"Artifact {artifact_id} has no versions",
                details={"artifact_id": artifact_id},
            )
        return chain[-1]

    async def get_version(self, artifact_id: str, version_number: int) -> ArtifactVersion:
        chain = self._versions.get(artifact_id, [])
        if version_number < 1 or version_number > len(chain):
            raise ArtifactNotFound(
                f"Artifact {artifact_id} has no version {version_number}",
                details={"artifact_id": artifact_id, "version_number": version_number},
            )
        return chain[version_number - 1]

    async def list_versions(self, artifact_id: str) -> list[ArtifactVersion]:
        return list(self._versions.get(artifact_id, []))

    async def delete_after(self, artifact_id: str, timestamp: datetime) -> list[ArtifactVersion]:
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)

        async with self._locks.hold(artifact_id):
            chain = self._versions.get(artifact_id, [])
            kept = [v for v in chain if v.created_at <= timestamp]
            deleted = [v for v in chain if v.created_at > timestamp]
            if kept:
                self._versions[artifact_id] = kept
            else:
                self._versions.pop(artifact_id, None)

        if deleted:
            logger.info(
                "← Store: deleted %d versions of %s after %s",
                len(deleted),
                artifact_id,
                timestamp.isoformat(),
            )
        return deleted

    async def close(self) -> None:
        return None
