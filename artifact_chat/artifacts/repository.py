#!/usr/bin/env python3
"""
Artifact Version Store Interface and Utilities

This module defines the store protocol shared by the in-memory and SQLite
backends plus helpers that only rely on the protocol.
"""

from __future__ import annotations

import difflib
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from artifact_chat.errors import StaleParentVersion

from .models import ArtifactKind, ArtifactVersion, make_version_id

# ---------- Store interface ----------


@runtime_checkable
class ArtifactVersionStore(Protocol):
    """Persistence contract for versioned artifacts.

    ``save`` appends version ``max + 1`` for ``artifact_id`` and must never
    produce two rows with the same version number, even when called
    concurrently for the same id. ``parent_version_id`` names the version the
    new content was derived from: it must be the current latest version, or
    ``None`` for the first one. Anything else raises ``StaleParentVersion``
    and nothing is written.
    """

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
    ) -> ArtifactVersion: ...

    async def get_latest(self, artifact_id: str) -> ArtifactVersion: ...

    async def get_version(self, artifact_id: str, version_number: int) -> ArtifactVersion: ...

    async def list_versions(self, artifact_id: str) -> list[ArtifactVersion]: ...

    async def delete_after(self, artifact_id: str, timestamp: datetime) -> list[ArtifactVersion]: ...

    async def close(self) -> None: ...


# ---------- Helpers ----------


def check_parent(artifact_id: str, parent_version_id: str | None, previous_max: int) -> None:
    """Raise ``StaleParentVersion`` unless ``parent_version_id`` is the latest version."""
    expected = make_version_id(artifact_id, previous_max) if previous_max else None
    if parent_version_id != expected:
        raise StaleParentVersion(
            f"{artifact_id} is at version {previous_max}, not based on {parent_version_id}",
            details={
                "artifact_id": artifact_id,
                "parent_version_id": parent_version_id,
                "latest_version_id": expected,
            },
        )


async def diff_versions(
    store: ArtifactVersionStore,
    artifact_id: str,
    from_version: int,
    to_version: int,
    context_lines: int = 3,
) -> str:
    """
    Unified diff between two versions of the same artifact.

    Raises:
        ArtifactNotFound: If either version does not exist
    """
    old = await store.get_version(artifact_id, from_version)
    new = await store.get_version(artifact_id, to_version)
    lines = difflib.unified_diff(
        old.content.splitlines(keepends=True),
        new.content.splitlines(keepends=True),
        fromfile=old.version_id,
        tofile=new.version_id,
        n=context_lines,
    )
    return "".join(lines)
