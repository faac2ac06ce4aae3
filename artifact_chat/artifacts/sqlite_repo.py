#!/usr/bin/env python3
"""
SQLite Artifact Store Implementation

Durable storage for artifact version chains.

CONFIG: artifacts.storage.type = "sqlite", artifacts.storage.db_path
PURPOSE: Default persistent backend
FEATURES: WAL mode, UNIQUE(id, version_number), per-id locking, conflict retry
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import UTC, datetime
from typing import Any

import aiosqlite

from artifact_chat.errors import ArtifactNotFound, PersistenceFailed, StaleParentVersion, VersionConflict
from artifact_chat.locks import KeyedLocks

from .models import ArtifactKind, ArtifactVersion
from .repository import ArtifactVersionStore, check_parent

logger = logging.getLogger(__name__)


class SQLiteArtifactStore(ArtifactVersionStore):
    """SQLite-backed version chains.

    Writers for one artifact id are serialized in-process by a per-id lock and
    across processes by ``BEGIN IMMEDIATE``; the unique index on
    ``(id, version_number)`` rejects anything that slips through, and the
    write is retried with a fresh ``max + 1``. A stale parent is checked
    inside the same transaction and is never retried here.
    """

    def __init__(
        self,
        db_path: str = "artifacts.db",
        max_conflict_retries: int = 3,
        busy_timeout_seconds: float = 5.0,
    ):
        self.db_path = db_path
        self.max_conflict_retries = max_conflict_retries
        self.busy_timeout_seconds = busy_timeout_seconds
        self._lock = asyncio.Lock()
        self._initialized = False
        self._id_locks = KeyedLocks()

    async def _ensure_initialized(self) -> None:
        """Initialize database schema if not already done."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            async with aiosqlite.connect(self.db_path, timeout=self.busy_timeout_seconds) as db:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA synchronous=NORMAL")

                await db.execute("""
                    CREATE TABLE IF NOT EXISTS artifact_versions (
                        id TEXT NOT NULL,
                        version_number INTEGER NOT NULL,
                        parent_version_id TEXT,
                        kind TEXT NOT NULL,
                        title TEXT NOT NULL DEFAULT '',
                        content TEXT NOT NULL,
                        chat_id TEXT,
                        user_id TEXT,
                        metadata TEXT,
                        created_at TEXT NOT NULL
                    )
                """)
                await db.execute("""
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_artifact_version
                    ON artifact_versions(id, version_number)
                """)
                await db.execute("""
                    CREATE INDEX IF NOT EXISTS idx_artifact_chat
                    ON artifact_versions(chat_id)
                """)
                await db.commit()

            self._initialized = True
            logger.info("← Store: SQLite artifact store ready at %s", self.db_path)

    def _serialize_version(self, version: ArtifactVersion) -> dict[str, Any]:
        """Convert ArtifactVersion to database row format."""
        return {
            "id": version.id,
            "version_number": version.version_number,
            "parent_version_id": version.parent_version_id,
            "kind": version.kind.value,
            "title": version.title,
            "content": version.content,
            "chat_id": version.chat_id,
            "user_id": version.user_id,
            "metadata": json.dumps(version.metadata) if version.metadata else None,
            "created_at": version.created_at.isoformat(),
        }

    def _deserialize_version(self, row: dict[str, Any]) -> ArtifactVersion:
        """Convert database row to ArtifactVersion."""
        return ArtifactVersion(
            id=row["id"],
            version_number=row["version_number"],
            parent_version_id=row["parent_version_id"],
            kind=ArtifactKind(row["kind"]),
            title=row["title"] or "",
            content=row["content"],
            chat_id=row["chat_id"],
            user_id=row["user_id"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=datetime.fromisoformat(row["created_at"]),
        )

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
        await self._ensure_initialized()

        async with self._id_locks.hold(artifact_id):
            attempt = 0
            while True:
                try:
                    return await self._insert_next_version(
                        artifact_id, kind, content, user_id, chat_id,
                        parent_version_id, metadata, title,
                    )
                except StaleParentVersion:
                    raise
                except VersionConflict:
                    attempt += 1
                    if attempt > self.max_conflict_retries:
                        raise
                    logger.warning(
                        "Version conflict on %s, retrying (%d/%d)",
                        artifact_id,
                        attempt,
                        self.max_conflict_retries,
                    )
                    await asyncio.sleep(0.01 * attempt)

    async def _insert_next_version(
        self,
        artifact_id: str,
        kind: ArtifactKind,
        content: str,
        user_id: str | None,
        chat_id: str | None,
        parent_version_id: str | None,
        metadata: dict[str, Any] | None,
        title: str,
    ) -> ArtifactVersion:
        try:
            async with aiosqlite.connect(self.db_path, timeout=self.busy_timeout_seconds) as db:
                # Take the write lock before reading max so other processes wait
                await db.execute("BEGIN IMMEDIATE")
                async with db.execute(
                    (
                        "SELECT version_number, created_at FROM artifact_versions "
                        "WHERE id = ? ORDER BY version_number DESC LIMIT 1"
                    ),
                    (artifact_id,),
                ) as cursor:
                    row = await cursor.fetchone()

                previous_max = row[0] if row else 0
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
                if row:
                    previous_created = datetime.fromisoformat(row[1])
                    if version.created_at < previous_created:
                        version = version.model_copy(update={"created_at": previous_created})

                row_data = self._serialize_version(version)
                columns = ", ".join(row_data.keys())
                placeholders = ", ".join("?" * len(row_data))
                await db.execute(
                    f"INSERT INTO artifact_versions ({columns}) VALUES ({placeholders})",
                    list(row_data.values()),
                )
                await db.commit()
        except sqlite3.IntegrityError as e:
            raise VersionConflict(
                f"Version {artifact_id} already written by a concurrent writer",
                details={"artifact_id": artifact_id},
            ) from e
        except sqlite3.Error as e:
            raise PersistenceFailed(
                f"Could not write artifact {artifact_id}: {e}",
                details={"artifact_id": artifact_id},
            ) from e

        if version.version_number != previous_max + 1:
            raise VersionConflict(
                f"Version chain for {artifact_id} is not dense",
                details={"artifact_id": artifact_id},
            )
        logger.debug("← Store: saved %s", version.version_id)
        return version

    async def _fetch(self, query: str, params: list[Any]) -> list[ArtifactVersion]:
        await self._ensure_initialized()
        try:
            async with aiosqlite.connect(self.db_path, timeout=self.busy_timeout_seconds) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise PersistenceFailed(f"Could not read artifacts: {e}") from e
        return [self._deserialize_version(dict(row)) for row in rows]

    async def get_latest(self, artifact_id: str) -> ArtifactVersion:
        rows = await self._fetch(
            "SELECT * FROM artifact_versions WHERE id = ? ORDER BY version_number DESC LIMIT 1",
            [artifact_id],
        )
        if not rows:
            raise ArtifactNotFound(
                f"Artifact {artifact_id} has no versions",
                details={"artifact_id": artifact_id},
            )
        return rows[0]

    async def get_version(self, artifact_id: str, version_number: int) -> ArtifactVersion:
        rows = await self._fetch(
            "SELECT * FROM artifact_versions WHERE id = ? AND version_number = ?",
            [artifact_id, version_number],
        )
        if not rows:
            raise ArtifactNotFound(
                f"Artifact {artifact_id} has no version {version_number}",
                details={"artifact_id": artifact_id, "version_number": version_number},
            )
        return rows[0]

    async def list_versions(self, artifact_id: str) -> list[ArtifactVersion]:
        return await self._fetch(
            "SELECT * FROM artifact_versions WHERE id = ? ORDER BY version_number",
            [artifact_id],
        )

    async def delete_after(self, artifact_id: str, timestamp: datetime) -> list[ArtifactVersion]:
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)

        await self._ensure_initialized()
        async with self._id_locks.hold(artifact_id):
            versions = await self.list_versions(artifact_id)
            deleted = [v for v in versions if v.created_at > timestamp]
            if not deleted:
                return []

            try:
                async with aiosqlite.connect(self.db_path, timeout=self.busy_timeout_seconds) as db:
                    await db.execute(
                        "DELETE FROM artifact_versions WHERE id = ? AND version_number >= ?",
                        (artifact_id, deleted[0].version_number),
                    )
                    await db.commit()
            except sqlite3.Error as e:
                raise PersistenceFailed(f"Could not delete versions of {artifact_id}: {e}") from e

        logger.info(
            "← Store: deleted %d versions of %s after %s",
            len(deleted),
            artifact_id,
            timestamp.isoformat(),
        )
        return deleted

    async def close(self) -> None:
        # Connections are opened per operation
        return None
