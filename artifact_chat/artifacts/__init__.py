#!/usr/bin/env python3
"""
Artifact Versions Module

Append-only version chains for documents, code and diagrams.
"""

from __future__ import annotations

from .factory import create_artifact_store
from .memory_repo import InMemoryArtifactStore
from .models import ArtifactKind, ArtifactVersion, make_version_id
from .repository import ArtifactVersionStore, diff_versions
from .sqlite_repo import SQLiteArtifactStore

__all__ = [
    "ArtifactKind",
    "ArtifactVersion",
    "ArtifactVersionStore",
    "InMemoryArtifactStore",
    "SQLiteArtifactStore",
    "create_artifact_store",
    "diff_versions",
    "make_version_id",
]
