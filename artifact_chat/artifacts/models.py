#!/usr/bin/env python3
"""
Artifact Version Data Models

Pydantic models for the append-only artifact version chain.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

# ---------- Type definitions ----------


class ArtifactKind(str, Enum):
    DOCUMENT = "document"
    CODE = "code"
    DIAGRAM = "diagram"


def make_version_id(artifact_id: str, version_number: int) -> str:
    """Stable identifier of a single version row."""
    return f"{artifact_id}@v{version_number}"


# ---------- Main version model ----------


class ArtifactVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    version_number: int = Field(ge=1)
    parent_version_id: str | None = None
    kind: ArtifactKind
    title: str = ""
    content: str = ""
    chat_id: str | None = None
    user_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def version_id(self) -> str:
        return make_version_id(self.id, self.version_number)

    def summary(self) -> dict[str, Any]:
        """Compact description handed back to the model instead of the content."""
        return {
            "id": self.id,
            "title": self.title,
            "kind": self.kind.value,
            "version": self.version_number,
            "parent_version_id": self.parent_version_id,
        }
