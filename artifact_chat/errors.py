"""
Error taxonomy for the artifact orchestration core.

Agent-level failures (generation, persistence, missing artifacts, bad input)
are turned into tool results by the agents; only configuration fetch failures
and unrecoverable transport failures abort an orchestration run.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    CONFIG_FETCH_FAILED = "config_fetch_failed"
    INVALID_CONFIGURATION = "invalid_configuration"
    AGENT_DISABLED = "agent_disabled"
    ARTIFACT_NOT_FOUND = "artifact_not_found"
    VERSION_CONFLICT = "version_conflict"
    GENERATION_FAILED = "generation_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    TIMEOUT = "timeout"
    STEP_BOUND_EXCEEDED = "step_bound_exceeded"
    INPUT_VALIDATION_FAILED = "input_validation_failed"
    PROVIDER_ERROR = "provider_error"


_USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.CONFIG_FETCH_FAILED: "Agent configuration is temporarily unavailable. Please try again.",
    ErrorCode.INVALID_CONFIGURATION: "This agent is misconfigured and is currently unavailable.",
    ErrorCode.AGENT_DISABLED: "This agent is disabled.",
    ErrorCode.ARTIFACT_NOT_FOUND: "The requested artifact or version does not exist.",
    ErrorCode.VERSION_CONFLICT: "Another edit was saved at the same time. Please retry.",
    ErrorCode.GENERATION_FAILED: "The model failed to generate content.",
    ErrorCode.PERSISTENCE_FAILED: "The artifact could not be saved.",
    ErrorCode.TIMEOUT: "The request took too long and was stopped.",
    ErrorCode.STEP_BOUND_EXCEEDED: "The tool call limit for this turn was reached.",
    ErrorCode.INPUT_VALIDATION_FAILED: "The tool was called with invalid input.",
    ErrorCode.PROVIDER_ERROR: "The model provider returned an error.",
}


class ArtifactChatError(Exception):
    """Base class carrying an error code, recoverability and context details."""

    code: ErrorCode = ErrorCode.PROVIDER_ERROR
    recoverable: bool = False

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def user_message(self) -> str:
        """Short message safe to show to an end user."""
        return _USER_MESSAGES.get(self.code, self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


class ConfigFetchFailed(ArtifactChatError):
    code = ErrorCode.CONFIG_FETCH_FAILED
    recoverable = True


class InvalidConfiguration(ArtifactChatError):
    code = ErrorCode.INVALID_CONFIGURATION


class AgentDisabled(ArtifactChatError):
    """Raised by the registry when an agent is switched off. Expected, not a failure."""

    code = ErrorCode.AGENT_DISABLED
    recoverable = True


class ArtifactNotFound(ArtifactChatError):
    code = ErrorCode.ARTIFACT_NOT_FOUND


class VersionConflict(ArtifactChatError):
    code = ErrorCode.VERSION_CONFLICT
    recoverable = True


class StaleParentVersion(VersionConflict):
    """The write was based on a version that is no longer the latest."""


class GenerationFailed(ArtifactChatError):
    code = ErrorCode.GENERATION_FAILED


class PersistenceFailed(ArtifactChatError):
    code = ErrorCode.PERSISTENCE_FAILED


class OrchestrationTimeout(ArtifactChatError):
    code = ErrorCode.TIMEOUT


class StepBoundExceeded(ArtifactChatError):
    code = ErrorCode.STEP_BOUND_EXCEEDED
    recoverable = True


class InputValidationFailed(ArtifactChatError):
    code = ErrorCode.INPUT_VALIDATION_FAILED


class ProviderError(ArtifactChatError):
    """Transport or protocol failure talking to the model provider."""

    code = ErrorCode.PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code
        # 429 and 5xx can be retried by the caller
        self.recoverable = status_code is not None and (status_code == 429 or status_code >= 500)
