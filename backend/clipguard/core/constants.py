"""Project-wide constants and state definitions."""

from __future__ import annotations

from enum import Enum


class SensitivityStatus(str, Enum):
    PENDING = "pending"
    SAFE = "safe"
    FLAGGED = "flagged"


TERMINAL_STATUSES = {SensitivityStatus.SAFE, SensitivityStatus.FLAGGED}


class ArtifactState(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


# Provider file states (Gemini Files API) mapped onto our artifact states.
PROVIDER_STATES = {
    "STATE_UNSPECIFIED": ArtifactState.PROCESSING,
    "PROCESSING": ArtifactState.PROCESSING,
    "ACTIVE": ArtifactState.READY,
    "FAILED": ArtifactState.FAILED,
}

STATUS_EVENT_NAME = "videoStatusUpdate"

PLACEHOLDER_API_KEYS = {
    "your_gemini_api_key_here",
    "your_api_key_here",
    "changeme",
    "placeholder",
}
