"""Domain models for federated-login callback handling."""

from dataclasses import dataclass
from enum import StrEnum


class CallbackState(StrEnum):
    """States of a callback resolution run."""

    IDLE = "idle"
    DETECTED = "detected"
    PROCESSING = "processing"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class CallbackOutcome:
    """Where a callback run sent the user, and why."""

    state: CallbackState
    destination: str | None = None
    error: str | None = None
