from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"
    DUPLICATE_DELETED = "duplicate_deleted"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PreprocessOutcome:
    """Final word on a job. Recorded on the broker as the job's return value."""

    status: str
    reason: str | None = None
    chunks: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class Terminal:
    """Stop: nothing a retry could change."""

    outcome: PreprocessOutcome


@dataclass(frozen=True)
class Retryable:
    """Try again later with backoff: the failure was environmental."""

    cause: Exception


JobResult = Terminal | Retryable
