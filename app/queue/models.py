import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.config.settings import Settings


class JobState(str, Enum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


LIVE_STATES = (JobState.WAITING.value, JobState.DELAYED.value, JobState.ACTIVE.value)


@dataclass(frozen=True)
class JobOptions:
    """Retry, timeout and retention policy applied to every job of a queue."""

    attempts: int = 3
    backoff_seconds: float = 3.0
    timeout_seconds: float = 60.0
    keep_completed: int = 100
    keep_failed: int = 200

    @classmethod
    def from_settings(cls, settings: Settings) -> "JobOptions":
        return cls(
            attempts=settings.max_job_attempts,
            backoff_seconds=settings.job_backoff_seconds,
            timeout_seconds=settings.job_timeout_seconds,
            keep_completed=settings.keep_completed_jobs,
            keep_failed=settings.keep_failed_jobs,
        )

    def retry_delay_seconds(self, attempts_made: int) -> float:
        """Exponential backoff: base, 2*base, 4*base, ... for attempts 1, 2, 3."""
        return self.backoff_seconds * (2 ** max(attempts_made - 1, 0))


@dataclass(frozen=True)
class QueueKeys:
    """Redis key layout of one queue."""

    prefix: str

    @classmethod
    def for_queue(cls, name: str) -> "QueueKeys":
        return cls(prefix=f"docprep:{name}")

    @property
    def wait(self) -> str:
        return f"{self.prefix}:wait"

    @property
    def active(self) -> str:
        return f"{self.prefix}:active"

    @property
    def delayed(self) -> str:
        return f"{self.prefix}:delayed"

    @property
    def completed(self) -> str:
        return f"{self.prefix}:completed"

    @property
    def failed(self) -> str:
        return f"{self.prefix}:failed"

    @property
    def job_prefix(self) -> str:
        return f"{self.prefix}:job:"

    @property
    def lock_prefix(self) -> str:
        return f"{self.prefix}:lock:"

    def job(self, job_id: str) -> str:
        return f"{self.job_prefix}{job_id}"

    def lock(self, job_id: str) -> str:
        return f"{self.lock_prefix}{job_id}"


@dataclass(frozen=True)
class StalledJobs:
    """Outcome of one stalled-job check."""

    requeued: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.requeued or self.failed)


@dataclass
class Job:
    """A queued unit of work. ``id`` is the document id it targets."""

    id: str
    payload: dict[str, Any]
    state: str
    attempts_made: int = 0
    max_attempts: int = 1
    token: str | None = None
    failed_reason: str | None = None
    return_value: dict[str, Any] | None = None
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def document_id(self) -> str:
        return str(self.payload.get("document_id", self.id))

    @classmethod
    def from_hash(cls, data: dict[str, str], token: str | None = None) -> "Job":
        return_value = data.get("return_value")
        return cls(
            id=data["id"],
            payload=json.loads(data.get("payload") or "{}"),
            state=data.get("state", ""),
            attempts_made=int(data.get("attempts_made", 0)),
            max_attempts=int(data.get("max_attempts", 1)),
            token=token,
            failed_reason=data.get("failed_reason") or None,
            return_value=json.loads(return_value) if return_value else None,
            extra={
                k: v
                for k, v in data.items()
                if k in ("created_at", "processed_at", "finished_at", "stalled_count")
            },
        )
