from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import ClassVar

from app.processor.exceptions import InvalidTransitionError


class PreprocessStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DELETING = "deleting"


class AiStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _predecessors(
    table: dict[str, frozenset[str]], target: str
) -> tuple[str, ...]:
    return tuple(sorted(src for src, targets in table.items() if target in targets))


@dataclass(frozen=True)
class PreprocessState:
    """Preprocessing lifecycle of a document. Owned by the worker pipeline."""

    TRANSITIONS: ClassVar[dict[str, frozenset[str]]] = {
        PreprocessStatus.PENDING.value: frozenset({"processing", "failed", "deleting"}),
        PreprocessStatus.PROCESSING.value: frozenset({"completed", "failed", "deleting"}),
        PreprocessStatus.FAILED.value: frozenset({"processing", "deleting"}),
        PreprocessStatus.COMPLETED.value: frozenset({"deleting"}),
        PreprocessStatus.DELETING.value: frozenset(),
    }

    status: str = PreprocessStatus.PENDING.value
    content_hash: str | None = None
    extracted_text: str | None = None

    @classmethod
    def can_transition(cls, current: str, target: str) -> bool:
        return target in cls.TRANSITIONS.get(current, frozenset())

    @classmethod
    def predecessors(cls, target: str) -> tuple[str, ...]:
        """Statuses from which ``target`` may be reached."""
        return _predecessors(cls.TRANSITIONS, target)

    def transition(self, target: str) -> "PreprocessState":
        if not self.can_transition(self.status, target):
            raise InvalidTransitionError(
                f"preprocess status cannot move from '{self.status}' to '{target}'"
            )
        return replace(self, status=target)


@dataclass(frozen=True)
class AiState:
    """AI analysis lifecycle. Written only by the analysis collaborator."""

    TRANSITIONS: ClassVar[dict[str, frozenset[str]]] = {
        AiStatus.IDLE.value: frozenset({"processing"}),
        AiStatus.PROCESSING.value: frozenset({"completed", "failed"}),
        AiStatus.FAILED.value: frozenset({"processing"}),
        AiStatus.COMPLETED.value: frozenset(),
    }

    status: str = AiStatus.IDLE.value

    @classmethod
    def can_transition(cls, current: str, target: str) -> bool:
        return target in cls.TRANSITIONS.get(current, frozenset())

    @classmethod
    def predecessors(cls, target: str) -> tuple[str, ...]:
        return _predecessors(cls.TRANSITIONS, target)

    def transition(self, target: str) -> "AiState":
        if not self.can_transition(self.status, target):
            raise InvalidTransitionError(
                f"ai status cannot move from '{self.status}' to '{target}'"
            )
        return replace(self, status=target)


@dataclass
class DocumentRecord:
    """Represents a row from the documents table.

    ``id`` is the blob storage key assigned at upload time.
    """

    id: str
    owner_id: str
    url: str
    original_name: str
    size_bytes: int
    preprocess: PreprocessState = field(default_factory=PreprocessState)
    ai: AiState = field(default_factory=AiState)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def preprocess_status(self) -> str:
        return self.preprocess.status


@dataclass(frozen=True)
class DocumentStatusView:
    """What status-polling callers are allowed to see."""

    document_id: str
    preprocess_status: str
    ai_status: str


@dataclass(frozen=True)
class ChunkRecord:
    """Represents a row from the document_chunks table."""

    document_id: str
    owner_id: str
    seq_index: int
    text: str
    token_count: int = 0
