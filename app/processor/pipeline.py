from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from app.database.models import DocumentRecord
from app.processor.models import PreprocessOutcome
from app.text.chunker import TextChunk


@dataclass(slots=True)
class PipelineContext:
    document_id: str
    document: DocumentRecord | None = None
    raw_bytes: bytes = b""
    raw_text: str = ""
    normalized_text: str = ""
    content_hash: str = ""
    chunks: list[TextChunk] = field(default_factory=list)
    outcome: PreprocessOutcome | None = None

    def require_document(self) -> DocumentRecord:
        if self.document is None:
            raise ValueError("PipelineContext.document must be loaded first")
        return self.document


class PipelineStep(ABC):
    """One stage of preprocessing.

    A step ends the job by setting ``context.outcome``; raising means the
    failure is transient and the job should be retried.
    """

    @abstractmethod
    def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError
