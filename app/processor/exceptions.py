class ProcessorError(Exception):
    """Base exception for all processor-related errors."""


class DocumentNotFoundError(ProcessorError):
    """Raised when a document cannot be found in the database."""


class DuplicateContentError(ProcessorError):
    """Raised when an owner already has a document with the same content hash."""

    def __init__(self, document_id: str, content_hash: str) -> None:
        super().__init__(
            f"Document {document_id} duplicates existing content {content_hash[:12]}"
        )
        self.document_id = document_id
        self.content_hash = content_hash


class InvalidTransitionError(ProcessorError):
    """Raised when a status change is not allowed by the state machine."""
