"""In-memory stand-ins for the document store, chunk store, blob store and queue."""

from collections.abc import Sequence
from dataclasses import replace

from app.database.models import (
    ChunkRecord,
    DocumentRecord,
    DocumentStatusView,
    PreprocessState,
    PreprocessStatus,
)
from app.processor.exceptions import DocumentNotFoundError, DuplicateContentError
from app.storage.base import BaseBlobStore, StoredBlob
from app.storage.exceptions import BlobDownloadError


def make_document(
    document_id: str = "doc-1",
    owner_id: str = "owner-1",
    status: str = PreprocessStatus.PENDING.value,
    size_bytes: int = 1024,
    content_hash: str | None = None,
    extracted_text: str | None = None,
) -> DocumentRecord:
    return DocumentRecord(
        id=document_id,
        owner_id=owner_id,
        url=f"fake://{document_id}",
        original_name=f"{document_id}.pdf",
        size_bytes=size_bytes,
        preprocess=PreprocessState(
            status=status, content_hash=content_hash, extracted_text=extracted_text
        ),
    )


class FakeDocumentsRepository:
    """Mirrors DocumentsRepository, including the per-owner content hash index."""

    def __init__(self, *documents: DocumentRecord) -> None:
        self.documents: dict[str, DocumentRecord] = {d.id: d for d in documents}
        self.writes: list[tuple[str, str]] = []

    def create(self, document: DocumentRecord) -> None:
        self.writes.append(("create", document.id))
        self.documents[document.id] = document

    def find_by_id(
        self, document_id: str, include_text: bool = False
    ) -> DocumentRecord | None:
        document = self.documents.get(document_id)
        if document is None or include_text:
            return document
        return replace(document, preprocess=replace(document.preprocess, extracted_text=None))

    def transition(
        self,
        document_id: str,
        target: str,
        expected: Sequence[str] | None = None,
    ) -> bool:
        document = self.documents.get(document_id)
        allowed = expected if expected is not None else PreprocessState.predecessors(target)
        if document is None or document.preprocess_status not in allowed:
            return False
        self.writes.append(("transition", f"{document_id}:{target}"))
        document.preprocess = replace(document.preprocess, status=target)
        return True

    def mark_failed(self, document_id: str) -> bool:
        return self.transition(document_id, PreprocessStatus.FAILED.value)

    def save_extraction(
        self, document_id: str, extracted_text: str, content_hash: str
    ) -> None:
        document = self.documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        for other in self.documents.values():
            if (
                other.id != document_id
                and other.owner_id == document.owner_id
                and other.preprocess.content_hash == content_hash
            ):
                raise DuplicateContentError(document_id, content_hash)
        self.writes.append(("save_extraction", document_id))
        document.preprocess = replace(
            document.preprocess, extracted_text=extracted_text, content_hash=content_hash
        )

    def is_active(self, document_id: str) -> bool:
        document = self.documents.get(document_id)
        return (
            document is not None
            and document.preprocess_status != PreprocessStatus.DELETING.value
        )

    def delete(self, document_id: str) -> bool:
        self.writes.append(("delete", document_id))
        return self.documents.pop(document_id, None) is not None

    def find_ids_by_status(self, statuses: Sequence[str]) -> list[str]:
        return [d.id for d in self.documents.values() if d.preprocess_status in statuses]

    def get_status(self, document_id: str) -> DocumentStatusView:
        document = self.documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return DocumentStatusView(
            document_id=document_id,
            preprocess_status=document.preprocess_status,
            ai_status=document.ai.status,
        )


class FakeChunksRepository:
    """Chunk rows keyed by (document_id, seq_index), like the unique index."""

    def __init__(self) -> None:
        self.rows: dict[tuple[str, int], ChunkRecord] = {}
        self.insert_calls = 0

    def insert_many(self, chunks: Sequence[ChunkRecord]) -> None:
        if not chunks:
            return
        self.insert_calls += 1
        for chunk in chunks:
            self.rows.setdefault((chunk.document_id, chunk.seq_index), chunk)

    def delete_by_document(self, document_id: str) -> int:
        keys = [key for key in self.rows if key[0] == document_id]
        for key in keys:
            del self.rows[key]
        return len(keys)

    def count_by_document(self, document_id: str) -> int:
        return sum(1 for key in self.rows if key[0] == document_id)

    def find_by_document(self, document_id: str) -> list[ChunkRecord]:
        return sorted(
            (c for key, c in self.rows.items() if key[0] == document_id),
            key=lambda c: c.seq_index,
        )


class FakeBlobStore(BaseBlobStore):
    """Blobs in a dict; URLs are ``fake://{key}``."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.download_error: Exception | None = None
        self._counter = 0

    def put(self, key: str, data: bytes) -> None:
        self.objects[key] = data

    def upload(self, data: bytes, name: str) -> StoredBlob:
        self._counter += 1
        key = f"blob-{self._counter}-{name}"
        self.objects[key] = data
        return StoredBlob(key=key, url=f"fake://{key}", size_bytes=len(data))

    def download(self, url: str) -> bytes:
        if self.download_error is not None:
            raise self.download_error
        key = url.removeprefix("fake://")
        try:
            return self.objects[key]
        except KeyError:
            raise BlobDownloadError(f"Download failed with status 404: {url}") from None

    def delete(self, key: str) -> None:
        self.deleted.append(key)
        self.objects.pop(key, None)


class FakeQueue:
    """Records enqueue and removal calls."""

    def __init__(self, waiting: Sequence[str] = ()) -> None:
        self.enqueued: list[str] = []
        self.waiting: set[str] = set(waiting)
        self.removed: list[str] = []

    def enqueue(self, document_id: str) -> None:
        self.enqueued.append(document_id)
        self.waiting.add(document_id)

    def remove_if_waiting(self, job_id: str) -> bool:
        if job_id not in self.waiting:
            return False
        self.waiting.discard(job_id)
        self.removed.append(job_id)
        return True
