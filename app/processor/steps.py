from app.database.models import ChunkRecord, PreprocessStatus
from app.database.repositories.chunks_repository import ChunksRepository
from app.database.repositories.documents_repository import DocumentsRepository
from app.logging.logger import Log
from app.pdf.base import BasePdfExtractor
from app.pdf.exceptions import PdfExtractionError
from app.processor.exceptions import DuplicateContentError
from app.processor.models import OutcomeStatus, PreprocessOutcome
from app.processor.pipeline import PipelineContext, PipelineStep
from app.storage.base import BaseBlobStore
from app.text.chunker import chunk_text
from app.text.sanitizer import content_digest, sanitize_text


def _terminal(
    context: PipelineContext, status: OutcomeStatus, reason: str | None = None
) -> PipelineContext:
    context.outcome = PreprocessOutcome(status=status.value, reason=reason)
    return context


class _PermanentFailureStep(PipelineStep):
    def __init__(self, doc_repo: DocumentsRepository) -> None:
        self._doc_repo = doc_repo

    def _fail(self, context: PipelineContext, reason: str) -> PipelineContext:
        self._doc_repo.mark_failed(context.document_id)
        Log.error(f"Document {context.document_id} failed permanently: {reason}")
        return _terminal(context, OutcomeStatus.FAILED, reason)


class LoadDocumentStep(PipelineStep):
    def __init__(self, doc_repo: DocumentsRepository, blob_store: BaseBlobStore) -> None:
        self._doc_repo = doc_repo
        self._blob_store = blob_store

    def run(self, context: PipelineContext) -> PipelineContext:
        document = self._doc_repo.find_by_id(context.document_id, include_text=True)
        if document is None:
            Log.info(f"Document {context.document_id} not found, skipping")
            # blob key is the document id; releases a blob left by an interrupted delete
            self._blob_store.delete(context.document_id)
            return _terminal(context, OutcomeStatus.SKIPPED, "not_found")
        context.document = document
        return context


class SkipFinishedStep(PipelineStep):
    """Idempotency guard for duplicate and redelivered jobs."""

    def run(self, context: PipelineContext) -> PipelineContext:
        status = context.require_document().preprocess_status
        if status == PreprocessStatus.COMPLETED.value:
            Log.info(f"Document {context.document_id} already processed, skipping")
            return _terminal(context, OutcomeStatus.SKIPPED, "already_completed")
        if status == PreprocessStatus.DELETING.value:
            Log.info(f"Document {context.document_id} is being deleted, skipping")
            return _terminal(context, OutcomeStatus.SKIPPED, "deleting")
        return context


class MarkProcessingStep(PipelineStep):
    def __init__(self, doc_repo: DocumentsRepository) -> None:
        self._doc_repo = doc_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        status = context.require_document().preprocess_status
        if status not in (PreprocessStatus.PENDING.value, PreprocessStatus.FAILED.value):
            return context
        moved = self._doc_repo.transition(
            context.document_id,
            PreprocessStatus.PROCESSING.value,
            expected=(status,),
        )
        if moved:
            Log.info(f"Document {context.document_id} marked as processing")
        else:
            Log.info(f"Document {context.document_id} was already picked up by another run")
        return context


class CheckSizeStep(_PermanentFailureStep):
    def __init__(self, doc_repo: DocumentsRepository, max_size_bytes: int) -> None:
        super().__init__(doc_repo)
        self._max_size_bytes = max_size_bytes

    def run(self, context: PipelineContext) -> PipelineContext:
        size = context.require_document().size_bytes
        if size > self._max_size_bytes:
            return self._fail(
                context, f"source_too_large ({size} > {self._max_size_bytes} bytes)"
            )
        return context


class DownloadSourceStep(PipelineStep):
    """Fetch the original upload. Every failure here is left to propagate."""

    def __init__(self, blob_store: BaseBlobStore) -> None:
        self._blob_store = blob_store

    def run(self, context: PipelineContext) -> PipelineContext:
        context.raw_bytes = self._blob_store.download(context.require_document().url)
        Log.info(f"Downloaded {len(context.raw_bytes)} bytes for document {context.document_id}")
        return context


class ExtractTextStep(_PermanentFailureStep):
    def __init__(self, doc_repo: DocumentsRepository, pdf_extractor: BasePdfExtractor) -> None:
        super().__init__(doc_repo)
        self._pdf_extractor = pdf_extractor

    def run(self, context: PipelineContext) -> PipelineContext:
        try:
            context.raw_text = self._pdf_extractor.extract(context.raw_bytes)
        except PdfExtractionError as exc:
            return self._fail(context, f"extract_failed: {exc}")
        Log.info(
            f"Extracted {len(context.raw_text)} chars from document {context.document_id}"
        )
        return context


class SanitizeTextStep(_PermanentFailureStep):
    def run(self, context: PipelineContext) -> PipelineContext:
        context.normalized_text = sanitize_text(context.raw_text)
        if not context.normalized_text.strip():
            return self._fail(context, "no_text")
        context.content_hash = content_digest(context.normalized_text)
        return context


class PersistExtractionStep(PipelineStep):
    """Store text and hash; an exact duplicate of the owner's content is removed.

    Status stays ``processing`` so a crash after this point replays the job.
    Duplicate cleanup is ordered chunks, record, blob. Each part tolerates having
    been done already: a failure before the record is gone replays the whole
    job, a failure after it is finished by the not-found path of the retry.
    """

    def __init__(
        self,
        doc_repo: DocumentsRepository,
        chunks_repo: ChunksRepository,
        blob_store: BaseBlobStore,
    ) -> None:
        self._doc_repo = doc_repo
        self._chunks_repo = chunks_repo
        self._blob_store = blob_store

    def run(self, context: PipelineContext) -> PipelineContext:
        try:
            self._doc_repo.save_extraction(
                context.document_id, context.normalized_text, context.content_hash
            )
        except DuplicateContentError:
            Log.warning(f"Duplicate content in document {context.document_id}, deleting it")
            self._chunks_repo.delete_by_document(context.document_id)
            self._doc_repo.delete(context.document_id)
            self._blob_store.delete(context.document_id)
            return _terminal(context, OutcomeStatus.DUPLICATE_DELETED, "duplicate_content")
        return context


class RecheckActiveStep(PipelineStep):
    """Cooperative cancellation: a delete may have started while we worked."""

    def __init__(self, doc_repo: DocumentsRepository) -> None:
        self._doc_repo = doc_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if not self._doc_repo.is_active(context.document_id):
            Log.info(f"Document {context.document_id} deleted during processing, aborting")
            return _terminal(context, OutcomeStatus.ABORTED, "deleted_during_processing")
        return context


class CreateChunksStep(PipelineStep):
    def __init__(
        self, chunks_repo: ChunksRepository, chunk_size: int, chunk_overlap: int
    ) -> None:
        self._chunks_repo = chunks_repo
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap

    def run(self, context: PipelineContext) -> PipelineContext:
        document = context.require_document()
        context.chunks = chunk_text(
            context.normalized_text, self._chunk_size, self._chunk_overlap
        )
        self._chunks_repo.insert_many(
            [
                ChunkRecord(
                    document_id=document.id,
                    owner_id=document.owner_id,
                    seq_index=chunk.index,
                    text=chunk.text,
                )
                for chunk in context.chunks
            ]
        )
        Log.info(f"Stored {len(context.chunks)} chunks for document {context.document_id}")
        return context


class MarkCompletedStep(PipelineStep):
    def __init__(self, doc_repo: DocumentsRepository) -> None:
        self._doc_repo = doc_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        completed = self._doc_repo.transition(
            context.document_id,
            PreprocessStatus.COMPLETED.value,
            expected=(PreprocessStatus.PROCESSING.value,),
        )
        if not completed:
            Log.info(f"Document {context.document_id} left processing before completion")
            return _terminal(context, OutcomeStatus.ABORTED, "deleted_during_processing")
        context.outcome = PreprocessOutcome(
            status=OutcomeStatus.COMPLETED.value, chunks=len(context.chunks)
        )
        Log.info(f"Document {context.document_id} preprocessing completed")
        return context
