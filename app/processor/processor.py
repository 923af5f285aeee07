from collections.abc import Sequence

from app.config.settings import Settings
from app.database.repositories.chunks_repository import ChunksRepository
from app.database.repositories.documents_repository import DocumentsRepository
from app.logging.logger import Log
from app.pdf.base import BasePdfExtractor
from app.pdf.factory import PdfExtractorFactory
from app.processor.models import JobResult, Retryable, Terminal
from app.processor.pipeline import PipelineContext, PipelineStep
from app.processor.steps import (
    CheckSizeStep,
    CreateChunksStep,
    DownloadSourceStep,
    ExtractTextStep,
    LoadDocumentStep,
    MarkCompletedStep,
    MarkProcessingStep,
    PersistExtractionStep,
    RecheckActiveStep,
    SanitizeTextStep,
    SkipFinishedStep,
)
from app.storage.base import BaseBlobStore
from app.storage.factory import BlobStoreFactory


class Processor:
    """Drives one document through the preprocessing state machine.

    Pipeline: load -> guard -> processing -> size -> download -> extract ->
    sanitize/hash -> persist -> recheck -> chunk -> completed.

    The status write to ``completed`` is last: anything that interrupts the
    run earlier leaves the document in ``processing``, which the orphan
    sweep picks up.
    """

    def __init__(self, steps: Sequence[PipelineStep]) -> None:
        self._steps = list(steps)

    def process(self, document_id: str) -> JobResult:
        Log.info(f"Processing document {document_id}")
        context = PipelineContext(document_id=document_id)
        try:
            for step in self._steps:
                context = step.run(context)
                if context.outcome is not None:
                    return Terminal(context.outcome)
        except Exception as exc:
            Log.warning(f"Transient failure for document {document_id}: {exc}")
            return Retryable(exc)
        raise RuntimeError("Pipeline finished without an outcome")


def build_steps(
    settings: Settings,
    doc_repo: DocumentsRepository,
    chunks_repo: ChunksRepository,
    blob_store: BaseBlobStore,
    pdf_extractor: BasePdfExtractor,
) -> list[PipelineStep]:
    return [
        LoadDocumentStep(doc_repo, blob_store),
        SkipFinishedStep(),
        MarkProcessingStep(doc_repo),
        CheckSizeStep(doc_repo, settings.max_source_size_bytes),
        DownloadSourceStep(blob_store),
        ExtractTextStep(doc_repo, pdf_extractor),
        SanitizeTextStep(doc_repo),
        PersistExtractionStep(doc_repo, chunks_repo, blob_store),
        RecheckActiveStep(doc_repo),
        CreateChunksStep(chunks_repo, settings.chunk_size, settings.chunk_overlap),
        MarkCompletedStep(doc_repo),
    ]


def build_processor(
    settings: Settings,
    blob_store: BaseBlobStore | None = None,
) -> Processor:
    """Build a Processor with all required adapters."""
    steps = build_steps(
        settings,
        doc_repo=DocumentsRepository(),
        chunks_repo=ChunksRepository(),
        blob_store=blob_store or BlobStoreFactory.create(settings),
        pdf_extractor=PdfExtractorFactory.create(settings),
    )
    return Processor(steps)
