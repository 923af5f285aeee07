from collections.abc import Sequence
from typing import Any

from psycopg import errors
from psycopg.rows import dict_row

from app.database.connection import get_connection
from app.database.models import (
    AiState,
    DocumentRecord,
    DocumentStatusView,
    PreprocessState,
    PreprocessStatus,
)
from app.processor.exceptions import DocumentNotFoundError, DuplicateContentError

_BASE_COLUMNS = """
    id, owner_id, url, original_name, size_bytes,
    preprocess_status, content_hash, ai_status, created_at, updated_at
"""


class DocumentsRepository:
    """Database operations for the documents table.

    Every status change is a conditional update matched on the expected prior
    status, so concurrent writers cannot clobber each other.
    """

    def create(self, document: DocumentRecord) -> None:
        """Insert a freshly uploaded document in the pending state."""
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO documents
                (id, owner_id, url, original_name, size_bytes, preprocess_status, ai_status)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    document.id,
                    document.owner_id,
                    document.url,
                    document.original_name,
                    document.size_bytes,
                    PreprocessStatus.PENDING.value,
                    document.ai.status,
                ),
            )
            conn.commit()

    def find_by_id(
        self, document_id: str, include_text: bool = False
    ) -> DocumentRecord | None:
        """Load a document. ``extracted_text`` is only selected on request."""
        columns = _BASE_COLUMNS + (", extracted_text" if include_text else "")
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {columns} FROM documents WHERE id = %s",  # noqa: S608
                    (document_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return self._to_record(row)

    def transition(
        self,
        document_id: str,
        target: str,
        expected: Sequence[str] | None = None,
    ) -> bool:
        """Move ``preprocess_status`` to ``target`` if it is still in ``expected``.

        ``expected`` defaults to every status the state machine allows to reach
        ``target``. Returns False when no row matched the precondition.
        """
        allowed = list(expected) if expected is not None else list(
            PreprocessState.predecessors(target)
        )
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE documents
                    SET preprocess_status = %s, updated_at = NOW()
                    WHERE id = %s
                      AND preprocess_status = ANY(%s)
                    """,
                    (target, document_id, allowed),
                )
                updated = cur.rowcount > 0
            conn.commit()
        return updated

    def mark_failed(self, document_id: str) -> bool:
        """Mark preprocessing as permanently failed unless already finished or deleting."""
        return self.transition(document_id, PreprocessStatus.FAILED.value)

    def save_extraction(
        self, document_id: str, extracted_text: str, content_hash: str
    ) -> None:
        """Persist extracted text and its digest. Status is left untouched.

        Raises:
            DuplicateContentError: the owner already has a document with this hash.
            DocumentNotFoundError: the document no longer exists.
        """
        with get_connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        UPDATE documents
                        SET extracted_text = %s, content_hash = %s, updated_at = NOW()
                        WHERE id = %s
                        """,
                        (extracted_text, content_hash, document_id),
                    )
                    if cur.rowcount == 0:
                        raise DocumentNotFoundError(f"Document {document_id} not found")
                conn.commit()
            except errors.UniqueViolation as exc:
                conn.rollback()
                raise DuplicateContentError(document_id, content_hash) from exc

    def is_active(self, document_id: str) -> bool:
        """True if the document exists and no delete is in progress."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT 1 FROM documents
                    WHERE id = %s AND preprocess_status <> %s
                    """,
                    (document_id, PreprocessStatus.DELETING.value),
                )
                return cur.fetchone() is not None

    def delete(self, document_id: str) -> bool:
        """Remove the document row; its chunks go with it. False if it was already gone."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM documents WHERE id = %s", (document_id,))
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def find_ids_by_status(self, statuses: Sequence[str]) -> list[str]:
        """Ids of documents whose preprocess status is one of ``statuses``, oldest first."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id FROM documents
                    WHERE preprocess_status = ANY(%s)
                    ORDER BY created_at
                    """,
                    (list(statuses),),
                )
                rows = cur.fetchall()
        return [row[0] for row in rows]

    def get_status(self, document_id: str) -> DocumentStatusView:
        """Status for polling clients. Never touches the extracted text.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT preprocess_status, ai_status FROM documents WHERE id = %s",
                    (document_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return DocumentStatusView(
            document_id=document_id, preprocess_status=row[0], ai_status=row[1]
        )

    def update_ai_status(self, document_id: str, target: str) -> bool:
        """Conditional AI lifecycle update, independent of preprocessing."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE documents
                    SET ai_status = %s, updated_at = NOW()
                    WHERE id = %s
                      AND ai_status = ANY(%s)
                    """,
                    (target, document_id, list(AiState.predecessors(target))),
                )
                updated = cur.rowcount > 0
            conn.commit()
        return updated

    @staticmethod
    def _to_record(row: dict[str, Any]) -> DocumentRecord:
        return DocumentRecord(
            id=row["id"],
            owner_id=row["owner_id"],
            url=row["url"],
            original_name=row["original_name"],
            size_bytes=row["size_bytes"],
            preprocess=PreprocessState(
                status=row["preprocess_status"],
                content_hash=row["content_hash"],
                extracted_text=row.get("extracted_text"),
            ),
            ai=AiState(status=row["ai_status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
