from collections.abc import Sequence

from psycopg.rows import dict_row

from app.database.connection import get_connection
from app.database.models import ChunkRecord


class ChunksRepository:
    """Database operations for the document_chunks table."""

    def insert_many(self, chunks: Sequence[ChunkRecord]) -> None:
        """Insert chunks in one batch, skipping indices that already exist.

        Rows left behind by an interrupted earlier attempt hit the
        (document_id, seq_index) unique key and are ignored; missing rows are
        inserted.
        """
        if not chunks:
            return
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(
                    """
                    INSERT INTO document_chunks
                    (document_id, owner_id, seq_index, text, token_count)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (document_id, seq_index) DO NOTHING
                    """,
                    [
                        (c.document_id, c.owner_id, c.seq_index, c.text, c.token_count)
                        for c in chunks
                    ],
                )
            conn.commit()

    def delete_by_document(self, document_id: str) -> int:
        """Delete every chunk of a document. Returns the number of rows removed."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM document_chunks WHERE document_id = %s",
                    (document_id,),
                )
                deleted = cur.rowcount
            conn.commit()
        return deleted

    def count_by_document(self, document_id: str) -> int:
        """Number of chunks stored for a document."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT COUNT(*) FROM document_chunks WHERE document_id = %s",
                    (document_id,),
                )
                row = cur.fetchone()
        return int(row[0]) if row else 0

    def find_by_document(self, document_id: str) -> list[ChunkRecord]:
        """Chunks of a document ordered by sequence index."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT document_id, owner_id, seq_index, text, token_count
                    FROM document_chunks
                    WHERE document_id = %s
                    ORDER BY seq_index
                    """,
                    (document_id,),
                )
                rows = cur.fetchall()
        return [ChunkRecord(**row) for row in rows]
