from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from papierkraken.database.connection import get_connection
from papierkraken.database.models import (
    DocumentCategory,
    DocumentCompletion,
    DocumentRecord,
    DocumentStatus,
    NewDocument,
)
from papierkraken.errors import DocumentNotFoundError

_COLUMNS = """
    id, owner_id, storage_key, original_name, mime_type, byte_size,
    category, status, extracted_text, classification_metadata, confidence,
    vendor_name, amount, due_date, is_offline, is_paid, recovery_attempts,
    error_message, created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> DocumentRecord:
    return DocumentRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        storage_key=row["storage_key"],
        original_name=row["original_name"],
        mime_type=row["mime_type"],
        byte_size=row["byte_size"],
        category=DocumentCategory(row["category"]),
        status=DocumentStatus(row["status"]),
        extracted_text=row["extracted_text"],
        classification_metadata=row["classification_metadata"],
        confidence=float(row["confidence"] or 0.0),
        vendor_name=row["vendor_name"],
        amount=row["amount"],
        due_date=row["due_date"],
        is_offline=row["is_offline"],
        is_paid=row["is_paid"],
        recovery_attempts=row["recovery_attempts"],
        error_message=row["error_message"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class DocumentRepository:
    """Database operations for the documents table."""

    def create_processing(self, document: NewDocument) -> DocumentRecord:
        """Insert a row with status PROCESSING. Called right after the object is stored."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO documents
                    (owner_id, storage_key, original_name, mime_type, byte_size,
                     category, status, is_offline)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (
                        document.owner_id,
                        document.storage_key,
                        document.original_name,
                        document.mime_type,
                        document.byte_size,
                        document.category.value,
                        DocumentStatus.PROCESSING.value,
                        document.is_offline,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        assert row is not None
        return _to_record(row)

    def complete(self, document_id: int, completion: DocumentCompletion) -> DocumentRecord:
        """Write extraction and classification results and mark COMPLETED in one statement.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE documents
                    SET extracted_text = %s,
                        classification_metadata = %s,
                        category = %s,
                        confidence = %s,
                        vendor_name = %s,
                        amount = %s,
                        due_date = %s,
                        status = %s,
                        updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_COLUMNS}
                    """,
                    (
                        completion.extracted_text,
                        Jsonb(completion.classification_metadata),
                        completion.category.value,
                        completion.confidence,
                        completion.vendor_name,
                        completion.amount,
                        completion.due_date,
                        DocumentStatus.COMPLETED.value,
                        document_id,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return _to_record(row)

    def mark_error(self, document_id: int, error: str) -> None:
        """Mark a document as ERROR. Only used when its stored object is unreadable."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE documents
                SET status = %s, error_message = %s, updated_at = NOW()
                WHERE id = %s
                """,
                (DocumentStatus.ERROR.value, error, document_id),
            )
            conn.commit()

    def find_by_id(self, document_id: int) -> DocumentRecord:
        """Find a document by ID.

        Raises:
            DocumentNotFoundError: if no document with this ID exists.
        """
        rows = self._select("WHERE id = %s", (document_id,))
        if not rows:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return rows[0]

    def find_by_storage_key(self, storage_key: str) -> DocumentRecord | None:
        rows = self._select("WHERE storage_key = %s", (storage_key,))
        return rows[0] if rows else None

    def list_for_owner(
        self,
        owner_id: int,
        category: DocumentCategory | None = None,
    ) -> list[DocumentRecord]:
        if category is None:
            return self._select(
                "WHERE owner_id = %s ORDER BY created_at DESC", (owner_id,)
            )
        return self._select(
            "WHERE owner_id = %s AND category = %s ORDER BY created_at DESC",
            (owner_id, category.value),
        )

    def search(self, owner_id: int, query: str) -> list[DocumentRecord]:
        """Case-insensitive substring search over names, extracted text and vendor."""
        pattern = f"%{_escape_like(query)}%"
        return self._select(
            """
            WHERE owner_id = %s
              AND (original_name ILIKE %s
                   OR storage_key ILIKE %s
                   OR extracted_text ILIKE %s
                   OR vendor_name ILIKE %s)
            ORDER BY created_at DESC
            """,
            (owner_id, pattern, pattern, pattern, pattern),
        )

    def list_due(self, owner_id: int) -> list[DocumentRecord]:
        """Unpaid documents with a due date in the future, soonest first."""
        return self._select(
            """
            WHERE owner_id = %s
              AND due_date IS NOT NULL
              AND due_date > CURRENT_DATE
              AND is_paid = FALSE
            ORDER BY due_date ASC
            """,
            (owner_id,),
        )

    def list_processing(self, owner_id: int) -> list[DocumentRecord]:
        return self._select(
            "WHERE owner_id = %s AND status = %s ORDER BY created_at DESC",
            (owner_id, DocumentStatus.PROCESSING.value),
        )

    def list_offline(self, owner_id: int) -> list[DocumentRecord]:
        return self._select(
            "WHERE owner_id = %s AND is_offline = TRUE ORDER BY created_at DESC",
            (owner_id,),
        )

    def delete(self, document_id: int) -> bool:
        """Delete a row. Returns False if it was already gone."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM documents WHERE id = %s", (document_id,))
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def claim_stuck(
        self,
        conn: psycopg.Connection[Any],
        stale_after_seconds: int,
        max_attempts: int,
    ) -> DocumentRecord | None:
        """Claim one document stuck in PROCESSING using SELECT FOR UPDATE SKIP LOCKED.

        The attempt is counted at claim time so a crash mid-recovery is not retried forever.
        """
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id
                FROM documents
                WHERE status = %s
                  AND recovery_attempts < %s
                  AND updated_at < NOW() - make_interval(secs => %s)
                ORDER BY updated_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """,
                (DocumentStatus.PROCESSING.value, max_attempts, stale_after_seconds),
            )
            row = cur.fetchone()
            if row is None:
                conn.commit()
                return None
            cur.execute(
                f"""
                UPDATE documents
                SET recovery_attempts = recovery_attempts + 1, updated_at = NOW()
                WHERE id = %s
                RETURNING {_COLUMNS}
                """,
                (row["id"],),
            )
            claimed = cur.fetchone()
        conn.commit()
        assert claimed is not None
        return _to_record(claimed)

    def _select(self, where: str, params: tuple[Any, ...]) -> list[DocumentRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM documents {where}", params)
                rows = cur.fetchall()
        return [_to_record(row) for row in rows]


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
