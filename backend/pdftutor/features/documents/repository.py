"""
Documents feature: persistence for document rows and raw PDF bytes.

The ``documents`` table is only mutated here; the ingestion pipeline goes
through ``claim_for_processing`` / ``mark_finished`` / ``mark_failed``.
"""

import logging

from pydantic import ValidationError
from supabase import Client

from pdftutor.core.exceptions import DocumentAccessDeniedError, DocumentNotFoundError
from pdftutor.features.documents.schemas import Document, DocumentStatus

logger = logging.getLogger(__name__)

DOCUMENT_COLUMNS = "id, storage_path, status, page_count, owner_id, file_name, created_at"


class DocumentRepository:
    """CRUD and status transitions for the ``documents`` table."""

    def __init__(self, db: Client):
        self.db = db

    def create(self, owner_id: str, storage_path: str, file_name: str) -> Document:
        """Insert a new document in ``pending`` state."""
        result = self.db.table("documents").insert({
            "owner_id": owner_id,
            "storage_path": storage_path,
            "file_name": file_name,
            "status": DocumentStatus.PENDING.value,
        }).execute()
        return Document.model_validate(result.data[0])

    def get(self, document_id: int) -> Document | None:
        result = (
            self.db.table("documents")
            .select(DOCUMENT_COLUMNS)
            .eq("id", document_id)
            .limit(1)
            .execute()
        )
        return self._first(result.data)

    def get_owned(self, document_id: int, owner_id: str) -> Document:
        """Fetch a document the caller owns.

        Raises:
            DocumentNotFoundError: No such document.
            DocumentAccessDeniedError: It belongs to someone else.
        """
        document = self.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        if document.owner_id != owner_id:
            raise DocumentAccessDeniedError(document_id)
        return document

    def list_for_owner(self, owner_id: str) -> list[Document]:
        """Owner's documents, newest first. Malformed rows are skipped."""
        result = (
            self.db.table("documents")
            .select(DOCUMENT_COLUMNS)
            .eq("owner_id", owner_id)
            .order("created_at", desc=True)
            .execute()
        )
        documents = []
        for row in result.data or []:
            document = _parse_row(row)
            if document is not None:
                documents.append(document)
        return documents

    def claim_for_processing(self, document_id: int) -> Document | None:
        """Atomically move ``pending -> processing``.

        One conditional UPDATE ... WHERE status = 'pending' RETURNING *, so of
        two concurrent callers only one gets the row back. ``None`` means the
        document is missing or someone else already owns (or finished) it.
        """
        result = (
            self.db.table("documents")
            .update({"status": DocumentStatus.PROCESSING.value})
            .eq("id", document_id)
            .eq("status", DocumentStatus.PENDING.value)
            .execute()
        )
        if not result.data:
            return None
        try:
            return Document.model_validate(result.data[0])
        except ValidationError:
            # We hold the claim; never leave the row stuck in processing.
            self.mark_failed(document_id)
            raise

    def mark_failed(self, document_id: int) -> None:
        self.db.table("documents").update(
            {"status": DocumentStatus.FAILED.value}
        ).eq("id", document_id).execute()

    def mark_finished(self, document_id: int, status: DocumentStatus, page_count: int) -> None:
        """Record the terminal status together with the discovered page count."""
        self.db.table("documents").update({
            "status": status.value,
            "page_count": page_count,
        }).eq("id", document_id).execute()

    def reset_to_pending(self, document_id: int) -> bool:
        """Force-reprocess entry point. Refuses while an ingestion is running."""
        result = (
            self.db.table("documents")
            .update({"status": DocumentStatus.PENDING.value})
            .eq("id", document_id)
            .neq("status", DocumentStatus.PROCESSING.value)
            .execute()
        )
        return bool(result.data)

    def delete(self, document_id: int, owner_id: str) -> None:
        """Delete the row (ON DELETE CASCADE removes its chunks)."""
        self.db.table("documents").delete().eq("id", document_id).eq("owner_id", owner_id).execute()

    @staticmethod
    def _first(rows: list[dict] | None) -> Document | None:
        if not rows:
            return None
        return _parse_row(rows[0])


def _parse_row(row: dict) -> Document | None:
    try:
        return Document.model_validate(row)
    except ValidationError as e:
        logger.warning(f"⚠️ Rejecting malformed document row {row.get('id')}: {e}")
        return None


class ObjectStore:
    """Raw PDF bytes in a Supabase Storage bucket."""

    def __init__(self, db: Client, bucket: str):
        self.db = db
        self.bucket = bucket

    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        self.db.storage.from_(self.bucket).upload(
            path=path,
            file=data,
            file_options={"content-type": content_type, "upsert": "false"},
        )
        return path

    def download(self, path: str) -> bytes:
        return self.db.storage.from_(self.bucket).download(path)

    def remove(self, path: str) -> None:
        self.db.storage.from_(self.bucket).remove([path])
