"""
Background tasks for document ingestion and deletion.

Ingestion is a small state machine over ``documents.status``:

    pending --claim--> processing --> ready | partial | failed

The claim is a single conditional UPDATE, so concurrent triggers race
safely: the loser gets no row back and returns ``skipped``.
"""

import logging

from fastapi.concurrency import run_in_threadpool

from pdftutor.config import Settings, get_settings
from pdftutor.core.database import get_supabase_admin_client
from pdftutor.core.exceptions import ExtractionError
from pdftutor.features.documents.chunker import chunk_pages
from pdftutor.features.documents.extractor import extract_pages
from pdftutor.features.documents.repository import DocumentRepository, ObjectStore
from pdftutor.features.documents.schemas import Document, DocumentStatus, IngestResult
from pdftutor.features.knowledge.embedding import EmbeddingBatcher, get_embedding_client
from pdftutor.features.knowledge.schemas import BatchReport
from pdftutor.features.knowledge.store import ChunkStore

logger = logging.getLogger(__name__)

PARTIAL_ERROR_RATIO = 0.5


def decide_status(report: BatchReport) -> DocumentStatus:
    """Terminal status from the embedding counters.

    No successes -> failed; more than half the chunks unembedded -> partial
    (retrieval degraded but usable); otherwise ready.
    """
    if report.success_count == 0:
        return DocumentStatus.FAILED
    if report.error_count > report.total * PARTIAL_ERROR_RATIO:
        return DocumentStatus.PARTIAL
    return DocumentStatus.READY


class IngestionService:
    """Runs download -> extract -> chunk -> embed -> persist for one document."""

    def __init__(
        self,
        documents: DocumentRepository,
        objects: ObjectStore,
        chunks: ChunkStore,
        batcher: EmbeddingBatcher,
        max_chunk_chars: int = 8000,
        overlap_chars: int = 800,
    ):
        self.documents = documents
        self.objects = objects
        self.chunks = chunks
        self.batcher = batcher
        self.max_chunk_chars = max_chunk_chars
        self.overlap_chars = overlap_chars

    async def ingest(self, document_id: int) -> IngestResult:
        """Ingest a ``pending`` document; no-op (``skipped``) otherwise."""
        try:
            document = await run_in_threadpool(self.documents.claim_for_processing, document_id)
        except Exception as e:
            logger.error(f"❌ Could not claim document {document_id}: {e}")
            return IngestResult(ok=False, error=str(e))

        if document is None:
            logger.info(f"⏭️ Document {document_id} is not pending (already processing/done); skip")
            return IngestResult(ok=True, skipped=True)

        logger.info(f"🚀 Starting ingestion for document {document_id} ({document.storage_path})")
        try:
            return await self._run(document)
        except Exception as e:
            logger.error(f"❌ Ingestion failed for document {document_id}: {e}", exc_info=True)
            await self._fail(document_id)
            return IngestResult(ok=False, status=DocumentStatus.FAILED, error=str(e) or "Processing failed")

    async def reprocess(self, document_id: int) -> IngestResult:
        """Caller-driven re-ingestion: reset to pending, then ingest."""
        if not await run_in_threadpool(self.documents.reset_to_pending, document_id):
            return IngestResult(ok=True, skipped=True)
        return await self.ingest(document_id)

    async def _run(self, document: Document) -> IngestResult:
        # 1. Download raw bytes
        try:
            file_bytes = await run_in_threadpool(self.objects.download, document.storage_path)
        except Exception as e:
            return await self._abort(document.id, f"Download failed: {e}")
        if not file_bytes:
            return await self._abort(document.id, "Downloaded file was empty")

        # 2. Extract page texts
        try:
            pages = await run_in_threadpool(extract_pages, file_bytes)
        except ExtractionError as e:
            return await self._abort(document.id, e.message)
        logger.info(f"📄 Document {document.id}: extracted {len(pages)} page(s)")

        # 3. Chunk
        drafts = chunk_pages(pages, max_len=self.max_chunk_chars, overlap=self.overlap_chars)
        logger.info(f"✂️ Document {document.id}: created {len(drafts)} chunk(s)")

        # 4. Replace previous chunk set: delete fully precedes insert
        if not await run_in_threadpool(self.chunks.delete_for_document, document.id):
            logger.warning(f"⚠️ Stale chunks may linger for document {document.id} until next success")

        # 5. Embed + insert
        report = await self.batcher.embed_and_store(document.id, drafts, self.chunks)

        # 6. Terminal status
        status = decide_status(report)
        if status is DocumentStatus.FAILED:
            result = await self._abort(document.id, "Failed to create embeddings")
            result.errors = report.error_count
            result.pages = len(pages)
            return result

        await run_in_threadpool(self.documents.mark_finished, document.id, status, page_count=len(pages))
        logger.info(
            f"🎉 Document {document.id} is {status.value}: pages={len(pages)}, "
            f"chunks={report.success_count}, errors={report.error_count}"
        )
        return IngestResult(
            ok=True,
            status=status,
            chunks=report.success_count,
            pages=len(pages),
            errors=report.error_count,
        )

    async def _abort(self, document_id: int, reason: str) -> IngestResult:
        logger.error(f"❌ Document {document_id} failed: {reason}")
        await self._fail(document_id)
        return IngestResult(ok=False, status=DocumentStatus.FAILED, error=reason)

    async def _fail(self, document_id: int) -> None:
        try:
            await run_in_threadpool(self.documents.mark_failed, document_id)
        except Exception as e:
            logger.error(f"❌ Could not mark document {document_id} as failed: {e}")


def build_ingestion_service(db=None, settings: Settings | None = None) -> IngestionService:
    """Wire the service against Supabase (service-role client by default)."""
    settings = settings or get_settings()
    db = db or get_supabase_admin_client()
    batcher = EmbeddingBatcher(
        get_embedding_client(),
        batch_size=settings.EMBEDDING_BATCH_SIZE,
        insert_slice_size=settings.INSERT_SLICE_SIZE,
        batch_timeout=settings.EMBEDDING_BATCH_TIMEOUT_SECONDS,
    )
    return IngestionService(
        documents=DocumentRepository(db),
        objects=ObjectStore(db, settings.STORAGE_BUCKET),
        chunks=ChunkStore(db),
        batcher=batcher,
        max_chunk_chars=settings.CHUNK_MAX_CHARS,
        overlap_chars=settings.CHUNK_OVERLAP_CHARS,
    )


async def process_document_pipeline(document_id: int) -> None:
    """FastAPI BackgroundTask entry point for freshly uploaded documents."""
    try:
        service = build_ingestion_service()
    except Exception as e:
        logger.error(f"❌ Ingestion not started for document {document_id}: {e}")
        DocumentRepository(get_supabase_admin_client()).mark_failed(document_id)
        return
    result = await service.ingest(document_id)
    if not result.ok:
        logger.error(f"❌ Background ingestion for document {document_id} ended with: {result.error}")


def delete_document_pipeline(document_id: int, storage_path: str | None, owner_id: str) -> None:
    """
    Background task to delete a document:
    1. Delete file from storage (if present)
    2. Delete record from DB (which cascades to chunks)
    """
    db = get_supabase_admin_client()
    settings = get_settings()
    logger.info(f"🗑️ Starting background deletion for document {document_id}")

    try:
        if storage_path:
            try:
                ObjectStore(db, settings.STORAGE_BUCKET).remove(storage_path)
                logger.info(f"✅ Removed file from storage: {storage_path}")
            except Exception as e:
                logger.warning(f"⚠️ Could not remove file {storage_path} from storage: {e}")
                # Continue to DB deletion even if storage fails (e.g. file already deleted)

        DocumentRepository(db).delete(document_id, owner_id)
        logger.info(f"✅ Successfully deleted document {document_id} from DB.")

    except Exception as e:
        logger.error(f"❌ Failed to delete document {document_id}: {e}")
