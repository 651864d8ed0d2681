"""
Documents feature: upload, ingestion trigger, status and deletion routes.
"""

import logging
import re
import time

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile

from pdftutor.background.document_tasks import (
    IngestionService,
    delete_document_pipeline,
    process_document_pipeline,
)
from pdftutor.config import get_settings
from pdftutor.core.dependencies import get_current_user_id
from pdftutor.core.exceptions import (
    AppBaseError,
    CapabilityNotConfiguredError,
    DocumentAccessDeniedError,
    DocumentNotFoundError,
    app_error_to_http,
)
from pdftutor.features.documents.dependencies import (
    get_document_repository,
    get_ingestion_service,
    get_object_store,
)
from pdftutor.features.documents.repository import DocumentRepository, ObjectStore
from pdftutor.features.documents.schemas import (
    Document,
    DocumentResponse,
    DocumentStatusResponse,
    IngestResult,
)
from pdftutor.features.knowledge.dependencies import get_retriever
from pdftutor.features.knowledge.retriever import Retriever
from pdftutor.features.knowledge.schemas import RetrievedChunk

logger = logging.getLogger(__name__)

router = APIRouter()


def require_owned_document(repo: DocumentRepository, document_id: int, user_id: str) -> Document:
    """Map ownership errors onto 404 / 403."""
    try:
        return repo.get_owned(document_id, user_id)
    except DocumentNotFoundError as e:
        raise app_error_to_http(e, status_code=404)
    except DocumentAccessDeniedError as e:
        raise app_error_to_http(e, status_code=403)


def sanitize_filename(filename: str) -> str:
    """Keep ASCII letters, digits, dot, underscore and dash; everything else -> '_'."""
    return re.sub(r"[^a-zA-Z0-9._-]", "_", filename or "upload.pdf")


@router.post("/upload", response_model=DocumentResponse)
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    repo: DocumentRepository = Depends(get_document_repository),
    objects: ObjectStore = Depends(get_object_store),
):
    """
    Upload a PDF for ingestion.
    - Store the raw file in the ``pdfs`` bucket under ``uploads/``.
    - Create a ``documents`` row in ``pending`` state.
    - Schedule the ingestion pipeline as a background task.
    """
    settings = get_settings()
    if not settings.LLM_API_KEY:
        raise app_error_to_http(CapabilityNotConfiguredError("Embedding model (LLM_API_KEY)"), 500)

    filename = file.filename or "upload.pdf"
    if not filename.lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are allowed.")

    file_bytes = await file.read()
    if not file_bytes:
        raise HTTPException(status_code=400, detail="No file provided")
    if len(file_bytes) > settings.MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File exceeds {settings.MAX_UPLOAD_MB}MB limit")

    safe_filename = sanitize_filename(filename)
    storage_path = f"uploads/{int(time.time() * 1000)}_{safe_filename}"

    try:
        objects.upload(storage_path, file_bytes)
        document = repo.create(owner_id=user_id, storage_path=storage_path, file_name=safe_filename)
    except Exception as e:
        logger.error(f"Error uploading document: {e}")
        raise HTTPException(status_code=500, detail=f"Upload failed: {e}")

    background_tasks.add_task(process_document_pipeline, document_id=document.id)
    logger.info(f"📥 Uploaded document {document.id} ({storage_path}), ingestion scheduled")
    return DocumentResponse.model_validate(document)


@router.get("/", response_model=list[DocumentResponse])
async def list_documents(
    user_id: str = Depends(get_current_user_id),
    repo: DocumentRepository = Depends(get_document_repository),
):
    """List the caller's documents, newest first."""
    return [DocumentResponse.model_validate(d) for d in repo.list_for_owner(user_id)]


@router.get("/{document_id}/status", response_model=DocumentStatusResponse)
async def get_document_status(
    document_id: int,
    user_id: str = Depends(get_current_user_id),
    repo: DocumentRepository = Depends(get_document_repository),
):
    """Current ingestion status and page count."""
    document = require_owned_document(repo, document_id, user_id)
    return DocumentStatusResponse(id=document.id, status=document.status, page_count=document.page_count)


@router.post("/{document_id}/process", response_model=IngestResult)
async def process_document(
    document_id: int,
    user_id: str = Depends(get_current_user_id),
    repo: DocumentRepository = Depends(get_document_repository),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Run ingestion inline. No-op (``skipped``) unless the document is pending."""
    require_owned_document(repo, document_id, user_id)
    result = await service.ingest(document_id)
    if not result.ok:
        raise HTTPException(status_code=500, detail=result.model_dump(mode="json"))
    return result


@router.post("/{document_id}/reprocess", response_model=IngestResult)
async def reprocess_document(
    document_id: int,
    user_id: str = Depends(get_current_user_id),
    repo: DocumentRepository = Depends(get_document_repository),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Force re-ingestion: reset to pending, then ingest (replaces the chunk set)."""
    require_owned_document(repo, document_id, user_id)
    result = await service.reprocess(document_id)
    if not result.ok:
        raise HTTPException(status_code=500, detail=result.model_dump(mode="json"))
    return result


@router.get("/{document_id}/retrieval", response_model=list[RetrievedChunk])
async def sample_retrieval(
    document_id: int,
    q: str = Query(..., min_length=1),
    k: int = Query(5, ge=1, le=50),
    probes: int = Query(10, ge=1, le=1000),
    user_id: str = Depends(get_current_user_id),
    repo: DocumentRepository = Depends(get_document_repository),
    retriever: Retriever = Depends(get_retriever),
):
    """Debug aid: show what retrieval would ground an answer with."""
    require_owned_document(repo, document_id, user_id)
    try:
        return await retriever.retrieve(document_id, q, k=k, probes=probes)
    except AppBaseError as e:
        raise app_error_to_http(e, status_code=500)


@router.delete("/{document_id}")
async def delete_document(
    document_id: int,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    repo: DocumentRepository = Depends(get_document_repository),
):
    """
    Delete a document.
    - Remove the raw file from storage (best effort).
    - Delete the row; ON DELETE CASCADE removes its chunks.
    """
    document = require_owned_document(repo, document_id, user_id)
    background_tasks.add_task(
        delete_document_pipeline,
        document_id=document.id,
        storage_path=document.storage_path,
        owner_id=user_id,
    )
    return {"status": "success", "message": "Document deletion started in background."}
