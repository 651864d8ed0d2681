"""
Documents feature: FastAPI dependencies.
"""

from fastapi import Depends
from supabase import Client

from pdftutor.background.document_tasks import IngestionService, build_ingestion_service
from pdftutor.core.dependencies import get_admin_db, get_db
from pdftutor.core.exceptions import CapabilityNotConfiguredError, app_error_to_http
from pdftutor.features.documents.repository import DocumentRepository, ObjectStore
from pdftutor.config import get_settings


def get_document_repository(db: Client = Depends(get_db)) -> DocumentRepository:
    return DocumentRepository(db)


def get_object_store(db: Client = Depends(get_db)) -> ObjectStore:
    return ObjectStore(db, get_settings().STORAGE_BUCKET)


def get_ingestion_service(db: Client = Depends(get_admin_db)) -> IngestionService:
    """Dependency: fully wired ingestion service (500 if models not configured)."""
    try:
        return build_ingestion_service(db)
    except CapabilityNotConfiguredError as e:
        raise app_error_to_http(e, status_code=500)
