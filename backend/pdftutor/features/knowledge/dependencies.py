"""
Knowledge feature: FastAPI dependencies shared by the chat, quiz and documents routers.
"""

import logging

from fastapi import Depends
from supabase import Client

from pdftutor.core.dependencies import get_db
from pdftutor.core.exceptions import CapabilityNotConfiguredError, app_error_to_http
from pdftutor.features.knowledge.embedding import EmbeddingClient, get_embedding_client
from pdftutor.features.knowledge.retriever import Retriever
from pdftutor.features.knowledge.store import ChunkStore

logger = logging.getLogger(__name__)


def get_embeddings() -> EmbeddingClient:
    """Dependency: shared embedding client (500 if not configured)."""
    try:
        return get_embedding_client()
    except CapabilityNotConfiguredError as e:
        raise app_error_to_http(e, status_code=500)


def get_retriever(
    db: Client = Depends(get_db),
    embeddings: EmbeddingClient = Depends(get_embeddings),
) -> Retriever:
    """Dependency: retriever bound to the request's Supabase client."""
    return Retriever(ChunkStore(db), embeddings)


def get_optional_retriever(db: Client = Depends(get_db)) -> Retriever | None:
    """Dependency: retriever, or ``None`` when embeddings are not configured."""
    try:
        return Retriever(ChunkStore(db), get_embedding_client())
    except CapabilityNotConfiguredError as e:
        logger.warning(f"⚠️ Retrieval unavailable: {e.message}")
        return None
