"""
Knowledge feature: document-scoped semantic retrieval.
"""

import logging

from fastapi.concurrency import run_in_threadpool

from pdftutor.core.exceptions import EmbeddingDimensionError
from pdftutor.features.knowledge.embedding import EmbeddingClient
from pdftutor.features.knowledge.schemas import RetrievedChunk
from pdftutor.features.knowledge.store import ChunkStore

logger = logging.getLogger(__name__)


class Retriever:
    """Embeds a query and searches one document's chunks with pgvector."""

    def __init__(self, store: ChunkStore, embeddings: EmbeddingClient):
        self.store = store
        self.embeddings = embeddings

    async def retrieve(
        self,
        document_id: int,
        query: str,
        k: int = 5,
        probes: int = 10,
    ) -> list[RetrievedChunk]:
        """Top-``k`` chunks of ``document_id`` by ascending distance.

        An empty list means "no grounding available" (no chunks, embedding
        failure, search failure); callers fall back to ungrounded generation.

        Raises:
            EmbeddingDimensionError: If the query vector cannot have come from
                the model the chunks were embedded with.
        """
        if not query or not query.strip() or k < 1:
            return []

        raw_vector = await self.embeddings.embed_query(query)
        if raw_vector is None:
            logger.warning(f"⚠️ Query embedding failed for document {document_id}; no grounding")
            return []

        expected = self.embeddings.native_dimensions or self.embeddings.dimensions
        if len(raw_vector) != expected:
            raise EmbeddingDimensionError(expected, len(raw_vector))
        query_vector = self.embeddings.fit(raw_vector)

        try:
            return await run_in_threadpool(self.store.search, document_id, query_vector, k=k, probes=probes)
        except Exception as e:
            logger.warning(f"⚠️ Similarity search failed for document {document_id}: {e}")
            return []
