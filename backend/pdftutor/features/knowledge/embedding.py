"""
Knowledge feature: embedding capability and the ingestion batcher.

Two independent failure axes are kept apart here: a chunk whose embedding
fails only loses its vector, and an insert slice that fails only costs its
own rows. Neither aborts the remaining work; both end up in the counters.
"""

import asyncio
import logging
from typing import Sequence

from fastapi.concurrency import run_in_threadpool

from pdftutor.config import get_settings
from pdftutor.core.llm_provider import create_embeddings
from pdftutor.features.documents.schemas import ChunkDraft
from pdftutor.features.knowledge.schemas import BatchReport, Chunk

logger = logging.getLogger(__name__)

Vector = list[float]


class EmbeddingClient:
    """Wraps a LangChain embeddings model.

    Every call has its own timeout and returns ``None`` instead of raising,
    so batch logic can count partial failure.

    ``native_dimensions`` is the width the model itself emits (e.g. 3072 for
    gemini-embedding-001). When set, any other width is treated as a wrong
    model and never truncated into the store.
    """

    def __init__(self, model, dimensions: int, timeout: float, native_dimensions: int | None = None):
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout
        self.native_dimensions = native_dimensions

    async def embed_document(self, text: str) -> Vector | None:
        """Embed one chunk for storage. Vectors of the wrong width are rejected (None)."""
        vectors = await self._guarded(self.model.aembed_documents([text]), "document")
        if not vectors:
            return None
        raw = vectors[0]
        if self.native_dimensions and len(raw) != self.native_dimensions:
            logger.warning(
                f"⚠️ Embedding has {len(raw)} dims, model should emit {self.native_dimensions}; dropping vector"
            )
            return None
        vector = self.fit(raw)
        if len(vector) != self.dimensions:
            logger.warning(
                f"⚠️ Embedding has {len(vector)} dims, store expects {self.dimensions}; dropping vector"
            )
            return None
        return vector

    async def embed_query(self, text: str) -> Vector | None:
        """Embed a search query at the model's raw width; the caller checks and fits it."""
        vector = await self._guarded(self.model.aembed_query(text), "query")
        if not vector:
            return None
        return list(vector)

    def fit(self, vector: Sequence[float]) -> Vector:
        # Truncate to the store's column width (e.g. 3072 -> 768)
        return list(vector[: self.dimensions])

    async def _guarded(self, call, kind: str):
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Embedding {kind} call timed out after {self.timeout}s")
            return None
        except Exception as e:
            logger.warning(f"⚠️ Embedding {kind} call failed: {e}")
            return None


# Singleton embedding client (lazy init)
_embedding_client: EmbeddingClient | None = None


def get_embedding_client() -> EmbeddingClient:
    """Get or create the shared embedding client instance."""
    global _embedding_client
    if _embedding_client is None:
        settings = get_settings()
        _embedding_client = EmbeddingClient(
            model=create_embeddings(),
            dimensions=settings.EMBEDDING_DIMENSIONS,
            timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
            native_dimensions=settings.EMBEDDING_NATIVE_DIMENSIONS or None,
        )
    return _embedding_client


class EmbeddingBatcher:
    """Embeds a document's chunks in bounded batches and inserts them in slices."""

    def __init__(
        self,
        client: EmbeddingClient,
        batch_size: int = 32,
        insert_slice_size: int = 50,
        batch_timeout: float | None = None,
    ):
        if batch_size < 1 or insert_slice_size < 1:
            raise ValueError("batch_size and insert_slice_size must be positive")
        self.client = client
        self.batch_size = batch_size
        self.insert_slice_size = insert_slice_size
        self.batch_timeout = batch_timeout

    async def embed_batch(self, texts: Sequence[str]) -> list[Vector | None]:
        """Embed texts concurrently; the result is parallel to ``texts``.

        Chunks still running when the batch time cap expires are cancelled
        and reported as ``None``.
        """
        if not texts:
            return []

        tasks = [asyncio.create_task(self.client.embed_document(text)) for text in texts]
        done, pending = await asyncio.wait(tasks, timeout=self.batch_timeout)
        if pending:
            logger.warning(f"⚠️ Batch time cap hit, cancelling {len(pending)} embedding call(s)")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        vectors: list[Vector | None] = []
        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is None:
                vectors.append(task.result())
            else:
                vectors.append(None)
        return vectors

    async def embed_and_store(
        self,
        document_id: int,
        drafts: Sequence[ChunkDraft],
        store,
    ) -> BatchReport:
        """Embed every chunk and insert it, vector or not.

        Counting: inserted rows with a vector are successes, inserted rows
        without one are errors, and every row of a failed insert slice is an
        error.
        """
        report = BatchReport(total=len(drafts))
        batch_count = -(-len(drafts) // self.batch_size)  # ceiling division

        for batch_no, start in enumerate(range(0, len(drafts), self.batch_size), start=1):
            batch = drafts[start:start + self.batch_size]
            logger.info(f"🔄 Embedding batch {batch_no}/{batch_count} for document {document_id}...")

            vectors = await self.embed_batch([draft.text for draft in batch])
            report.vectors.extend(vectors)

            rows = [
                Chunk(
                    document_id=document_id,
                    page=draft.page,
                    line_start=draft.line_start,
                    line_end=draft.line_end,
                    text=draft.text,
                    embedding=vector,
                )
                for draft, vector in zip(batch, vectors)
            ]

            # Insert in smaller slices to stay under payload limits
            for offset in range(0, len(rows), self.insert_slice_size):
                slice_rows = rows[offset:offset + self.insert_slice_size]
                try:
                    await run_in_threadpool(store.insert_rows, slice_rows)
                except Exception as e:
                    logger.error(
                        f"❌ Insert slice of {len(slice_rows)} chunk(s) failed for document {document_id}: {e}"
                    )
                    report.error_count += len(slice_rows)
                    continue
                embedded = sum(1 for row in slice_rows if row.embedding is not None)
                report.success_count += embedded
                report.error_count += len(slice_rows) - embedded

        logger.info(
            f"✅ Embedding complete for document {document_id}: "
            f"success={report.success_count}, errors={report.error_count}, total={report.total}"
        )
        return report
