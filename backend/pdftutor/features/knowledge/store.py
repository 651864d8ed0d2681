"""
Knowledge feature: chunk persistence and pgvector similarity search.

Re-ingestion replaces a document's chunk set in two phases: delete all, then
insert the new set. Supabase's REST layer gives no transaction spanning both,
so a concurrent reader may briefly see zero chunks, but never a mix of old
and new ones, because inserts only start after the delete has returned.
"""

import logging

from pydantic import ValidationError
from supabase import Client

from pdftutor.features.knowledge.schemas import Chunk, RetrievedChunk

logger = logging.getLogger(__name__)


class ChunkStore:
    """Operations on the ``chunks`` table and the ``match_chunks`` RPC."""

    def __init__(self, db: Client):
        self.db = db

    def delete_for_document(self, document_id: int) -> bool:
        """Best-effort removal of a document's chunks. Returns False on failure."""
        try:
            self.db.table("chunks").delete().eq("document_id", document_id).execute()
            return True
        except Exception as e:
            logger.warning(f"⚠️ Could not clear old chunks for document {document_id}: {e}")
            return False

    def insert_rows(self, chunks: list[Chunk]) -> None:
        """Insert one slice. Raises on failure so the caller can count it."""
        if not chunks:
            return
        payload = [chunk.model_dump(exclude={"id"}) for chunk in chunks]
        self.db.table("chunks").insert(payload).execute()

    def search(
        self,
        document_id: int,
        query_embedding: list[float],
        k: int = 5,
        probes: int = 10,
    ) -> list[RetrievedChunk]:
        """Nearest neighbours of ``query_embedding`` within one document.

        Results are re-checked against ``document_id`` so a misbehaving RPC
        can never leak another document's text into a prompt.
        """
        result = self.db.rpc(
            "match_chunks",
            {
                "p_document_id": document_id,
                "p_query": query_embedding,
                "p_match_count": k,
                "p_probes": probes,
            },
        ).execute()

        matches = []
        for row in result.data or []:
            try:
                chunk = RetrievedChunk.model_validate(row)
            except ValidationError as e:
                logger.warning(f"⚠️ Dropping malformed match row: {e}")
                continue
            if chunk.document_id != document_id:
                logger.error(
                    f"❌ match_chunks returned chunk of document {chunk.document_id} "
                    f"for a search scoped to {document_id}; dropped"
                )
                continue
            matches.append(chunk)

        matches.sort(key=lambda c: c.distance)
        return matches[:k]

    def list_for_document(self, document_id: int, limit: int = 10) -> list[Chunk]:
        """Plain listing in insertion order (no similarity)."""
        result = (
            self.db.table("chunks")
            .select("id, document_id, page, line_start, line_end, text")
            .eq("document_id", document_id)
            .order("id")
            .limit(limit)
            .execute()
        )
        chunks = []
        for row in result.data or []:
            try:
                chunks.append(Chunk.model_validate(row))
            except ValidationError as e:
                logger.warning(f"⚠️ Dropping malformed chunk row: {e}")
        return chunks
