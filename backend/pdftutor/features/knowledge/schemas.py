"""
Knowledge feature: chunk, retrieval and citation records.
"""

from pydantic import BaseModel, ConfigDict, Field


class Chunk(BaseModel):
    """A persisted, retrievable unit of text."""
    id: int | None = None
    document_id: int
    page: int = Field(ge=1)
    line_start: int | None = None
    line_end: int | None = None
    text: str
    embedding: list[float] | None = None

    model_config = ConfigDict(extra="ignore")


class RetrievedChunk(BaseModel):
    """Read-only projection of a Chunk plus its distance to the query."""
    id: int | None = None
    document_id: int
    page: int = Field(ge=1)
    line_start: int | None = None
    line_end: int | None = None
    text: str
    distance: float

    model_config = ConfigDict(extra="ignore", frozen=True)


class Citation(BaseModel):
    """UI-facing pointer back into the source document."""
    page: int
    line_start: int | None = None
    line_end: int | None = None
    excerpt: str


class AssembledPrompt(BaseModel):
    system: str
    user: str
    citations: list[Citation] = []


class BatchReport(BaseModel):
    """Aggregate outcome of embedding + inserting one document's chunks.

    ``vectors`` is parallel to the input chunks; ``None`` marks a chunk whose
    embedding failed.
    """
    vectors: list[list[float] | None] = []
    success_count: int = 0
    error_count: int = 0
    total: int = 0
