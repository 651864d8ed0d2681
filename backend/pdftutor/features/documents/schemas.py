"""
Documents feature: records and request/response models.

Rows coming back from Supabase are validated into these records at the
repository boundary; rows missing required fields are rejected there.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DocumentStatus(str, Enum):
    """Ingestion lifecycle: pending -> processing -> ready | partial | failed."""
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.PARTIAL, DocumentStatus.FAILED)

    @property
    def is_queryable(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.PARTIAL)


class Document(BaseModel):
    """One uploaded source file."""
    id: int
    storage_path: str
    status: DocumentStatus
    page_count: int | None = Field(default=None, ge=0)
    owner_id: str | None = None
    file_name: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(extra="ignore")


class PageText(BaseModel):
    """Text of one physical page.

    ``line_aware`` is False when the extractor could only provide a flattened
    text stream, in which case line numbers are meaningless.
    """
    number: int = Field(ge=1)
    text: str
    line_aware: bool = True


class ChunkDraft(BaseModel):
    """A chunk produced by the chunker, before it has a vector or an id."""
    page: int = Field(ge=1)
    text: str
    line_start: int | None = Field(default=None, ge=1)
    line_end: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_line_range(self):
        if (self.line_start is None) != (self.line_end is None):
            raise ValueError("line_start and line_end must both be set or both be None")
        if self.line_start is not None and self.line_end < self.line_start:
            raise ValueError("line_end must be >= line_start")
        return self


class IngestResult(BaseModel):
    """Outcome of one ingest() call."""
    ok: bool
    skipped: bool = False
    status: DocumentStatus | None = None
    chunks: int = 0
    pages: int = 0
    errors: int = 0
    error: str | None = None


class DocumentStatusResponse(BaseModel):
    id: int
    status: DocumentStatus
    page_count: int | None = None


class DocumentResponse(BaseModel):
    id: int
    file_name: str | None = None
    storage_path: str
    status: DocumentStatus
    page_count: int | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
