"""
Chat feature: request model and the JSON-lines stream frames.

Each frame is one JSON object per line; ``type`` tells consumers how to read
``data``. Order within a stream: chat, citations, delta*, then done | error.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from pdftutor.features.knowledge.schemas import Citation


class ChatRequest(BaseModel):
    message: str
    chat_id: int | None = None
    document_id: int | None = None


class ChatMessage(BaseModel):
    id: int | None = None
    chat_id: int
    role: Literal["user", "assistant"]
    content: str
    created_at: str | None = None

    model_config = ConfigDict(extra="ignore")


class Conversation(BaseModel):
    id: int
    owner_id: str | None = None
    document_id: int | None = None
    created_at: str | None = None

    model_config = ConfigDict(extra="ignore")


# ── Stream frames ────────────────────────────────────────


class _Frame(BaseModel):
    def to_line(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True) + "\n"


class ChatFrameData(BaseModel):
    conversation_id: int = Field(serialization_alias="conversationId")


class ChatFrame(_Frame):
    type: Literal["chat"] = "chat"
    data: ChatFrameData


class CitationsFrame(_Frame):
    type: Literal["citations"] = "citations"
    data: list[Citation] = []


class DeltaFrame(_Frame):
    type: Literal["delta"] = "delta"
    data: str


class DoneFrame(_Frame):
    type: Literal["done"] = "done"


class ErrorFrame(_Frame):
    type: Literal["error"] = "error"
    data: str


Frame = ChatFrame | CitationsFrame | DeltaFrame | DoneFrame | ErrorFrame
