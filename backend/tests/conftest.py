"""
Shared fixtures and in-memory fakes for Supabase-backed collaborators.
"""

import asyncio
import math
import os
import threading

# Settings are read at import time by the app factory
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("LLM_API_KEY", "test-llm-key")

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk

from pdftutor.core.exceptions import DocumentAccessDeniedError, DocumentNotFoundError
from pdftutor.features.chat.schemas import ChatMessage, Conversation
from pdftutor.features.documents.schemas import Document, DocumentStatus
from pdftutor.features.knowledge.schemas import Chunk, RetrievedChunk


class FakeDocumentRepository:
    """Dict-backed stand-in for DocumentRepository with the same transitions."""

    def __init__(self, documents: list[Document] | None = None):
        self.documents = {d.id: d for d in documents or []}
        self.claims = 0
        self._lock = threading.Lock()

    def add(self, document_id: int, owner_id: str = "user-1", status=DocumentStatus.PENDING, **fields):
        document = Document(
            id=document_id,
            storage_path=fields.pop("storage_path", f"uploads/{document_id}.pdf"),
            status=status,
            owner_id=owner_id,
            **fields,
        )
        self.documents[document_id] = document
        return document

    def create(self, owner_id: str, storage_path: str, file_name: str) -> Document:
        document_id = max(self.documents, default=0) + 1
        return self.add(document_id, owner_id=owner_id, storage_path=storage_path, file_name=file_name)

    def get(self, document_id: int):
        return self.documents.get(document_id)

    def get_owned(self, document_id: int, owner_id: str) -> Document:
        document = self.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        if document.owner_id != owner_id:
            raise DocumentAccessDeniedError(document_id)
        return document

    def list_for_owner(self, owner_id: str) -> list[Document]:
        return [d for d in reversed(list(self.documents.values())) if d.owner_id == owner_id]

    def claim_for_processing(self, document_id: int):
        # Claims run on worker threads; the conditional update must stay atomic
        with self._lock:
            document = self.documents.get(document_id)
            if document is None or document.status is not DocumentStatus.PENDING:
                return None
            self.claims += 1
            self._set(document_id, status=DocumentStatus.PROCESSING)
            return self.documents[document_id]

    def mark_failed(self, document_id: int) -> None:
        self._set(document_id, status=DocumentStatus.FAILED)

    def mark_finished(self, document_id: int, status: DocumentStatus, page_count: int) -> None:
        self._set(document_id, status=status, page_count=page_count)

    def reset_to_pending(self, document_id: int) -> bool:
        document = self.documents.get(document_id)
        if document is None or document.status is DocumentStatus.PROCESSING:
            return False
        self._set(document_id, status=DocumentStatus.PENDING)
        return True

    def delete(self, document_id: int, owner_id: str) -> None:
        self.documents.pop(document_id, None)

    def _set(self, document_id: int, **fields) -> None:
        if document_id in self.documents:
            self.documents[document_id] = self.documents[document_id].model_copy(update=fields)


class FakeObjectStore:
    def __init__(self, objects: dict[str, bytes] | None = None, fail: bool = False):
        self.objects = dict(objects or {})
        self.fail = fail

    def upload(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        if self.fail:
            raise RuntimeError("storage unavailable")
        self.objects[path] = data
        return path

    def download(self, path: str) -> bytes:
        if self.fail:
            raise RuntimeError("storage unavailable")
        return self.objects[path]

    def remove(self, path: str) -> None:
        self.objects.pop(path, None)


def _distance(a: list[float], b: list[float]) -> float:
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


class FakeChunkStore:
    """In-memory ``chunks`` table with exact nearest-neighbour search."""

    def __init__(self, fail_insert_calls: set[int] | None = None, fail_delete: bool = False):
        self.rows: list[Chunk] = []
        self.insert_calls = 0
        self.fail_insert_calls = fail_insert_calls or set()
        self.fail_delete = fail_delete
        self.events: list[str] = []

    def delete_for_document(self, document_id: int) -> bool:
        self.events.append("delete")
        if self.fail_delete:
            return False
        self.rows = [r for r in self.rows if r.document_id != document_id]
        return True

    def insert_rows(self, chunks: list[Chunk]) -> None:
        self.insert_calls += 1
        self.events.append("insert")
        if self.insert_calls in self.fail_insert_calls:
            raise RuntimeError("payload too large")
        for chunk in chunks:
            self.rows.append(chunk.model_copy(update={"id": len(self.rows) + 1}))

    def search(self, document_id: int, query_embedding: list[float], k: int = 5, probes: int = 10):
        matches = [
            RetrievedChunk(
                id=row.id,
                document_id=row.document_id,
                page=row.page,
                line_start=row.line_start,
                line_end=row.line_end,
                text=row.text,
                distance=_distance(row.embedding, query_embedding),
            )
            for row in self.rows
            if row.document_id == document_id and row.embedding is not None
        ]
        matches.sort(key=lambda c: c.distance)
        return matches[:k]

    def list_for_document(self, document_id: int, limit: int = 10) -> list[Chunk]:
        return [r for r in self.rows if r.document_id == document_id][:limit]

    def for_document(self, document_id: int) -> list[Chunk]:
        return [r for r in self.rows if r.document_id == document_id]


class FakeEmbeddingsModel:
    """LangChain-shaped embeddings model with scripted failures and delays."""

    def __init__(self, dimensions: int = 4, fail_on: set[str] | None = None,
                 slow_on: set[str] | None = None, delay: float = 1.0):
        self.dimensions = dimensions
        self.fail_on = fail_on or set()
        self.slow_on = slow_on or set()
        self.delay = delay

    def vector_for(self, text: str) -> list[float]:
        seed = sum(ord(c) for c in text)
        return [float((seed * (i + 1)) % 97) for i in range(self.dimensions)]

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        for text in texts:
            if text in self.slow_on:
                await asyncio.sleep(self.delay)
            if text in self.fail_on:
                raise RuntimeError(f"embedding failed for {text!r}")
        return [self.vector_for(text) for text in texts]

    async def aembed_query(self, text: str) -> list[float]:
        if text in self.fail_on:
            raise RuntimeError("query embedding failed")
        return self.vector_for(text)


class FakeChatModel:
    """Chat model that streams scripted pieces and optionally fails midway."""

    def __init__(self, pieces=("Hello", " world"), fail_after: int | None = None, reply: str = ""):
        self.pieces = list(pieces)
        self.fail_after = fail_after
        self.reply = reply
        self.calls: list = []
        self.consumed = 0

    async def astream(self, messages):
        self.calls.append(messages)
        for index, piece in enumerate(self.pieces):
            if self.fail_after is not None and index >= self.fail_after:
                raise RuntimeError("model overloaded")
            self.consumed += 1
            yield AIMessageChunk(content=piece)

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if isinstance(self.reply, Exception):
            raise self.reply
        return AIMessage(content=self.reply)


class FakeConversationStore:
    def __init__(self, fail_add: bool = False):
        self.chats: dict[int, dict] = {}
        self.messages: list[tuple[int, str, str]] = []
        self.fail_add = fail_add

    def create_chat(self, document_id=None):
        chat_id = len(self.chats) + 1
        self.chats[chat_id] = {"id": chat_id, "document_id": document_id}
        return Conversation(id=chat_id, owner_id="user-1", document_id=document_id)

    def get_chat(self, chat_id: int):
        chat = self.chats.get(chat_id)
        return Conversation(owner_id="user-1", **chat) if chat else None

    def add_message(self, chat_id: int, role: str, content: str) -> None:
        if self.fail_add and role == "assistant":
            raise RuntimeError("db down")
        self.messages.append((chat_id, role, content))

    def list_chats(self):
        return [self.get_chat(chat_id) for chat_id in self.chats]

    def list_messages(self, chat_id: int):
        return [
            ChatMessage(chat_id=c, role=role, content=content)
            for c, role, content in self.messages
            if c == chat_id
        ]


class FakeQuizRepository:
    """Dict-backed quizzes, attempts and answers; ``attempts`` seeds the history."""

    def __init__(self, attempts: list[dict] | None = None, owner_id: str = "user-1",
                 document_names: dict[int, str] | None = None):
        self.quizzes: dict[int, dict] = {}
        self.attempts: list[dict] = []
        self.answers: list[dict] = []
        self.history = attempts or []
        self.owner_id = owner_id
        self.document_names = document_names or {}

    def create(self, document_id, config):
        quiz_id = len(self.quizzes) + 1
        self.quizzes[quiz_id] = {"id": quiz_id, "document_id": document_id, "config": config}
        return quiz_id

    def get_row(self, quiz_id):
        return self.quizzes.get(quiz_id)

    def recent_attempts(self, document_id, limit):
        if isinstance(self.history, Exception):
            raise self.history
        return self.history[:limit]

    def store_attempt(self, quiz_id, score, details):
        self.attempts.append({"quiz_id": quiz_id, "owner_id": self.owner_id, "score": score, "details": details})
        return len(self.attempts)

    def store_answers(self, attempt_id, rows):
        self.answers.extend({"quiz_attempt_id": attempt_id, **row} for row in rows)

    def list_attempts(self, limit, offset):
        rows = [self._attempt_row(i) for i in range(len(self.attempts), 0, -1)]
        rows = [row for row in rows if row["owner_id"] == self.owner_id]
        return rows[offset:offset + limit], len(rows)

    def get_attempt(self, attempt_id):
        if not 1 <= attempt_id <= len(self.attempts):
            return None
        row = self._attempt_row(attempt_id)
        return row if row["owner_id"] == self.owner_id else None

    def list_answers(self, attempt_id):
        rows = [a for a in self.answers if a["quiz_attempt_id"] == attempt_id]
        return sorted(rows, key=lambda a: a["question_index"])

    def _attempt_row(self, attempt_id):
        # Shaped like the PostgREST select with quizzes(documents(...)) embedded
        attempt = self.attempts[attempt_id - 1]
        quiz = self.quizzes.get(attempt["quiz_id"]) or {}
        document_id = quiz.get("document_id")
        return {
            "id": attempt_id,
            **attempt,
            "created_at": f"2026-01-01T00:00:{attempt_id:02d}+00:00",
            "quizzes": {
                "document_id": document_id,
                "config": quiz.get("config"),
                "documents": {"file_name": self.document_names.get(document_id)},
            },
        }


@pytest.fixture
def documents():
    return FakeDocumentRepository()


@pytest.fixture
def objects():
    return FakeObjectStore()


@pytest.fixture
def chunk_store():
    return FakeChunkStore()


@pytest.fixture
def embeddings_model():
    return FakeEmbeddingsModel()
