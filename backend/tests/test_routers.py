"""
API-level tests: FastAPI app with Supabase and model dependencies overridden.
"""

import json

import pytest
from conftest import (
    FakeChatModel,
    FakeChunkStore,
    FakeConversationStore,
    FakeEmbeddingsModel,
    FakeObjectStore,
    FakeQuizRepository,
)
from fastapi.testclient import TestClient

from pdftutor.core.dependencies import get_current_user_id, get_rate_limiter
from pdftutor.core.rate_limit import RateLimiter
from pdftutor.core.security import create_access_token
from pdftutor.features.chat.router import get_chat_llm, get_conversation_store
from pdftutor.features.documents import router as documents_router
from pdftutor.features.documents.dependencies import get_document_repository, get_object_store
from pdftutor.features.documents.schemas import DocumentStatus
from pdftutor.features.knowledge.dependencies import get_optional_retriever
from pdftutor.features.knowledge.embedding import EmbeddingClient
from pdftutor.features.knowledge.retriever import Retriever
from pdftutor.features.knowledge.schemas import Chunk
from pdftutor.features.quiz.evaluator import QuizEvaluator
from pdftutor.features.quiz.router import get_quiz_service
from pdftutor.features.quiz.schemas import Question, QuizConfig
from pdftutor.features.quiz.service import QuizService
from pdftutor.main import create_app


@pytest.fixture
def app(documents, objects):
    app = create_app()
    app.dependency_overrides[get_current_user_id] = lambda: "user-1"
    app.dependency_overrides[get_document_repository] = lambda: documents
    app.dependency_overrides[get_object_store] = lambda: objects
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def _lines(response) -> list[dict]:
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# -- documents --

class TestDocumentRoutes:
    def test_status_of_owned_document(self, client, documents):
        documents.add(1, status=DocumentStatus.PARTIAL, page_count=12)

        response = client.get("/api/documents/1/status")

        assert response.status_code == 200
        assert response.json() == {"id": 1, "status": "partial", "page_count": 12}

    def test_status_of_missing_document_is_404(self, client):
        assert client.get("/api/documents/42/status").status_code == 404

    def test_status_of_foreign_document_is_403(self, client, documents):
        documents.add(1, owner_id="someone-else")
        assert client.get("/api/documents/1/status").status_code == 403

    def test_upload_creates_pending_document_and_schedules_ingestion(self, client, documents, objects, monkeypatch):
        scheduled = []
        monkeypatch.setattr(documents_router, "process_document_pipeline",
                            lambda document_id: scheduled.append(document_id))

        response = client.post(
            "/api/documents/upload",
            files={"file": ("my notes.pdf", b"%PDF-1.7 body", "application/pdf")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "pending"
        assert body["file_name"] == "my_notes.pdf"
        assert body["storage_path"].startswith("uploads/")
        assert body["storage_path"].endswith("_my_notes.pdf")
        assert objects.objects[body["storage_path"]] == b"%PDF-1.7 body"
        assert scheduled == [body["id"]]
        assert documents.get(body["id"]).owner_id == "user-1"

    def test_upload_rejects_non_pdf(self, client):
        response = client.post("/api/documents/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 400

    def test_upload_rejects_empty_file(self, client):
        response = client.post("/api/documents/upload", files={"file": ("empty.pdf", b"", "application/pdf")})
        assert response.status_code == 400

    def test_upload_storage_failure_is_500(self, app, documents):
        app.dependency_overrides[get_object_store] = lambda: FakeObjectStore(fail=True)

        response = TestClient(app).post(
            "/api/documents/upload",
            files={"file": ("a.pdf", b"%PDF", "application/pdf")},
        )

        assert response.status_code == 500
        assert documents.documents == {}

    def test_list_only_own_documents(self, client, documents):
        documents.add(1)
        documents.add(2, owner_id="someone-else")
        documents.add(3)

        response = client.get("/api/documents/")

        assert [d["id"] for d in response.json()] == [3, 1]


# -- chat --

@pytest.fixture
def conversations():
    return FakeConversationStore()


@pytest.fixture
def chat_app(app, conversations):
    app.dependency_overrides[get_chat_llm] = lambda: FakeChatModel()
    app.dependency_overrides[get_conversation_store] = lambda: conversations
    app.dependency_overrides[get_optional_retriever] = lambda: None
    return app


class TestChatRoutes:
    def test_ungrounded_stream(self, chat_app, conversations):
        response = TestClient(chat_app).post("/api/chat/", json={"message": "  Hi there "})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/jsonl")
        assert response.headers["cache-control"] == "no-store"
        frames = _lines(response)
        assert [f["type"] for f in frames] == ["chat", "citations", "delta", "delta", "done"]
        assert frames[0]["data"] == {"conversationId": 1}
        assert frames[1]["data"] == []
        assert conversations.messages == [(1, "user", "Hi there"), (1, "assistant", "Hello world")]

    def test_grounded_stream_carries_citations(self, chat_app, documents, conversations):
        documents.add(1, status=DocumentStatus.READY)
        model = FakeEmbeddingsModel()
        store = FakeChunkStore()
        store.insert_rows([Chunk(document_id=1, page=3, line_start=2, line_end=6,
                                 text="Entropy always increases.", embedding=model.vector_for("x"))])
        retriever = Retriever(store, EmbeddingClient(model, dimensions=4, timeout=1))
        llm = FakeChatModel()
        chat_app.dependency_overrides[get_optional_retriever] = lambda: retriever
        chat_app.dependency_overrides[get_chat_llm] = lambda: llm

        response = TestClient(chat_app).post("/api/chat/", json={"message": "entropy?", "document_id": 1})

        citations = _lines(response)[1]["data"]
        assert citations == [{"page": 3, "line_start": 2, "line_end": 6, "excerpt": "Entropy always increases."}]
        assert "[#1 | page 3, lines 2-6] Entropy always increases." in llm.calls[0][1].content
        assert conversations.chats[1]["document_id"] == 1

    def test_unready_document_is_ungrounded(self, chat_app, documents, conversations):
        documents.add(1, status=DocumentStatus.PROCESSING)

        response = TestClient(chat_app).post("/api/chat/", json={"message": "hi", "document_id": 1})

        assert _lines(response)[1]["data"] == []
        assert conversations.chats[1]["document_id"] is None

    def test_existing_chat_is_reused(self, chat_app, conversations):
        conversations.create_chat()

        response = TestClient(chat_app).post("/api/chat/", json={"message": "again", "chat_id": 1})

        assert _lines(response)[0]["data"] == {"conversationId": 1}
        assert len(conversations.chats) == 1

    def test_generation_error_frame(self, chat_app, conversations):
        chat_app.dependency_overrides[get_chat_llm] = lambda: FakeChatModel(fail_after=0)

        frames = _lines(TestClient(chat_app).post("/api/chat/", json={"message": "hi"}))

        assert frames[-1] == {"type": "error", "data": "model overloaded"}
        assert [m[1] for m in conversations.messages] == ["user"]

    def test_empty_message_is_400(self, chat_app):
        assert TestClient(chat_app).post("/api/chat/", json={"message": "   "}).status_code == 400

    def test_rapid_second_message_is_429(self, chat_app):
        limiter = RateLimiter(60_000)
        chat_app.dependency_overrides[get_rate_limiter] = lambda: limiter
        client = TestClient(chat_app)

        assert client.post("/api/chat/", json={"message": "one"}).status_code == 200
        response = client.post("/api/chat/", json={"message": "two"})

        assert response.status_code == 429
        assert response.json()["detail"]["type"] == "RateLimitedError"

    def test_messages_of_unknown_chat_is_404(self, chat_app):
        assert TestClient(chat_app).get("/api/chat/chats/5/messages").status_code == 404


# -- quiz --

class TestQuizRoutes:
    @pytest.fixture
    def quizzes(self):
        return FakeQuizRepository()

    @pytest.fixture
    def quiz_client(self, app, documents, quizzes):
        service = QuizService(
            owner_id="user-1",
            quizzes=quizzes,
            documents=documents,
            chunks=FakeChunkStore(),
            llm=None,
            retriever=None,
            evaluator=QuizEvaluator(None),
        )
        app.dependency_overrides[get_quiz_service] = lambda: service
        return TestClient(app)

    def _store(self, quizzes):
        question = Question(id=1, type="mcq", question="2+2?", options=["3", "4"], correct_answer="4")
        return quizzes.create(1, {
            **QuizConfig(mcq=1, difficulty="easy").model_dump(),
            "questions": [question.model_dump(by_alias=True)],
        })

    def test_get_quiz_hides_answers(self, quiz_client, quizzes):
        quiz_id = self._store(quizzes)

        body = quiz_client.get(f"/api/quiz/{quiz_id}").json()

        assert body["documentId"] == 1
        assert body["questions"][0]["options"] == ["3", "4"]
        assert "correctAnswer" not in body["questions"][0]

    def test_unknown_quiz_is_404(self, quiz_client):
        assert quiz_client.get("/api/quiz/77").status_code == 404

    def test_evaluate(self, quiz_client, quizzes):
        quiz_id = self._store(quizzes)

        response = quiz_client.post("/api/quiz/evaluate", json={"quizId": quiz_id, "answers": {"1": "4"}})

        assert response.status_code == 200
        body = response.json()
        assert (body["score"], body["totalScore"], body["percentage"]) == (1, 1, 100)
        assert body["feedback"][0]["correct"] is True

    def test_attempt_history_newest_first(self, quiz_client, quizzes):
        quiz_id = self._store(quizzes)
        quizzes.document_names[1] = "algebra.pdf"
        quiz_client.post("/api/quiz/evaluate", json={"quizId": quiz_id, "answers": {"1": "3"}, "timeTaken": 12})
        quiz_client.post("/api/quiz/evaluate", json={"quizId": quiz_id, "answers": {"1": "4"}, "timeTaken": 20})

        response = quiz_client.get("/api/quiz/attempts", params={"limit": 1})

        assert response.status_code == 200
        body = response.json()
        assert (body["total"], body["hasMore"]) == (2, True)
        latest = body["quizHistory"][0]
        assert (latest["id"], latest["quizId"], latest["documentName"]) == (2, quiz_id, "algebra.pdf")
        assert (latest["percentage"], latest["timeTaken"]) == (100, 20)
        assert latest["questionTypes"] == {"mcq": 1, "saq": 0, "laq": 0}

    def test_attempt_history_rejects_bad_paging(self, quiz_client):
        assert quiz_client.get("/api/quiz/attempts", params={"limit": 0}).status_code == 422
        assert quiz_client.get("/api/quiz/attempts", params={"offset": -1}).status_code == 422

    def test_attempt_detail(self, quiz_client, quizzes):
        quiz_id = self._store(quizzes)
        attempt_id = quiz_client.post(
            "/api/quiz/evaluate", json={"quizId": quiz_id, "answers": {"1": "3"}}
        ).json()["attemptId"]

        body = quiz_client.get(f"/api/quiz/attempts/{attempt_id}").json()

        question = body["questions"][0]
        assert (question["userAnswer"], question["isCorrect"], question["score"]) == ("3", False, 0)
        assert question["correctAnswer"] == "4"
        assert body["percentage"] == 0

    def test_unknown_attempt_is_404(self, quiz_client):
        response = quiz_client.get("/api/quiz/attempts/31")
        assert response.status_code == 404
        assert response.json()["detail"]["type"] == "QuizAttemptNotFoundError"

    def test_foreign_attempt_is_404(self, quiz_client, quizzes):
        quiz_id = self._store(quizzes)
        quiz_client.post("/api/quiz/evaluate", json={"quizId": quiz_id, "answers": {"1": "4"}})
        quizzes.attempts[0]["owner_id"] = "someone-else"

        assert quiz_client.get("/api/quiz/attempts/1").status_code == 404

    def test_generate_without_model_is_500(self, quiz_client, documents):
        documents.add(1, status=DocumentStatus.READY)
        response = quiz_client.post("/api/quiz/generate", json={"documentId": 1})
        assert response.status_code == 500


# -- auth boundary --

class TestBearerAuth:
    @pytest.fixture
    def auth_client(self, app):
        app.dependency_overrides.pop(get_current_user_id)
        return TestClient(app)

    def test_token_subject_is_the_owner(self, auth_client, documents):
        documents.add(1, owner_id="user-9", status=DocumentStatus.READY)
        token = create_access_token("user-9")

        response = auth_client.get("/api/documents/1/status", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200

    def test_invalid_token_is_401(self, auth_client):
        response = auth_client.get("/api/documents/1/status", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_token_for_another_user_is_403(self, auth_client, documents):
        documents.add(1, owner_id="user-9")
        token = create_access_token("user-2")

        response = auth_client.get("/api/documents/1/status", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403
