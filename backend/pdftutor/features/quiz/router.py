"""
Quiz feature: generation, retrieval, evaluation and attempt history routes.
"""

import logging

from fastapi import APIRouter, Depends, Query
from supabase import Client

from pdftutor.config import get_settings
from pdftutor.core.dependencies import get_current_user_id, get_db
from pdftutor.core.exceptions import (
    AppBaseError,
    CapabilityNotConfiguredError,
    DocumentAccessDeniedError,
    DocumentNotFoundError,
    QuizAttemptNotFoundError,
    QuizNotFoundError,
    app_error_to_http,
)
from pdftutor.core.llm_provider import create_llm
from pdftutor.features.documents.repository import DocumentRepository
from pdftutor.features.knowledge.dependencies import get_optional_retriever
from pdftutor.features.knowledge.retriever import Retriever
from pdftutor.features.knowledge.store import ChunkStore
from pdftutor.features.quiz.evaluator import QuizEvaluator
from pdftutor.features.quiz.repository import QuizRepository
from pdftutor.features.quiz.schemas import (
    AttemptDetail,
    AttemptHistory,
    EvaluateRequest,
    GenerateQuizRequest,
    Quiz,
    QuizResults,
    QuizView,
)
from pdftutor.features.quiz.service import QuizService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_quiz_service(
    user_id: str = Depends(get_current_user_id),
    db: Client = Depends(get_db),
    retriever: Retriever | None = Depends(get_optional_retriever),
) -> QuizService:
    """Dependency: quiz service; grading falls back to keywords without a model."""
    settings = get_settings()
    try:
        llm = create_llm(model=settings.QUIZ_MODEL or None, temperature=0.3)
    except CapabilityNotConfiguredError:
        llm = None
    return QuizService(
        owner_id=user_id,
        quizzes=QuizRepository(db, user_id),
        documents=DocumentRepository(db),
        chunks=ChunkStore(db),
        llm=llm,
        retriever=retriever,
        evaluator=QuizEvaluator(llm),
    )


def _to_http(error: AppBaseError):
    if isinstance(error, (DocumentNotFoundError, QuizNotFoundError, QuizAttemptNotFoundError)):
        return app_error_to_http(error, status_code=404)
    if isinstance(error, DocumentAccessDeniedError):
        return app_error_to_http(error, status_code=403)
    return app_error_to_http(error, status_code=500)


@router.post("/generate", response_model=Quiz)
async def generate_quiz(
    data: GenerateQuizRequest,
    service: QuizService = Depends(get_quiz_service),
):
    """Generate a quiz grounded in one of the caller's documents."""
    if service.llm is None:
        raise app_error_to_http(CapabilityNotConfiguredError("Generation model (LLM_API_KEY)"), 500)
    try:
        return await service.generate(data.document_id, data.config)
    except AppBaseError as e:
        raise _to_http(e)


# Declared before /{quiz_id} so "attempts" is not read as a quiz id
@router.get("/attempts", response_model=AttemptHistory)
async def list_attempts(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: QuizService = Depends(get_quiz_service),
):
    """The caller's quiz attempts, newest first."""
    return service.list_attempts(limit=limit, offset=offset)


@router.get("/attempts/{attempt_id}", response_model=AttemptDetail)
async def get_attempt(attempt_id: int, service: QuizService = Depends(get_quiz_service)):
    """One attempt with the stored answers and grades."""
    try:
        return service.get_attempt(attempt_id)
    except AppBaseError as e:
        raise _to_http(e)


@router.get("/{quiz_id}", response_model=QuizView)
async def get_quiz(quiz_id: int, service: QuizService = Depends(get_quiz_service)):
    """Fetch a quiz without its answers."""
    try:
        return QuizView.from_quiz(service.get(quiz_id))
    except AppBaseError as e:
        raise _to_http(e)


@router.post("/evaluate", response_model=QuizResults)
async def evaluate_quiz(
    data: EvaluateRequest,
    service: QuizService = Depends(get_quiz_service),
):
    """Grade an attempt and store it."""
    try:
        return await service.evaluate(data)
    except AppBaseError as e:
        raise _to_http(e)
