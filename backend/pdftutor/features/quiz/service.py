"""
Quiz feature: generate quizzes from a document and grade attempts.

Generation reuses the retriever to pick representative chunks; the model's
reply is parsed leniently and every question is normalised (ids, clamped
page numbers, default topic) before the quiz is stored.
"""

import logging
import math
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from pdftutor.core.exceptions import (
    DocumentNotFoundError,
    QuizAttemptNotFoundError,
    QuizGenerationError,
    QuizNotFoundError,
)
from pdftutor.core.llm_provider import content_to_text
from pdftutor.features.documents.repository import DocumentRepository
from pdftutor.features.knowledge.retriever import Retriever
from pdftutor.features.knowledge.store import ChunkStore
from pdftutor.features.quiz.evaluator import QuizEvaluator
from pdftutor.features.quiz.parsing import safe_parse_json
from pdftutor.features.quiz.prompts import (
    QUIZ_CONTEXT_QUERY,
    QUIZ_FALLBACK_QUERIES,
    QUIZ_SYSTEM_PROMPT,
    QUIZ_USER_TEMPLATE,
    format_quiz_context,
)
from pdftutor.features.quiz.repository import QuizRepository
from pdftutor.features.quiz.schemas import (
    AttemptDetail,
    AttemptHistory,
    AttemptQuestion,
    AttemptSummary,
    EvaluateRequest,
    Question,
    QuestionFeedback,
    QuestionTypeCounts,
    Quiz,
    QuizConfig,
    QuizResults,
)

logger = logging.getLogger(__name__)

QUIZ_CONTEXT_CHUNKS = 10
QUIZ_CONTEXT_PROBES = 10
DIFFICULTY_WINDOW = 5


def difficulty_from_ratios(ratios: list[float]) -> str:
    """Average of recent score ratios -> next difficulty (``medium`` if no history)."""
    if not ratios:
        return "medium"
    average = sum(ratios) / len(ratios)
    if average >= 0.8:
        return "hard"
    if average >= 0.6:
        return "medium"
    return "easy"


def clamp_page(page: Any, page_count: int | None) -> int:
    """Coerce a model-supplied page number into ``[1, page_count]``."""
    try:
        value = float(page)
    except (TypeError, ValueError):
        value = 1.0
    number = math.floor(value) if math.isfinite(value) else 1
    number = max(1, number)
    if page_count and page_count > 0:
        number = min(number, page_count)
    return number


def _positive_int_or_none(value: Any) -> int | None:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def normalise_questions(raw_questions: Any, page_count: int | None) -> list[Question]:
    """Turn the model's question dicts into ``Question`` records.

    Malformed entries are skipped; survivors are numbered 1..n in order.
    """
    if not isinstance(raw_questions, list):
        return []

    questions: list[Question] = []
    for raw in raw_questions:
        if not isinstance(raw, dict):
            continue
        try:
            question = Question(
                id=len(questions) + 1,
                type=str(raw.get("type", "")).lower(),
                question=raw.get("question"),
                options=raw.get("options") or None,
                correct_answer=str(raw.get("correctAnswer", "")),
                explanation=str(raw.get("explanation") or ""),
                page=clamp_page(raw.get("page"), page_count),
                line_start=_positive_int_or_none(raw.get("lineStart")),
                line_end=_positive_int_or_none(raw.get("lineEnd")),
                topic=raw.get("topic") or "General",
            )
        except ValidationError as e:
            logger.warning(f"⚠️ Skipping malformed quiz question: {e}")
            continue
        questions.append(question)
    return questions


def _embedded(value: Any) -> dict:
    # PostgREST embeds a to-one relation as an object, some clients as a one-item list
    if isinstance(value, list):
        return value[0] if value else {}
    return value or {}


def _answer_text(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("text") or "")
    return str(value) if value is not None else ""


def summarise_attempt(row: dict) -> AttemptSummary:
    """Flatten an attempt row with its embedded quiz and document."""
    quiz = _embedded(row.get("quizzes"))
    document = _embedded(quiz.get("documents"))
    questions = (quiz.get("config") or {}).get("questions") or []
    details = row.get("details") or {}

    score = row.get("score") or 0
    total = len(questions)
    counts = {kind: sum(1 for q in questions if q.get("type") == kind) for kind in ("mcq", "saq", "laq")}
    return AttemptSummary(
        id=row["id"],
        quiz_id=row["quiz_id"],
        document_id=quiz.get("document_id"),
        document_name=document.get("file_name"),
        score=score,
        total_questions=total,
        percentage=round(score / total * 100) if total else 0,
        time_taken=details.get("timeTaken") or 0,
        created_at=row.get("created_at"),
        question_types=QuestionTypeCounts(**counts),
        answers=details.get("answers") or {},
        question_scores=details.get("questionScores") or [],
    )


class QuizService:
    """Quiz generation, retrieval and grading for one caller."""

    def __init__(
        self,
        owner_id: str,
        quizzes: QuizRepository,
        documents: DocumentRepository,
        chunks: ChunkStore,
        llm: BaseChatModel | None,
        retriever: Retriever | None,
        evaluator: QuizEvaluator,
    ):
        self.owner_id = owner_id
        self.quizzes = quizzes
        self.documents = documents
        self.chunks = chunks
        self.llm = llm
        self.retriever = retriever
        self.evaluator = evaluator

    # ── Generation ───────────────────────────────────────

    async def generate(self, document_id: int, config: QuizConfig) -> Quiz:
        """Generate and store a quiz for an owned, queryable document.

        Raises:
            DocumentNotFoundError / DocumentAccessDeniedError: Ownership check.
            QuizGenerationError: No content, or the model reply was unusable.
        """
        document = self.documents.get_owned(document_id, self.owner_id)
        if not document.status.is_queryable:
            raise DocumentNotFoundError(document_id)

        chunks = await self._gather_context(document_id)
        if not chunks:
            raise QuizGenerationError(
                message="No content found in document",
                detail="The document may not be processed yet or may not contain extractable text.",
            )

        difficulty = config.difficulty
        if difficulty == "auto":
            difficulty = self.calculate_difficulty(document_id)

        user_prompt = QUIZ_USER_TEMPLATE.format(
            mcq=config.mcq,
            saq=config.saq,
            laq=config.laq,
            difficulty=difficulty,
            context=format_quiz_context(chunks),
        )
        try:
            response = await self.llm.ainvoke([
                SystemMessage(content=QUIZ_SYSTEM_PROMPT),
                HumanMessage(content=user_prompt),
            ])
            quiz_data = safe_parse_json(content_to_text(response.content))
        except Exception as e:
            logger.error(f"❌ Quiz generation failed for document {document_id}: {e}")
            raise QuizGenerationError(detail=str(e))

        questions = normalise_questions(quiz_data.get("questions"), document.page_count)
        if not questions:
            raise QuizGenerationError(detail="The model returned no usable questions.")

        stored_config = config.model_copy(update={"difficulty": difficulty})
        quiz_id = self.quizzes.create(document_id, {
            **stored_config.model_dump(),
            "questions": [q.model_dump(by_alias=True) for q in questions],
        })

        logger.info(f"✅ Quiz {quiz_id} generated for document {document_id}: {len(questions)} question(s), {difficulty}")
        return Quiz(
            id=quiz_id,
            document_id=document_id,
            difficulty=difficulty,
            config=stored_config,
            questions=questions,
        )

    async def _gather_context(self, document_id: int) -> list:
        """Broad query first, then fallback queries, then a plain listing."""
        if self.retriever is not None:
            for query in (QUIZ_CONTEXT_QUERY, *QUIZ_FALLBACK_QUERIES):
                chunks = await self.retriever.retrieve(
                    document_id, query, k=QUIZ_CONTEXT_CHUNKS, probes=QUIZ_CONTEXT_PROBES,
                )
                if chunks:
                    if query != QUIZ_CONTEXT_QUERY:
                        logger.info(f"🔄 Found {len(chunks)} chunks using fallback query: {query}")
                    return chunks

        try:
            chunks = self.chunks.list_for_document(document_id, limit=QUIZ_CONTEXT_CHUNKS)
        except Exception as e:
            logger.error(f"❌ Direct chunk listing failed for document {document_id}: {e}")
            return []
        if chunks:
            logger.info(f"🔄 Found {len(chunks)} chunks via direct listing for document {document_id}")
        return chunks

    def calculate_difficulty(self, document_id: int) -> str:
        """Difficulty from the caller's last attempts on quizzes of this document."""
        try:
            attempts = self.quizzes.recent_attempts(document_id, limit=DIFFICULTY_WINDOW)
        except Exception as e:
            logger.warning(f"⚠️ Difficulty calculation failed, defaulting to medium: {e}")
            return "medium"

        ratios = []
        for row in attempts:
            quiz = _embedded(row.get("quizzes"))
            total = len((quiz.get("config") or {}).get("questions") or [])
            if total > 0:
                ratios.append((row.get("score") or 0) / total)
        return difficulty_from_ratios(ratios)

    # ── Retrieval ────────────────────────────────────────

    def get(self, quiz_id: int) -> Quiz:
        row = self.quizzes.get_row(quiz_id)
        if row is None:
            raise QuizNotFoundError(quiz_id)

        config = dict(row.get("config") or {})
        questions = [Question.model_validate(q) for q in config.pop("questions", [])]
        quiz_config = QuizConfig.model_validate(config)
        return Quiz(
            id=row["id"],
            document_id=row["document_id"],
            difficulty=quiz_config.difficulty if quiz_config.difficulty != "auto" else "medium",
            config=quiz_config,
            questions=questions,
        )

    # ── Evaluation ───────────────────────────────────────

    async def evaluate(self, request: EvaluateRequest) -> QuizResults:
        """Grade every question, store the attempt and its answers."""
        quiz = self.get(request.quiz_id)

        feedback: list[QuestionFeedback] = []
        for question in quiz.questions:
            user_answer = request.answers.get(question.id, "")
            grade = await self.evaluator.evaluate(question, user_answer)
            feedback.append(QuestionFeedback(
                question_id=question.id,
                correct=grade.correct,
                user_answer=user_answer,
                correct_answer=question.correct_answer,
                explanation=question.explanation,
                score=grade.score,
                feedback=grade.feedback,
            ))

        score = sum(f.score for f in feedback)
        total = len(quiz.questions)
        percentage = round(score / total * 100) if total else 0

        attempt_id = self._store_attempt(request, score, feedback)
        logger.info(f"🎯 Quiz {quiz.id} evaluated: {score}/{total} ({percentage}%)")
        return QuizResults(
            attempt_id=attempt_id,
            score=score,
            total_score=total,
            percentage=percentage,
            feedback=feedback,
        )

    def _store_attempt(self, request: EvaluateRequest, score: int, feedback: list[QuestionFeedback]) -> int:
        attempt_id = self.quizzes.store_attempt(request.quiz_id, score, {
            "answers": {str(k): v for k, v in request.answers.items()},
            "timeTaken": request.time_taken or 0,
            "questionScores": [f.score for f in feedback],
            "questionFeedback": [f.feedback for f in feedback],
        })
        self.quizzes.store_answers(attempt_id, [
            {
                "question_index": f.question_id,
                "user_answer": {"text": f.user_answer},
                "correct_answer": {"text": f.correct_answer},
                "is_correct": f.correct,
            }
            for f in feedback
        ])
        return attempt_id

    # ── History ──────────────────────────────────────────

    def list_attempts(self, limit: int = 20, offset: int = 0) -> AttemptHistory:
        rows, total = self.quizzes.list_attempts(limit=limit, offset=offset)
        return AttemptHistory(
            quiz_history=[summarise_attempt(row) for row in rows],
            total=total,
            has_more=offset + len(rows) < total,
        )

    def get_attempt(self, attempt_id: int) -> AttemptDetail:
        """One attempt with every question, the caller's answer and its grade.

        Raises:
            QuizAttemptNotFoundError: Unknown id or another caller's attempt.
        """
        row = self.quizzes.get_attempt(attempt_id)
        if row is None:
            raise QuizAttemptNotFoundError(attempt_id)

        summary = summarise_attempt(row)
        config = _embedded(row.get("quizzes")).get("config") or {}
        feedback = (row.get("details") or {}).get("questionFeedback") or []
        graded = {answer["question_index"]: answer for answer in self.quizzes.list_answers(attempt_id)}

        questions: list[AttemptQuestion] = []
        for index, raw in enumerate(config.get("questions") or []):
            question = Question.model_validate(raw)
            answer = graded.get(question.id)
            if answer is not None:
                user_answer = _answer_text(answer.get("user_answer"))
                is_correct = bool(answer.get("is_correct"))
            else:
                user_answer = summary.answers.get(str(question.id), "")
                is_correct = False
            questions.append(AttemptQuestion(
                **question.model_dump(),
                user_answer=user_answer,
                is_correct=is_correct,
                score=summary.question_scores[index] if index < len(summary.question_scores) else int(is_correct),
                feedback=feedback[index] if index < len(feedback) else "",
            ))
        return AttemptDetail(**summary.model_dump(), questions=questions)
