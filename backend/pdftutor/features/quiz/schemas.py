"""
Quiz feature: configuration, questions and evaluation results.

Field names on the wire are camelCase (``correctAnswer``, ``lineStart``) to
match what the generation model is asked to return.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Difficulty = Literal["easy", "medium", "hard", "auto"]
QuestionType = Literal["mcq", "saq", "laq"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuizConfig(_CamelModel):
    mcq: int = Field(default=5, ge=0)
    saq: int = Field(default=0, ge=0)
    laq: int = Field(default=0, ge=0)
    difficulty: Difficulty = "auto"

    @model_validator(mode="after")
    def _check_total(self):
        if self.mcq + self.saq + self.laq <= 0:
            raise ValueError("A quiz needs at least one question")
        return self


class Question(_CamelModel):
    id: int
    type: QuestionType
    question: str
    options: list[str] | None = None
    correct_answer: str
    explanation: str = ""
    page: int = Field(default=1, ge=1)
    line_start: int | None = None
    line_end: int | None = None
    topic: str = "General"


class PublicQuestion(_CamelModel):
    """A question as shown to the student: no answer, no explanation."""
    id: int
    type: QuestionType
    question: str
    options: list[str] | None = None
    page: int
    line_start: int | None = None
    line_end: int | None = None
    topic: str = "General"


class Quiz(_CamelModel):
    id: int
    document_id: int
    difficulty: Literal["easy", "medium", "hard"]
    config: QuizConfig
    questions: list[Question]


class QuizView(_CamelModel):
    id: int
    document_id: int
    difficulty: Literal["easy", "medium", "hard"]
    questions: list[PublicQuestion]

    @classmethod
    def from_quiz(cls, quiz: Quiz) -> "QuizView":
        return cls(
            id=quiz.id,
            document_id=quiz.document_id,
            difficulty=quiz.difficulty,
            questions=[PublicQuestion.model_validate(q.model_dump()) for q in quiz.questions],
        )


class GenerateQuizRequest(_CamelModel):
    document_id: int
    config: QuizConfig = QuizConfig()


class EvaluateRequest(_CamelModel):
    quiz_id: int
    answers: dict[int, str] = {}
    time_taken: int | None = Field(default=None, ge=0)


class AnswerScore(BaseModel):
    """Outcome of grading one answer; ``score`` is already binarised."""
    correct: bool
    score: int
    feedback: str = ""


class QuestionFeedback(_CamelModel):
    question_id: int
    correct: bool
    user_answer: str
    correct_answer: str
    explanation: str
    score: int
    feedback: str = ""


class QuizResults(_CamelModel):
    attempt_id: int | None = None
    score: int
    total_score: int
    percentage: int
    feedback: list[QuestionFeedback] = []


# ── History ──────────────────────────────────────────────

class QuestionTypeCounts(BaseModel):
    mcq: int = 0
    saq: int = 0
    laq: int = 0


class AttemptSummary(_CamelModel):
    id: int
    quiz_id: int
    document_id: int | None = None
    document_name: str | None = None
    score: int
    total_questions: int
    percentage: int
    time_taken: int = 0
    created_at: datetime | None = None
    question_types: QuestionTypeCounts = QuestionTypeCounts()
    answers: dict[str, str] = {}
    question_scores: list[int] = []


class AttemptHistory(_CamelModel):
    quiz_history: list[AttemptSummary]
    total: int
    has_more: bool


class AttemptQuestion(Question):
    """A stored question next to what the caller answered and how it was graded."""
    user_answer: str = ""
    is_correct: bool = False
    score: int = 0
    feedback: str = ""


class AttemptDetail(AttemptSummary):
    questions: list[AttemptQuestion] = []
