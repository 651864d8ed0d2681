"""
Quiz feature: answer grading.

MCQ answers are compared directly. SAQ/LAQ answers are graded by the chat
model; when it is not configured or its reply is unusable we fall back to
keyword overlap. Every score is binarised at ``PASS_THRESHOLD``.
"""

import logging

from langchain_core.language_models import BaseChatModel

from pdftutor.core.llm_provider import content_to_text
from pdftutor.features.quiz.parsing import safe_parse_json
from pdftutor.features.quiz.prompts import LAQ_EVALUATION_PROMPT, SAQ_EVALUATION_PROMPT
from pdftutor.features.quiz.schemas import AnswerScore, Question

logger = logging.getLogger(__name__)

PASS_THRESHOLD = 0.5


def keyword_score(user_answer: str, correct_answer: str) -> float:
    """Share of overlapping words: ``|common| / max(|user|, |correct|)``."""
    user_words = user_answer.lower().split()
    correct_words = correct_answer.lower().split()
    denominator = max(len(user_words), len(correct_words))
    if denominator == 0:
        return 0.0
    vocabulary = set(correct_words)
    common = [word for word in user_words if word in vocabulary]
    return len(common) / denominator


def binarise(score: float) -> int:
    return 1 if score >= PASS_THRESHOLD else 0


def evaluate_mcq(user_answer: str, correct_answer: str) -> AnswerScore:
    correct = user_answer.strip().lower() == correct_answer.strip().lower()
    return AnswerScore(correct=correct, score=int(correct))


class QuizEvaluator:
    """Grades answers; ``llm`` may be None (keyword matching only)."""

    def __init__(self, llm: BaseChatModel | None = None):
        self.llm = llm

    async def evaluate(self, question: Question, user_answer: str) -> AnswerScore:
        if question.type == "mcq":
            return evaluate_mcq(user_answer, question.correct_answer)
        if question.type == "saq":
            return await self.evaluate_saq(question, user_answer)
        return await self.evaluate_laq(question, user_answer)

    async def evaluate_saq(self, question: Question, user_answer: str) -> AnswerScore:
        prompt = SAQ_EVALUATION_PROMPT.format(
            question=question.question,
            correct_answer=question.correct_answer,
            user_answer=user_answer,
        )
        return await self._grade(prompt, "score", question, user_answer)

    async def evaluate_laq(self, question: Question, user_answer: str) -> AnswerScore:
        prompt = LAQ_EVALUATION_PROMPT.format(
            question=question.question,
            correct_answer=question.correct_answer,
            user_answer=user_answer,
        )
        return await self._grade(prompt, "overallScore", question, user_answer)

    async def _grade(self, prompt: str, score_key: str, question: Question, user_answer: str) -> AnswerScore:
        if self.llm is None:
            return self._keyword_fallback(question, user_answer, "Evaluation completed using keyword matching")

        try:
            response = await self.llm.ainvoke(prompt)
            evaluation = safe_parse_json(content_to_text(response.content))
            score = evaluation.get(score_key)
            if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 1:
                raise ValueError(f"Invalid {score_key} in evaluation: {score!r}")
        except Exception as e:
            logger.warning(f"⚠️ LLM grading failed for question {question.id}: {e}")
            return self._keyword_fallback(
                question, user_answer,
                "Evaluation completed using keyword matching due to parsing error",
            )

        passed = binarise(score)
        return AnswerScore(
            correct=bool(passed),
            score=passed,
            feedback=str(evaluation.get("feedback") or "No feedback provided"),
        )

    @staticmethod
    def _keyword_fallback(question: Question, user_answer: str, feedback: str) -> AnswerScore:
        passed = binarise(keyword_score(user_answer, question.correct_answer))
        return AnswerScore(correct=bool(passed), score=passed, feedback=feedback)
