"""
Quiz feature: persistence for quizzes, attempts and graded answers.
"""

from typing import Any

from supabase import Client

ATTEMPT_COLUMNS = "id, quiz_id, score, details, created_at, quizzes(document_id, config, documents(file_name))"


class QuizRepository:
    """Owner-scoped access to ``quizzes``, ``quiz_attempts`` and ``answers``."""

    def __init__(self, db: Client, owner_id: str):
        self.db = db
        self.owner_id = owner_id

    def create(self, document_id: int, config: dict[str, Any]) -> int:
        result = self.db.table("quizzes").insert({
            "owner_id": self.owner_id,
            "document_id": document_id,
            "config": config,
        }).execute()
        return result.data[0]["id"]

    def get_row(self, quiz_id: int) -> dict | None:
        result = (
            self.db.table("quizzes")
            .select("id, document_id, config")
            .eq("id", quiz_id)
            .eq("owner_id", self.owner_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def recent_attempts(self, document_id: int, limit: int) -> list[dict]:
        """Latest attempts on quizzes of one document, newest first.

        Each row carries ``score`` and the quiz's ``config`` under ``quizzes``.
        """
        result = (
            self.db.table("quiz_attempts")
            .select("score, created_at, quizzes!inner(document_id, config)")
            .eq("owner_id", self.owner_id)
            .eq("quizzes.document_id", document_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data or []

    def store_attempt(self, quiz_id: int, score: int, details: dict[str, Any]) -> int:
        result = self.db.table("quiz_attempts").insert({
            "quiz_id": quiz_id,
            "owner_id": self.owner_id,
            "score": score,
            "details": details,
        }).execute()
        return result.data[0]["id"]

    def store_answers(self, attempt_id: int, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        self.db.table("answers").insert([
            {"quiz_attempt_id": attempt_id, **row} for row in rows
        ]).execute()

    # ── History ──────────────────────────────────────────

    def list_attempts(self, limit: int, offset: int) -> tuple[list[dict], int]:
        """A page of the caller's attempts, newest first, and the total attempt count.

        Rows embed the quiz (``quizzes``) and its document (``quizzes.documents``).
        """
        result = (
            self.db.table("quiz_attempts")
            .select(ATTEMPT_COLUMNS, count="exact")
            .eq("owner_id", self.owner_id)
            .order("created_at", desc=True)
            .range(offset, offset + limit - 1)
            .execute()
        )
        rows = result.data or []
        return rows, result.count if result.count is not None else len(rows)

    def get_attempt(self, attempt_id: int) -> dict | None:
        result = (
            self.db.table("quiz_attempts")
            .select(ATTEMPT_COLUMNS)
            .eq("id", attempt_id)
            .eq("owner_id", self.owner_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def list_answers(self, attempt_id: int) -> list[dict]:
        """Graded answer rows of one attempt, by question number."""
        result = (
            self.db.table("answers")
            .select("question_index, user_answer, correct_answer, is_correct")
            .eq("quiz_attempt_id", attempt_id)
            .order("question_index")
            .execute()
        )
        return result.data or []
