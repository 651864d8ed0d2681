"""
Custom exception classes for unified error handling.
"""

from fastapi import HTTPException


class AppBaseError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class DocumentNotFoundError(AppBaseError):
    """Raised when a document id does not resolve to a row."""
    def __init__(self, document_id: int):
        super().__init__(
            message=f"Document {document_id} not found",
            detail="The document may have been deleted.",
        )


class DocumentAccessDeniedError(AppBaseError):
    """Raised when a caller touches a document they do not own."""
    def __init__(self, document_id: int):
        super().__init__(
            message=f"Access to document {document_id} denied",
            detail="Only the uploader can use this document.",
        )


class ExtractionError(AppBaseError):
    """Raised when no text at all could be extracted from a document."""
    def __init__(self, message: str = "No text could be extracted from the document"):
        super().__init__(
            message=message,
            detail="The PDF may be scanned images only, encrypted, or corrupted.",
        )


class EmbeddingDimensionError(AppBaseError):
    """Raised when a query vector does not match the store's vector width."""
    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=f"Embedding dimension mismatch: expected {expected}, got {actual}",
            detail="Check EMBEDDING_MODEL / EMBEDDING_DIMENSIONS against the ingested chunks.",
        )


class CapabilityNotConfiguredError(AppBaseError):
    """Raised when an external model or store is not configured."""
    def __init__(self, capability: str):
        super().__init__(
            message=f"{capability} is not configured",
            detail="Set the corresponding environment variables and restart.",
        )


class RateLimitedError(AppBaseError):
    """Raised when a caller sends requests faster than allowed."""
    def __init__(self):
        super().__init__(
            message="Rate limited",
            detail="Please wait a moment before sending another message.",
        )


class QuizNotFoundError(AppBaseError):
    """Raised when a quiz id does not resolve to one of the caller's quizzes."""
    def __init__(self, quiz_id: int):
        super().__init__(message=f"Quiz {quiz_id} not found")


class QuizAttemptNotFoundError(AppBaseError):
    """Raised when an attempt id does not resolve to one of the caller's attempts."""
    def __init__(self, attempt_id: int):
        super().__init__(message=f"Quiz attempt {attempt_id} not found")


class QuizGenerationError(AppBaseError):
    """Raised when a quiz cannot be produced from a document."""
    def __init__(self, message: str = "Failed to generate quiz", detail: str | None = None):
        super().__init__(message=message, detail=detail)


# ── Utility: convert to HTTPException ────────────────────

def app_error_to_http(error: AppBaseError, status_code: int = 400) -> HTTPException:
    """Convert an AppBaseError to an HTTPException with consistent JSON body."""
    return HTTPException(
        status_code=status_code,
        detail={
            "error": error.message,
            "detail": error.detail,
            "type": type(error).__name__,
        },
    )
