"""Error taxonomy for the retrieval and generation flows.

Every error here is terminal for the current request; none is retried
internally.
"""

from __future__ import annotations

from typing import Any


class MindVaultError(Exception):
    """Base exception for all MindVault errors."""

    def __init__(self, message: str, detail: str | None = None) -> None:
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        """Render the error as a JSON-ready body for the HTTP layer.

        Returns:
            Mapping with the user-facing message, detail and error type name.
        """
        return {
            "error": self.message,
            "detail": self.detail,
            "type": type(self).__name__,
        }


class EmbeddingServiceError(MindVaultError):
    """Raised when the embedding endpoint is unreachable or returns a bad payload."""

    def __init__(
        self,
        message: str = "Embedding service error",
        detail: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, detail=detail)
        self.status_code = status_code


class GenerationServiceError(MindVaultError):
    """Raised when the generation endpoint fails or returns nothing usable."""

    def __init__(
        self,
        message: str = "AI service unavailable",
        detail: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, detail=detail)
        self.status_code = status_code


class StructuredOutputParseError(MindVaultError):
    """Raised when no JSON could be recovered from the model output."""

    def __init__(self) -> None:
        super().__init__(
            message="Failed to parse AI output",
            detail="Model output was not valid JSON.",
        )


class NoContextError(MindVaultError):
    """Raised when the retrieval scope holds no chunks that can be compared."""

    def __init__(self, detail: str = "Please upload documents first.") -> None:
        super().__init__(message="No documents found in this session", detail=detail)


class EmptyResultError(MindVaultError):
    """Raised when parsed model output has no valid items after filtering."""

    def __init__(self, what: str) -> None:
        super().__init__(
            message="AI returned nothing usable",
            detail=f"No valid {what} in the model output.",
        )


class SessionNotFoundError(MindVaultError):
    """Raised when a study session does not exist or belongs to another user."""

    def __init__(self, session_id: str) -> None:
        super().__init__(message="Study session not found", detail=session_id)


class QuizNotFoundError(MindVaultError):
    """Raised when a quiz does not exist."""

    def __init__(self, quiz_id: str) -> None:
        super().__init__(message="Quiz not found", detail=quiz_id)
