"""Data models for the study assistant."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Literal

import numpy as np

Role = Literal["user", "assistant"]
SessionStatus = Literal["active", "archived", "paused"]

SESSION_STATUSES: tuple[str, ...] = ("active", "archived", "paused")
QUIZ_OPTION_COUNT = 4


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


@dataclass(frozen=True)
class DocumentChunk:
    """A contiguous slice of a document's extracted text plus its embedding.

    Chunks are immutable once created. Similarity scores are never stored on
    the chunk; ranking returns ``(chunk, score)`` pairs instead.
    """

    content: str
    session_id: str
    file_name: str
    original_name: str
    chunk_index: int
    page_number: int
    embedding: np.ndarray | None = field(default=None, compare=False, repr=False)
    chunk_id: int | None = None

    @property
    def dimension(self) -> int | None:
        if self.embedding is None:
            return None
        return int(self.embedding.shape[-1])


@dataclass(frozen=True)
class Citation:
    """Source reference attached to an assistant answer or a quiz question.

    ``similarity`` is None when the chunk was picked by position rather than
    ranked against a question.
    """

    document_name: str
    page_number: int
    excerpt: str
    similarity: float | None

    @classmethod
    def from_chunk(
        cls,
        chunk: DocumentChunk,
        similarity: float | None,
        excerpt_length: int,
    ) -> Citation:
        """Cite a chunk, cutting its text to ``excerpt_length`` characters."""
        excerpt = chunk.content[:excerpt_length]
        if len(chunk.content) > excerpt_length:
            excerpt += "..."
        return cls(
            document_name=chunk.original_name,
            page_number=chunk.page_number,
            excerpt=excerpt,
            similarity=similarity,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_name": self.document_name,
            "page_number": self.page_number,
            "excerpt": self.excerpt,
            "similarity": self.similarity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Citation:
        similarity = data.get("similarity")
        return cls(
            document_name=str(data["document_name"]),
            page_number=int(data["page_number"]),
            excerpt=str(data["excerpt"]),
            similarity=None if similarity is None else float(similarity),
        )


@dataclass(frozen=True)
class Message:
    """One turn in a session's conversation.

    ``sources`` is None on user messages and a (possibly empty) list on
    assistant messages produced by retrieval.
    """

    role: Role
    content: str
    timestamp: datetime.datetime = field(default_factory=utcnow)
    sources: list[Citation] | None = None

    def __post_init__(self) -> None:
        if self.role not in {"user", "assistant"}:
            msg = f"Invalid message role: {self.role}"
            raise ValueError(msg)


@dataclass(frozen=True)
class SessionDocument:
    """Reference to a document uploaded into a session."""

    file_name: str
    original_name: str
    uploaded_at: datetime.datetime = field(default_factory=utcnow)


@dataclass
class Session:
    """A named container of documents and conversation history."""

    session_id: str
    user_id: str
    title: str
    description: str = ""
    status: SessionStatus = "active"
    documents: list[SessionDocument] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    created_at: datetime.datetime = field(default_factory=utcnow)
    last_activity: datetime.datetime = field(default_factory=utcnow)

    @property
    def total_messages(self) -> int:
        return len(self.messages)

    def last_user_message(self) -> Message | None:
        for message in reversed(self.messages):
            if message.role == "user":
                return message
        return None


@dataclass(frozen=True)
class QuizQuestion:
    """Multiple-choice question with exactly four options.

    ``sources`` cites the context chunks the question was generated from.
    """

    question: str
    options: tuple[str, ...]
    correct_index: int
    sources: tuple[Citation, ...] = ()

    def to_public_dict(self) -> dict[str, Any]:
        """Question as shown to the student, without the answer key."""
        return {
            "question": self.question,
            "options": list(self.options),
            "sources": [citation.to_dict() for citation in self.sources],
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "options": list(self.options),
            "correct_index": self.correct_index,
            "sources": [citation.to_dict() for citation in self.sources],
        }


@dataclass(frozen=True)
class QuizAttempt:
    """Answers submitted for a quiz and the score they earned."""

    answers: list[int]
    score: int
    created_at: datetime.datetime = field(default_factory=utcnow)


@dataclass
class Quiz:
    """Generated quiz tied to a session, with its attempt history."""

    quiz_id: str
    session_id: str
    user_id: str
    questions: list[QuizQuestion]
    attempts: list[QuizAttempt] = field(default_factory=list)
    created_at: datetime.datetime = field(default_factory=utcnow)
    last_attempt_at: datetime.datetime | None = None

    @property
    def answer_key(self) -> list[int]:
        return [question.correct_index for question in self.questions]


@dataclass(frozen=True)
class Flashcard:
    """Front/back study card. Never persisted."""

    front: str
    back: str

    def to_dict(self) -> dict[str, str]:
        return {"front": self.front, "back": self.back}
