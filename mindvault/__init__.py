"""MindVault - retrieval-augmented study assistant."""

from .conversation import ConversationManager
from .document_processing import DocumentLoader, TextChunker
from .embeddings import EmbeddingService
from .generation import GenerationClient
from .models import (
    Citation,
    DocumentChunk,
    Flashcard,
    Message,
    Quiz,
    QuizAttempt,
    QuizQuestion,
    Session,
    SessionDocument,
)
from .pipeline import RAGPipeline
from .store import SQLiteStudyStore, get_store
from .study_aids import StudyAidGenerator

__all__ = [
    "Citation",
    "ConversationManager",
    "DocumentChunk",
    "DocumentLoader",
    "EmbeddingService",
    "Flashcard",
    "GenerationClient",
    "Message",
    "Quiz",
    "QuizAttempt",
    "QuizQuestion",
    "RAGPipeline",
    "SQLiteStudyStore",
    "Session",
    "SessionDocument",
    "StudyAidGenerator",
    "TextChunker",
    "get_store",
]
