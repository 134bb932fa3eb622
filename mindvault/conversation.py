"""Question answering over a session's documents."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .config import Config, config
from .exceptions import GenerationServiceError
from .generation import GenerationClient
from .models import Citation, Message

if TYPE_CHECKING:
    from .models import DocumentChunk
    from .pipeline import RAGPipeline
    from .store import SQLiteStudyStore

logger = config.get_logger(__name__)


class ConversationManager:
    """Answers questions from retrieved context and records the exchange."""

    def __init__(
        self,
        rag_pipeline: RAGPipeline,
        generation_client: GenerationClient | None = None,
        settings: Config | None = None,
    ) -> None:
        """Initialize ConversationManager.

        Args:
            rag_pipeline: RAG pipeline instance.
            generation_client: Generation client. If None, one is built from settings.
            settings: Application settings. If None, uses the pipeline's settings.
        """
        self.rag_pipeline: RAGPipeline = rag_pipeline
        self.settings = settings or rag_pipeline.settings
        self.generation_client = generation_client or GenerationClient(self.settings)

    @property
    def store(self) -> SQLiteStudyStore:
        return self.rag_pipeline.store

    @staticmethod
    def build_context_prompt(
        question: str,
        retrieved_chunks: list[tuple[DocumentChunk, float]],
    ) -> str:
        """Build a prompt that restricts the answer to the retrieved context.

        Returns:
            str: Prompt containing the context sections and the question.
        """
        context_text = "\n".join(chunk.content for chunk, _ in retrieved_chunks)

        return (
            "You are an intelligent study assistant helping a student understand "
            "their study material. Your role is to:\n"
            "1. Answer questions clearly and concisely\n"
            "2. Help the student learn by explaining concepts step-by-step\n"
            "3. Provide examples when helpful\n"
            "4. Encourage critical thinking\n\n"
            "Answer the student's question using only the context below. If the "
            "context doesn't contain enough information, say so and suggest what "
            "additional information might be helpful.\n\n"
            f"Context:\n{context_text}\n\n"
            f"Student's Question:\n{question}\n\n"
            "Provide a helpful, educational response:"
        )

    def build_citations(
        self,
        retrieved_chunks: list[tuple[DocumentChunk, float]],
    ) -> list[Citation]:
        """Describe each retrieved chunk as a source citation.

        Returns:
            One citation per chunk, in ranking order.
        """
        return [
            Citation.from_chunk(chunk, score, self.settings.EXCERPT_LENGTH)
            for chunk, score in retrieved_chunks
        ]

    def answer_question(
        self,
        question: str,
        session_id: str | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Answer a question using retrieval-augmented generation.

        With a session, retrieval is limited to the session's documents and the
        question and answer are appended to its history. Without one, every
        chunk is searched and nothing is recorded. History is only written after
        a non-empty answer arrives.

        Args:
            question: The student's question.
            session_id: Session to answer within, or None for all documents.
            user_id: Caller identity; when given the session must belong to it.

        Returns:
            dict[str, Any]: The answer text and its source citations.

        Raises:
            ValueError: If the question is blank.
            SessionNotFoundError: If the session does not exist.
            NoContextError: If there are no chunks in scope.
            GenerationServiceError: If the model fails or answers with nothing.
        """
        if not isinstance(question, str) or not question.strip():
            msg = "Question is required"
            raise ValueError(msg)

        logger.info("Processing question: %s", question)

        if session_id is not None:
            self.store.get_session(session_id, user_id)

        retrieved_chunks = self.rag_pipeline.retrieve(
            question,
            session_id=session_id,
            top_k=self.settings.QA_TOP_K,
        )

        prompt = self.build_context_prompt(question, retrieved_chunks)
        answer = self.generation_client.generate(prompt).strip()
        if not answer:
            msg = "AI service returned empty response"
            raise GenerationServiceError(msg)

        citations = self.build_citations(retrieved_chunks)

        if session_id is not None:
            self.store.append_messages(
                session_id,
                [
                    Message(role="user", content=question),
                    Message(role="assistant", content=answer, sources=citations),
                ],
            )

        for i, citation in enumerate(citations):
            logger.info(
                "  Context %d: %s p.%d (score: %.4f)",
                i + 1,
                citation.document_name,
                citation.page_number,
                citation.similarity,
            )

        return {
            "answer": answer,
            "sources": [citation.to_dict() for citation in citations],
        }
