"""Ingestion and retrieval: Load -> Split -> Embed -> Store, and Embed -> Rank."""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import TYPE_CHECKING

from .config import Config, config
from .document_processing import DocumentLoader, TextChunker
from .embeddings import EmbeddingService
from .exceptions import EmbeddingServiceError, NoContextError
from .models import DocumentChunk
from .similarity import rank
from .store import SQLiteStudyStore, get_store

if TYPE_CHECKING:
    from pathlib import Path

logger = config.get_logger(__name__)


def assemble_context(chunks: list[DocumentChunk], char_limit: int) -> str:
    """Join chunk texts in order, stopping before the character limit.

    Whole chunks are kept while they fit; the first chunk is cut to the limit
    when it alone is too long.

    Returns:
        Newline-joined context text.
    """
    parts: list[str] = []
    used = 0
    for chunk in chunks:
        text = chunk.content.strip()
        if not text:
            continue
        cost = len(text) + (1 if parts else 0)
        if used + cost > char_limit:
            if not parts:
                parts.append(text[:char_limit])
            break
        parts.append(text)
        used += cost
    return "\n".join(parts)


class RAGPipeline:
    """Ingests documents into sessions and retrieves relevant chunks."""

    def __init__(
        self,
        settings: Config | None = None,
        *,
        store: SQLiteStudyStore | None = None,
        embedding_service: EmbeddingService | None = None,
        chunk_size: int | None = None,
    ) -> None:
        """Initialize the RAG pipeline.

        Args:
            settings: Application settings. If None, uses the process defaults.
            store: Persistence collaborator. If None, opens settings.STORE_DB_PATH.
            embedding_service: Embedding client. If None, one is built from settings.
            chunk_size: Size of text chunks. If None, uses settings.CHUNK_SIZE.

        Raises:
            ValueError: If the settings fail validation.
        """
        self.settings = settings or config
        self.settings.validate()
        self.store = store or get_store(self.settings.STORE_DB_PATH)
        self.embedding_service = embedding_service or EmbeddingService(self.settings)
        self.chunker = TextChunker(chunk_size=chunk_size or self.settings.CHUNK_SIZE)

    def page_number(self, chunk_index: int) -> int:
        """Approximate page of a chunk from its position in the document."""
        return chunk_index // self.settings.CHUNKS_PER_PAGE + 1

    def ingest_pdf(
        self,
        session_id: str,
        file_path: Path,
        *,
        original_name: str | None = None,
    ) -> int:
        """Extract a PDF's text and ingest it into a session.

        Returns:
            Number of chunks stored, as returned by ``ingest_document``.
        """
        text = DocumentLoader.load_document(file_path)
        return self.ingest_document(
            session_id,
            text,
            original_name=original_name or file_path.name,
        )

    def ingest_document(
        self,
        session_id: str,
        text: str,
        *,
        original_name: str = "document.pdf",
        file_name: str | None = None,
    ) -> int:
        """Chunk, embed and store a document's text, then attach it to the session.

        Chunks are embedded in batches of settings.EMBEDDING_BATCH_SIZE and each
        batch is stored once all of its embeddings arrive. Ingestion is not
        transactional across batches: if a later batch fails, earlier batches
        stay stored but the document is not attached to the session. Ingesting
        the same text again adds new chunks.

        Args:
            session_id: Target session.
            text: Extracted document text.
            original_name: Name the user uploaded the document under.
            file_name: Unique stored name. If None, one is generated.

        Returns:
            Number of chunks stored. Whitespace-only chunks are skipped and not
            counted, so this can be less than the chunker's output length.

        Raises:
            EmbeddingServiceError: If any embedding fails or vector sizes disagree.
        """
        self.store.get_session(session_id)
        file_name = file_name or f"{uuid.uuid4().hex}-{original_name}"
        logger.info(
            "Starting ingestion of %s into session %s", original_name, session_id
        )

        # Page numbers come from sequence position, fixed before any dispatch
        drafts = [
            DocumentChunk(
                content=chunk_text,
                session_id=session_id,
                file_name=file_name,
                original_name=original_name,
                chunk_index=index,
                page_number=self.page_number(index),
            )
            for index, chunk_text in enumerate(self.chunker.split_text(text))
            if chunk_text.strip()
        ]

        batch_size = self.settings.EMBEDDING_BATCH_SIZE
        total_batches = -(-len(drafts) // batch_size)
        dimension: int | None = None
        created = 0

        for batch_number, start in enumerate(range(0, len(drafts), batch_size), 1):
            batch = drafts[start : start + batch_size]
            vectors = self.embedding_service.embed_concurrently(
                [chunk.content for chunk in batch]
            )

            for vector in vectors:
                if dimension is None:
                    dimension = int(vector.shape[-1])
                elif vector.shape != (dimension,):
                    msg = "Embedding service returned vectors of different sizes"
                    raise EmbeddingServiceError(
                        msg, detail=f"expected {dimension}, got {vector.shape}"
                    )

            stored = self.store.add_chunks([
                replace(chunk, embedding=vector)
                for chunk, vector in zip(batch, vectors, strict=True)
            ])
            created += len(stored)
            logger.info("Processed batch %d/%d", batch_number, total_batches)

        self.store.add_document(session_id, file_name, original_name)
        logger.info("Ingestion complete: %s (%d chunks)", original_name, created)
        return created

    def scope_chunks(self, session_id: str | None = None) -> list[DocumentChunk]:
        """Fetch the chunks eligible for retrieval.

        Args:
            session_id: Restrict to the session's documents; None means all chunks.

        Raises:
            NoContextError: If the scope holds no chunks.

        Returns:
            Chunks in insertion order.
        """
        chunks = self.store.get_chunks(session_id)
        if not chunks:
            raise NoContextError
        return chunks

    def rank_chunks(
        self,
        query: str,
        chunks: list[DocumentChunk],
        top_k: int,
    ) -> list[tuple[DocumentChunk, float]]:
        """Embed the query and rank the given chunks against it.

        Returns:
            Up to ``top_k`` ``(chunk, similarity)`` pairs, best first.

        Raises:
            ValueError: If top_k is not positive.
            NoContextError: If no chunk has an embedding of the query's size.
        """
        if top_k < 1:
            msg = f"top_k must be positive, got {top_k}"
            raise ValueError(msg)

        query_embedding = self.embedding_service.get_embedding(query)
        results = rank(
            query_embedding,
            [(chunk.embedding, chunk) for chunk in chunks],
            top_k=top_k,
        )
        if not results:
            logger.warning(
                "None of %d chunks matches the %d-dimensional query embedding",
                len(chunks),
                query_embedding.shape[-1],
            )
            raise NoContextError(
                "Stored documents were embedded with a different model. "
                "Please upload them again."
            )
        for chunk, score in results:
            logger.debug(
                "Retrieved chunk %d of %s with similarity %.4f",
                chunk.chunk_index,
                chunk.original_name,
                score,
            )
        return results

    def retrieve(
        self,
        question: str,
        *,
        session_id: str | None = None,
        top_k: int | None = None,
    ) -> list[tuple[DocumentChunk, float]]:
        """Retrieve the chunks most similar to a question.

        Args:
            question: Natural-language question.
            session_id: Scope to the session's documents; None searches everything.
            top_k: Number of chunks to return. If None, uses settings.QA_TOP_K.

        Returns:
            A list of tuples, each containing a DocumentChunk and its similarity score.

        Raises:
            ValueError: If top_k is not positive.
            NoContextError: If the scope holds no chunks comparable to the question.
        """
        logger.info("Processing query: %s", question)
        chunks = self.scope_chunks(session_id)
        return self.rank_chunks(
            question,
            chunks,
            self.settings.QA_TOP_K if top_k is None else top_k,
        )
