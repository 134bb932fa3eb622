"""Test configuration and fixtures for MindVault tests.

This module provides reusable test fixtures organized by functionality:
- Constants and test data
- Mock services and HTTP transports
- Store, pipeline and session fixtures
- Conversation and study aid factories
"""

import hashlib
import json
from collections.abc import Callable
from pathlib import Path

import httpx
import numpy as np
import pypdf
import pytest

from mindvault import (
    ConversationManager,
    DocumentChunk,
    RAGPipeline,
    SQLiteStudyStore,
    StudyAidGenerator,
    TextChunker,
)
from mindvault.config import Config


class TestConstants:
    """Centralized test constants shared across test files."""

    TEST_USER = "student-1"
    OTHER_USER = "student-2"
    TEST_EMBEDDING_MODEL = "nomic-embed-text"
    TEST_GENERATION_MODEL = "mistral"
    DEFAULT_EMBEDDING_DIMENSION = 64

    SMALL_CHUNK_SIZE = 100
    DEFAULT_CHUNK_SIZE = 500

    SAMPLE_TEXTS = (
        "Photosynthesis converts light energy into chemical energy in plants.",
        "Mitochondria are the powerhouse of the cell and produce ATP.",
        "DNA replication is semi-conservative and happens in the S phase.",
        "Enzymes lower the activation energy of biochemical reactions.",
        "Osmosis is the diffusion of water across a semipermeable membrane.",
    )


class MockEmbeddingService:
    """Mock embedding service for testing without HTTP calls.

    Generates deterministic embeddings based on text content hash and records
    every batch it is asked to embed.
    """

    def __init__(
        self, dimension: int = TestConstants.DEFAULT_EMBEDDING_DIMENSION
    ) -> None:
        self.dimension = dimension
        self.batches: list[list[str]] = []
        self.queries: list[str] = []

    def vector_for(self, text: str) -> np.ndarray:
        seed = int.from_bytes(
            hashlib.sha256(text.lower().encode("utf-8")).digest()[:8],
            byteorder="big",
            signed=False,
        )
        rng = np.random.default_rng(seed)
        embedding = rng.normal(0, 1, self.dimension)
        return embedding / np.linalg.norm(embedding)

    def get_embedding(self, text: str) -> np.ndarray:
        self.queries.append(text)
        return self.vector_for(text)

    def embed_concurrently(self, texts: list[str]) -> list[np.ndarray]:
        self.batches.append(list(texts))
        return [self.vector_for(text) for text in texts]

    def get_embeddings_batch(
        self, texts: list[str], batch_size: int = 5
    ) -> list[np.ndarray]:
        embeddings = []
        for i in range(0, len(texts), batch_size):
            embeddings.extend(self.embed_concurrently(texts[i : i + batch_size]))
        return embeddings


class FakeGenerationClient:
    """Stand-in for GenerationClient that replays canned completions.

    Each call pops the next response; an exception instance is raised instead
    of returned. The last response repeats once the queue is exhausted.
    """

    def __init__(self, *responses: "str | Exception") -> None:
        self.responses = list(responses) or ["Test response"]
        self.calls: list[dict] = []

    def generate(
        self, prompt: str, *, json_mode: bool = False, stream: bool | None = None
    ) -> str:
        self.calls.append({"prompt": prompt, "json_mode": json_mode, "stream": stream})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def json_response(data, status_code: int = 200) -> httpx.Response:
    """Build an ``application/json`` response."""
    return httpx.Response(status_code, json=data)


def ndjson_response(fragments: list[str]) -> httpx.Response:
    """Build a streamed generation response from text fragments."""
    lines = [json.dumps({"response": fragment, "done": False}) for fragment in fragments]
    lines.append(json.dumps({"response": "", "done": True}))
    return httpx.Response(
        200,
        content="\n".join(lines).encode("utf-8"),
        headers={"content-type": "application/x-ndjson"},
    )


@pytest.fixture
def test_settings(tmp_path) -> Config:
    """Default settings pointing at a temporary database."""
    return Config(STORE_DB_PATH=tmp_path / "mindvault.db")


@pytest.fixture
def http_client_factory():
    """Factory for httpx clients whose requests are served by a handler."""
    clients: list[httpx.Client] = []

    def _create_client(
        handler: Callable[[httpx.Request], httpx.Response],
    ) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _create_client

    for client in clients:
        client.close()


@pytest.fixture
def mock_embedding_service() -> MockEmbeddingService:
    return MockEmbeddingService()


@pytest.fixture
def text_chunker_factory():
    """Factory fixture that creates ``TextChunker`` instances on demand."""
    presets = {
        "small": TestConstants.SMALL_CHUNK_SIZE,
        "default": TestConstants.DEFAULT_CHUNK_SIZE,
    }

    def _create_chunker(name: str = "default", *, chunk_size: int | None = None):
        if chunk_size is None:
            try:
                chunk_size = presets[name]
            except KeyError as exc:
                msg = f"Unknown text chunker preset: {name}"
                raise ValueError(msg) from exc
        return TextChunker(chunk_size=chunk_size)

    return _create_chunker


@pytest.fixture
def store(tmp_path) -> SQLiteStudyStore:
    """Temporary SQLite study store."""
    return SQLiteStudyStore(tmp_path / "test_store.db")


@pytest.fixture
def study_session(store):
    return store.create_session(TestConstants.TEST_USER, "Biology 101", "Cells")


@pytest.fixture
def embedded_chunk_factory(mock_embedding_service):
    """Factory for chunks carrying deterministic embeddings."""

    def _create_chunk(
        content: str,
        session_id: str,
        file_name: str = "abc-biology.pdf",
        chunk_index: int = 0,
    ) -> DocumentChunk:
        return DocumentChunk(
            content=content,
            session_id=session_id,
            file_name=file_name,
            original_name="biology.pdf",
            chunk_index=chunk_index,
            page_number=chunk_index // 10 + 1,
            embedding=mock_embedding_service.vector_for(content),
        )

    return _create_chunk


@pytest.fixture
def stale_session(store, study_session):
    """Session whose only chunk was embedded by a 3-dimensional model."""
    chunk = DocumentChunk(
        content="Mitochondria produce ATP.",
        session_id=study_session.session_id,
        file_name="old-biology.pdf",
        original_name="biology.pdf",
        chunk_index=0,
        page_number=1,
        embedding=np.ones(3),
    )
    store.add_chunks([chunk])
    store.add_document(study_session.session_id, "old-biology.pdf", "biology.pdf")
    return study_session


@pytest.fixture
def rag_pipeline_factory(test_settings, store, mock_embedding_service):
    """Factory for RAGPipeline instances sharing the temporary store."""

    def _create_pipeline(
        settings: Config | None = None,
        chunk_size: int | None = None,
        embedding_service=None,
    ) -> RAGPipeline:
        return RAGPipeline(
            settings or test_settings,
            store=store,
            embedding_service=embedding_service or mock_embedding_service,
            chunk_size=chunk_size,
        )

    return _create_pipeline


@pytest.fixture
def rag_pipeline(rag_pipeline_factory) -> RAGPipeline:
    return rag_pipeline_factory()


@pytest.fixture
def ingested_session(rag_pipeline, study_session):
    """Session holding one document built from the sample texts."""
    text = " ".join(TestConstants.SAMPLE_TEXTS)
    rag_pipeline.ingest_document(
        study_session.session_id,
        text,
        original_name="biology.pdf",
    )
    return study_session


@pytest.fixture
def sentence_pipeline(rag_pipeline_factory):
    """Pipeline whose chunker yields roughly one sample sentence per chunk."""
    return rag_pipeline_factory(chunk_size=70)


@pytest.fixture
def sentence_session(sentence_pipeline, study_session):
    text = " ".join(TestConstants.SAMPLE_TEXTS)
    sentence_pipeline.ingest_document(
        study_session.session_id, text, original_name="biology.pdf"
    )
    return study_session


@pytest.fixture
def conversation_manager_factory(test_settings):
    """Factory fixture for ConversationManager instances with a fake generator."""

    def _create_manager(
        rag_pipeline: RAGPipeline, *responses
    ) -> tuple[ConversationManager, FakeGenerationClient]:
        generator = FakeGenerationClient(*responses)
        manager = ConversationManager(
            rag_pipeline=rag_pipeline,
            generation_client=generator,
            settings=test_settings,
        )
        return manager, generator

    return _create_manager


@pytest.fixture
def study_aid_factory(test_settings):
    """Factory fixture for StudyAidGenerator instances with a fake generator."""

    def _create_generator(
        rag_pipeline: RAGPipeline, *responses
    ) -> tuple[StudyAidGenerator, FakeGenerationClient]:
        generator = FakeGenerationClient(*responses)
        aids = StudyAidGenerator(
            rag_pipeline=rag_pipeline,
            generation_client=generator,
            settings=test_settings,
        )
        return aids, generator

    return _create_generator


@pytest.fixture
def blank_pdf_path(tmp_path) -> Path:
    """One-page PDF without any text."""
    writer = pypdf.PdfWriter()
    writer.add_blank_page(width=200, height=200)
    path = tmp_path / "blank.pdf"
    with path.open("wb") as file:
        writer.write(file)
    return path
