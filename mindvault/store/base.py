"""Schema management and row helpers for the SQLite study store."""

from __future__ import annotations

import datetime
import json
import sqlite3
from pathlib import Path

import numpy as np

from mindvault.config import config
from mindvault.models import (
    Citation,
    DocumentChunk,
    Message,
    QuizAttempt,
    QuizQuestion,
    SessionDocument,
)

EMBEDDING_DTYPE = np.float64

logger = config.get_logger(__name__)


class BaseSQLiteStore:
    """Common schema management and (de)serialization helpers."""

    def __init__(self, db_path: Path) -> None:
        """Initialize the database file and ensure the schema exists."""
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        self._create_tables()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _create_tables(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'active' CHECK(
                        status IN ('active','archived','paused')
                    ),
                    created_at TEXT NOT NULL,
                    last_activity TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    file_name TEXT NOT NULL,
                    original_name TEXT NOT NULL,
                    uploaded_at TEXT NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES sessions (id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL CHECK(role IN ('user','assistant')),
                    content TEXT NOT NULL,
                    sources TEXT,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES sessions (id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    file_name TEXT NOT NULL,
                    original_name TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    page_number INTEGER NOT NULL,
                    content TEXT NOT NULL,
                    dimension INTEGER NOT NULL,
                    embedding BLOB NOT NULL,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS quizzes (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    questions TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    last_attempt_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS quiz_attempts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    quiz_id TEXT NOT NULL,
                    answers TEXT NOT NULL,
                    score INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (quiz_id) REFERENCES quizzes (id)
                )
            """)

            self._create_indexes(cursor)
            conn.commit()

    @staticmethod
    def _create_indexes(cursor: sqlite3.Cursor) -> None:
        """Ensure indexes exist for the common lookups."""
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id)",
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_session ON documents(session_id)",
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id)",
        )
        cursor.execute(
            (
                "CREATE INDEX IF NOT EXISTS idx_chunks_session_file "
                "ON chunks(session_id, file_name)"
            ),
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_quizzes_session ON quizzes(session_id)",
        )
        cursor.execute(
            (
                "CREATE INDEX IF NOT EXISTS idx_quiz_attempts_quiz "
                "ON quiz_attempts(quiz_id)"
            ),
        )

    @staticmethod
    def _to_timestamp(value: datetime.datetime) -> str:
        return value.isoformat(timespec="microseconds")

    @staticmethod
    def _from_timestamp(value: str | None) -> datetime.datetime | None:
        if value is None:
            return None
        return datetime.datetime.fromisoformat(value)

    @staticmethod
    def _serialize_embedding(embedding: np.ndarray) -> bytes:
        return np.asarray(embedding, dtype=EMBEDDING_DTYPE).tobytes()

    @staticmethod
    def _deserialize_embedding(blob: bytes, dimension: int) -> np.ndarray:
        vector = np.frombuffer(blob, dtype=EMBEDDING_DTYPE)
        if vector.shape != (dimension,):
            logger.warning(
                "Stored embedding has %d values, expected %d", vector.size, dimension
            )
        return vector

    @staticmethod
    def _serialize_sources(sources: list[Citation] | None) -> str | None:
        if sources is None:
            return None
        return json.dumps([citation.to_dict() for citation in sources])

    @staticmethod
    def _deserialize_sources(raw: str | None) -> list[Citation] | None:
        if raw is None:
            return None
        return [Citation.from_dict(item) for item in json.loads(raw)]

    @staticmethod
    def _serialize_questions(questions: list[QuizQuestion]) -> str:
        return json.dumps([question.to_dict() for question in questions])

    @staticmethod
    def _deserialize_questions(raw: str) -> list[QuizQuestion]:
        return [
            QuizQuestion(
                question=item["question"],
                options=tuple(item["options"]),
                correct_index=int(item["correct_index"]),
                sources=tuple(
                    Citation.from_dict(source) for source in item.get("sources", [])
                ),
            )
            for item in json.loads(raw)
        ]

    def _build_chunk_from_row(self, row: tuple) -> DocumentChunk:
        """Create a DocumentChunk from a chunks row.

        Returns:
            DocumentChunk hydrated with its embedding.
        """
        (
            chunk_id,
            session_id,
            file_name,
            original_name,
            chunk_index,
            page_number,
            content,
            dimension,
            embedding,
        ) = row
        return DocumentChunk(
            content=content,
            session_id=session_id,
            file_name=file_name,
            original_name=original_name,
            chunk_index=int(chunk_index),
            page_number=int(page_number),
            embedding=self._deserialize_embedding(embedding, int(dimension)),
            chunk_id=int(chunk_id),
        )

    def _build_message_from_row(self, row: tuple) -> Message:
        role, content, sources, created_at = row
        return Message(
            role=role,
            content=content,
            timestamp=self._from_timestamp(created_at),
            sources=self._deserialize_sources(sources),
        )

    def _build_document_from_row(self, row: tuple) -> SessionDocument:
        file_name, original_name, uploaded_at = row
        return SessionDocument(
            file_name=file_name,
            original_name=original_name,
            uploaded_at=self._from_timestamp(uploaded_at),
        )

    def _build_attempt_from_row(self, row: tuple) -> QuizAttempt:
        answers, score, created_at = row
        return QuizAttempt(
            answers=list(json.loads(answers)),
            score=int(score),
            created_at=self._from_timestamp(created_at),
        )

