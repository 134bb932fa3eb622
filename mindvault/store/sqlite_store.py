"""SQLite-backed store for sessions, chunks and quizzes."""

from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mindvault.config import config
from mindvault.exceptions import QuizNotFoundError, SessionNotFoundError
from mindvault.models import (
    SESSION_STATUSES,
    DocumentChunk,
    Quiz,
    QuizQuestion,
    Session,
    SessionDocument,
    utcnow,
)
from mindvault.store.base import BaseSQLiteStore

if TYPE_CHECKING:
    import sqlite3

    from mindvault.models import Message, QuizAttempt

logger = config.get_logger(__name__)

_CHUNK_COLUMNS = """
    c.id,
    c.session_id,
    c.file_name,
    c.original_name,
    c.chunk_index,
    c.page_number,
    c.content,
    c.dimension,
    c.embedding
"""


class SQLiteStudyStore(BaseSQLiteStore):
    """Persistence for the study assistant.

    Each write targets one session or quiz row. There is no locking across
    concurrent requests: two questions asked at once on the same session may
    interleave their message appends.
    """

    backend = "sqlite"

    def __init__(self, db_path: Path = Path("data/mindvault.db")) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
        """
        super().__init__(db_path)

    # Sessions

    def create_session(
        self,
        user_id: str,
        title: str,
        description: str = "",
    ) -> Session:
        """Create a new active session.

        Raises:
            ValueError: If the title is blank.

        Returns:
            The stored session.
        """
        if not title or not title.strip():
            msg = "Title is required"
            raise ValueError(msg)

        now = utcnow()
        session = Session(
            session_id=uuid.uuid4().hex,
            user_id=user_id,
            title=title.strip(),
            description=(description or "").strip(),
            created_at=now,
            last_activity=now,
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO sessions (
                    id, user_id, title, description, status, created_at, last_activity
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.session_id,
                    session.user_id,
                    session.title,
                    session.description,
                    session.status,
                    self._to_timestamp(session.created_at),
                    self._to_timestamp(session.last_activity),
                ),
            )
            conn.commit()

        logger.info("Created study session %s", session.session_id)
        return session

    def get_session(self, session_id: str, user_id: str | None = None) -> Session:
        """Load a session with its documents and messages.

        Args:
            session_id: Session identifier.
            user_id: When given, the session must belong to this user.

        Raises:
            SessionNotFoundError: If no matching session exists.

        Returns:
            The hydrated session.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            session = self._fetch_session(cursor, session_id, user_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            return session

    def _fetch_session(
        self,
        cursor: sqlite3.Cursor,
        session_id: str,
        user_id: str | None,
    ) -> Session | None:
        query = """
            SELECT id, user_id, title, description, status, created_at, last_activity
            FROM sessions WHERE id = ?
        """
        params: tuple[Any, ...] = (session_id,)
        if user_id is not None:
            query += " AND user_id = ?"
            params = (session_id, user_id)
        cursor.execute(query, params)
        row = cursor.fetchone()
        if row is None:
            return None

        cursor.execute(
            """
            SELECT file_name, original_name, uploaded_at
            FROM documents WHERE session_id = ? ORDER BY id
            """,
            (session_id,),
        )
        documents = [self._build_document_from_row(r) for r in cursor.fetchall()]

        cursor.execute(
            """
            SELECT role, content, sources, created_at
            FROM messages WHERE session_id = ? ORDER BY id
            """,
            (session_id,),
        )
        messages = [self._build_message_from_row(r) for r in cursor.fetchall()]

        return Session(
            session_id=row[0],
            user_id=row[1],
            title=row[2],
            description=row[3],
            status=row[4],
            documents=documents,
            messages=messages,
            created_at=self._from_timestamp(row[5]),
            last_activity=self._from_timestamp(row[6]),
        )

    def list_sessions(self, user_id: str) -> list[Session]:
        """List a user's sessions, most recently active first.

        Returns:
            Hydrated sessions.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id FROM sessions
                WHERE user_id = ? ORDER BY last_activity DESC, rowid DESC
                """,
                (user_id,),
            )
            session_ids = [row[0] for row in cursor.fetchall()]
            sessions = [
                self._fetch_session(cursor, session_id, user_id)
                for session_id in session_ids
            ]
        return [session for session in sessions if session is not None]

    def update_session(
        self,
        session_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
    ) -> Session:
        """Update a session's title, description or status.

        Raises:
            ValueError: If the status is unknown or the title is blank.
            SessionNotFoundError: If the session does not exist.

        Returns:
            The updated session.
        """
        updates: dict[str, str] = {}
        if title is not None:
            if not title.strip():
                msg = "Title is required"
                raise ValueError(msg)
            updates["title"] = title.strip()
        if description is not None:
            updates["description"] = description.strip()
        if status is not None:
            if status not in SESSION_STATUSES:
                msg = f"Invalid session status: {status}"
                raise ValueError(msg)
            updates["status"] = status

        with self._connect() as conn:
            cursor = conn.cursor()
            if updates:
                assignments = ", ".join(f"{column} = ?" for column in updates)
                cursor.execute(
                    f"UPDATE sessions SET {assignments} WHERE id = ?",  # noqa: S608
                    (*updates.values(), session_id),
                )
            session = self._fetch_session(cursor, session_id, None)
            if session is None:
                raise SessionNotFoundError(session_id)
            conn.commit()
        return session

    def delete_session(self, session_id: str) -> None:
        """Delete a session and everything that depends on it.

        Chunks, quizzes, documents and messages reference the session, so they
        are removed first and the session row last, in one transaction.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,))
            if cursor.fetchone() is None:
                raise SessionNotFoundError(session_id)

            deleted_chunks = self._delete_session_dependents(cursor, session_id)
            cursor.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            conn.commit()

        logger.info(
            "Deleted session %s and %d chunks", session_id, deleted_chunks
        )

    @staticmethod
    def _delete_session_dependents(cursor: sqlite3.Cursor, session_id: str) -> int:
        cursor.execute("DELETE FROM chunks WHERE session_id = ?", (session_id,))
        deleted_chunks = cursor.rowcount
        cursor.execute(
            """
            DELETE FROM quiz_attempts
            WHERE quiz_id IN (SELECT id FROM quizzes WHERE session_id = ?)
            """,
            (session_id,),
        )
        cursor.execute("DELETE FROM quizzes WHERE session_id = ?", (session_id,))
        cursor.execute("DELETE FROM documents WHERE session_id = ?", (session_id,))
        cursor.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
        return deleted_chunks

    # Documents and messages

    def add_document(
        self,
        session_id: str,
        file_name: str,
        original_name: str,
    ) -> SessionDocument:
        """Attach a document reference to a session.

        Raises:
            SessionNotFoundError: If the session does not exist.

        Returns:
            The stored document reference.
        """
        document = SessionDocument(file_name=file_name, original_name=original_name)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,))
            if cursor.fetchone() is None:
                raise SessionNotFoundError(session_id)
            cursor.execute(
                """
                INSERT INTO documents (session_id, file_name, original_name, uploaded_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    session_id,
                    file_name,
                    original_name,
                    self._to_timestamp(document.uploaded_at),
                ),
            )
            conn.commit()
        return document

    def append_messages(self, session_id: str, messages: list[Message]) -> None:
        """Append messages to a session and refresh its last activity.

        All messages are written in one transaction.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE sessions SET last_activity = ? WHERE id = ?",
                (self._to_timestamp(utcnow()), session_id),
            )
            if cursor.rowcount == 0:
                raise SessionNotFoundError(session_id)

            cursor.executemany(
                """
                INSERT INTO messages (session_id, role, content, sources, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        session_id,
                        message.role,
                        message.content,
                        self._serialize_sources(message.sources),
                        self._to_timestamp(message.timestamp),
                    )
                    for message in messages
                ],
            )
            conn.commit()

    # Chunks

    def add_chunks(self, chunks: list[DocumentChunk]) -> list[DocumentChunk]:
        """Add chunks with embeddings to the store.

        Chunks without an embedding are skipped.

        Returns:
            The stored chunks, carrying their database ids.
        """
        if not chunks:
            return []

        stored: list[DocumentChunk] = []
        with self._connect() as conn:
            cursor = conn.cursor()
            for chunk in chunks:
                if chunk.embedding is None:
                    logger.warning(
                        "Skipping chunk %d of %s without embedding",
                        chunk.chunk_index,
                        chunk.file_name,
                    )
                    continue

                cursor.execute(
                    """
                    INSERT INTO chunks (
                        session_id,
                        file_name,
                        original_name,
                        chunk_index,
                        page_number,
                        content,
                        dimension,
                        embedding
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        chunk.session_id,
                        chunk.file_name,
                        chunk.original_name,
                        chunk.chunk_index,
                        chunk.page_number,
                        chunk.content,
                        chunk.dimension,
                        self._serialize_embedding(chunk.embedding),
                    ),
                )
                stored.append(
                    DocumentChunk(
                        content=chunk.content,
                        session_id=chunk.session_id,
                        file_name=chunk.file_name,
                        original_name=chunk.original_name,
                        chunk_index=chunk.chunk_index,
                        page_number=chunk.page_number,
                        embedding=chunk.embedding,
                        chunk_id=cursor.lastrowid,
                    )
                )
            conn.commit()

        logger.info("Added %d chunks to the store", len(stored))
        return stored

    def get_chunks(self, session_id: str | None = None) -> list[DocumentChunk]:
        """Fetch the chunks in a retrieval scope, in insertion order.

        Args:
            session_id: None for every chunk; otherwise only chunks of documents
                attached to this session.

        Returns:
            Chunks with their embeddings.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            if session_id is None:
                cursor.execute(f"SELECT {_CHUNK_COLUMNS} FROM chunks c ORDER BY c.id")  # noqa: S608
            else:
                cursor.execute(
                    f"""
                    SELECT {_CHUNK_COLUMNS} FROM chunks c
                    WHERE c.session_id = ?
                      AND c.file_name IN (
                          SELECT file_name FROM documents WHERE session_id = ?
                      )
                    ORDER BY c.id
                    """,  # noqa: S608
                    (session_id, session_id),
                )
            return [self._build_chunk_from_row(row) for row in cursor.fetchall()]

    def count_chunks(self, session_id: str | None = None) -> int:
        """Count chunks in a retrieval scope.

        Returns:
            Number of chunks in scope.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            if session_id is None:
                cursor.execute("SELECT COUNT(*) FROM chunks")
            else:
                cursor.execute(
                    """
                    SELECT COUNT(*) FROM chunks
                    WHERE session_id = ?
                      AND file_name IN (
                          SELECT file_name FROM documents WHERE session_id = ?
                      )
                    """,
                    (session_id, session_id),
                )
            return int(cursor.fetchone()[0])

    # Quizzes

    def create_quiz(
        self,
        session_id: str,
        user_id: str,
        questions: list[QuizQuestion],
    ) -> Quiz:
        """Persist a generated quiz.

        Returns:
            The stored quiz with no attempts.
        """
        quiz = Quiz(
            quiz_id=uuid.uuid4().hex,
            session_id=session_id,
            user_id=user_id,
            questions=list(questions),
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO quizzes (id, session_id, user_id, questions, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    quiz.quiz_id,
                    quiz.session_id,
                    quiz.user_id,
                    self._serialize_questions(quiz.questions),
                    self._to_timestamp(quiz.created_at),
                ),
            )
            conn.commit()

        logger.info(
            "Stored quiz %s with %d questions", quiz.quiz_id, len(quiz.questions)
        )
        return quiz

    def get_quiz(self, quiz_id: str) -> Quiz:
        """Load a quiz with its attempts.

        Raises:
            QuizNotFoundError: If the quiz does not exist.

        Returns:
            The hydrated quiz.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            quiz = self._fetch_quiz(cursor, quiz_id)
        if quiz is None:
            raise QuizNotFoundError(quiz_id)
        return quiz

    def _fetch_quiz(self, cursor: sqlite3.Cursor, quiz_id: str) -> Quiz | None:
        cursor.execute(
            """
            SELECT id, session_id, user_id, questions, created_at, last_attempt_at
            FROM quizzes WHERE id = ?
            """,
            (quiz_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None

        cursor.execute(
            """
            SELECT answers, score, created_at
            FROM quiz_attempts WHERE quiz_id = ? ORDER BY id
            """,
            (quiz_id,),
        )
        attempts = [self._build_attempt_from_row(r) for r in cursor.fetchall()]

        return Quiz(
            quiz_id=row[0],
            session_id=row[1],
            user_id=row[2],
            questions=self._deserialize_questions(row[3]),
            attempts=attempts,
            created_at=self._from_timestamp(row[4]),
            last_attempt_at=self._from_timestamp(row[5]),
        )

    def list_quizzes(self, session_id: str) -> list[Quiz]:
        """List a session's quizzes, newest first.

        Returns:
            Hydrated quizzes.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id FROM quizzes
                WHERE session_id = ? ORDER BY created_at DESC, rowid DESC
                """,
                (session_id,),
            )
            quiz_ids = [row[0] for row in cursor.fetchall()]
            quizzes = [self._fetch_quiz(cursor, quiz_id) for quiz_id in quiz_ids]
        return [quiz for quiz in quizzes if quiz is not None]

    def add_quiz_attempt(self, quiz_id: str, attempt: QuizAttempt) -> None:
        """Append a graded attempt to a quiz.

        Raises:
            QuizNotFoundError: If the quiz does not exist.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            timestamp = self._to_timestamp(attempt.created_at)
            cursor.execute(
                "UPDATE quizzes SET last_attempt_at = ? WHERE id = ?",
                (timestamp, quiz_id),
            )
            if cursor.rowcount == 0:
                raise QuizNotFoundError(quiz_id)
            cursor.execute(
                """
                INSERT INTO quiz_attempts (quiz_id, answers, score, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (quiz_id, json.dumps(attempt.answers), attempt.score, timestamp),
            )
            conn.commit()
