"""Flashcard and quiz generation from a session's documents."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

from .config import Config, config
from .exceptions import EmptyResultError, QuizNotFoundError, StructuredOutputParseError
from .generation import GenerationClient
from .models import QUIZ_OPTION_COUNT, Citation, Flashcard, QuizAttempt, QuizQuestion
from .pipeline import assemble_context
from .structured_output import FLASHCARD_KEYS, QUIZ_KEYS, extract_json, select_items

if TYPE_CHECKING:
    from .models import DocumentChunk, Quiz, Session
    from .pipeline import RAGPipeline
    from .store import SQLiteStudyStore

logger = config.get_logger(__name__)

CORRECT_INDEX_KEYS: tuple[str, ...] = ("correctIndex", "correct_index")
UNANSWERED = -1


def parse_flashcards(items: list[Any]) -> list[Flashcard]:
    """Keep the entries that have both a non-empty front and back.

    Returns:
        Valid flashcards in model order.
    """
    cards = []
    for item in items:
        if not isinstance(item, dict):
            continue
        front, back = item.get("front"), item.get("back")
        if not isinstance(front, str) or not isinstance(back, str):
            continue
        if front.strip() and back.strip():
            cards.append(Flashcard(front=front.strip(), back=back.strip()))
    return cards


def parse_quiz_question(item: Any) -> QuizQuestion | None:
    """Validate one generated question.

    A question needs non-empty text, exactly four non-empty string options and
    an integer correct index between 0 and 3.

    Returns:
        The question, or None if it fails validation.
    """
    if not isinstance(item, dict):
        return None

    text = item.get("question")
    if not isinstance(text, str) or not text.strip():
        return None

    options = item.get("options")
    if (
        not isinstance(options, list)
        or len(options) != QUIZ_OPTION_COUNT
        or not all(isinstance(option, str) and option.strip() for option in options)
    ):
        return None

    correct_index = next(
        (item[key] for key in CORRECT_INDEX_KEYS if key in item), None
    )
    if (
        not isinstance(correct_index, int)
        or isinstance(correct_index, bool)
        or not 0 <= correct_index < QUIZ_OPTION_COUNT
    ):
        return None

    return QuizQuestion(
        question=text.strip(),
        options=tuple(option.strip() for option in options),
        correct_index=correct_index,
    )


def normalize_answers(answers: list[Any]) -> list[int]:
    """Map submitted answers to ints; anything that is not an int never matches."""
    return [
        answer
        if isinstance(answer, int) and not isinstance(answer, bool)
        else UNANSWERED
        for answer in answers
    ]


def score_answers(answer_key: list[int], answers: list[int]) -> int:
    """Count positions where the submitted index equals the correct one.

    Missing or extra answers simply don't match.
    """
    return sum(
        1 for submitted, correct in zip(answers, answer_key) if submitted == correct
    )


class StudyAidGenerator:
    """Builds flashcards and quizzes from retrieved session context."""

    def __init__(
        self,
        rag_pipeline: RAGPipeline,
        generation_client: GenerationClient | None = None,
        settings: Config | None = None,
    ) -> None:
        self.rag_pipeline = rag_pipeline
        self.settings = settings or rag_pipeline.settings
        self.generation_client = generation_client or GenerationClient(self.settings)

    @property
    def store(self) -> SQLiteStudyStore:
        return self.rag_pipeline.store

    def clamp_question_count(self, count: Any) -> int:
        """Clamp a requested question count to 1..settings.MAX_QUIZ_QUESTIONS.

        Non-numeric requests fall back to settings.DEFAULT_QUIZ_QUESTIONS.
        """
        try:
            requested = int(count)
        except (TypeError, ValueError):
            return self.settings.DEFAULT_QUIZ_QUESTIONS
        return max(1, min(self.settings.MAX_QUIZ_QUESTIONS, requested))

    def select_context(
        self,
        session: Session,
        top_k: int,
    ) -> list[tuple[DocumentChunk, float | None]]:
        """Pick context for a study aid.

        Chunks are ranked against the session's most recent user question when
        there is one; otherwise the first ``top_k`` chunks are used, without a
        score.

        Raises:
            NoContextError: If the session has no chunks.

        Returns:
            ``(chunk, similarity)`` pairs.
        """
        chunks = self.rag_pipeline.scope_chunks(session.session_id)
        last_question = session.last_user_message()
        if last_question is None:
            return [(chunk, None) for chunk in chunks[:top_k]]

        return self.rag_pipeline.rank_chunks(last_question.content, chunks, top_k)

    @staticmethod
    def build_flashcard_prompt(context: str) -> str:
        return (
            "You are a study assistant creating flashcards from study material.\n"
            "Create between 8 and 12 flashcards covering the key facts, terms and "
            "concepts in the context below. Each card has a short question or term "
            "on the front and a concise answer on the back.\n\n"
            "Respond with strict JSON only, no prose and no code fences, in exactly "
            'this shape:\n{"flashcards": [{"front": "...", "back": "..."}]}\n\n'
            f"Context:\n{context}\n"
        )

    @staticmethod
    def build_quiz_prompt(context: str, count: int) -> str:
        return (
            "You are a study assistant writing a multiple-choice quiz from study "
            f"material.\nWrite exactly {count} questions based only on the context "
            "below. Every question has exactly 4 options and exactly one correct "
            "option; correctIndex is the 0-based position of the correct option.\n\n"
            "Respond with strict JSON only, no prose and no code fences, in exactly "
            'this shape:\n{"questions": [{"question": "...", "options": '
            '["...", "...", "...", "..."], "correctIndex": 0}]}\n\n'
            f"Context:\n{context}\n"
        )

    def _generate_items(self, prompt: str, keys: tuple[str, ...]) -> list[Any]:
        raw = self.generation_client.generate(prompt, json_mode=True)
        payload = extract_json(raw)
        if payload is None:
            logger.warning("Unparseable model output: %r", raw[:200])
            raise StructuredOutputParseError
        return select_items(payload, keys)

    def generate_flashcards(
        self,
        session_id: str,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Generate flashcards for a session. Flashcards are not stored.

        Returns:
            dict[str, Any]: ``{"flashcards": [{"front", "back"}, ...]}``.

        Raises:
            SessionNotFoundError: If the session does not exist.
            NoContextError: If the session has no chunks.
            GenerationServiceError: If the model call fails.
            StructuredOutputParseError: If no JSON could be recovered.
            EmptyResultError: If no valid flashcard remains.
        """
        session = self.store.get_session(session_id, user_id)
        selected = self.select_context(session, self.settings.FLASHCARD_TOP_K)
        context = assemble_context(
            [chunk for chunk, _ in selected], self.settings.CONTEXT_CHAR_LIMIT
        )

        items = self._generate_items(
            self.build_flashcard_prompt(context), FLASHCARD_KEYS
        )
        flashcards = parse_flashcards(items)
        if not flashcards:
            logger.warning(
                "Model returned %d flashcard entries, none valid", len(items)
            )
            raise EmptyResultError("flashcards")

        logger.info("Generated %d flashcards for session %s", len(flashcards), session_id)
        return {"flashcards": [card.to_dict() for card in flashcards]}

    def generate_quiz(
        self,
        session_id: str,
        count: Any = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Generate and store a multiple-choice quiz for a session.

        Args:
            session_id: Session to quiz on.
            count: Requested number of questions, clamped to 1..MAX_QUIZ_QUESTIONS.
            user_id: Caller identity; when given the session must belong to it.

        Returns:
            dict[str, Any]: ``{"quiz_id", "questions"}``; questions omit the answer key.

        Raises:
            SessionNotFoundError: If the session does not exist.
            NoContextError: If the session has no chunks.
            GenerationServiceError: If the model call fails.
            StructuredOutputParseError: If no JSON could be recovered.
            EmptyResultError: If no valid question remains.
        """
        count = self.clamp_question_count(
            self.settings.DEFAULT_QUIZ_QUESTIONS if count is None else count
        )
        session = self.store.get_session(session_id, user_id)
        selected = self.select_context(session, self.settings.QUIZ_TOP_K)
        context = assemble_context(
            [chunk for chunk, _ in selected], self.settings.CONTEXT_CHAR_LIMIT
        )
        sources = tuple(
            Citation.from_chunk(chunk, score, self.settings.EXCERPT_LENGTH)
            for chunk, score in selected
        )

        items = self._generate_items(self.build_quiz_prompt(context, count), QUIZ_KEYS)
        questions = [
            replace(question, sources=sources)
            for question in (parse_quiz_question(item) for item in items)
            if question is not None
        ][:count]
        if not questions:
            logger.warning("Model returned %d quiz entries, none valid", len(items))
            raise EmptyResultError("questions")

        if len(questions) < count:
            logger.info("Quiz has %d of %d requested questions", len(questions), count)

        quiz = self.store.create_quiz(session_id, session.user_id, questions)
        return {
            "quiz_id": quiz.quiz_id,
            "questions": [question.to_public_dict() for question in quiz.questions],
        }

    def _load_quiz(
        self,
        quiz_id: str,
        session_id: str | None,
        user_id: str | None,
    ) -> Quiz:
        quiz = self.store.get_quiz(quiz_id)
        if session_id is not None and quiz.session_id != session_id:
            raise QuizNotFoundError(quiz_id)
        if user_id is not None and quiz.user_id != user_id:
            raise QuizNotFoundError(quiz_id)
        return quiz

    def assess_quiz(
        self,
        quiz_id: str,
        answers: list[Any],
        *,
        session_id: str | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Grade submitted answers and record the attempt.

        Returns:
            dict[str, Any]: ``{"score", "total", "correct_answers"}``.

        Raises:
            ValueError: If answers is not a list.
            QuizNotFoundError: If the quiz does not exist for this caller.
        """
        if not isinstance(answers, list):
            msg = "Answers must be a list of option indices"
            raise ValueError(msg)

        quiz = self._load_quiz(quiz_id, session_id, user_id)
        submitted = normalize_answers(answers)
        score = score_answers(quiz.answer_key, submitted)

        self.store.add_quiz_attempt(
            quiz_id, QuizAttempt(answers=submitted, score=score)
        )
        logger.info(
            "Quiz %s scored %d/%d", quiz_id, score, len(quiz.questions)
        )
        return {
            "score": score,
            "total": len(quiz.questions),
            "correct_answers": quiz.answer_key,
        }

    def list_quizzes(
        self,
        session_id: str,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Summarize a session's quizzes, newest first.

        Returns:
            dict[str, Any]: ``{"quizzes": [...]}`` with counts and the last score.
        """
        self.store.get_session(session_id, user_id)
        summaries = []
        for quiz in self.store.list_quizzes(session_id):
            last_attempt = quiz.attempts[-1] if quiz.attempts else None
            summaries.append({
                "quiz_id": quiz.quiz_id,
                "created_at": quiz.created_at.isoformat(),
                "question_count": len(quiz.questions),
                "attempt_count": len(quiz.attempts),
                "last_score": last_attempt.score if last_attempt else None,
                "last_attempt_at": (
                    quiz.last_attempt_at.isoformat() if quiz.last_attempt_at else None
                ),
            })
        return {"quizzes": summaries}
