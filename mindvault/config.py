"""Configuration management for MindVault."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"

if env_path.exists():
    load_dotenv(env_path)

VALID_URL_SCHEMES = ("http://", "https://")


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class Config:
    """Immutable application settings.

    Built once at process start with ``Config.from_env()`` and handed to each
    component's constructor.
    """

    # Model service endpoints
    OLLAMA_URL: str = "http://localhost:11434/api"
    OLLAMA_MODEL: str = "mistral"
    EMBEDDING_MODEL: str = "nomic-embed-text"
    EMBEDDING_URL: str = "http://localhost:11434/api/embeddings"
    GENERATION_URL: str = "http://localhost:11434/api/generate"
    EMBEDDING_TIMEOUT: float = 30.0
    GENERATION_TIMEOUT: float = 300.0

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    HTTPX_LOG_LEVEL: str = "WARNING"

    # Application Settings
    ENVIRONMENT: str = "development"
    API_USER_AGENT: str = "MindVault/1.0"

    # Ingestion
    CHUNK_SIZE: int = 500
    EMBEDDING_BATCH_SIZE: int = 5
    CHUNKS_PER_PAGE: int = 10

    # Retrieval and context assembly
    QA_TOP_K: int = 3
    FLASHCARD_TOP_K: int = 10
    QUIZ_TOP_K: int = 20
    CONTEXT_CHAR_LIMIT: int = 12000
    EXCERPT_LENGTH: int = 200

    # Quiz
    DEFAULT_QUIZ_QUESTIONS: int = 5
    MAX_QUIZ_QUESTIONS: int = 50

    # Storage
    STORE_DB_PATH: Path = Path("data/mindvault.db")

    @classmethod
    def from_env(cls) -> Config:
        """Create a Config from environment variables.

        Returns:
            Config populated from the environment, with defaults for unset values.
        """
        ollama_url = os.getenv("OLLAMA_URL", cls.OLLAMA_URL).rstrip("/")
        return cls(
            OLLAMA_URL=ollama_url,
            OLLAMA_MODEL=os.getenv("OLLAMA_MODEL", cls.OLLAMA_MODEL),
            EMBEDDING_MODEL=os.getenv("EMBEDDING_MODEL", cls.EMBEDDING_MODEL),
            EMBEDDING_URL=os.getenv("EMBEDDING_URL", f"{ollama_url}/embeddings"),
            GENERATION_URL=os.getenv("GENERATION_URL", f"{ollama_url}/generate"),
            EMBEDDING_TIMEOUT=_env_float("EMBEDDING_TIMEOUT", cls.EMBEDDING_TIMEOUT),
            GENERATION_TIMEOUT=_env_float(
                "GENERATION_TIMEOUT", cls.GENERATION_TIMEOUT
            ),
            LOG_LEVEL=os.getenv("LOG_LEVEL", cls.LOG_LEVEL).upper(),
            HTTPX_LOG_LEVEL=os.getenv("HTTPX_LOG_LEVEL", cls.HTTPX_LOG_LEVEL).upper(),
            ENVIRONMENT=os.getenv("ENVIRONMENT", cls.ENVIRONMENT),
            API_USER_AGENT=os.getenv("API_USER_AGENT", cls.API_USER_AGENT),
            CHUNK_SIZE=_env_int("CHUNK_SIZE", cls.CHUNK_SIZE),
            EMBEDDING_BATCH_SIZE=_env_int(
                "EMBEDDING_BATCH_SIZE", cls.EMBEDDING_BATCH_SIZE
            ),
            CHUNKS_PER_PAGE=_env_int("CHUNKS_PER_PAGE", cls.CHUNKS_PER_PAGE),
            QA_TOP_K=_env_int("QA_TOP_K", cls.QA_TOP_K),
            FLASHCARD_TOP_K=_env_int("FLASHCARD_TOP_K", cls.FLASHCARD_TOP_K),
            QUIZ_TOP_K=_env_int("QUIZ_TOP_K", cls.QUIZ_TOP_K),
            CONTEXT_CHAR_LIMIT=_env_int("CONTEXT_CHAR_LIMIT", cls.CONTEXT_CHAR_LIMIT),
            EXCERPT_LENGTH=_env_int("EXCERPT_LENGTH", cls.EXCERPT_LENGTH),
            DEFAULT_QUIZ_QUESTIONS=_env_int(
                "DEFAULT_QUIZ_QUESTIONS", cls.DEFAULT_QUIZ_QUESTIONS
            ),
            MAX_QUIZ_QUESTIONS=_env_int("MAX_QUIZ_QUESTIONS", cls.MAX_QUIZ_QUESTIONS),
            STORE_DB_PATH=Path(os.getenv("STORE_DB_PATH", str(cls.STORE_DB_PATH))),
        )

    def validate(self) -> None:
        """Validate service URLs and numeric limits.

        Raises:
            ValueError: If a URL is not http(s) or a limit is not positive.
        """
        for name in ("OLLAMA_URL", "EMBEDDING_URL", "GENERATION_URL"):
            value = getattr(self, name)
            if not value.startswith(VALID_URL_SCHEMES):
                msg = f"{name} must be an http(s) URL, got {value!r}"
                raise ValueError(msg)

        for name in (
            "CHUNK_SIZE",
            "EMBEDDING_BATCH_SIZE",
            "CHUNKS_PER_PAGE",
            "QA_TOP_K",
            "FLASHCARD_TOP_K",
            "QUIZ_TOP_K",
            "CONTEXT_CHAR_LIMIT",
            "MAX_QUIZ_QUESTIONS",
        ):
            if getattr(self, name) <= 0:
                msg = f"{name} must be positive"
                raise ValueError(msg)

        if not 1 <= self.DEFAULT_QUIZ_QUESTIONS <= self.MAX_QUIZ_QUESTIONS:
            msg = "DEFAULT_QUIZ_QUESTIONS must be between 1 and MAX_QUIZ_QUESTIONS"
            raise ValueError(msg)

    def is_development(self) -> bool:
        """Check if running in development environment.

        Returns:
            True if environment is development.
        """
        return self.ENVIRONMENT.lower() == "development"

    def is_production(self) -> bool:
        """Check if running in production environment.

        Returns:
            True if environment is production.
        """
        return self.ENVIRONMENT.lower() == "production"

    def setup_logging(self) -> None:
        """Setup basic logging configuration.

        Configure logging once at application startup with:
        - Console output for all levels
        - Simple, readable format
        - Configurable level via environment variable
        """
        logging.basicConfig(
            level=getattr(logging, self.LOG_LEVEL, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )

        # Request logging from the HTTP client is noisy at INFO
        for name in ("httpx", "httpcore"):
            logging.getLogger(name).setLevel(
                getattr(logging, self.HTTPX_LOG_LEVEL, logging.WARNING)
            )

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        """Get a logger with the specified name.

        Args:
            name: Logger name (typically __name__)

        Returns:
            Logger instance
        """
        return logging.getLogger(name)

    def get_api_headers(self) -> dict[str, str]:
        """Build default headers for outbound API calls.

        Returns:
            Mapping of header names to values used on outbound HTTP requests.
        """
        headers: dict[str, str] = {}

        if self.API_USER_AGENT:
            headers["User-Agent"] = self.API_USER_AGENT

        return headers


config = Config.from_env()
