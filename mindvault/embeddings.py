"""Embedding service client for an Ollama-style ``/api/embeddings`` endpoint."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from numbers import Real
from typing import TYPE_CHECKING

import httpx
import numpy as np

from .config import Config, config
from .exceptions import EmbeddingServiceError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = config.get_logger(__name__)

ERROR_DETAIL_LENGTH = 200


class EmbeddingService:
    """Converts text into embedding vectors, one outbound call per text.

    No caching and no retries: repeated calls with the same text re-embed,
    and failures are raised to the caller.
    """

    def __init__(
        self,
        settings: Config | None = None,
        *,
        model: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the EmbeddingService.

        Args:
            settings: Application settings. If None, uses the process defaults.
            model: Embedding model name. If None, uses settings.EMBEDDING_MODEL.
            http_client: Preconfigured HTTP client, mainly for tests.
        """
        self.settings = settings or config
        self.model = model or self.settings.EMBEDDING_MODEL
        self.url = self.settings.EMBEDDING_URL
        self.client = http_client or httpx.Client(
            timeout=self.settings.EMBEDDING_TIMEOUT,
            headers=self.settings.get_api_headers(),
        )

    def get_embedding(self, text: str) -> np.ndarray:
        """Get embedding for a single text.

        Args:
            text: The input text to generate an embedding for.

        Returns:
            np.ndarray: The embedding vector for the input text.

        Raises:
            EmbeddingServiceError: If the service is unreachable, answers with a
                non-success status, or returns a payload without a numeric vector.
        """
        try:
            response = self.client.post(
                self.url,
                json={"model": self.model, "prompt": text},
            )
        except httpx.HTTPError as exc:
            logger.exception("Embedding request failed")
            msg = "Embedding service unreachable"
            raise EmbeddingServiceError(msg, detail=str(exc)) from exc

        if not response.is_success:
            detail = response.text[:ERROR_DETAIL_LENGTH]
            logger.error(
                "Embedding service error: %s %s - %s",
                response.status_code,
                response.reason_phrase,
                detail,
            )
            msg = (
                f"Embedding service error: {response.status_code} "
                f"{response.reason_phrase}"
            )
            raise EmbeddingServiceError(
                msg, detail=detail, status_code=response.status_code
            )

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            msg = "Embedding service returned non-JSON response"
            raise EmbeddingServiceError(
                msg, detail=response.text[:ERROR_DETAIL_LENGTH]
            )

        try:
            data = response.json()
        except ValueError as exc:
            msg = "Embedding service returned invalid JSON"
            raise EmbeddingServiceError(
                msg, detail=response.text[:ERROR_DETAIL_LENGTH]
            ) from exc

        return self._parse_vector(data)

    @staticmethod
    def _parse_vector(data: object) -> np.ndarray:
        vector = data.get("embedding") if isinstance(data, dict) else None
        if (
            not isinstance(vector, list)
            or not vector
            or not all(
                isinstance(value, Real) and not isinstance(value, bool)
                for value in vector
            )
        ):
            msg = "Embedding service returned invalid payload"
            raise EmbeddingServiceError(msg)
        return np.asarray(vector, dtype=np.float64)

    def get_embeddings_batch(
        self,
        texts: list[str],
        batch_size: int | None = None,
    ) -> list[np.ndarray]:
        """Get embeddings for multiple texts in bounded concurrent batches.

        All texts of a batch are embedded concurrently and the batch completes
        before the next one starts, so at most ``batch_size`` requests are in
        flight. Results keep the input order.

        Args:
            texts: List of input texts to generate embeddings for.
            batch_size: Concurrent requests per batch. If None, uses
                settings.EMBEDDING_BATCH_SIZE.

        Returns:
            list[np.ndarray]: List of embedding vectors for the input texts.
        """
        batch_size = batch_size or self.settings.EMBEDDING_BATCH_SIZE
        embeddings: list[np.ndarray] = []

        for batch_texts in self.iter_batches(texts, batch_size):
            embeddings.extend(self.embed_concurrently(batch_texts))

        return embeddings

    def embed_concurrently(self, texts: list[str]) -> list[np.ndarray]:
        """Embed all texts at once and wait for every result.

        Returns:
            Embeddings in input order.
        """
        if not texts:
            return []
        with ThreadPoolExecutor(max_workers=len(texts)) as executor:
            return list(executor.map(self.get_embedding, texts))

    @staticmethod
    def iter_batches(texts: list[str], batch_size: int) -> Iterator[list[str]]:
        for i in range(0, len(texts), batch_size):
            yield texts[i : i + batch_size]

    def close(self) -> None:
        self.client.close()
