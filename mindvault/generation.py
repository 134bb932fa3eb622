"""Text generation client for an Ollama-style ``/api/generate`` endpoint.

The endpoint answers in one of two shapes:

* ``json``: a single object whose ``response`` field holds the full text.
* ``ndjson``: one JSON object per line, each optionally carrying a
  ``response`` fragment. Fragments are joined in arrival order and lines
  that do not parse are skipped.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Literal

import httpx

from .config import Config, config
from .exceptions import GenerationServiceError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = config.get_logger(__name__)

ERROR_DETAIL_LENGTH = 200

ResponseShape = Literal["json", "ndjson"]


def classify_response(content_type: str) -> ResponseShape:
    """Pick the decoder for a response from its content type.

    Returns:
        ``"json"`` for ``application/json`` bodies, ``"ndjson"`` otherwise.
    """
    return "json" if "application/json" in content_type.lower() else "ndjson"


def join_ndjson_fragments(lines: Iterable[str]) -> str:
    """Concatenate the ``response`` fragments of newline-delimited JSON lines.

    Returns:
        The joined text; empty when no line carried a string fragment.
    """
    parts: list[str] = []
    skipped = 0
    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except ValueError:
            skipped += 1
            continue
        if isinstance(obj, dict) and isinstance(obj.get("response"), str):
            parts.append(obj["response"])

    if skipped:
        logger.debug("Skipped %d unparsable stream lines", skipped)
    return "".join(parts)


def decode_json_body(body: str) -> str:
    """Extract ``response`` from a single JSON object body.

    A body that is not one JSON object (some servers label streamed output as
    JSON) is decoded line by line instead.

    Returns:
        The response text, possibly empty.
    """
    try:
        data = json.loads(body)
    except ValueError:
        return join_ndjson_fragments(body.splitlines())

    if isinstance(data, dict) and isinstance(data.get("response"), str):
        return data["response"]
    return ""


class GenerationClient:
    """Sends prompts to the generation service and returns the completed text."""

    def __init__(
        self,
        settings: Config | None = None,
        *,
        model: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the GenerationClient.

        Args:
            settings: Application settings. If None, uses the process defaults.
            model: Generation model name. If None, uses settings.OLLAMA_MODEL.
            http_client: Preconfigured HTTP client, mainly for tests.
        """
        self.settings = settings or config
        self.model = model or self.settings.OLLAMA_MODEL
        self.url = self.settings.GENERATION_URL
        # The read timeout bounds how long a hung model backend can hold a request
        self.client = http_client or httpx.Client(
            timeout=httpx.Timeout(self.settings.GENERATION_TIMEOUT, connect=10.0),
            headers=self.settings.get_api_headers(),
        )

    def build_payload(
        self,
        prompt: str,
        *,
        json_mode: bool = False,
        stream: bool | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.model, "prompt": prompt}
        if json_mode:
            payload["format"] = "json"
            payload["stream"] = False
        if stream is not None:
            payload["stream"] = stream
        return payload

    def generate(
        self,
        prompt: str,
        *,
        json_mode: bool = False,
        stream: bool | None = None,
    ) -> str:
        """Generate a completion for the prompt.

        Args:
            prompt: Full prompt text.
            json_mode: Ask for a single non-streamed JSON-formatted answer.
            stream: Explicit streaming flag; None leaves the service default.

        Returns:
            The completed text.

        Raises:
            GenerationServiceError: If the service is unreachable, answers with a
                non-success status, or produces an empty completion.
        """
        payload = self.build_payload(prompt, json_mode=json_mode, stream=stream)

        try:
            with self.client.stream("POST", self.url, json=payload) as response:
                if not response.is_success:
                    response.read()
                    self._raise_for_status(response)

                shape = classify_response(response.headers.get("content-type", ""))
                if shape == "json":
                    text = decode_json_body(response.read().decode("utf-8", "replace"))
                else:
                    text = join_ndjson_fragments(response.iter_lines())
        except httpx.HTTPError as exc:
            logger.exception("Generation request failed")
            msg = "AI service unreachable"
            raise GenerationServiceError(msg, detail=str(exc)) from exc

        if not text:
            logger.error("Generation service returned an empty %s response", shape)
            msg = "AI service returned empty response"
            raise GenerationServiceError(msg)

        logger.info("Generated %d characters (%s response)", len(text), shape)
        return text

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        detail = response.text[:ERROR_DETAIL_LENGTH]
        logger.error(
            "Generation service error: %s %s - %s",
            response.status_code,
            response.reason_phrase,
            detail,
        )
        msg = f"AI service error: {response.status_code} {response.reason_phrase}"
        raise GenerationServiceError(
            msg, detail=detail, status_code=response.status_code
        )

    def close(self) -> None:
        self.client.close()
