"""Best-effort recovery of a JSON value from language-model output.

``extract_json`` tries, in order, stopping at the first success:

1. the raw text,
2. the contents of a Markdown code fence,
3. the fenced text after ``sanitize_json_text``,
4. the span from the first ``{`` to the last ``}``, which must be an object.

It only promises syntactically valid JSON; checking the shape is up to the
caller.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from .config import config

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = config.get_logger(__name__)

FLASHCARD_KEYS: tuple[str, ...] = ("flashcards", "cards", "items")
QUIZ_KEYS: tuple[str, ...] = ("questions", "quiz", "items")

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\r?\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
# A single-quoted literal in key or value position: after { [ , : and before : , } ]
_SINGLE_QUOTED_RE = re.compile(r"(?<=[{\[,:])(\s*)'((?:[^'\\\n]|\\.)*)'(?=\s*[:,}\]])")


def _try_parse(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except ValueError:
        return False, None


def strip_code_fences(text: str) -> str:
    """Return the body of the first Markdown code fence, or the text unchanged."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text


def _double_quote(match: re.Match[str]) -> str:
    leading, body = match.group(1), match.group(2)
    body = body.replace("\\'", "'").replace('"', '\\"')
    return f'{leading}"{body}"'


def sanitize_json_text(text: str) -> str:
    """Apply the two supported repairs to almost-JSON text.

    * drop a comma directly before ``}`` or ``]``
    * turn single-quoted keys and values into double-quoted strings

    Nothing else is rewritten.
    """
    text = _SINGLE_QUOTED_RE.sub(_double_quote, text)
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def _object_slice(text: str) -> str | None:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json(raw: str) -> Any | None:
    """Recover a JSON value from model output.

    Returns:
        The parsed value, or None when every strategy fails.
    """
    ok, value = _try_parse(raw)
    if ok:
        return value

    fenced = strip_code_fences(raw)
    if fenced is not raw:
        ok, value = _try_parse(fenced)
        if ok:
            logger.debug("Recovered JSON from code fence")
            return value

    sanitized = sanitize_json_text(fenced)
    ok, value = _try_parse(sanitized)
    if ok:
        logger.debug("Recovered JSON after sanitizing")
        return value

    for text in (sanitized, fenced):
        candidate = _object_slice(text)
        if candidate is None:
            continue
        ok, value = _try_parse(candidate)
        if ok and isinstance(value, dict):
            logger.debug("Recovered JSON object from surrounding prose")
            return value

    logger.warning("Could not recover JSON from model output: %.200s", raw)
    return None


def select_items(payload: Any, keys: Sequence[str]) -> list[Any]:
    """Pick the item list out of a parsed payload.

    A bare list is taken as-is; for an object the first key in ``keys`` that
    holds a list wins. Anything else yields no items.

    Returns:
        The selected list, possibly empty.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            items = payload.get(key)
            if isinstance(items, list):
                return items
    return []
