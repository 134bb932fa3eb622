"""Tests for recovering JSON from model output."""

import pytest

from mindvault.structured_output import (
    FLASHCARD_KEYS,
    QUIZ_KEYS,
    extract_json,
    sanitize_json_text,
    select_items,
    strip_code_fences,
)

FLASHCARDS = {"flashcards": [{"front": "What is ATP?", "back": "Energy currency"}]}


@pytest.mark.parametrize(
    "raw",
    [
        '{"flashcards": [{"front": "What is ATP?", "back": "Energy currency"}]}',
        (
            "Here are your flashcards:\n```json\n"
            '{"flashcards": [{"front": "What is ATP?", "back": "Energy currency"}]}'
            "\n```"
        ),
        '```\n{"flashcards": [{"front": "What is ATP?", "back": "Energy currency"}]}```',
        '{"flashcards": [{"front": "What is ATP?", "back": "Energy currency"},]}',
        "{'flashcards': [{'front': 'What is ATP?', 'back': 'Energy currency'}]}",
        (
            "Sure! Here you go. "
            '{"flashcards": [{"front": "What is ATP?", "back": "Energy currency"}]}'
            " Let me know if you need more."
        ),
    ],
    ids=["plain", "json-fence", "bare-fence", "trailing-comma", "single-quotes", "prose"],
)
def test_extract_json_recovers_object(raw):
    assert extract_json(raw) == FLASHCARDS


def test_extract_json_single_quoted_quiz():
    raw = (
        "{'questions': [{'question': 'Where is ATP made?', "
        "'options': ['Nucleus', 'Mitochondria', 'Ribosome', 'Golgi'], "
        "'correctIndex': 1}]}"
    )

    payload = extract_json(raw)

    assert payload["questions"][0]["options"][1] == "Mitochondria"
    assert payload["questions"][0]["correctIndex"] == 1


def test_extract_json_keeps_apostrophes_in_double_quoted_strings():
    raw = '{"front": "It\'s the cell\'s powerhouse", "back": "Mitochondria",}'
    assert extract_json(raw) == {
        "front": "It's the cell's powerhouse",
        "back": "Mitochondria",
    }


def test_extract_json_bare_list():
    assert extract_json('[{"front": "Q", "back": "A"}]') == [{"front": "Q", "back": "A"}]


@pytest.mark.parametrize(
    "raw",
    [
        "I'm sorry, I cannot create flashcards from this material.",
        "",
        "{ this is not json }",
        "```json\n{broken\n```",
    ],
)
def test_extract_json_gives_up(raw, caplog):
    assert extract_json(raw) is None
    assert "Could not recover JSON" in caplog.text


def test_strip_code_fences_without_fence_returns_input():
    text = '{"a": 1}'
    assert strip_code_fences(text) is text


def test_sanitize_only_touches_supported_repairs():
    assert sanitize_json_text('{"a": [1, 2,], "b": "x",}') == '{"a": [1, 2], "b": "x"}'
    assert sanitize_json_text("{'a': 'b'}") == '{"a": "b"}'


@pytest.mark.parametrize(
    ("payload", "keys", "expected"),
    [
        ({"flashcards": [1]}, FLASHCARD_KEYS, [1]),
        ({"cards": [2]}, FLASHCARD_KEYS, [2]),
        ({"items": [3], "cards": [2]}, FLASHCARD_KEYS, [2]),
        ({"flashcards": "none", "items": [3]}, FLASHCARD_KEYS, [3]),
        ({"quiz": [4]}, QUIZ_KEYS, [4]),
        ({"questions": [5], "quiz": [4]}, QUIZ_KEYS, [5]),
        ([6, 7], QUIZ_KEYS, [6, 7]),
        ({"answers": [8]}, QUIZ_KEYS, []),
        ("text", QUIZ_KEYS, []),
        (None, FLASHCARD_KEYS, []),
    ],
)
def test_select_items(payload, keys, expected):
    assert select_items(payload, keys) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (
            '{"flashcards":[{"front":"Q","back":"A"}]}',
            {"flashcards": [{"front": "Q", "back": "A"}]},
        ),
        ('```json\n{"flashcards":[]}\n```', {"flashcards": []}),
        (
            'Here is your result: {"questions": [{"question": "Q"}],}',
            {"questions": [{"question": "Q"}]},
        ),
        ("no json here", None),
    ],
)
def test_extract_json_layered_recovery(raw, expected):
    assert extract_json(raw) == expected
