"""Tests for the generation client and its response decoding."""

import json

import httpx
import pytest
from conftest import ndjson_response

from mindvault import GenerationClient
from mindvault.config import Config
from mindvault.exceptions import GenerationServiceError
from mindvault.generation import (
    classify_response,
    decode_json_body,
    join_ndjson_fragments,
)


@pytest.fixture
def generation_client_factory(http_client_factory):
    """Factory for GenerationClient instances backed by a mock transport."""

    def _create_client(handler, model=None) -> GenerationClient:
        return GenerationClient(
            Config(), model=model, http_client=http_client_factory(handler)
        )

    return _create_client


@pytest.mark.parametrize(
    ("content_type", "expected"),
    [
        ("application/json", "json"),
        ("application/json; charset=utf-8", "json"),
        ("Application/JSON", "json"),
        ("application/x-ndjson", "ndjson"),
        ("text/plain", "ndjson"),
        ("", "ndjson"),
    ],
)
def test_classify_response(content_type, expected):
    assert classify_response(content_type) == expected


def test_join_ndjson_fragments_skips_bad_lines():
    lines = [
        '{"response": "Hel", "done": false}',
        "not json at all",
        "",
        '{"response": "lo", "done": false}',
        '{"done": true}',
        '{"response": 42}',
    ]
    assert join_ndjson_fragments(lines) == "Hello"


def test_join_ndjson_fragments_nothing_usable():
    assert join_ndjson_fragments(["garbage", "[1, 2]"]) == ""


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ('{"response": "Mitochondria make ATP."}', "Mitochondria make ATP."),
        ('{"response": "A"}\n{"response": "B"}', "AB"),
        ('{"model": "mistral"}', ""),
        ('["response"]', ""),
    ],
)
def test_decode_json_body(body, expected):
    assert decode_json_body(body) == expected


def test_build_payload_modes():
    client = GenerationClient(Config())

    assert client.build_payload("hi") == {"model": "mistral", "prompt": "hi"}
    assert client.build_payload("hi", json_mode=True) == {
        "model": "mistral",
        "prompt": "hi",
        "format": "json",
        "stream": False,
    }
    assert client.build_payload("hi", stream=True)["stream"] is True
    client.close()


def test_generate_single_json_response(generation_client_factory):
    payloads = []

    def handler(request):
        payloads.append(json.loads(request.content))
        return httpx.Response(200, json={"response": "Osmosis moves water."})

    client = generation_client_factory(handler, model="llama3")

    assert client.generate("Explain osmosis", json_mode=True) == "Osmosis moves water."
    assert payloads == [
        {
            "model": "llama3",
            "prompt": "Explain osmosis",
            "format": "json",
            "stream": False,
        }
    ]


def test_generate_streamed_response(generation_client_factory):
    client = generation_client_factory(
        lambda request: ndjson_response(["Enzymes ", "lower ", "activation energy."])
    )

    assert client.generate("Explain enzymes") == "Enzymes lower activation energy."


def test_generate_error_status(generation_client_factory):
    client = generation_client_factory(
        lambda request: httpx.Response(503, text="model is loading")
    )

    with pytest.raises(
        GenerationServiceError, match="AI service error: 503 Service Unavailable"
    ) as exc:
        client.generate("Explain osmosis")

    assert exc.value.status_code == 503
    assert exc.value.detail == "model is loading"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"response": ""}),
        httpx.Response(200, json={"done": True}),
        httpx.Response(
            200, content=b"", headers={"content-type": "application/x-ndjson"}
        ),
    ],
)
def test_generate_empty_response(response, generation_client_factory):
    client = generation_client_factory(lambda request: response)

    with pytest.raises(GenerationServiceError, match="empty response"):
        client.generate("Explain osmosis")


@pytest.mark.parametrize("error_class", [httpx.ConnectError, httpx.ReadTimeout])
def test_generate_transport_failure(error_class, generation_client_factory):
    def handler(request):
        msg = "backend gone"
        raise error_class(msg, request=request)

    client = generation_client_factory(handler)

    with pytest.raises(GenerationServiceError, match="unreachable"):
        client.generate("Explain osmosis")
