"""Tests for outreach content generation."""
import asyncio
import json

import httpx

from outreach.services.content import FALLBACK_MESSAGES, MAX_MESSAGE_LENGTH, ContentGenerator

ENDPOINT = "http://llm.internal/generate"


def make_generator(handler, timeout_seconds=1.0):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ContentGenerator(ENDPOINT, timeout_seconds=timeout_seconds, http_client=http_client)


def generate(generator, kind):
    async def run_test():
        try:
            return await generator.generate(kind)
        finally:
            await generator.aclose()
    return asyncio.run(run_test())


def test_returns_generated_message():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"message": "  Rise and shine!  "})

    assert generate(make_generator(handler), "morning") == "Rise and shine!"
    body = json.loads(requests[0].content)
    assert body["kind"] == "morning"
    assert "good-morning" in body["prompt"]


def test_slow_endpoint_falls_back_at_deadline():
    async def handler(request):
        await asyncio.sleep(1.0)
        return httpx.Response(200, json={"message": "too late"})

    result = generate(make_generator(handler, timeout_seconds=0.05), "morning")
    assert result == FALLBACK_MESSAGES["morning"]


def test_transport_timeout_falls_back():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    assert generate(make_generator(handler), "evening") == FALLBACK_MESSAGES["evening"]


def test_server_error_falls_back():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    assert generate(make_generator(handler), "morning") == FALLBACK_MESSAGES["morning"]


def test_malformed_responses_fall_back():
    bodies = [b"not json", b"[1, 2]", b'{"message": ""}', b'{"message": 42}', b'{"text": "hi"}']
    for raw in bodies:
        def handler(request, raw=raw):
            return httpx.Response(200, content=raw, headers={"content-type": "application/json"})

        assert generate(make_generator(handler), "morning") == FALLBACK_MESSAGES["morning"]


def test_long_message_is_truncated():
    def handler(request):
        return httpx.Response(200, json={"message": "x" * 1000})

    assert len(generate(make_generator(handler), "evening")) == MAX_MESSAGE_LENGTH


def test_unconfigured_endpoint_uses_fallback_without_request():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"message": "hi"})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    generator = ContentGenerator(None, http_client=http_client)
    assert generate(generator, "evening") == FALLBACK_MESSAGES["evening"]
    assert requests == []
