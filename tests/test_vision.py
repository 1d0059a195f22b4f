"""Tests for the vision provider clients and router."""

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from conftest import PNG_BYTES, failed_reply, ok_reply
from ui_iterate.config import PipelineSettings
from ui_iterate.vision import ollama_vision_client
from ui_iterate.vision.claude_vision_client import ClaudeVisionClient
from ui_iterate.vision.ollama_vision_client import OllamaVisionClient
from ui_iterate.vision.vision_router import VisionRouter, get_vision_router
from ui_iterate.vision.vision_types import (
    VisionReply,
    VisionServiceError,
    sniff_media_type,
    split_image_payload,
)

PNG_B64 = base64.b64encode(PNG_BYTES).decode("ascii")


# ---------------------------------------------------------------------------
# Image payload helpers
# ---------------------------------------------------------------------------

class TestImagePayload:
    def test_data_url(self):
        media_type, data = split_image_payload("data:image/jpeg;base64,QUJD")
        assert media_type == "image/jpeg"
        assert data == "QUJD"

    def test_bare_base64_sniffed(self):
        media_type, data = split_image_payload(PNG_B64)
        assert media_type == "image/png"
        assert data == PNG_B64

    def test_sniff_jpeg(self):
        jpeg = base64.b64encode(b"\xff\xd8\xff\xe0" + b"\x00" * 20).decode()
        assert sniff_media_type(jpeg) == "image/jpeg"

    def test_sniff_webp(self):
        webp = base64.b64encode(b"RIFF\x00\x00\x00\x00WEBPVP8 " + b"\x00" * 8).decode()
        assert sniff_media_type(webp) == "image/webp"

    def test_sniff_unknown_defaults_to_png(self):
        assert sniff_media_type("not base64 at all") == "image/png"

    def test_failure_reply(self):
        reply = VisionReply.failure("claude", "rate limited", status_code=429)
        assert reply.ok is False
        assert reply.text == ""
        assert reply.status_code == 429


# ---------------------------------------------------------------------------
# ClaudeVisionClient
# ---------------------------------------------------------------------------

class TestClaudeVisionClient:
    @pytest.fixture
    def client(self):
        client = ClaudeVisionClient(model="claude-test", api_key="test-key")
        client.client = MagicMock()
        return client

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(VisionServiceError):
            ClaudeVisionClient()

    def test_message_shape(self, client):
        client.client.messages.create.return_value = MagicMock(
            content=[MagicMock(text='{"components": []}')]
        )
        reply = client.complete_sync(PNG_B64, "List components", system="Be terse")

        assert reply.ok is True
        assert reply.text == '{"components": []}'
        kwargs = client.client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == "Be terse"
        image_block, text_block = kwargs["messages"][0]["content"]
        assert image_block["source"]["media_type"] == "image/png"
        assert image_block["source"]["data"] == PNG_B64
        assert text_block["text"] == "List components"

    def test_empty_content_is_failure(self, client):
        client.client.messages.create.return_value = MagicMock(content=[])
        reply = client.complete_sync(PNG_B64, "prompt")
        assert reply.ok is False
        assert reply.error == "empty response"

    def test_rate_limit(self, client):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client.client.messages.create.side_effect = anthropic.RateLimitError(
            "slow down", response=httpx.Response(429, request=request), body=None
        )
        reply = client.complete_sync(PNG_B64, "prompt")
        assert reply.ok is False
        assert reply.status_code == 429

    def test_connection_error(self, client):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client.client.messages.create.side_effect = anthropic.APIConnectionError(request=request)
        reply = client.complete_sync(PNG_B64, "prompt")
        assert reply.ok is False
        assert reply.status_code is None

    @pytest.mark.asyncio
    async def test_async_wrapper(self, client):
        client.client.messages.create.return_value = MagicMock(content=[MagicMock(text="hi")])
        reply = await client.complete(PNG_B64, "prompt")
        assert reply.text == "hi"
        assert client.get_call_count() == 1


# ---------------------------------------------------------------------------
# OllamaVisionClient
# ---------------------------------------------------------------------------

def _mock_ollama(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(ollama_vision_client.httpx, "AsyncClient", factory)


class TestOllamaVisionClient:
    @pytest.fixture
    def client(self):
        return OllamaVisionClient(ollama_host="http://ollama.test/", model="qwen2.5vl:7b")

    @pytest.mark.asyncio
    async def test_is_available_cached(self, client):
        client._available = True
        assert await client.is_available() is True
        client._available = False
        assert await client.is_available() is False

    @pytest.mark.asyncio
    async def test_is_available_checks_model(self, client, monkeypatch):
        def handler(request):
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [{"name": "llava:13b"}]})

        _mock_ollama(monkeypatch, handler)
        assert await client.is_available() is False

    @pytest.mark.asyncio
    async def test_is_available_when_down(self, client, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        _mock_ollama(monkeypatch, handler)
        assert await client.is_available() is False

    @pytest.mark.asyncio
    async def test_complete(self, client, monkeypatch):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "```json\n{}\n```"})

        _mock_ollama(monkeypatch, handler)
        reply = await client.complete("data:image/png;base64," + PNG_B64, "prompt", system="sys")

        assert reply.ok is True
        assert reply.provider == "ollama"
        assert seen["body"]["images"] == [PNG_B64]
        assert seen["body"]["system"] == "sys"
        assert seen["body"]["stream"] is False

    @pytest.mark.asyncio
    async def test_server_error(self, client, monkeypatch):
        _mock_ollama(monkeypatch, lambda request: httpx.Response(500, text="model crashed"))
        reply = await client.complete(PNG_B64, "prompt")
        assert reply.ok is False
        assert reply.status_code == 500

    @pytest.mark.asyncio
    async def test_non_json_envelope(self, client, monkeypatch):
        _mock_ollama(monkeypatch, lambda request: httpx.Response(200, text="<html>"))
        reply = await client.complete(PNG_B64, "prompt")
        assert reply.ok is False
        assert reply.error == "non-JSON envelope"

    def test_get_stats_initial(self, client):
        stats = client.get_stats()
        assert stats["call_count"] == 0
        assert stats["cost"] == 0.0
        assert stats["model"] == "qwen2.5vl:7b"


# ---------------------------------------------------------------------------
# VisionRouter
# ---------------------------------------------------------------------------

def _fake_ollama(available, reply):
    fake = MagicMock()
    fake.is_available = AsyncMock(return_value=available)
    fake.complete = AsyncMock(return_value=reply)
    return fake


class TestVisionRouter:
    @pytest.fixture(autouse=True)
    def _no_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

    @pytest.mark.asyncio
    async def test_claude_without_key_is_failure(self):
        router = VisionRouter(provider="claude")
        reply = await router.complete(PNG_B64, "prompt")
        assert reply.ok is False
        assert reply.error == "Claude not available"

    @pytest.mark.asyncio
    async def test_auto_prefers_ollama(self):
        router = VisionRouter(provider="auto")
        router._ollama_client = _fake_ollama(True, ok_reply("local", provider="ollama"))

        reply = await router.complete(PNG_B64, "prompt")
        assert reply.text == "local"
        assert router.get_stats()["ollama_calls"] == 1
        assert router.get_stats()["claude_calls"] == 0

    @pytest.mark.asyncio
    async def test_auto_falls_back_to_claude(self):
        router = VisionRouter(provider="auto")
        router._ollama_client = _fake_ollama(True, failed_reply("timeout"))
        router._claude_client = MagicMock()
        router._claude_client.complete = AsyncMock(return_value=ok_reply("remote"))

        reply = await router.complete(PNG_B64, "prompt")
        assert reply.text == "remote"
        assert router.get_call_count() == 2
        assert router.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_auto_with_nothing_available(self):
        router = VisionRouter(provider="auto")
        router._ollama_client = _fake_ollama(False, None)

        reply = await router.complete(PNG_B64, "prompt")
        assert reply.ok is False
        assert reply.error == "No vision provider available"
        router._ollama_client.complete.assert_not_called()

    def test_singleton_uses_settings(self):
        settings = PipelineSettings(vision_provider="ollama", ollama_model="llava:13b")
        router = get_vision_router(settings=settings)
        assert router.provider == "ollama"
        assert router.ollama.model == "llava:13b"
        assert get_vision_router() is router
