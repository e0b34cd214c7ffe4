import asyncio
import base64
import json

import httpx
import pytest
from fastapi import HTTPException

import settings
import tts
from conftest import mock_async_client


def test_synthesize_posts_to_voice(monkeypatch, tts_configured):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["xi-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"ID3-mp3-bytes")

    mock_async_client(monkeypatch, tts, handler)
    audio = asyncio.run(tts.synthesize("Hello there"))
    assert audio == b"ID3-mp3-bytes"
    assert seen["url"] == f"{settings.ELEVENLABS_API_BASE}/text-to-speech/{settings.ELEVENLABS_VOICE_ID}"
    assert seen["key"] == "xi-test-key"
    assert seen["body"]["text"] == "Hello there"
    assert seen["body"]["model_id"] == settings.ELEVENLABS_MODEL_ID
    assert seen["body"]["voice_settings"]["similarity_boost"] == 0.75


def test_synthesize_base64(monkeypatch, tts_configured):
    mock_async_client(monkeypatch, tts, lambda request: httpx.Response(200, content=b"\x00\x01"))
    assert asyncio.run(tts.synthesize_base64("x")) == base64.b64encode(b"\x00\x01").decode()


def test_synthesize_without_key():
    with pytest.raises(HTTPException) as err:
        asyncio.run(tts.synthesize("x"))
    assert err.value.status_code == 400


def test_whitespace_only_key_is_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "ELEVENLABS_API_KEY", "   ")
    assert not tts.is_configured()


@pytest.mark.parametrize("status,body,expected", [
    (401, {"detail": {"message": "bad key"}}, "Invalid API key (401 Unauthorized)"),
    (429, {"detail": "slow down"}, "Rate limit exceeded"),
    (400, {"detail": {"message": "voice not found"}}, "Bad request: voice not found"),
    (503, {"message": "maintenance"}, "Failed to generate audio: maintenance"),
])
def test_synthesize_error_mapping(monkeypatch, tts_configured, status, body, expected):
    mock_async_client(monkeypatch, tts, lambda request: httpx.Response(status, json=body))
    with pytest.raises(HTTPException) as err:
        asyncio.run(tts.synthesize("x"))
    assert err.value.status_code == 500
    assert err.value.detail.startswith(expected)


def test_error_detail_for_non_json_body(monkeypatch, tts_configured):
    mock_async_client(monkeypatch, tts, lambda request: httpx.Response(502, text="Bad Gateway"))
    with pytest.raises(HTTPException) as err:
        asyncio.run(tts.synthesize("x"))
    assert err.value.detail == "Failed to generate audio: Bad Gateway"


def test_list_voices(monkeypatch, tts_configured):
    payload = {"voices": [{
        "voice_id": "21m00Tcm4TlvDq8ikWAM", "name": "Rachel", "category": "premade",
        "description": None, "preview_url": "https://x/rachel.mp3", "labels": {"accent": "american"},
    }]}
    mock_async_client(monkeypatch, tts, lambda request: httpx.Response(200, json=payload))
    assert asyncio.run(tts.list_voices()) == [{
        "voice_id": "21m00Tcm4TlvDq8ikWAM",
        "name": "Rachel",
        "category": "premade",
        "description": None,
        "preview_url": "https://x/rachel.mp3",
    }]


def test_list_voices_failures_are_empty(monkeypatch, tts_configured):
    mock_async_client(monkeypatch, tts, lambda request: httpx.Response(401, json={}))
    assert asyncio.run(tts.list_voices()) == []

    def unreachable(request):
        raise httpx.ConnectError("no route", request=request)

    mock_async_client(monkeypatch, tts, unreachable)
    assert asyncio.run(tts.list_voices()) == []
