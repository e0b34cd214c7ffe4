import base64
import logging
from typing import Any, Dict, List

import httpx
from fastapi import HTTPException

import settings

logger = logging.getLogger(__name__)

###############################################
# ElevenLabs text-to-speech
###############################################

VOICE_SETTINGS: Dict[str, Any] = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.0,
    "use_speaker_boost": True,
}


def _api_key() -> str:
    # Keys pasted into .env files often carry stray whitespace.
    return (settings.ELEVENLABS_API_KEY or "").strip()


def is_configured() -> bool:
    return bool(_api_key())


def _error_detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:300]
    detail = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("message") or detail)
    return str(detail or (data.get("message") if isinstance(data, dict) else data))


async def synthesize(text: str) -> bytes:
    """Convert ``text`` to MP3 audio with the configured voice."""
    api_key = _api_key()
    if not api_key:
        raise HTTPException(status_code=400, detail="ELEVENLABS_API_KEY is required. Please add it to your .env.local file.")

    voice_id = settings.ELEVENLABS_VOICE_ID
    logger.info("Synthesizing %d characters with voice %s", len(text), voice_id)
    headers = {"Accept": "audio/mpeg", "Content-Type": "application/json", "xi-api-key": api_key}
    payload = {"text": text, "model_id": settings.ELEVENLABS_MODEL_ID, "voice_settings": VOICE_SETTINGS}

    async with httpx.AsyncClient(timeout=60.0) as client:
        resp = await client.post(f"{settings.ELEVENLABS_API_BASE}/text-to-speech/{voice_id}", json=payload, headers=headers)

    if resp.status_code == 200:
        return resp.content

    logger.error("ElevenLabs API error %s: %s", resp.status_code, resp.text[:300])
    if resp.status_code == 401:
        message = (
            "Invalid API key (401 Unauthorized). Please verify your ElevenLabs API key in .env.local. "
            "Get your API key from: https://elevenlabs.io/app/settings/api-keys"
        )
    elif resp.status_code == 429:
        message = "Rate limit exceeded. Please try again later or upgrade your ElevenLabs plan."
    elif resp.status_code == 400:
        message = f"Bad request: {_error_detail(resp)}. Please check the voice ID and text input."
    else:
        message = f"Failed to generate audio: {_error_detail(resp)}"
    raise HTTPException(status_code=500, detail=message)


async def synthesize_base64(text: str) -> str:
    return base64.b64encode(await synthesize(text)).decode("ascii")


async def list_voices() -> List[Dict[str, Any]]:
    """Voices available to the configured key; empty when the lookup fails."""
    headers = {"xi-api-key": _api_key()}
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            resp = await client.get(f"{settings.ELEVENLABS_API_BASE}/voices", headers=headers)
    except httpx.HTTPError as e:
        logger.error("Error fetching voices: %s", e)
        return []

    if resp.status_code != 200:
        if resp.status_code == 401:
            logger.error("Invalid ElevenLabs API key; check ELEVENLABS_API_KEY in .env.local")
        else:
            logger.error("Error fetching voices: %s %s", resp.status_code, resp.text[:300])
        return []

    return [
        {
            "voice_id": v.get("voice_id"),
            "name": v.get("name"),
            "category": v.get("category"),
            "description": v.get("description"),
            "preview_url": v.get("preview_url"),
        }
        for v in resp.json().get("voices", [])
    ]
