import json
import re
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from openai import AsyncOpenAI

import settings

###############################################
# Generation service (OpenAI Responses API)
###############################################


class ModelOutputError(ValueError):
    """The model answered, but not in the shape we asked for."""


def is_model_output_error(exc: BaseException) -> bool:
    return isinstance(exc, ModelOutputError)


def _openai_client() -> AsyncOpenAI:
    if not settings.OPENAI_API_KEY:
        raise HTTPException(status_code=500, detail="OPENAI_API_KEY is required. Please add it to your .env.local file.")
    return AsyncOpenAI(api_key=settings.OPENAI_API_KEY)


def _collect_text(resp: Any) -> str:
    # The SDK exposes a convenience property; fall back to the content parts.
    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text.strip():
        return text
    parts: List[str] = []
    for item in getattr(resp, "output", []) or []:
        for c in getattr(item, "content", None) or []:
            if getattr(c, "type", None) == "output_text" and getattr(c, "text", None):
                parts.append(c.text)
    return "".join(parts)


async def ask_model(
    prompt: str,
    *,
    system: Optional[str] = None,
    temperature: Optional[float] = None,
    max_output_tokens: int = 4000,
    attachments: Optional[List[Dict[str, Any]]] = None,
) -> str:
    """Send one prompt (plus optional input_file/input_image parts) and return the text answer."""
    client = _openai_client()

    content: Any = prompt
    if attachments:
        content = [{"type": "input_text", "text": prompt}, *attachments]

    messages: List[Dict[str, Any]] = []
    if system:
        messages.append({"role": "developer", "content": system})
    messages.append({"role": "user", "content": content})

    request_kwargs: Dict[str, Any] = {
        "model": settings.OPENAI_MODEL,
        "input": messages,
        "max_output_tokens": max_output_tokens,
    }
    if temperature is not None:
        request_kwargs["temperature"] = temperature

    resp = await client.responses.create(**request_kwargs)
    return _collect_text(resp)


_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN_RE.sub("", text, count=1)
        text = _FENCE_CLOSE_RE.sub("", text, count=1)
    return text.strip()


def parse_model_json(text: str) -> Any:
    """Parse a JSON answer, tolerating a Markdown code fence around it."""
    cleaned = strip_code_fences(text or "")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ModelOutputError(f"Model returned invalid JSON: {e}") from e
