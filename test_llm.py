import asyncio
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

import llm
import settings
from llm import ModelOutputError, parse_model_json, strip_code_fences


@pytest.mark.parametrize("raw", [
    '{"a": 1}',
    '```json\n{"a": 1}\n```',
    '```\n{"a": 1}\n```',
    '  ```JSON{"a": 1}```  ',
])
def test_code_fences_are_stripped(raw):
    assert strip_code_fences(raw) == '{"a": 1}'


def test_parse_model_json_accepts_arrays():
    assert parse_model_json("```json\n[1, 2]\n```") == [1, 2]


@pytest.mark.parametrize("raw", ["", "Sure! Here is the JSON:", "{'a': 1}", None])
def test_parse_model_json_rejects_prose(raw):
    with pytest.raises(ModelOutputError):
        parse_model_json(raw)


def test_missing_key_is_a_server_error(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    with pytest.raises(HTTPException) as err:
        llm._openai_client()
    assert err.value.status_code == 500


class FakeResponses:
    def __init__(self, resp):
        self.resp = resp
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        return self.resp


def fake_client(monkeypatch, resp):
    responses = FakeResponses(resp)
    monkeypatch.setattr(llm, "_openai_client", lambda: SimpleNamespace(responses=responses))
    return responses


def test_ask_model_request_shape(monkeypatch):
    responses = fake_client(monkeypatch, SimpleNamespace(output_text="hello"))
    answer = asyncio.run(llm.ask_model("Hi", system="Be a customer", temperature=0.8))
    assert answer == "hello"
    assert responses.kwargs["model"] == settings.OPENAI_MODEL
    assert responses.kwargs["temperature"] == 0.8
    assert responses.kwargs["input"] == [
        {"role": "developer", "content": "Be a customer"},
        {"role": "user", "content": "Hi"},
    ]


def test_ask_model_with_attachments(monkeypatch):
    responses = fake_client(monkeypatch, SimpleNamespace(output_text="ok"))
    part = {"type": "input_file", "filename": "w9.pdf", "file_data": "data:application/pdf;base64,AA=="}
    asyncio.run(llm.ask_model("Review", attachments=[part]))
    (message,) = responses.kwargs["input"]
    assert message["content"] == [{"type": "input_text", "text": "Review"}, part]
    assert "temperature" not in responses.kwargs


def test_text_collected_from_output_parts(monkeypatch):
    resp = SimpleNamespace(output_text="", output=[
        SimpleNamespace(content=[
            SimpleNamespace(type="output_text", text="part one, "),
            SimpleNamespace(type="refusal", text="ignored"),
            SimpleNamespace(type="output_text", text="part two"),
        ]),
    ])
    fake_client(monkeypatch, resp)
    assert asyncio.run(llm.ask_model("x")) == "part one, part two"
