import pytest

from miniville.local_llm import LocalLLMError, call_ollama_chat, parse_chat_response


@pytest.mark.asyncio
async def test_call_ollama_chat_builds_payload(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        captured["base_url"] = base_url
        captured["timeout"] = timeout
        return '{"action": "stay"}'

    monkeypatch.setattr("miniville.local_llm._perform_ollama_request", fake_request)

    result = await call_ollama_chat(
        messages=[
            {"role": "system", "content": "  System context  "},
            {"role": "user", "content": "User payload"},
            {"role": "user", "content": "   "},
        ],
        llm_model="llama3.1",
        temperature=0.35,
        max_tokens=512,
        json_mode=True,
        base_url="http://localhost:11434/",
        timeout=30,
    )

    assert result == '{"action": "stay"}'
    payload = captured["payload"]
    assert payload["model"] == "llama3.1"
    assert payload["stream"] is False
    assert payload["format"] == "json"
    assert payload["options"] == {"temperature": 0.35, "num_predict": 512}
    assert payload["messages"] == [
        {"role": "system", "content": "System context"},
        {"role": "user", "content": "User payload"},
    ]
    assert captured["base_url"] == "http://localhost:11434"
    assert captured["timeout"] == 30


@pytest.mark.asyncio
async def test_call_ollama_chat_text_mode_has_no_format(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        return "8"

    monkeypatch.setattr("miniville.local_llm._perform_ollama_request", fake_request)
    monkeypatch.delenv("OLLAMA_BASE_URL", raising=False)

    await call_ollama_chat(messages=[{"role": "user", "content": "Rate it"}], llm_model="llama3.1")

    assert "format" not in captured["payload"]


@pytest.mark.asyncio
async def test_call_ollama_chat_requires_content():
    with pytest.raises(LocalLLMError):
        await call_ollama_chat(messages=[{"role": "user", "content": " "}], llm_model="llama3.1")


def test_parse_chat_response_extracts_content():
    assert parse_chat_response('{"message": {"role": "assistant", "content": "hi"}}') == "hi"


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"error": "model not found"}',
        '{"message": {}}',
        "null",
        "[1]",
        '{"message": "hi"}',
        '{"message": {"content": 7}}',
    ],
)
def test_parse_chat_response_rejects_bad_bodies(raw):
    with pytest.raises(LocalLLMError):
        parse_chat_response(raw)
