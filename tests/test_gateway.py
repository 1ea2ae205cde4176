"""Tests for the serialized decision gateway."""

import asyncio
import io
import json
import threading
import time
from types import SimpleNamespace

import pytest

from tests.helpers import decision_json
from miniville.gateway import (
    Absent,
    DecisionGateway,
    MirascopeBackend,
    OllamaBackend,
    Parsed,
    Text,
    build_gateway,
    extract_json,
)
from miniville.local_llm import LocalLLMError
from miniville.schemas import ActionDecision, DailyPlan, ReflectionOutput


MESSAGES = [{"role": "system", "content": "You are Klaus."}, {"role": "user", "content": "What now?"}]


@pytest.mark.asyncio
async def test_structured_reply_is_parsed(scripted):
    backend, gateway = scripted([decision_json("move", target="Johnson Park")])

    result = await gateway.complete(MESSAGES, schema=ActionDecision)

    assert isinstance(result, Parsed)
    assert result.value.action == "move"
    assert result.value.target == "Johnson Park"
    assert backend.calls[0]["json_mode"] is True
    assert gateway.request_count == 1
    assert "SYSTEM:\nYou are Klaus." in gateway.last_transcript


@pytest.mark.asyncio
async def test_json_is_extracted_from_surrounding_prose(scripted):
    reply = "Sure! Here is my answer:\n" + decision_json("stay") + "\nHope that helps."
    _, gateway = scripted([reply])

    result = await gateway.complete(MESSAGES, schema=ActionDecision)

    assert isinstance(result, Parsed)
    assert result.value.action == "stay"


@pytest.mark.asyncio
async def test_unparseable_reply_is_absent(scripted):
    _, gateway = scripted(["I think I'll just wander around."])

    result = await gateway.complete(MESSAGES, schema=ActionDecision)

    assert result == Absent(reason="unparseable")


@pytest.mark.asyncio
async def test_schema_violation_is_absent(scripted, capsys):
    _, gateway = scripted([json.dumps({"insights": ["only one"], "summary_update": "x"})])

    result = await gateway.complete(MESSAGES, schema=ReflectionOutput)

    assert result == Absent(reason="invalid")
    assert "insights" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_plan_with_bad_time_format_is_absent(scripted):
    plan = {"date": "2023-02-13", "blocks": [{"start": "9am", "end": "10:00", "location": "Hobbs Cafe", "activity": "x"}]}
    _, gateway = scripted([json.dumps(plan)])

    assert await gateway.chat_json(MESSAGES, DailyPlan) is None


@pytest.mark.asyncio
async def test_decision_values_are_coerced_not_rejected(scripted):
    reply = json.dumps(
        {
            "thought": "hmm",
            "action": " Dance ",
            "target": None,
            "utterance": "",
            "memories": [
                {"text": "a", "type": "feeling", "importance": 42},
                {"text": "b", "type": "action", "importance": "seven"},
                {"text": "c", "type": "observation", "importance": "6"},
                {"text": "d", "type": "observation", "importance": 2},
            ],
            "mood": "curious",
        }
    )
    _, gateway = scripted([reply])

    decision = await gateway.chat_json(MESSAGES, ActionDecision)

    assert decision.action == "dance"
    assert decision.target == ""
    assert [(m.text, m.type, m.importance) for m in decision.memories] == [
        ("a", "observation", 10),
        ("b", "action", 3),
        ("c", "observation", 6),
    ]


@pytest.mark.asyncio
async def test_text_request_returns_raw_text(scripted):
    backend, gateway = scripted(["7"])

    result = await gateway.complete(MESSAGES, temperature=0.0, max_tokens=16)

    assert result == Text(text="7")
    assert backend.calls[0]["json_mode"] is False
    assert backend.calls[0]["max_tokens"] == 16


@pytest.mark.asyncio
async def test_stalled_call_times_out_as_absent(scripted):
    async def stall(messages):
        await asyncio.sleep(5)
        return "too late"

    _, gateway = scripted([stall], timeout=0.05)

    result = await gateway.complete(MESSAGES, schema=ActionDecision)

    assert result == Absent(reason="timeout")
    assert not gateway.busy


@pytest.mark.asyncio
async def test_transport_errors_are_retried_then_absent(scripted):
    backend, gateway = scripted(
        [LocalLLMError("connection refused"), LocalLLMError("connection refused")],
        transport_attempts=2,
    )

    result = await gateway.complete(MESSAGES)

    assert isinstance(result, Absent)
    assert result.reason.startswith("transport")
    assert len(backend.calls) == 2


@pytest.mark.asyncio
async def test_transient_failure_recovers_on_retry(scripted):
    backend, gateway = scripted([ConnectionError("reset"), "hello"], transport_attempts=2)

    assert await gateway.chat(MESSAGES) == "hello"
    assert len(backend.calls) == 2


@pytest.mark.asyncio
async def test_chat_returns_empty_string_when_absent(scripted):
    async def stall(messages):
        await asyncio.sleep(5)
        return "late"

    _, gateway = scripted([stall], timeout=0.01)

    assert await gateway.chat(MESSAGES) == ""


@pytest.mark.asyncio
async def test_requests_are_single_flight_and_fifo():
    timeline: list[str] = []
    in_flight = 0
    max_in_flight = 0

    class SlowBackend:
        async def generate(self, messages, *, temperature, max_tokens, json_mode):
            nonlocal in_flight, max_in_flight
            label = messages[-1]["content"]
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            timeline.append(f"start {label}")
            # Earlier requests take longer; order must still be preserved.
            await asyncio.sleep({"a": 0.03, "b": 0.02, "c": 0.0}[label])
            timeline.append(f"end {label}")
            in_flight -= 1
            return label

    gateway = DecisionGateway(SlowBackend(), timeout=5)

    results = await asyncio.gather(
        *(gateway.chat([{"role": "user", "content": label}]) for label in "abc")
    )

    assert results == ["a", "b", "c"]
    assert max_in_flight == 1
    assert timeline == ["start a", "end a", "start b", "end b", "start c", "end c"]


@pytest.mark.asyncio
async def test_mirascope_backend_uses_llm_call(monkeypatch):
    captured: dict = {}

    def fake_decorator(*, provider, model, json_mode, call_params):
        captured.update(provider=provider, model=model, json_mode=json_mode, call_params=call_params)

        def wrapper(fn):
            async def inner():
                captured["messages"] = await fn()
                return SimpleNamespace(content='{"ok": true}')

            return inner

        return wrapper

    monkeypatch.setattr("miniville.gateway.llm.call", fake_decorator)

    backend = MirascopeBackend("openai", "gpt-4o-mini")
    text = await backend.generate(MESSAGES, temperature=0.35, max_tokens=512, json_mode=True)

    assert text == '{"ok": true}'
    assert captured["provider"] == "openai"
    assert captured["model"] == "gpt-4o-mini"
    assert captured["json_mode"] is True
    assert captured["call_params"] == {"temperature": 0.35, "max_tokens": 512}
    assert [(m.role, m.content) for m in captured["messages"]] == [
        ("system", "You are Klaus."),
        ("user", "What now?"),
    ]


@pytest.mark.asyncio
async def test_ollama_backend_forwards_to_local_llm(monkeypatch):
    captured: dict = {}

    async def fake_chat(**kwargs):
        captured.update(kwargs)
        return "ok"

    monkeypatch.setattr("miniville.gateway.call_ollama_chat", fake_chat)

    backend = OllamaBackend("llama3.1", base_url="http://localhost:11434", timeout=30)
    assert await backend.generate(MESSAGES, temperature=0.2, max_tokens=64, json_mode=True) == "ok"
    assert captured["llm_model"] == "llama3.1"
    assert captured["json_mode"] is True
    assert captured["timeout"] == 30


def test_build_gateway_selects_backend():
    assert isinstance(build_gateway("ollama", "llama3.1").backend, OllamaBackend)

    gateway = build_gateway("anthropic", "claude-3-5-haiku-latest", timeout=12)
    assert isinstance(gateway.backend, MirascopeBackend)
    assert gateway.timeout == 12


def test_extract_json_fallbacks():
    assert extract_json('{"a": 1}') == {"a": 1}
    assert extract_json('noise {"a": {"b": 2}} trailing') == {"a": {"b": 2}}
    assert extract_json("no json here") is None
    assert extract_json("{broken") is None
    assert extract_json("} backwards {") is None


class ProviderAPIError(Exception):
    """Stand-in for an SDK error type that is not a ConnectionError."""


@pytest.mark.asyncio
async def test_unexpected_backend_error_is_absent(scripted):
    backend, gateway = scripted([ProviderAPIError("upstream 529"), decision_json("stay")])

    result = await gateway.complete(MESSAGES, schema=ActionDecision)

    assert result == Absent(reason="backend: upstream 529")
    assert len(backend.calls) == 1
    assert not gateway.busy
    # The gateway keeps serving requests afterwards.
    assert isinstance(await gateway.complete(MESSAGES, schema=ActionDecision), Parsed)


@pytest.mark.asyncio
async def test_wrong_shape_ollama_body_is_absent(monkeypatch):
    def fake_urlopen(req, timeout):
        class Response(io.BytesIO):
            def __enter__(self):
                return self

            def __exit__(self, *exc):
                return False

        return Response(b'{"message": "hi"}')

    monkeypatch.setattr("miniville.local_llm.request.urlopen", fake_urlopen)
    gateway = DecisionGateway(OllamaBackend("llama3.1"), timeout=5, transport_attempts=1)

    result = await gateway.complete(MESSAGES)

    assert isinstance(result, Absent)
    assert result.reason.startswith("transport")


@pytest.mark.asyncio
async def test_timeout_keeps_gateway_single_flight(monkeypatch):
    guard = threading.Lock()
    in_flight = 0
    peak = 0

    def slow_request(payload, base_url, timeout):
        nonlocal in_flight, peak
        with guard:
            in_flight += 1
            peak = max(peak, in_flight)
        time.sleep(0.2)
        with guard:
            in_flight -= 1
        return "late"

    monkeypatch.setattr("miniville.local_llm._perform_ollama_request", slow_request)
    gateway = DecisionGateway(OllamaBackend("llama3.1"), timeout=0.05)

    results = await asyncio.gather(gateway.complete(MESSAGES), gateway.complete(MESSAGES))

    assert results == [Absent(reason="timeout"), Absent(reason="timeout")]
    assert peak == 1
    assert in_flight == 0
    assert not gateway.busy
