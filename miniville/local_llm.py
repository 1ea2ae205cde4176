"""Thin client for a locally hosted Ollama model.

Only the ``/api/chat`` endpoint is used. The HTTP round trip is blocking, so
``call_ollama_chat`` pushes it onto a worker thread. A cancelled call returns
only after that thread has finished.
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Sequence
from urllib import error, request

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
_CHAT_ENDPOINT = "/api/chat"


class LocalLLMError(RuntimeError):
    """Raised when the Ollama server cannot be reached or replies with garbage."""


def build_chat_payload(
    messages: Sequence[dict[str, str]],
    *,
    model: str,
    temperature: float,
    max_tokens: int,
    json_mode: bool,
) -> dict[str, Any]:
    """Assemble a non-streaming chat request; blank messages are dropped."""

    cleaned = [
        {"role": m["role"], "content": m["content"].strip()}
        for m in messages
        if m.get("content", "").strip()
    ]
    if not cleaned:
        raise LocalLLMError("Cannot call Ollama without any message content.")

    payload: dict[str, Any] = {
        "model": model,
        "messages": cleaned,
        "stream": False,
        "options": {"temperature": temperature, "num_predict": max_tokens},
    }
    if json_mode:
        payload["format"] = "json"
    return payload


def parse_chat_response(raw: str) -> str:
    """Pull the assistant text out of an ``/api/chat`` response body."""

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError("Ollama returned non-JSON response.") from exc

    if not isinstance(parsed, dict):
        raise LocalLLMError("Ollama response was not a JSON object.")
    if parsed.get("error"):
        raise LocalLLMError(f"Ollama reported an error: {parsed['error']}")

    message = parsed.get("message")
    if not isinstance(message, dict):
        raise LocalLLMError("Ollama response did not include an assistant message.")

    content = message.get("content")
    if not isinstance(content, str):
        raise LocalLLMError("Ollama response did not include assistant content.")
    return content


def _perform_ollama_request(payload: dict[str, Any], base_url: str, timeout: float) -> str:
    url = f"{base_url}{_CHAT_ENDPOINT}"
    req = request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        raise LocalLLMError(
            f"Ollama chat request failed with status {exc.code}: {body or exc.reason}"
        ) from exc
    except error.URLError as exc:
        raise LocalLLMError(f"Could not reach Ollama at {url}: {exc.reason}") from exc

    return parse_chat_response(raw)


async def call_ollama_chat(
    *,
    messages: Sequence[dict[str, str]],
    llm_model: str,
    temperature: float = 0.7,
    max_tokens: int = 256,
    json_mode: bool = False,
    base_url: str | None = None,
    timeout: float = 120.0,
) -> str:
    """Send role-tagged messages to Ollama and return the assistant text.

    ``base_url`` falls back to ``OLLAMA_BASE_URL`` and then to the local default.
    """

    payload = build_chat_payload(
        messages,
        model=llm_model,
        temperature=temperature,
        max_tokens=max_tokens,
        json_mode=json_mode,
    )
    resolved_base = (base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL).rstrip("/")
    worker = asyncio.ensure_future(
        asyncio.to_thread(_perform_ollama_request, payload, resolved_base, timeout)
    )
    try:
        return await asyncio.shield(worker)
    except asyncio.CancelledError:
        # urlopen cannot be interrupted; cancellation waits for the thread,
        # which ``timeout`` bounds.
        await asyncio.wait({worker})
        if not worker.cancelled():
            worker.exception()
        raise


__all__ = [
    "DEFAULT_OLLAMA_BASE_URL",
    "LocalLLMError",
    "build_chat_payload",
    "call_ollama_chat",
    "parse_chat_response",
]
