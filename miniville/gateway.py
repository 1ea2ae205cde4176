"""Decision-making gateway: the single serialized channel to the LLM.

Every cognition request (action decisions, daily plans, reflections,
importance ratings) goes through one ``DecisionGateway``. The gateway:

- admits exactly one request at a time, in submission (FIFO) order, using an
  ``asyncio.Lock``
- bounds every call with a timeout; an abandoned call still finishes before
  the next request is admitted
- extracts JSON from the reply and validates it against the requested schema
- returns a tagged ``GatewayResult`` instead of raising: any backend error,
  timeouts, unparseable JSON and schema violations all become ``Absent``

Transport-level retries (connection failures only) live here too; the
simulation core itself never retries.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Generic, Optional, Protocol, Sequence, TypeVar, Union

from mirascope import llm
from mirascope.core import BaseMessageParam
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from miniville.config import Config
from miniville.local_llm import LocalLLMError, call_ollama_chat
from miniville.logging_utils import debug_enabled, log_error


ModelT = TypeVar("ModelT", bound=BaseModel)
Message = dict[str, str]

DEFAULT_TRANSPORT_ATTEMPTS = 2
TRANSIENT_ERRORS = (LocalLLMError, ConnectionError)


# ============================================================================
# Result type
# ============================================================================


@dataclass(frozen=True, slots=True)
class Parsed(Generic[ModelT]):
    """A reply that validated against the requested schema."""

    value: ModelT


@dataclass(frozen=True, slots=True)
class Text:
    """A raw text reply (no schema requested)."""

    text: str


@dataclass(frozen=True, slots=True)
class Absent:
    """No usable reply: backend error, timeout, bad JSON or schema violation."""

    reason: str


GatewayResult = Union[Parsed, Text, Absent]


# ============================================================================
# Helpers
# ============================================================================


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    """Return a compact preview of the offending input value."""

    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def summarize_validation_error(error: ValidationError) -> list[str]:
    """Convert a pydantic ValidationError into readable ``path: message`` lines."""

    issues: list[str] = []
    for err in error.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        details = f"{loc}: {err.get('msg', 'validation error')}"
        if err.get("type"):
            details += f" [type={err['type']}]"
        if "input" in err:
            details += f" | received={_truncate_preview(err.get('input'))}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")
    return issues


def extract_json(text: str) -> Any | None:
    """Parse a JSON reply, falling back to the outermost ``{...}`` slice.

    Returns None when neither the whole text nor the slice is valid JSON.
    """

    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        pass

    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        try:
            return json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            return None
    return None


def format_transcript(messages: Sequence[Message]) -> str:
    """Render role-tagged messages as one human-readable transcript."""

    return "\n\n---\n\n".join(
        f"{m['role'].upper()}:\n{m['content']}" for m in messages
    )


# ============================================================================
# Backends
# ============================================================================


class ChatBackend(Protocol):
    """Anything that turns role-tagged messages into assistant text."""

    async def generate(
        self,
        messages: Sequence[Message],
        *,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str:
        ...


class MirascopeBackend:
    """Hosted providers (OpenAI, Anthropic, ...) through Mirascope's ``llm.call``."""

    def __init__(self, provider: str, model: str) -> None:
        self.provider = provider
        self.model = model

    async def generate(
        self,
        messages: Sequence[Message],
        *,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str:
        params = [BaseMessageParam(role=m["role"], content=m["content"]) for m in messages]

        @llm.call(
            provider=self.provider,
            model=self.model,
            json_mode=json_mode,
            call_params={"temperature": temperature, "max_tokens": max_tokens},
        )
        async def _invoke() -> list[BaseMessageParam]:
            return params

        response = await _invoke()
        return response.content


class OllamaBackend:
    """Local models served by Ollama."""

    def __init__(self, model: str, *, base_url: str | None = None, timeout: float = 120.0) -> None:
        self.model = model
        self.base_url = base_url
        self.timeout = timeout

    async def generate(
        self,
        messages: Sequence[Message],
        *,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str:
        return await call_ollama_chat(
            messages=messages,
            llm_model=self.model,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
            base_url=self.base_url,
            timeout=self.timeout,
        )


# ============================================================================
# Gateway
# ============================================================================


class DecisionGateway:
    """Single-flight, FIFO gateway in front of a chat backend.

    Args:
        backend: ChatBackend producing assistant text
        timeout: Seconds before a call is abandoned and treated as absent
        transport_attempts: Attempts for transient connection failures
    """

    def __init__(
        self,
        backend: ChatBackend,
        *,
        timeout: float | None = None,
        transport_attempts: int = DEFAULT_TRANSPORT_ATTEMPTS,
    ) -> None:
        self.backend = backend
        self.timeout = timeout if timeout is not None else Config.GATEWAY_TIMEOUT_SECONDS
        self.transport_attempts = max(1, transport_attempts)
        self._lock = asyncio.Lock()
        self.request_count = 0
        self.last_transcript = ""
        self.last_reply = ""

    @property
    def busy(self) -> bool:
        """True while a request is in flight."""
        return self._lock.locked()

    async def _send(
        self,
        messages: Sequence[Message],
        *,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> str:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self.transport_attempts),
            wait=wait_exponential(multiplier=0.5, max=4),
            reraise=True,
        ):
            with attempt:
                return await self.backend.generate(
                    messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_mode=json_mode,
                )
        raise RuntimeError("Gateway retry loop exited unexpectedly")

    async def complete(
        self,
        messages: Sequence[Message],
        *,
        temperature: float = 0.7,
        max_tokens: int = 256,
        schema: type[ModelT] | None = None,
    ) -> GatewayResult:
        """Submit one request and wait for its turn and its reply.

        Never raises for model-side problems; see ``Absent``.
        """

        async with self._lock:
            self.request_count += 1
            self.last_transcript = format_transcript(messages)
            label = schema.__name__ if schema is not None else "text"

            if debug_enabled("DEBUG_LLM"):
                print(f"\n{'='*80}")
                print(f"[GATEWAY] Request #{self.request_count} ({label})")
                print(f"{'='*80}")
                print(self.last_transcript)
                print(f"{'='*80}\n")

            call = asyncio.ensure_future(
                self._send(
                    messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_mode=schema is not None,
                )
            )
            done, _ = await asyncio.wait({call}, timeout=self.timeout)
            if not done:
                # The lock stays held until the abandoned call has really stopped.
                call.cancel()
                await asyncio.wait({call})
                if not call.cancelled():
                    call.exception()
                log_error(f"Gateway call timed out after {self.timeout:g}s ({label}).")
                return Absent(reason="timeout")

            try:
                raw = call.result()
            except TRANSIENT_ERRORS as exc:
                log_error(f"Gateway transport failed ({label}): {exc}")
                return Absent(reason=f"transport: {exc}")
            except Exception as exc:
                log_error(f"Gateway backend failed ({label}): {type(exc).__name__}: {exc}")
                return Absent(reason=f"backend: {exc}")

            self.last_reply = raw or ""

            if debug_enabled("DEBUG_LLM"):
                print(f"[GATEWAY REPLY]\n{'-'*80}\n{self.last_reply}\n{'='*80}\n")

        if schema is None:
            return Text(text=self.last_reply)

        payload = extract_json(self.last_reply)
        if payload is None:
            log_error(f"Gateway reply for {label} was not valid JSON.")
            return Absent(reason="unparseable")

        try:
            return Parsed(value=schema.model_validate(payload))
        except ValidationError as exc:
            log_error(f"Gateway reply failed {label} validation:")
            for issue in summarize_validation_error(exc):
                print(f"    - {issue}")
            return Absent(reason="invalid")

    async def chat_json(
        self,
        messages: Sequence[Message],
        schema: type[ModelT],
        *,
        temperature: float = 0.2,
        max_tokens: int = 384,
    ) -> Optional[ModelT]:
        """Structured request; returns the validated model or None."""

        result = await self.complete(
            messages, temperature=temperature, max_tokens=max_tokens, schema=schema
        )
        return result.value if isinstance(result, Parsed) else None

    async def chat(
        self,
        messages: Sequence[Message],
        *,
        temperature: float = 0.7,
        max_tokens: int = 256,
    ) -> str:
        """Free-text request; returns "" when the reply is absent."""

        result = await self.complete(messages, temperature=temperature, max_tokens=max_tokens)
        return result.text if isinstance(result, Text) else ""


def build_gateway(
    provider: str | None = None,
    model: str | None = None,
    *,
    timeout: float | None = None,
) -> DecisionGateway:
    """Create a gateway for the configured provider ("ollama" selects the local backend)."""

    provider = provider or Config.LLM_PROVIDER
    model = model or Config.LLM_MODEL
    timeout = timeout if timeout is not None else Config.GATEWAY_TIMEOUT_SECONDS

    backend: ChatBackend
    if provider.lower() == "ollama":
        backend = OllamaBackend(model, base_url=Config.OLLAMA_BASE_URL, timeout=timeout)
    else:
        backend = MirascopeBackend(provider, model)
    return DecisionGateway(backend, timeout=timeout)


__all__ = [
    "Absent",
    "ChatBackend",
    "DecisionGateway",
    "GatewayResult",
    "MirascopeBackend",
    "OllamaBackend",
    "Parsed",
    "Text",
    "build_gateway",
    "extract_json",
    "format_transcript",
    "summarize_validation_error",
]
