from __future__ import annotations

from typing import Any, Iterable

import pytest

from miniville.gateway import DecisionGateway
from tests.helpers import START, ScriptedBackend


@pytest.fixture(autouse=True)
def _plain_output(monkeypatch):
    monkeypatch.setenv("MINIVILLE_NO_COLOR", "1")
    monkeypatch.delenv("DEBUG_LLM", raising=False)
    monkeypatch.delenv("MINIVILLE_VERBOSE", raising=False)


@pytest.fixture
def start_time():
    return START


@pytest.fixture
def scripted():
    """Factory: ``scripted(replies, default)`` -> (backend, gateway)."""

    def _build(replies: Iterable[Any] = (), default: Any = "", **gateway_kwargs):
        gateway_kwargs.setdefault("timeout", 5.0)
        backend = ScriptedBackend(replies, default)
        return backend, DecisionGateway(backend, **gateway_kwargs)

    return _build
