"""Tests for colour-blind-safe logging tags."""

import contextlib
import io

import pytest

from tests.helpers import START, ScriptedBackend, decision_json, make_profile
from miniville.agent import Agent
from miniville.gateway import DecisionGateway
from miniville.orchestrator import Orchestrator
from miniville.scenario import SMALLVILLE_PLACES
from miniville.world import World
from miniville.logging_utils import (
    Color,
    colored,
    debug_enabled,
    log_deterministic,
    log_error,
    log_info,
    log_llm,
    log_success,
)


@pytest.mark.parametrize(
    "log, tag",
    [
        (log_deterministic, "[•]"),
        (log_llm, "[AI]"),
        (log_error, "[!]"),
        (log_success, "[✓]"),
        (log_info, "[i]"),
    ],
)
def test_each_helper_prefixes_its_tag(capsys, log, tag):
    log("hello")

    assert capsys.readouterr().out.strip() == f"{tag} hello"


def test_colour_can_be_disabled(monkeypatch):
    monkeypatch.setenv("MINIVILLE_NO_COLOR", "1")
    assert colored("plain", Color.RED) == "plain"

    monkeypatch.delenv("MINIVILLE_NO_COLOR")
    assert colored("red", Color.RED).startswith("\033[")


@pytest.mark.parametrize("value, expected", [("true", True), ("1", True), ("yes", True), ("false", False), ("", False)])
def test_debug_enabled(monkeypatch, value, expected):
    monkeypatch.setenv("DEBUG_LLM", value)
    assert debug_enabled("DEBUG_LLM") is expected


@pytest.mark.asyncio
async def test_tick_output_tags_each_stage():
    backend = ScriptedBackend(default=decision_json("stay"))
    orchestrator = Orchestrator(
        World(SMALLVILLE_PLACES),
        [Agent(make_profile("klaus", "Klaus Mueller"))],
        DecisionGateway(backend, timeout=5),
        start_time=START,
        tick_delay=0,
    )

    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        await orchestrator.tick()
    out = buf.getvalue()

    assert "=== Tick 1 (2023-02-13 08:10) ===" in out
    assert "[•] [Klaus Mueller] At Hobbs Cafe with 0 other(s)" in out
    assert "[AI] [Klaus Mueller] Choosing action via gateway..." in out
    assert "[✓] [Klaus Mueller] staying" in out


def test_bold_prefix(monkeypatch):
    monkeypatch.delenv("MINIVILLE_NO_COLOR")

    assert colored("hi", Color.GREEN, bold=True) == "\033[1m\033[92mhi\033[0m"
