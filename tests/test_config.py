"""Tests for Config validation."""

import pytest

from miniville.config import Config


def test_defaults_are_sane():
    assert Config.TICK_MINUTES > 0
    assert Config.GATEWAY_TIMEOUT_SECONDS > 0
    assert "Miniville Configuration" in Config.display()


def test_validate_rejects_unknown_cognition_mode(monkeypatch):
    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "COGNITION_MODE", "slow")

    with pytest.raises(ValueError, match="COGNITION_MODE"):
        Config.validate()


def test_validate_requires_api_key_for_hosted_provider(monkeypatch):
    monkeypatch.setattr(Config, "COGNITION_MODE", "fast")
    monkeypatch.setattr(Config, "LLM_PROVIDER", "openai")
    monkeypatch.setattr(Config, "OPENAI_API_KEY", None)

    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        Config.validate()


def test_validate_accepts_local_provider(monkeypatch):
    monkeypatch.setattr(Config, "COGNITION_MODE", "paper")
    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")

    Config.validate()


def test_validate_rejects_non_positive_timeout(monkeypatch):
    monkeypatch.setattr(Config, "COGNITION_MODE", "fast")
    monkeypatch.setattr(Config, "LLM_PROVIDER", "ollama")
    monkeypatch.setattr(Config, "GATEWAY_TIMEOUT_SECONDS", 0)

    with pytest.raises(ValueError, match="GATEWAY_TIMEOUT_SECONDS"):
        Config.validate()
