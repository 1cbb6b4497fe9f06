from __future__ import annotations

from pathlib import Path

import pytest

from reflect_engine.config import DEFAULT_PORT, EngineConfig
from reflect_engine.utils import load_dotenv


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("PORT", "REFLECT_PROVIDER", "REFLECT_GENERATION_FAILURE", "REFLECT_ITERATION_DELAY"):
        monkeypatch.delenv(key, raising=False)
    config = EngineConfig.from_env()
    assert config.port == DEFAULT_PORT
    assert config.provider == "ollama"
    assert config.generation_failure == "halt"
    assert config.iteration_delay_s == 5.0
    assert config.context_size == 5


def test_from_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("REFLECT_PROVIDER", "DryRun")
    monkeypatch.setenv("REFLECT_GENERATION_FAILURE", "continue")
    monkeypatch.setenv("REFLECT_ITERATION_DELAY", "0.5")
    monkeypatch.setenv("REFLECT_CONTEXT_SIZE", "not-a-number")
    config = EngineConfig.from_env()
    assert config.port == 8080
    assert config.provider == "dryrun"
    assert config.generation_failure == "continue"
    assert config.iteration_delay_s == 0.5
    assert config.context_size == 5


def test_unknown_failure_policy_falls_back_to_halt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REFLECT_GENERATION_FAILURE", "retry")
    assert EngineConfig.from_env().generation_failure == "halt"


def test_load_dotenv_does_not_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text('# comment\nexport OLLAMA_URL="http://gpu:11434/api/generate"\nPORT=4000\n', encoding="utf-8")
    monkeypatch.setenv("OLLAMA_URL", "placeholder")
    monkeypatch.delenv("OLLAMA_URL")
    monkeypatch.setenv("PORT", "5000")

    assert load_dotenv(env_path) is True
    config = EngineConfig.from_env()
    assert config.ollama_url == "http://gpu:11434/api/generate"
    assert config.port == 5000
    assert load_dotenv(tmp_path / "missing.env") is False
