"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from ui_iterate.config import PipelineSettings


class TestPipelineSettings:
    def test_defaults(self):
        settings = PipelineSettings.from_env({})
        assert settings.vision_provider == "auto"
        assert settings.anthropic_api_key is None
        assert settings.ollama_host == "http://localhost:11434"
        assert settings.figma_token is None
        assert settings.figma_timeout == 30.0

    def test_reads_environment(self):
        settings = PipelineSettings.from_env(
            {
                "VISION_PROVIDER": " Claude ",
                "ANTHROPIC_API_KEY": "sk-test",
                "CLAUDE_VISION_MODEL": "claude-test",
                "OLLAMA_MODEL": "llava:13b",
                "FIGMA_TOKEN": "figd_abc",
                "FIGMA_HTTP_TIMEOUT": "12.5",
            }
        )
        assert settings.vision_provider == "claude"
        assert settings.anthropic_api_key == "sk-test"
        assert settings.claude_model == "claude-test"
        assert settings.ollama_model == "llava:13b"
        assert settings.figma_token == "figd_abc"
        assert settings.figma_timeout == 12.5

    def test_empty_key_is_none(self):
        assert PipelineSettings.from_env({"ANTHROPIC_API_KEY": ""}).anthropic_api_key is None

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValidationError):
            PipelineSettings(vision_provider="openai")

    def test_process_environment(self, monkeypatch):
        monkeypatch.setenv("VISION_PROVIDER", "ollama")
        monkeypatch.delenv("FIGMA_HTTP_TIMEOUT", raising=False)
        assert PipelineSettings.from_env().vision_provider == "ollama"
