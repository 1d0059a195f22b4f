"""
Pipeline configuration, read from the environment.

Environment:
- VISION_PROVIDER: "claude" | "ollama" | "auto" (default: "auto")
- ANTHROPIC_API_KEY: required for the Claude provider
- CLAUDE_VISION_MODEL: Claude model (default: claude-sonnet-4-20250514)
- OLLAMA_HOST: Ollama server URL (default: http://localhost:11434)
- OLLAMA_MODEL: Ollama vision model (default: qwen2.5vl:7b)
- FIGMA_TOKEN: personal access token for the design-tool import path
- FIGMA_HTTP_TIMEOUT: seconds per design-tool request (default: 30)
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, field_validator

VISION_PROVIDERS = ("claude", "ollama", "auto")


class PipelineSettings(BaseModel):
    """Resolved settings for one pipeline instance."""

    vision_provider: str = "auto"
    anthropic_api_key: Optional[str] = None
    claude_model: str = "claude-sonnet-4-20250514"
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5vl:7b"
    figma_token: Optional[str] = None
    figma_timeout: float = 30.0

    @field_validator("vision_provider", mode="before")
    @classmethod
    def normalize_provider(cls, v):
        v = (v or "auto").strip().lower()
        if v not in VISION_PROVIDERS:
            raise ValueError(f"vision_provider must be one of {VISION_PROVIDERS}, got {v!r}")
        return v

    @field_validator("figma_timeout", mode="before")
    @classmethod
    def parse_timeout(cls, v):
        if v in (None, ""):
            return 30.0
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineSettings":
        env = os.environ if environ is None else environ
        return cls(
            vision_provider=env.get("VISION_PROVIDER", "auto"),
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            claude_model=env.get("CLAUDE_VISION_MODEL", "claude-sonnet-4-20250514"),
            ollama_host=env.get("OLLAMA_HOST", "http://localhost:11434"),
            ollama_model=env.get("OLLAMA_MODEL", "qwen2.5vl:7b"),
            figma_token=env.get("FIGMA_TOKEN") or None,
            figma_timeout=env.get("FIGMA_HTTP_TIMEOUT"),
        )
