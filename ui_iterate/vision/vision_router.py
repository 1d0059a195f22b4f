"""
Vision Router: one entry point for all vision providers.

Routes requests based on provider setting:
- "claude": Always use Claude (costs money, best quality)
- "ollama": Always use the local Ollama model (free)
- "auto": Try Ollama first when it is up, fall back to Claude

Usage:
    from ui_iterate.vision import VisionRouter

    router = VisionRouter(provider="auto")
    reply = await router.complete(image_b64, prompt)
    if reply.ok:
        ...
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ui_iterate.config import PipelineSettings
from ui_iterate.vision.ollama_vision_client import OllamaVisionClient
from ui_iterate.vision.vision_types import VisionReply, VisionServiceError

logger = logging.getLogger(__name__)


@dataclass
class VisionStats:
    """Track vision usage across providers."""

    claude_calls: int = 0
    ollama_calls: int = 0
    claude_cost_usd: float = 0.0
    errors: int = 0


class VisionRouter:
    """
    Routes vision requests to Claude or Ollama based on configuration.

    Never raises for provider trouble: a missing key, a down server or a
    failed request all end up as a non-ok VisionReply.
    """

    CLAUDE_COST_PER_CALL = 0.01

    def __init__(
        self,
        provider: str = "auto",
        claude_model: str = "claude-sonnet-4-20250514",
        ollama_host: str = "http://localhost:11434",
        ollama_model: str = "qwen2.5vl:7b",
        anthropic_api_key: Optional[str] = None,
    ):
        self.provider = provider.lower()
        self.stats = VisionStats()

        self._claude_client = None
        self._claude_unavailable = False
        self._ollama_client: Optional[OllamaVisionClient] = None

        self._claude_model = claude_model
        self._anthropic_api_key = anthropic_api_key
        self._ollama_host = ollama_host
        self._ollama_model = ollama_model

        provider_info = {
            "claude": "Claude (API, best quality)",
            "ollama": "Ollama (local, free)",
            "auto": "Auto (Ollama -> Claude fallback)",
        }.get(self.provider, self.provider)
        logger.info("Vision router: %s", provider_info)

    @property
    def claude(self):
        """Get or create the Claude client (None if unavailable)."""
        if self._claude_client is None and not self._claude_unavailable:
            from ui_iterate.vision.claude_vision_client import ClaudeVisionClient

            try:
                self._claude_client = ClaudeVisionClient(
                    model=self._claude_model, api_key=self._anthropic_api_key
                )
            except VisionServiceError as e:
                logger.warning("Claude vision not available: %s", e)
                self._claude_unavailable = True
        return self._claude_client

    @property
    def ollama(self) -> OllamaVisionClient:
        """Get or create the Ollama client."""
        if self._ollama_client is None:
            self._ollama_client = OllamaVisionClient(
                ollama_host=self._ollama_host,
                model=self._ollama_model,
            )
        return self._ollama_client

    async def _complete_with_claude(self, image: str, prompt: str, system: Optional[str]) -> VisionReply:
        client = self.claude
        if client is None:
            return VisionReply.failure("claude", "Claude not available")
        self.stats.claude_calls += 1
        self.stats.claude_cost_usd += self.CLAUDE_COST_PER_CALL
        reply = await client.complete(image, prompt, system)
        if not reply.ok:
            self.stats.errors += 1
        return reply

    async def _complete_with_ollama(self, image: str, prompt: str, system: Optional[str]) -> VisionReply:
        self.stats.ollama_calls += 1
        reply = await self.ollama.complete(image, prompt, system)
        if not reply.ok:
            self.stats.errors += 1
        return reply

    async def complete(self, image: str, prompt: str, system: Optional[str] = None) -> VisionReply:
        """Send one image + prompt to the configured provider(s)."""
        if self.provider == "claude":
            return await self._complete_with_claude(image, prompt, system)

        elif self.provider == "ollama":
            return await self._complete_with_ollama(image, prompt, system)

        else:  # auto - prefer Ollama (free)
            if await self.ollama.is_available():
                reply = await self._complete_with_ollama(image, prompt, system)
                if reply.ok:
                    return reply
                logger.info("Ollama failed (%s), falling back to Claude", reply.error)

            reply = await self._complete_with_claude(image, prompt, system)
            if not reply.ok and self.claude is None:
                return VisionReply.failure("auto", "No vision provider available")
            return reply

    def get_stats(self) -> Dict[str, Any]:
        """Get usage statistics."""
        return {
            "provider": self.provider,
            "claude_calls": self.stats.claude_calls,
            "ollama_calls": self.stats.ollama_calls,
            "total_calls": self.stats.claude_calls + self.stats.ollama_calls,
            "claude_cost_usd": round(self.stats.claude_cost_usd, 4),
            "errors": self.stats.errors,
        }

    def get_call_count(self) -> int:
        """Total call count across all providers."""
        return self.stats.claude_calls + self.stats.ollama_calls


# Singleton
_vision_router: Optional[VisionRouter] = None


def get_vision_router(
    provider: Optional[str] = None,
    settings: Optional[PipelineSettings] = None,
) -> VisionRouter:
    """
    Get the shared vision router (singleton).

    Settings come from the environment unless given (see ui_iterate.config).
    """
    global _vision_router

    if _vision_router is None:
        settings = settings or PipelineSettings.from_env()
        _vision_router = VisionRouter(
            provider=provider or settings.vision_provider,
            claude_model=settings.claude_model,
            ollama_host=settings.ollama_host,
            ollama_model=settings.ollama_model,
            anthropic_api_key=settings.anthropic_api_key,
        )

    return _vision_router


def reset_vision_router():
    """Reset singleton (for testing)."""
    global _vision_router
    _vision_router = None
