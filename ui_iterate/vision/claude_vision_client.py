"""
Claude Vision Client: Anthropic Claude for UI screenshot understanding.

Requires: pip install anthropic
Requires: ANTHROPIC_API_KEY environment variable

The SDK is synchronous; calls run in the default executor so the pipeline
stays single-threaded from the caller's point of view.
"""

import asyncio
import logging
import os
from typing import Optional

import anthropic

from ui_iterate.vision.vision_types import VisionReply, VisionServiceError, split_image_payload

logger = logging.getLogger(__name__)

PROVIDER = "claude"


class ClaudeVisionClient:
    """
    Claude-based vision client.

    Every failure mode (status error, rate limit, connection error, empty
    content) comes back as a non-ok VisionReply instead of an exception.
    """

    COST_PER_CALL = 0.01

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        api_key: Optional[str] = None,
        max_tokens: int = 4096,
    ):
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise VisionServiceError(
                "ANTHROPIC_API_KEY not set. Either:\n"
                "  1. Set ANTHROPIC_API_KEY environment variable, or\n"
                '  2. Use VisionRouter(provider="ollama") for a local model'
            )

        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.call_count = 0

    def _build_messages(self, image: str, prompt: str):
        media_type, data = split_image_payload(image)
        return [
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": media_type,
                            "data": data,
                        },
                    },
                    {"type": "text", "text": prompt},
                ],
            }
        ]

    def complete_sync(self, image: str, prompt: str, system: Optional[str] = None) -> VisionReply:
        """Blocking call: image + prompt in, raw text out."""
        self.call_count += 1
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": self._build_messages(image, prompt),
        }
        if system:
            kwargs["system"] = system

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.RateLimitError as e:
            logger.warning("Claude rate limited: %s", e)
            return VisionReply.failure(PROVIDER, "rate limited", status_code=429)
        except anthropic.APIStatusError as e:
            logger.warning("Claude returned status %s: %s", e.status_code, e)
            return VisionReply.failure(PROVIDER, str(e), status_code=e.status_code)
        except anthropic.APIError as e:
            # Connection errors and timeouts
            logger.warning("Claude request failed: %s", e)
            return VisionReply.failure(PROVIDER, str(e))

        text = "".join(
            getattr(block, "text", "") for block in (response.content or [])
        )
        if not text.strip():
            return VisionReply.failure(PROVIDER, "empty response", status_code=200)
        return VisionReply(ok=True, text=text, provider=PROVIDER, status_code=200)

    async def complete(self, image: str, prompt: str, system: Optional[str] = None) -> VisionReply:
        """Async wrapper around complete_sync."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: self.complete_sync(image, prompt, system)
        )

    def get_call_count(self) -> int:
        return self.call_count
