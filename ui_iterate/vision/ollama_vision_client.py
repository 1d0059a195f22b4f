"""
Ollama Vision Client: local vision model via Ollama.

Setup:
    ollama serve
    ollama pull qwen2.5vl:7b

Free and local; slower and less cooperative than Claude, which is exactly
why every reply goes through payload recovery downstream.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from ui_iterate.vision.vision_types import VisionReply, split_image_payload

logger = logging.getLogger(__name__)

PROVIDER = "ollama"


class OllamaVisionClient:
    """Vision requests against Ollama's /api/generate endpoint."""

    def __init__(
        self,
        ollama_host: str = "http://localhost:11434",
        model: str = "qwen2.5vl:7b",
        timeout: float = 120.0,
    ):
        self.ollama_host = ollama_host.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.call_count = 0
        self.total_time_ms = 0.0
        self._available: Optional[bool] = None

    async def is_available(self) -> bool:
        """Check if Ollama is running and the model is pulled. Cached."""
        if self._available is not None:
            return self._available

        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self.ollama_host}/api/tags")
        except httpx.HTTPError as e:
            logger.info("Ollama not available: %s", e)
            self._available = False
            return False

        if response.status_code != 200:
            self._available = False
            return False

        try:
            models = response.json().get("models", [])
        except ValueError:
            models = []
        model_names = [m.get("name", "") for m in models]
        self._available = any(self.model in name for name in model_names)

        if not self._available:
            logger.info(
                "Ollama model '%s' not found (available: %s). Run: ollama pull %s",
                self.model, model_names, self.model,
            )
        return self._available

    async def complete(self, image: str, prompt: str, system: Optional[str] = None) -> VisionReply:
        """Send image + prompt; return the raw response text."""
        self.call_count += 1
        _, image_b64 = split_image_payload(image)

        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "images": [image_b64],
            "stream": False,
        }
        if system:
            payload["system"] = system

        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.ollama_host}/api/generate", json=payload)
        except httpx.HTTPError as e:
            logger.warning("Ollama request failed: %s", e)
            return VisionReply.failure(PROVIDER, str(e))
        finally:
            self.total_time_ms += (time.time() - start_time) * 1000

        if response.status_code != 200:
            logger.warning("Ollama error: %s - %s", response.status_code, response.text[:200])
            return VisionReply.failure(PROVIDER, response.text[:200], status_code=response.status_code)

        try:
            text = response.json().get("response", "")
        except ValueError:
            return VisionReply.failure(PROVIDER, "non-JSON envelope", status_code=200)

        if not text or not text.strip():
            return VisionReply.failure(PROVIDER, "empty response", status_code=200)
        return VisionReply(ok=True, text=text, provider=PROVIDER, status_code=200)

    def get_stats(self) -> Dict[str, Any]:
        """Get usage statistics."""
        return {
            "call_count": self.call_count,
            "total_time_ms": self.total_time_ms,
            "avg_time_ms": self.total_time_ms / max(self.call_count, 1),
            "model": self.model,
            "cost": 0.0,
        }
