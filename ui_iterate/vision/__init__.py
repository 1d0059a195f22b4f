"""
Vision model integration for screenshot decomposition and critique.

Provides a unified interface to route requests between providers:
- Claude (Anthropic API) - best quality, costs money
- Ollama (e.g. Qwen2.5-VL) - free, runs locally
- Auto mode - tries Ollama first, falls back to Claude

Usage:
    from ui_iterate.vision import VisionRouter

    router = VisionRouter(provider="auto")
    reply = await router.complete(image_b64, "List the UI components")
"""

from ui_iterate.vision.vision_types import VisionReply, VisionServiceError, split_image_payload
from ui_iterate.vision.ollama_vision_client import OllamaVisionClient
from ui_iterate.vision.vision_router import (
    VisionRouter,
    VisionStats,
    get_vision_router,
    reset_vision_router,
)

__all__ = [
    "VisionReply",
    "VisionServiceError",
    "split_image_payload",
    "OllamaVisionClient",
    "VisionRouter",
    "VisionStats",
    "get_vision_router",
    "reset_vision_router",
]
