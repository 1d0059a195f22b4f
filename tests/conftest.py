"""Shared fixtures for tests."""

import json
from unittest.mock import AsyncMock

import pytest

from ui_iterate.schema import BoundingBox, ComponentAttributes, DetectedComponent
from ui_iterate.vision.vision_router import reset_vision_router
from ui_iterate.vision.vision_types import VisionReply

# 1x1 transparent PNG
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06"
    b"\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01"
    b"\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)


def ok_reply(text: str, provider: str = "claude") -> VisionReply:
    return VisionReply(ok=True, text=text, provider=provider, status_code=200)


def failed_reply(error: str = "boom", status_code=None) -> VisionReply:
    return VisionReply.failure("claude", error, status_code=status_code)


@pytest.fixture(autouse=True)
def _reset_router():
    reset_vision_router()
    yield
    reset_vision_router()


@pytest.fixture
def vision():
    """Vision service double; set .complete.side_effect per test."""
    service = AsyncMock()
    service.complete = AsyncMock()
    return service


@pytest.fixture
def five_components():
    """A realistic extraction result: header, two buttons, input, card."""
    specs = [
        ("header", (0, 0, 100, 10), {"backgroundColor": "#fafafa", "text": "Acme"}),
        ("button", (10, 30, 20, 8), {"backgroundColor": "#0000ff", "text": "Sign up"}),
        ("button", (40, 30, 20, 8), {"text": "Log in"}),
        ("text_input", (10, 50, 50, 8), {"text": "Email"}),
        ("card", (10, 70, 80, 20), {}),
    ]
    return [
        DetectedComponent(
            id=f"component-{i}",
            type=kind,
            boundingBox=BoundingBox(x=x, y=y, width=w, height=h),
            attributes=ComponentAttributes.from_raw(attrs),
        )
        for i, (kind, (x, y, w, h), attrs) in enumerate(specs)
    ]


@pytest.fixture
def detection_json():
    """A well-behaved detection reply, fenced the way models usually send it."""
    payload = {
        "components": [
            {
                "type": "button",
                "confidence": 0.97,
                "boundingBox": {"x": 10, "y": 20, "width": 30, "height": 8},
                "attributes": {"backgroundColor": "#4285f4", "text": "Go"},
            },
            {
                "type": "input",
                "boundingBox": {"x": 10, "y": 40, "width": 60, "height": 8},
                "attributes": {"text": "Search"},
            },
        ]
    }
    return "Here is the analysis:\n```json\n" + json.dumps(payload, indent=2) + "\n```"


@pytest.fixture
def analysis_json():
    payload = {
        "improvements": [
            {
                "componentId": "component-0",
                "improvements": {"backgroundColor": "#1a73e8", "borderRadius": 8},
                "reasoning": "Stronger primary action",
            },
            {
                "componentId": "component-1",
                "improvements": {"padding": "12px 16px"},
                "reasoning": "More breathing room",
            },
        ],
        "designSystem": {
            "colors": {
                "primary": "#1a73e8",
                "secondary": "#34a853",
                "background": "#ffffff",
                "text": "#202124",
            }
        },
    }
    return json.dumps(payload)
