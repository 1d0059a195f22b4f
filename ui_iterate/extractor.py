"""
Component Extractor: screenshot in, DetectedComponent list out.

Strategy ladder (each rung only runs when the previous one yields nothing):
1. MODEL: strict JSON request, payload recovery, clamping
2. ALTERNATE: looser request (compass position + small/medium/large size)
3. KEYWORD_SCAN: count component nouns in the alternate reply's prose
4. CANONICAL: fixed 5-component set, so a result is always available
"""

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Mapping

from ui_iterate.payload_recovery import recover_payload
from ui_iterate.schema import (
    BoundingBox,
    ComponentAttributes,
    DetectedComponent,
    StageOutcome,
    StageStatus,
)
from ui_iterate.vision.vision_types import VisionReply

logger = logging.getLogger(__name__)


class ExtractionStrategy(Enum):
    """How the component list was obtained."""

    MODEL = "model"
    ALTERNATE = "alternate"
    KEYWORD_SCAN = "keyword_scan"
    CANONICAL = "canonical"


# ==============================================================================
# PROMPTS
# ==============================================================================

DETECTION_SYSTEM = (
    "You are a UI component detection expert. Analyze the image and extract UI "
    "components with precise details. You ONLY respond with valid JSON."
)

DETECTION_PROMPT = """Analyze this UI design image and identify all UI components.

1. Identify all visible UI components (buttons, text fields, cards, headers, etc.)
2. For each component, determine its:
   - Type (button, input, card, etc.)
   - Position and size (as percentages of the image, not pixels)
   - Visual properties (colors, text, etc.)

IMPORTANT: Your response MUST be ONLY valid JSON with this structure:
{
  "components": [
    {
      "type": "button",
      "confidence": 0.95,
      "boundingBox": {"x": 10.5, "y": 25.3, "width": 20.8, "height": 5.2},
      "attributes": {
        "backgroundColor": "#4285f4",
        "textColor": "#ffffff",
        "borderRadius": 8,
        "fontSize": 16,
        "padding": "8px 16px",
        "text": "Submit",
        "state": "default"
      }
    }
  ]
}

DO NOT include any explanations, notes, or text outside the JSON."""

ALTERNATE_SYSTEM = (
    "You are a UI component detection expert. Describe the UI components you see in the image."
)

ALTERNATE_PROMPT = """Describe the UI components in this image. For each component, provide:
1. Component type (button, input field, card, etc.)
2. Approximate position (top-left, center, bottom-right, etc.)
3. Size (small, medium, large)
4. Colors (background and text)
5. Any text content

Format your response as JSON:
{
  "components": [
    {
      "type": "button",
      "position": "top-right",
      "size": "medium",
      "backgroundColor": "#4285f4",
      "textColor": "#ffffff",
      "text": "Submit"
    }
  ]
}"""

# Best-effort refusal signal; wording varies between model versions.
REFUSAL_PHRASES = (
    "unable to analyze images",
    "can't analyze",
    "cannot analyze",
    "i'm unable to",
    "i cannot perform",
)


# ==============================================================================
# LOOKUP TABLES
# ==============================================================================

POSITION_TABLE = {
    "top-left": (10, 10),
    "top-center": (50, 10),
    "top-right": (80, 10),
    "center-left": (10, 50),
    "center": (50, 50),
    "center-right": (80, 50),
    "bottom-left": (10, 80),
    "bottom-center": (50, 80),
    "bottom-right": (80, 80),
    "center-top": (50, 30),
    "center-bottom": (50, 70),
}

SIZE_TABLE = {
    "small": (15, 8),
    "medium": (30, 15),
    "large": (60, 30),
}

MODEL_CONFIDENCE = 0.9
ALTERNATE_CONFIDENCE = 0.8

MODEL_ATTRIBUTE_DEFAULTS = {
    "backgroundColor": "#ffffff",
    "textColor": "#333333",
    "borderRadius": 0,
    "fontSize": 14,
    "padding": "8px",
    "text": "",
    "state": "default",
}

ALTERNATE_ATTRIBUTE_DEFAULTS = {
    "backgroundColor": "#ffffff",
    "textColor": "#333333",
    "borderRadius": 4,
    "fontSize": 14,
    "padding": "8px",
    "text": "",
    "state": "default",
}

# (pattern, templates): one template per synthetic instance, so len(templates) is the cap
KEYWORD_RULES = [
    (
        re.compile(r"button", re.IGNORECASE),
        [
            {"type": "button", "position": "top-right", "size": "medium",
             "backgroundColor": "#4285f4", "textColor": "#ffffff", "text": "Button"},
            {"type": "button", "position": "center", "size": "medium",
             "backgroundColor": "#4285f4", "textColor": "#ffffff", "text": "Button"},
            {"type": "button", "position": "bottom-left", "size": "medium",
             "backgroundColor": "#4285f4", "textColor": "#ffffff", "text": "Button"},
        ],
    ),
    (
        re.compile(r"input|field|textfield", re.IGNORECASE),
        [
            {"type": "input", "position": "top-center", "size": "large",
             "backgroundColor": "#ffffff", "textColor": "#333333", "text": "Input field"},
            {"type": "input", "position": "center-left", "size": "large",
             "backgroundColor": "#ffffff", "textColor": "#333333", "text": "Input field"},
        ],
    ),
    (
        re.compile(r"card|container|box", re.IGNORECASE),
        [
            {"type": "card", "position": "center", "size": "large",
             "backgroundColor": "#ffffff", "textColor": "#333333", "text": "Card content"},
            {"type": "card", "position": "bottom-center", "size": "large",
             "backgroundColor": "#ffffff", "textColor": "#333333", "text": "Card content"},
        ],
    ),
    (
        re.compile(r"header|heading|title", re.IGNORECASE),
        [
            {"type": "header", "position": "top-center", "size": "large",
             "backgroundColor": "#f8f9fa", "textColor": "#212529", "text": "Header"},
        ],
    ),
    (
        re.compile(r"nav|navigation|menu", re.IGNORECASE),
        [
            {"type": "navigation", "position": "top-left", "size": "medium",
             "backgroundColor": "#f8f9fa", "textColor": "#212529", "text": "Navigation"},
        ],
    ),
]

KEYWORD_MIN_COMPONENTS = 5
PAD_TYPES = ["button", "input", "card", "text", "image"]
PAD_POSITIONS = ["bottom-right", "center-right", "center-bottom", "bottom-center", "center-top"]

CANONICAL_COMPONENTS = [
    {
        "type": "header",
        "boundingBox": {"x": 0, "y": 0, "width": 100, "height": 10},
        "attributes": {"backgroundColor": "#f8f9fa", "textColor": "#212529",
                       "borderRadius": 0, "fontSize": 24, "padding": "16px", "text": "Header"},
    },
    {
        "type": "primary_button",
        "boundingBox": {"x": 10, "y": 30, "width": 20, "height": 8},
        "attributes": {"backgroundColor": "#0d6efd", "textColor": "#fff",
                       "borderRadius": 4, "fontSize": 16, "padding": "10px 16px",
                       "text": "Primary Button"},
    },
    {
        "type": "secondary_button",
        "boundingBox": {"x": 40, "y": 30, "width": 20, "height": 8},
        "attributes": {"backgroundColor": "#6c757d", "textColor": "#fff",
                       "borderRadius": 4, "fontSize": 16, "padding": "10px 16px",
                       "text": "Secondary Button"},
    },
    {
        "type": "text_input",
        "boundingBox": {"x": 10, "y": 50, "width": 50, "height": 8},
        "attributes": {"backgroundColor": "#fff", "textColor": "#212529",
                       "borderRadius": 4, "fontSize": 16, "padding": "8px 12px",
                       "text": "Input field"},
    },
    {
        "type": "card",
        "boundingBox": {"x": 10, "y": 70, "width": 80, "height": 20},
        "attributes": {"backgroundColor": "#fff", "textColor": "#212529",
                       "borderRadius": 8, "fontSize": 16, "padding": "16px",
                       "text": "Card content"},
    },
]
CANONICAL_CONFIDENCE = 0.95


# ==============================================================================
# HELPERS
# ==============================================================================


def is_refusal(text: str) -> bool:
    """True if the reply reads like the model declining to analyze the image."""
    lowered = text.lower()
    return any(phrase in lowered for phrase in REFUSAL_PHRASES)


def _with_defaults(raw: Any, defaults: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(raw) if isinstance(raw, Mapping) else {}
    for key, value in defaults.items():
        if merged.get(key) in (None, ""):
            merged[key] = value
    return merged


def position_to_offset(position: Any) -> tuple:
    """Compass descriptor -> (x, y) percentages; unknown maps to center."""
    if not isinstance(position, str):
        return POSITION_TABLE["center"]
    key = position.strip().lower().replace(" ", "-").replace("_", "-")
    return POSITION_TABLE.get(key, POSITION_TABLE["center"])


def size_to_extent(size: Any) -> tuple:
    """small/medium/large -> (width, height) percentages; unknown maps to medium."""
    if not isinstance(size, str):
        return SIZE_TABLE["medium"]
    return SIZE_TABLE.get(size.strip().lower(), SIZE_TABLE["medium"])


def component_from_model_item(item: Mapping[str, Any], index: int) -> DetectedComponent:
    """Strict-path item -> clamped DetectedComponent."""
    raw_attributes = item.get("attributes")
    attributes = _with_defaults(raw_attributes, MODEL_ATTRIBUTE_DEFAULTS)
    if not attributes["text"] and isinstance(item.get("text"), str):
        attributes["text"] = item["text"]
    return DetectedComponent(
        id=f"component-{index}",
        type=item.get("type"),
        confidence=item.get("confidence", MODEL_CONFIDENCE),
        boundingBox=BoundingBox.from_raw(item.get("boundingBox")),
        attributes=ComponentAttributes.from_raw(attributes),
    )


def component_from_description(item: Mapping[str, Any], index: int) -> DetectedComponent:
    """Alternate-path item (position/size descriptors) -> DetectedComponent."""
    x, y = position_to_offset(item.get("position", "center"))
    width, height = size_to_extent(item.get("size", "medium"))
    attributes = _with_defaults(
        {k: item.get(k) for k in ("backgroundColor", "textColor", "text")},
        ALTERNATE_ATTRIBUTE_DEFAULTS,
    )
    return DetectedComponent(
        id=f"component-{index}",
        type=item.get("type"),
        confidence=ALTERNATE_CONFIDENCE,
        boundingBox=BoundingBox(x=x, y=y, width=width, height=height),
        attributes=ComponentAttributes.from_raw(attributes),
    )


def scan_keywords(text: str) -> List[Dict[str, Any]]:
    """Synthesize descriptor items from component nouns found in prose."""
    items: List[Dict[str, Any]] = []
    for pattern, templates in KEYWORD_RULES:
        count = len(pattern.findall(text))
        items.extend(dict(t) for t in templates[: min(count, len(templates))])

    missing = KEYWORD_MIN_COMPONENTS - len(items)
    for i in range(max(missing, 0)):
        kind = PAD_TYPES[i % len(PAD_TYPES)]
        items.append(
            {
                "type": kind,
                "position": PAD_POSITIONS[i % len(PAD_POSITIONS)],
                "size": "medium",
                "backgroundColor": "#ffffff",
                "textColor": "#333333",
                "text": f"{kind} content",
            }
        )
    return items


def canonical_components() -> List[DetectedComponent]:
    """The fixed terminal fallback set."""
    return [
        DetectedComponent(
            id=f"component-{index}",
            type=entry["type"],
            confidence=CANONICAL_CONFIDENCE,
            boundingBox=BoundingBox(**entry["boundingBox"]),
            attributes=ComponentAttributes.from_raw(entry["attributes"]),
        )
        for index, entry in enumerate(CANONICAL_COMPONENTS)
    ]


# ==============================================================================
# EXTRACTOR
# ==============================================================================


class ComponentExtractor:
    """
    Decompose a screenshot into typed UI components.

    extract() never raises for model trouble; the returned StageOutcome says
    which rung of the ladder produced the list.
    """

    def __init__(self, vision):
        # Anything with `async complete(image, prompt, system) -> VisionReply`
        self.vision = vision

    async def _ask(self, image: str, prompt: str, system: str) -> VisionReply:
        try:
            reply = await self.vision.complete(image, prompt, system)
        except Exception as e:
            logger.warning("Vision call raised %s: %s", type(e).__name__, e)
            return VisionReply.failure("unknown", str(e))
        if reply.ok:
            logger.debug("Vision reply (%s): %s", reply.provider, reply.text[:200])
        return reply

    async def extract(self, image: str) -> StageOutcome[List[DetectedComponent]]:
        notes: List[str] = []
        logger.info("Extracting components (model strategy)")

        reply = await self._ask(image, DETECTION_PROMPT, DETECTION_SYSTEM)
        if not reply.ok:
            notes.append(f"detection request failed: {reply.error}")
            logger.warning("Detection request failed (%s), trying alternate strategy", reply.error)
        else:
            # Parse before the refusal check: component text may quote error messages
            recovery = recover_payload(reply.text, array_key="components", item_key="type")
            components = [
                component_from_model_item(item, index)
                for index, item in enumerate(i for i in recovery.items if isinstance(i, Mapping))
            ]
            if components:
                logger.info(
                    "Detected %d components (recovery: %s)", len(components), recovery.strategy
                )
                return StageOutcome(
                    components, StageStatus.OK, ExtractionStrategy.MODEL.value, notes
                )
            if is_refusal(reply.text):
                notes.append("model declined detection request")
                logger.warning("Model declined detection, trying alternate strategy")
            else:
                notes.append("detection reply held no components")
                logger.warning("No components in detection reply, trying alternate strategy")

        return await self._extract_alternate(image, notes)

    async def _extract_alternate(
        self, image: str, notes: List[str]
    ) -> StageOutcome[List[DetectedComponent]]:
        reply = await self._ask(image, ALTERNATE_PROMPT, ALTERNATE_SYSTEM)
        if not reply.ok:
            return self._canonical(notes, reply.error)

        recovery = recover_payload(reply.text, array_key="components", item_key="type")
        items = [i for i in recovery.items if isinstance(i, Mapping)]
        strategy = ExtractionStrategy.ALTERNATE
        if not items:
            if is_refusal(reply.text):
                return self._canonical(notes, "model declined")
            logger.warning("Alternate reply unparseable, scanning prose for component keywords")
            items = scan_keywords(reply.text)
            strategy = ExtractionStrategy.KEYWORD_SCAN

        components = [component_from_description(item, index) for index, item in enumerate(items)]
        logger.info("Alternate strategy (%s) produced %d components", strategy.value, len(components))
        return StageOutcome(components, StageStatus.DEGRADED, strategy.value, notes)

    def _canonical(self, notes: List[str], reason: str) -> StageOutcome[List[DetectedComponent]]:
        notes.append(f"alternate request failed: {reason}")
        logger.warning("Alternate detection failed (%s), using canonical components", reason)
        return StageOutcome(
            canonical_components(),
            StageStatus.FAILED,
            ExtractionStrategy.CANONICAL.value,
            notes,
        )
