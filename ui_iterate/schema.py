"""
Pipeline Schema: Pydantic models for detected components and suggestions.

Every record the pipeline produces passes through these models, so clamping
and defaulting happen in one place no matter which strategy created the data.
"""

import json
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, ValidationInfo

REASONING_MAX_LENGTH = 280
SUMMARY_REASONING_LENGTH = 100
SUMMARY_MAX_COMPONENTS = 5
SUMMARY_MAX_PROPERTIES = 5

CORE_ATTRIBUTE_KEYS = (
    "backgroundColor",
    "textColor",
    "borderRadius",
    "fontSize",
    "padding",
    "text",
    "state",
)

_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")

T = TypeVar("T")


def coerce_number(value: Any) -> Optional[float]:
    """Best-effort numeric coercion ("12", "12.5%", "16px" -> float)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if match:
            return float(match.group(0))
    return None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class SuggestionSource(str, Enum):
    """Where an improvement suggestion came from."""

    MODEL = "model"
    RULES = "rules"


class StageStatus(str, Enum):
    """Outcome of one pipeline stage."""

    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class StageOutcome(Generic[T]):
    """Tagged result of a stage: the value plus how it was obtained."""

    value: T
    status: StageStatus
    strategy: str
    notes: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.status != StageStatus.OK


class BoundingBox(BaseModel):
    """Component box as percentages of the image dimensions."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    width: float = 10.0
    height: float = 10.0

    @field_validator("x", "y", mode="before")
    @classmethod
    def clamp_offset(cls, v):
        number = coerce_number(v)
        if number is None:
            return 0.0
        return _clamp(number, 0.0, 100.0)

    @field_validator("width", "height", mode="before")
    @classmethod
    def clamp_extent(cls, v):
        number = coerce_number(v)
        if number is None:
            return 10.0
        return _clamp(number, 1.0, 100.0)

    @classmethod
    def from_raw(cls, raw: Any) -> "BoundingBox":
        """Build a box from whatever the model sent (dict, list or junk)."""
        if isinstance(raw, Mapping):
            data = {k: raw[k] for k in ("x", "y", "width", "height") if k in raw}
            # Some replies use w/h shorthand
            if "width" not in data and "w" in raw:
                data["width"] = raw["w"]
            if "height" not in data and "h" in raw:
                data["height"] = raw["h"]
            return cls(**data)
        if isinstance(raw, (list, tuple)) and len(raw) == 4:
            return cls(x=raw[0], y=raw[1], width=raw[2], height=raw[3])
        return cls()


class ComponentAttributes(BaseModel):
    """Closed core of visual attributes plus an open extension map."""

    model_config = ConfigDict(frozen=True)

    backgroundColor: Optional[str] = None
    textColor: Optional[str] = None
    borderRadius: Optional[float] = None
    fontSize: Optional[float] = None
    padding: Optional[str] = None
    text: Optional[str] = None
    state: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("borderRadius", "fontSize", mode="before")
    @classmethod
    def numeric_or_none(cls, v):
        if v is None:
            return None
        number = coerce_number(v)
        if number is None or number < 0:
            return None
        return number

    @field_validator("backgroundColor", "textColor", "padding", "text", "state", mode="before")
    @classmethod
    def stringify(cls, v, info: ValidationInfo):
        if v is None:
            return None
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            # Bare numeric padding from the model means pixels
            if info.field_name == "padding":
                return f"{v:g}px"
            return f"{v:g}"
        if isinstance(v, str):
            return v
        return None

    @classmethod
    def from_raw(cls, raw: Any) -> "ComponentAttributes":
        """Split a free-form mapping into core fields and the extension map."""
        if not isinstance(raw, Mapping):
            return cls()
        core = {k: raw[k] for k in CORE_ATTRIBUTE_KEYS if k in raw}
        extra = {
            str(k): v
            for k, v in raw.items()
            if k not in CORE_ATTRIBUTE_KEYS and k != "extra"
        }
        nested = raw.get("extra")
        if isinstance(nested, Mapping):
            extra.update({str(k): v for k, v in nested.items()})
        return cls(**core, extra=extra)

    def get(self, key: str, default: Any = None) -> Any:
        if key in CORE_ATTRIBUTE_KEYS:
            value = getattr(self, key)
            return default if value is None else value
        return self.extra.get(key, default)

    def to_flat(self) -> Dict[str, Any]:
        """Core + extension keys in one dict, unset values omitted."""
        flat: Dict[str, Any] = {}
        for key in CORE_ATTRIBUTE_KEYS:
            value = getattr(self, key)
            if value is not None:
                flat[key] = value
        for key, value in self.extra.items():
            flat.setdefault(key, value)
        return flat

    def is_empty(self) -> bool:
        return not self.to_flat()


class DetectedComponent(BaseModel):
    """A perceived UI element. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str = "unknown"
    confidence: float = 0.9
    boundingBox: BoundingBox = Field(default_factory=BoundingBox)
    attributes: ComponentAttributes = Field(default_factory=ComponentAttributes)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if not isinstance(v, str) or not v.strip():
            return "unknown"
        return v.strip()

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        number = coerce_number(v)
        if number is None:
            return 0.9
        return _clamp(number, 0.0, 1.0)

    def to_export_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "confidence": self.confidence,
            "boundingBox": self.boundingBox.model_dump(),
            "attributes": self.attributes.to_flat(),
        }


class ImprovementSuggestion(BaseModel):
    """Proposed new visual values for one component."""

    model_config = ConfigDict(frozen=True)

    componentId: str
    improvements: ComponentAttributes = Field(default_factory=ComponentAttributes)
    reasoning: str = ""
    source: SuggestionSource = SuggestionSource.MODEL

    @field_validator("reasoning", mode="before")
    @classmethod
    def truncate_reasoning(cls, v):
        if not isinstance(v, str):
            return ""
        v = v.strip()
        if len(v) > REASONING_MAX_LENGTH:
            return v[: REASONING_MAX_LENGTH - 3].rstrip() + "..."
        return v

    def to_export_dict(self) -> Dict[str, Any]:
        return {
            "componentId": self.componentId,
            "improvements": self.improvements.to_flat(),
            "reasoning": self.reasoning,
            "source": self.source.value,
        }


class DesignSystem(BaseModel):
    """Advisory palette returned alongside the suggestions."""

    primary: Optional[str] = None
    secondary: Optional[str] = None
    background: Optional[str] = None
    text: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["DesignSystem"]:
        if not isinstance(raw, Mapping):
            return None
        colors = raw.get("colors", raw)
        if not isinstance(colors, Mapping):
            return None
        values = {
            k: colors[k]
            for k in ("primary", "secondary", "background", "text")
            if isinstance(colors.get(k), str)
        }
        if not values:
            return None
        return cls(**values)


class PipelineResult(BaseModel):
    """Everything the UI layer and the export panel consume."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "components": [
                    {
                        "id": "component-0",
                        "type": "button",
                        "confidence": 0.95,
                        "boundingBox": {"x": 10, "y": 20, "width": 30, "height": 8},
                        "attributes": {"text": "Go"},
                    }
                ],
                "suggestions": [
                    {
                        "componentId": "component-0",
                        "improvements": {"backgroundColor": "#4285f4"},
                        "reasoning": "Stronger call to action",
                        "source": "model",
                    }
                ],
                "degraded": False,
            }
        }
    )

    components: List[DetectedComponent] = Field(default_factory=list)
    suggestions: List[ImprovementSuggestion] = Field(default_factory=list)
    design_system: Optional[DesignSystem] = None
    html: str = ""
    degraded: bool = False
    extraction_strategy: str = ""
    analysis_strategy: str = ""
    notes: List[str] = Field(default_factory=list)

    def suggestion_for(self, component_id: str) -> Optional[ImprovementSuggestion]:
        for suggestion in self.suggestions:
            if suggestion.componentId == component_id:
                return suggestion
        return None

    def analysis_summary(self) -> Dict[str, Any]:
        """Compact summary for the analysis panel."""
        by_id = {c.id: c for c in self.components}
        entries = []
        for suggestion in self.suggestions[:SUMMARY_MAX_COMPONENTS]:
            component = by_id.get(suggestion.componentId)
            props = list(suggestion.improvements.to_flat().items())
            entries.append(
                {
                    "componentType": component.type if component else "unknown",
                    "improvements": dict(props[:SUMMARY_MAX_PROPERTIES]),
                    "reasoning": suggestion.reasoning[:SUMMARY_REASONING_LENGTH],
                }
            )
        return {"componentCount": len(self.components), "improvements": entries}

    def to_export_json(self, indent: int = 2) -> str:
        """Serialize the component list for the downloadable export file."""
        return json.dumps(
            [c.to_export_dict() for c in self.components],
            indent=indent,
            ensure_ascii=False,
        )
