"""
Deterministic improvement rules, used whenever the model's suggestions are
missing for a component (or missing entirely).

Rules are matched by case-insensitive substring on the component type; the
first matching rule wins.
"""

from typing import Any, Dict, List, Optional, Tuple

from ui_iterate.schema import (
    ComponentAttributes,
    DetectedComponent,
    ImprovementSuggestion,
    SuggestionSource,
)

RULE_TAG = "[rule-based]"

MISSING_REASON = "Default styling improvement for {type} component."
FAILURE_REASON = "Improved styling for {type} component to enhance visual appeal and usability."

BASE_IMPROVEMENTS: Dict[str, Any] = {
    "borderRadius": 4,
    "fontSize": 16,
    "padding": "8px 16px",
}

# (substrings, overrides) in priority order
RULES: List[Tuple[Tuple[str, ...], Dict[str, Any]]] = [
    (
        ("button",),
        {
            "backgroundColor": "#4285f4",
            "textColor": "#ffffff",
            "fontWeight": 500,
            "boxShadow": "0 2px 4px rgba(0,0,0,0.2)",
            "borderRadius": 8,
        },
    ),
    (
        ("input", "field", "text"),
        {
            "backgroundColor": "#ffffff",
            "textColor": "#202124",
            "borderColor": "#dadce0",
            "borderWidth": "1px",
            "borderStyle": "solid",
            "borderRadius": 4,
            "padding": "12px 16px",
        },
    ),
    (
        ("card", "container"),
        {
            "backgroundColor": "#ffffff",
            "textColor": "#202124",
            "borderRadius": 8,
            "boxShadow": "0 1px 3px rgba(0,0,0,0.12), 0 1px 2px rgba(0,0,0,0.24)",
            "padding": "16px",
        },
    ),
    (
        ("header", "nav"),
        {
            "backgroundColor": "#f8f9fa",
            "textColor": "#202124",
            "fontWeight": 500,
            "padding": "16px 24px",
            "boxShadow": "0 1px 2px rgba(0,0,0,0.1)",
        },
    ),
    (
        ("image", "icon"),
        {
            "borderRadius": 4,
            "boxShadow": "0 1px 3px rgba(0,0,0,0.1)",
        },
    ),
]

DEFAULT_OVERRIDES: Dict[str, Any] = {
    "backgroundColor": "#ffffff",
    "textColor": "#202124",
    "padding": "8px 16px",
}


def match_rule(component_type: Optional[str]) -> Dict[str, Any]:
    """Overrides for the first rule whose substring occurs in the type."""
    lowered = (component_type or "").lower()
    for needles, overrides in RULES:
        if any(needle in lowered for needle in needles):
            return overrides
    return DEFAULT_OVERRIDES


def rule_improvements(component_type: Optional[str]) -> Dict[str, Any]:
    """Full improvement map (base values + matched overrides) for a type."""
    improvements = dict(BASE_IMPROVEMENTS)
    improvements.update(match_rule(component_type))
    return improvements


def synthesize_suggestion(
    component: DetectedComponent, reason: str = MISSING_REASON
) -> ImprovementSuggestion:
    """Rule-sourced suggestion for one component; reasoning is tagged."""
    return ImprovementSuggestion(
        componentId=component.id,
        improvements=ComponentAttributes.from_raw(rule_improvements(component.type)),
        reasoning=f"{RULE_TAG} {reason.format(type=component.type)}",
        source=SuggestionSource.RULES,
    )
