"""
Deterministic Renderer: (components, suggestions) -> standalone HTML report.

No model involvement and no failure mode. Layout always comes from the
original bounding boxes; visual properties are overlaid field by field
(suggestion, then original attributes, then fixed defaults).
"""

import html
import re
from typing import Any, Dict, Iterable, List, Optional

from ui_iterate.schema import DetectedComponent, ImprovementSuggestion, coerce_number

STYLE_DEFAULTS: Dict[str, Any] = {
    "backgroundColor": "#ffffff",
    "textColor": "#333333",
    "borderRadius": 0,
    "fontSize": 16,
    "padding": "8px",
}

_PIXEL_KEYS = ("borderRadius", "fontSize")
_CSS_NAMES = {"textColor": "color"}
_UNSAFE_CSS = re.compile(r"[;{}<>\"\n\r]")
_KEBAB = re.compile(r"([A-Z])")
_CSS_KEY = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")

SECTIONS = ("header", "navigation", "main-content", "footer")


def _css_value(value: Any) -> str:
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return f"{value:g}"
    if isinstance(value, str):
        return _UNSAFE_CSS.sub("", value).strip()
    return ""


def _kebab(name: str) -> str:
    return _KEBAB.sub(r"-\1", _CSS_NAMES.get(name, name)).lower()


def _pixels(value: Any, fallback: float) -> str:
    number = coerce_number(value)
    if number is None:
        number = fallback
    return f"{number:g}px"


def resolve_style(
    component: DetectedComponent, suggestion: Optional[ImprovementSuggestion] = None
) -> Dict[str, Any]:
    """
    Final visual properties for one component.

    Core keys always present; extension keys (fontWeight, boxShadow, ...) from
    the original attributes or the suggestion are carried along.
    """
    original = component.attributes.to_flat()
    improved = suggestion.improvements.to_flat() if suggestion is not None else {}

    style: Dict[str, Any] = {}
    for key, default in STYLE_DEFAULTS.items():
        for source in (improved, original):
            value = source.get(key)
            if value is not None and value != "":
                style[key] = value
                break
        else:
            style[key] = default

    for source in (original, improved):
        for key, value in source.items():
            if key in STYLE_DEFAULTS or key in ("text", "state"):
                continue
            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                style[key] = value
    return style


def component_css(component_id: str, style: Dict[str, Any]) -> str:
    """Kebab-cased CSS rule for a resolved style; empty string if nothing to emit."""
    lines = []
    for key, value in style.items():
        if not _CSS_KEY.fullmatch(key):
            continue
        if key in _PIXEL_KEYS:
            css = _pixels(value, STYLE_DEFAULTS[key])
        else:
            css = _css_value(value)
        if css:
            lines.append(f"  {_kebab(key)}: {css};")
    if not lines:
        return ""
    class_name = "improved-" + re.sub(r"[^a-z0-9]", "-", component_id, flags=re.IGNORECASE)
    return ".%s {\n%s\n}" % (class_name, "\n".join(lines))


def _section(component: DetectedComponent) -> str:
    kind = component.type.lower()
    if "header" in kind or component.boundingBox.y < 10:
        return "header"
    if "nav" in kind or "menu" in kind or "sidebar" in kind:
        return "navigation"
    if "footer" in kind or component.boundingBox.y > 80:
        return "footer"
    return "main-content"


def _inline_style(component: DetectedComponent, style: Dict[str, Any]) -> str:
    box = component.boundingBox
    kind = component.type.lower()
    is_button = "button" in kind

    rules = [
        "position: absolute",
        f"left: {box.x:g}%",
        f"top: {box.y:g}%",
        f"width: {box.width:g}%",
        f"height: {box.height:g}%",
        f"background-color: {_css_value(style['backgroundColor']) or STYLE_DEFAULTS['backgroundColor']}",
        f"color: {_css_value(style['textColor']) or STYLE_DEFAULTS['textColor']}",
        f"border-radius: {_pixels(style['borderRadius'], 0)}",
        f"font-size: {_pixels(style['fontSize'], 16)}",
        f"padding: {_css_value(style['padding']) or STYLE_DEFAULTS['padding']}",
        "display: flex",
        "align-items: center",
        f"justify-content: {'center' if is_button else 'flex-start'}",
        "overflow: hidden",
        "box-sizing: border-box",
        "font-family: Arial, sans-serif",
        f"z-index: {10 if 'header' in kind else 1}",
    ]
    if is_button:
        rules += ["cursor: pointer", "font-weight: bold", "text-align: center", "border: none"]
    elif "input" in kind or "field" in kind:
        rules.append("border: 1px solid #ddd")
    elif "card" in kind or "container" in kind:
        rules += ["flex-direction: column", "justify-content: flex-start"]
    return "; ".join(rules) + ";"


def _component_html(component: DetectedComponent, style: Dict[str, Any]) -> str:
    class_name = "improved-" + re.sub(r"[^a-z0-9]", "-", component.id, flags=re.IGNORECASE)
    text = component.attributes.text or component.type
    return '<div class="component %s" style="%s">%s</div>' % (
        html.escape(class_name),
        html.escape(_inline_style(component, style)),
        html.escape(text),
    )


_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Improved UI Design</title>
  <style>
    * {{ box-sizing: border-box; margin: 0; padding: 0; }}
    body {{ font-family: Arial, sans-serif; width: 800px; height: 600px; overflow: hidden; background-color: #f9f9f9; }}
    .ui-container {{ position: relative; width: 100%; height: 100%; overflow: hidden; }}
    .section {{ position: absolute; inset: 0; }}
    .watermark {{ position: absolute; top: 10px; right: 10px; background-color: rgba(51, 51, 204, 0.8); color: white; padding: 5px 10px; border-radius: 4px; font-weight: bold; font-size: 12px; z-index: 100; }}
{css}
  </style>
</head>
<body>
  <div class="ui-container">
{sections}
    <div class="watermark">IMPROVED VERSION</div>
  </div>
</body>
</html>"""


def render_report(
    components: Iterable[DetectedComponent],
    suggestions: Iterable[ImprovementSuggestion] = (),
) -> str:
    """Render the improved layout. Accepts empty or partial input."""
    by_id: Dict[str, ImprovementSuggestion] = {}
    for suggestion in suggestions:
        by_id.setdefault(suggestion.componentId, suggestion)
    ordered = sorted(components, key=lambda c: (c.boundingBox.y, c.boundingBox.x))

    grouped: Dict[str, List[str]] = {name: [] for name in SECTIONS}
    css_blocks: List[str] = []
    for component in ordered:
        style = resolve_style(component, by_id.get(component.id))
        css = component_css(component.id, {k: v for k, v in style.items() if k not in STYLE_DEFAULTS})
        if css:
            css_blocks.append(css)
        grouped[_section(component)].append(_component_html(component, style))

    sections = "\n".join(
        '    <div class="section %s-section">\n%s\n    </div>'
        % (name, "\n".join("      " + item for item in grouped[name]))
        for name in SECTIONS
    )
    css = "\n".join("    " + line for block in css_blocks for line in block.splitlines())
    return _PAGE.format(css=css, sections=sections)
