"""
Improvement Analyzer: per-component visual improvements from the model, with
rule-based synthesis for whatever the model skips.

Post-condition of analyze(): exactly one ImprovementSuggestion per input
component, in input order, regardless of what the model returned.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ui_iterate.improvement_rules import FAILURE_REASON, MISSING_REASON, synthesize_suggestion
from ui_iterate.payload_recovery import recover_payload
from ui_iterate.schema import (
    ComponentAttributes,
    DesignSystem,
    DetectedComponent,
    ImprovementSuggestion,
    StageOutcome,
    StageStatus,
    SuggestionSource,
)

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM = (
    "You are a UI design expert that analyzes UI components and suggests specific "
    "improvements. You ONLY respond with valid JSON."
)

ANALYSIS_PROMPT = """Analyze these UI components and suggest specific improvements for each one:

{components}

For each component, provide:
1. Improved visual properties (colors, spacing, typography)
2. Brief reasoning for the improvements

IMPORTANT: Your response MUST be ONLY valid JSON with this structure:
{{
  "improvements": [
    {{
      "componentId": "component-0",
      "improvements": {{
        "backgroundColor": "#4285f4",
        "textColor": "#ffffff",
        "borderRadius": 8,
        "fontSize": 16,
        "padding": "8px 16px"
      }},
      "reasoning": "Brief explanation of improvements"
    }}
  ],
  "designSystem": {{
    "colors": {{
      "primary": "#4285f4",
      "secondary": "#34a853",
      "background": "#ffffff",
      "text": "#202124"
    }}
  }}
}}

DO NOT include any explanations or text outside the JSON."""

NO_REASONING = "No reasoning provided"


@dataclass
class Analysis:
    """Analyzer output: one suggestion per component plus the advisory palette."""

    suggestions: List[ImprovementSuggestion] = field(default_factory=list)
    design_system: Optional[DesignSystem] = None


def reduced_view(component: DetectedComponent) -> Dict[str, Any]:
    """The subset of a component sent to the model."""
    return {
        "id": component.id,
        "type": component.type,
        "boundingBox": component.boundingBox.model_dump(),
        "attributes": {
            "backgroundColor": component.attributes.backgroundColor,
            "textColor": component.attributes.textColor,
            "text": component.attributes.text or "",
        },
    }


def build_prompt(components: List[DetectedComponent]) -> str:
    view = [reduced_view(c) for c in components]
    return ANALYSIS_PROMPT.format(components=json.dumps(view, indent=2, ensure_ascii=False))


def suggestion_from_item(item: Mapping[str, Any]) -> ImprovementSuggestion:
    reasoning = item.get("reasoning")
    return ImprovementSuggestion(
        componentId=item["componentId"],
        improvements=ComponentAttributes.from_raw(item.get("improvements")),
        reasoning=reasoning if isinstance(reasoning, str) and reasoning.strip() else NO_REASONING,
        source=SuggestionSource.MODEL,
    )


def reconcile(
    components: List[DetectedComponent], items: List[Any]
) -> List[ImprovementSuggestion]:
    """
    Match model items to components by id.

    Items for unknown ids are dropped; only the first item per id counts;
    components left without one get a rule-based suggestion.
    """
    known = {c.id for c in components}
    by_id: Dict[str, ImprovementSuggestion] = {}
    for item in items:
        if not isinstance(item, Mapping):
            continue
        component_id = item.get("componentId")
        if not isinstance(component_id, str) or component_id not in known:
            logger.warning("Dropping suggestion for unknown component: %r", component_id)
            continue
        if component_id in by_id:
            continue
        by_id[component_id] = suggestion_from_item(item)

    return [by_id.get(c.id) or synthesize_suggestion(c, MISSING_REASON) for c in components]


class ImprovementAnalyzer:
    """Second model pass: critique the extracted components."""

    def __init__(self, vision):
        self.vision = vision

    def _all_rules(self, components: List[DetectedComponent], notes: List[str]) -> StageOutcome[Analysis]:
        suggestions = [synthesize_suggestion(c, FAILURE_REASON) for c in components]
        return StageOutcome(Analysis(suggestions), StageStatus.FAILED, "rules", notes)

    async def analyze(
        self, components: List[DetectedComponent], image: str
    ) -> StageOutcome[Analysis]:
        notes: List[str] = []
        if not components:
            return StageOutcome(Analysis(), StageStatus.OK, "model", notes)

        logger.info("Analyzing %d components", len(components))
        try:
            reply = await self.vision.complete(image, build_prompt(components), ANALYSIS_SYSTEM)
        except Exception as e:
            logger.warning("Vision call raised %s: %s", type(e).__name__, e)
            notes.append(f"analysis request failed: {e}")
            return self._all_rules(components, notes)

        if not reply.ok:
            notes.append(f"analysis request failed: {reply.error}")
            logger.warning("Analysis request failed (%s), using rule-based suggestions", reply.error)
            return self._all_rules(components, notes)

        logger.debug("Analysis reply (%s): %s", reply.provider, reply.text[:200])
        recovery = recover_payload(reply.text, array_key="improvements", item_key="componentId")
        if not recovery.recovered:
            notes.append("analysis reply unrecoverable")
            logger.warning("Analysis reply unrecoverable, using rule-based suggestions")
            return self._all_rules(components, notes)

        suggestions = reconcile(components, recovery.items)
        design_system = DesignSystem.from_raw(recovery.data.get("designSystem"))

        synthesized = sum(1 for s in suggestions if s.source == SuggestionSource.RULES)
        if synthesized:
            notes.append(f"{synthesized} of {len(components)} suggestions synthesized")
            logger.warning(
                "Model covered %d of %d components; %d filled from rules",
                len(components) - synthesized, len(components), synthesized,
            )
            status = StageStatus.DEGRADED
        else:
            status = StageStatus.OK
        logger.info("Analysis complete (recovery: %s)", recovery.strategy)
        return StageOutcome(Analysis(suggestions, design_system), status, "model", notes)
