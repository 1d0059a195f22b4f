"""
UI Iterate - Turn a UI screenshot into an improved, re-rendered layout.

Asks a vision model to decompose the screenshot into components, asks it
again for per-component visual improvements, then renders the result
deterministically. Every model step degrades to a fallback instead of
failing, so a result is always produced.

Usage:
    from ui_iterate import improve_ui, improve_ui_async

    result = improve_ui(open("screenshot.png", "rb").read())
    print(result.degraded, result.analysis_summary())

Figma import:
    from ui_iterate import ImprovementPipeline

    result = await ImprovementPipeline().run_from_design_tool(
        "https://www.figma.com/design/abc123/App?node-id=1-2"
    )
"""

from ui_iterate.schema import (
    BoundingBox,
    ComponentAttributes,
    DesignSystem,
    DetectedComponent,
    ImprovementSuggestion,
    PipelineResult,
    StageOutcome,
    StageStatus,
    SuggestionSource,
)
from ui_iterate.payload_recovery import RecoveryResult, recover_payload, repair_json_text
from ui_iterate.extractor import ComponentExtractor, ExtractionStrategy
from ui_iterate.analyzer import ImprovementAnalyzer
from ui_iterate.renderer import render_report, resolve_style
from ui_iterate.figma.asset_retrieval import AssetRetrievalError, AssetRetriever
from ui_iterate.pipeline import ImprovementPipeline, get_pipeline, improve_ui, improve_ui_async

__version__ = "0.3.0"

__all__ = [
    # Entry points
    "improve_ui",
    "improve_ui_async",
    "get_pipeline",
    "ImprovementPipeline",
    # Stages
    "ComponentExtractor",
    "ExtractionStrategy",
    "ImprovementAnalyzer",
    "render_report",
    "resolve_style",
    "AssetRetriever",
    "AssetRetrievalError",
    # Payload recovery
    "recover_payload",
    "repair_json_text",
    "RecoveryResult",
    # Schema
    "BoundingBox",
    "ComponentAttributes",
    "DesignSystem",
    "DetectedComponent",
    "ImprovementSuggestion",
    "PipelineResult",
    "StageOutcome",
    "StageStatus",
    "SuggestionSource",
]
