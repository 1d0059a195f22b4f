"""
Improvement Pipeline: Extractor -> Analyzer -> Renderer.

Each stage consumes the previous stage's validated output and degrades to a
fallback value instead of aborting, so run() always returns a PipelineResult.
The design-tool path adds asset retrieval in front; its failure is the one
terminal error (AssetRetrievalError) surfaced to callers.

Usage:
    from ui_iterate import improve_ui

    result = improve_ui(screenshot_bytes)
    print(result.degraded, len(result.components))
    open("improved.html", "w").write(result.html)
"""

import asyncio
import base64
import logging
import time
from typing import Optional, Union

from ui_iterate.analyzer import ImprovementAnalyzer
from ui_iterate.config import PipelineSettings
from ui_iterate.extractor import ComponentExtractor
from ui_iterate.figma.asset_retrieval import AssetRetrievalError, AssetRetriever, parse_figma_url
from ui_iterate.figma.figma_client import FigmaClient, FigmaClientError
from ui_iterate.renderer import render_report
from ui_iterate.schema import PipelineResult
from ui_iterate.vision.vision_router import get_vision_router

logger = logging.getLogger(__name__)

ImageInput = Union[bytes, str]


def encode_image(image: ImageInput) -> str:
    """Raw bytes become base64; strings (base64 or data URL) pass through."""
    if isinstance(image, (bytes, bytearray)):
        return base64.b64encode(bytes(image)).decode("utf-8")
    return image


class ImprovementPipeline:
    """
    One screenshot in, a PipelineResult out.

    Runs share no mutable state beyond the vision client, so several runs
    may be awaited concurrently.
    """

    def __init__(
        self,
        vision=None,
        settings: Optional[PipelineSettings] = None,
        figma_client: Optional[FigmaClient] = None,
    ):
        self.settings = settings or PipelineSettings.from_env()
        self.vision = vision or get_vision_router(settings=self.settings)
        self.extractor = ComponentExtractor(self.vision)
        self.analyzer = ImprovementAnalyzer(self.vision)
        self._figma_client = figma_client

    async def run(self, image: ImageInput) -> PipelineResult:
        """Extract, analyze, render. Never raises for model or transport trouble."""
        start_time = time.time()
        payload = encode_image(image)

        extraction = await self.extractor.extract(payload)
        components = extraction.value
        logger.info(
            "Extraction stage: %s (%s), %d components",
            extraction.status.value, extraction.strategy, len(components),
        )

        analysis = await self.analyzer.analyze(components, payload)
        logger.info(
            "Analysis stage: %s (%s), %d suggestions",
            analysis.status.value, analysis.strategy, len(analysis.value.suggestions),
        )

        html = render_report(components, analysis.value.suggestions)

        result = PipelineResult(
            components=components,
            suggestions=analysis.value.suggestions,
            design_system=analysis.value.design_system,
            html=html,
            degraded=extraction.degraded or analysis.degraded,
            extraction_strategy=extraction.strategy,
            analysis_strategy=analysis.strategy,
            notes=extraction.notes + analysis.notes,
        )
        logger.info(
            "Pipeline finished in %.0fms (degraded=%s)",
            (time.time() - start_time) * 1000, result.degraded,
        )
        return result

    def _figma(self) -> FigmaClient:
        if self._figma_client is None:
            try:
                self._figma_client = FigmaClient(
                    token=self.settings.figma_token, timeout=self.settings.figma_timeout
                )
            except FigmaClientError as e:
                raise AssetRetrievalError(str(e)) from e
        return self._figma_client

    async def run_from_design_tool(
        self, file_key_or_url: str, node_id: Optional[str] = None
    ) -> PipelineResult:
        """
        Render a Figma node and run the pipeline on the image.

        Raises:
            AssetRetrievalError: the node could not be resolved or rendered
        """
        file_key = file_key_or_url
        if "figma.com" in file_key_or_url:
            try:
                file_key, url_node_id = parse_figma_url(file_key_or_url)
            except ValueError as e:
                raise AssetRetrievalError(str(e)) from e
            node_id = node_id or url_node_id

        asset = await AssetRetriever(self._figma()).fetch_node_image(file_key, node_id)
        logger.info(
            "Retrieved node %s as %s@%sx after %d attempt(s)",
            asset.node_id, asset.fmt, asset.scale, len(asset.attempts),
        )
        return await self.run(asset.to_data_url())

    async def close(self) -> None:
        if self._figma_client is not None:
            await self._figma_client.close()


_pipeline: Optional[ImprovementPipeline] = None


def get_pipeline() -> ImprovementPipeline:
    """Get or create the singleton pipeline."""
    global _pipeline
    if _pipeline is None:
        _pipeline = ImprovementPipeline()
    return _pipeline


def improve_ui(image: ImageInput) -> PipelineResult:
    """
    Run the improvement pipeline on a screenshot (synchronous).

    Args:
        image: Raw image bytes, base64 text, or a data URL

    Returns:
        PipelineResult (check .degraded)
    """
    return asyncio.run(improve_ui_async(image))


async def improve_ui_async(image: ImageInput) -> PipelineResult:
    """Run the improvement pipeline on a screenshot (async)."""
    return await get_pipeline().run(image)
