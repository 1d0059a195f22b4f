"""
Figma import path: fetch a rendered image of a design node for the pipeline.

Usage:
    from ui_iterate.figma import FigmaClient, AssetRetriever, parse_figma_url

    file_key, node_id = parse_figma_url(url)
    asset = await AssetRetriever(FigmaClient()).fetch_node_image(file_key, node_id)
"""

from ui_iterate.figma.figma_client import FigmaClient, FigmaClientError
from ui_iterate.figma.asset_retrieval import (
    FORMATS,
    SCALES,
    AssetRetrievalError,
    AssetRetriever,
    RenderedAsset,
    parse_figma_url,
    select_render_node,
)

__all__ = [
    "FigmaClient",
    "FigmaClientError",
    "FORMATS",
    "SCALES",
    "AssetRetrievalError",
    "AssetRetriever",
    "RenderedAsset",
    "parse_figma_url",
    "select_render_node",
]
