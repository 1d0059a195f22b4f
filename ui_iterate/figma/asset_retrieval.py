"""
Asset Retrieval: obtain a rendered image of a Figma node.

Tries the ordered cross-product FORMATS x SCALES one request at a time and
stops at the first combination that yields an image URL for the node. There
is no visual fallback; exhausting the matrix raises AssetRetrievalError.
"""

import base64
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlparse

from ui_iterate.figma.figma_client import FigmaClient, FigmaClientError
from ui_iterate.strategies import afirst_success

logger = logging.getLogger(__name__)

FORMATS = ("png", "svg", "jpg")
SCALES = (2, 1, 3)

PREFERRED_NODE_TYPES = ("FRAME", "COMPONENT", "COMPONENT_SET", "INSTANCE")

MEDIA_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "svg": "image/svg+xml",
}

_FILE_KEY_RE = re.compile(r"figma\.com/(?:file|proto|design)/([A-Za-z0-9]+)")


class AssetRetrievalError(Exception):
    """Terminal: no rendered image could be obtained for the requested node."""


@dataclass
class RenderedAsset:
    """A downloaded rendering of one node."""

    file_key: str
    node_id: str
    fmt: str
    scale: int
    url: str
    content: bytes
    attempts: List[str] = field(default_factory=list)

    @property
    def media_type(self) -> str:
        return MEDIA_TYPES.get(self.fmt, "application/octet-stream")

    def to_data_url(self) -> str:
        """Encoded payload for the vision request."""
        encoded = base64.b64encode(self.content).decode("utf-8")
        return f"data:{self.media_type};base64,{encoded}"


def normalize_node_id(node_id: str) -> str:
    """URL form "1-2" / "1%3A2" -> API form "1:2"."""
    return unquote(node_id).replace("-", ":")


def parse_figma_url(url: str) -> Tuple[str, Optional[str]]:
    """
    Extract (file_key, node_id) from a Figma file/design/proto URL.

    Raises:
        ValueError: if the URL is not a recognizable Figma document link
    """
    match = _FILE_KEY_RE.search(url)
    if not match:
        raise ValueError(f"Not a Figma file URL: {url}")
    query = parse_qs(urlparse(url).query)
    node_ids = query.get("node-id")
    node_id = normalize_node_id(node_ids[0]) if node_ids and node_ids[0] else None
    return match.group(1), node_id


def _has_area(node: Mapping[str, Any]) -> bool:
    box = node.get("absoluteBoundingBox")
    if not isinstance(box, Mapping):
        return False
    width, height = box.get("width"), box.get("height")
    return (
        isinstance(width, (int, float))
        and isinstance(height, (int, float))
        and width > 0
        and height > 0
    )


def select_render_node(document: Mapping[str, Any]) -> Optional[str]:
    """
    Pick a node to render when the caller did not name one.

    Depth-first, pre-order. Invisible subtrees are skipped. The first
    frame/component-typed node with a non-zero box wins; failing that, the
    first node of any type with a non-zero box.
    """
    first_any: Optional[str] = None
    stack = [document]
    while stack:
        node = stack.pop()
        if not isinstance(node, Mapping) or node.get("visible", True) is False:
            continue
        if _has_area(node) and node.get("id"):
            if node.get("type") in PREFERRED_NODE_TYPES:
                return node["id"]
            if first_any is None:
                first_any = node["id"]
        children = node.get("children") or []
        stack.extend(reversed(children))
    return first_any


class AssetRetriever:
    """Runs the format x scale retry matrix against a FigmaClient."""

    def __init__(self, client: FigmaClient, formats=FORMATS, scales=SCALES):
        self.client = client
        self.formats = tuple(formats)
        self.scales = tuple(scales)

    async def resolve_node_id(self, file_key: str) -> str:
        try:
            data = await self.client.get_file(file_key)
        except FigmaClientError as e:
            raise AssetRetrievalError(f"Could not load Figma file {file_key}: {e}") from e

        node_id = select_render_node(data.get("document") or {})
        if node_id is None:
            raise AssetRetrievalError(
                f"No visible node with a non-empty bounding box in Figma file {file_key}"
            )
        logger.info("Selected node %s from file %s", node_id, file_key)
        return node_id

    async def verify_node_id(self, file_key: str, node_id: str) -> None:
        """Fail early when a caller-supplied node is not in the file."""
        try:
            data = await self.client.get_file_nodes(file_key, [node_id])
        except FigmaClientError as e:
            raise AssetRetrievalError(
                f"Could not load node {node_id} from Figma file {file_key}: {e}"
            ) from e

        # Figma maps unknown ids to null rather than returning 404
        if not (data.get("nodes") or {}).get(node_id):
            raise AssetRetrievalError(f"Node {node_id} not found in Figma file {file_key}")

    def _attempt(self, file_key: str, node_id: str, fmt: str, scale: int):
        async def request() -> Optional[str]:
            images = await self.client.get_node_images(file_key, [node_id], fmt=fmt, scale=scale)
            return images.get(node_id) or None

        return f"{fmt}@{scale}x", request

    async def fetch_node_image(self, file_key: str, node_id: Optional[str] = None) -> RenderedAsset:
        """
        Render and download one node.

        Raises:
            AssetRetrievalError: node unresolvable or missing from the file,
                matrix exhausted, or the winning URL could not be downloaded
        """
        if node_id is None:
            node_id = await self.resolve_node_id(file_key)
        else:
            node_id = normalize_node_id(node_id)
            await self.verify_node_id(file_key, node_id)

        attempts = [
            self._attempt(file_key, node_id, fmt, scale)
            for fmt in self.formats
            for scale in self.scales
        ]
        hit = await afirst_success(attempts, tolerate=(FigmaClientError,))
        if hit is None:
            tried = ", ".join(name for name, _ in attempts)
            logger.warning("Retry matrix exhausted for %s/%s (%s)", file_key, node_id, tried)
            raise AssetRetrievalError(
                f"Figma could not render node {node_id} in any format/scale ({tried})"
            )

        fmt, _, scale = hit.name.partition("@")
        tried_names = [name for name, _ in attempts]
        tried_names = tried_names[: tried_names.index(hit.name) + 1]
        logger.info("Rendered %s/%s as %s", file_key, node_id, hit.name)

        try:
            content = await self.client.download_image(hit.value)
        except FigmaClientError as e:
            raise AssetRetrievalError(f"Could not download rendered node {node_id}: {e}") from e

        return RenderedAsset(
            file_key=file_key,
            node_id=node_id,
            fmt=fmt,
            scale=int(scale.rstrip("x")),
            url=hit.value,
            content=content,
            attempts=tried_names,
        )
