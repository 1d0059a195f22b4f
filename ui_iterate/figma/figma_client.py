"""Figma REST API client for the design-tool import path.

Fetches document trees and rendered node images using Personal Access Token
authentication.

Environment:
    FIGMA_TOKEN: Figma Personal Access Token (required)

Usage:
    client = FigmaClient()
    doc = await client.get_file("6kGd851qaAX4TiL44vpIrO")
    images = await client.get_node_images("6kGd851qaAX4TiL44vpIrO", ["1:2"], fmt="png", scale=2)
"""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

FIGMA_API_BASE = "https://api.figma.com"


class FigmaClientError(Exception):
    """Raised when a Figma API call fails."""


class FigmaClient:
    """Async Figma REST API client.

    Args:
        token: Figma PAT. Falls back to FIGMA_TOKEN env var.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self._token = token or os.getenv("FIGMA_TOKEN", "")
        if not self._token:
            raise FigmaClientError(
                "Figma token not configured. Set FIGMA_TOKEN environment variable "
                "or pass token= to FigmaClient()."
            )
        self._client: Optional[httpx.AsyncClient] = None
        self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=FIGMA_API_BASE,
                headers={"X-FIGMA-TOKEN": self._token},
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FigmaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get(self, path: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        """Make a GET request to the Figma API."""
        client = await self._get_client()
        try:
            resp = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise FigmaClientError(f"Figma API timeout: {path}") from e
        except httpx.HTTPError as e:
            raise FigmaClientError(f"Figma API connection error: {path}") from e

        if resp.status_code == 403:
            raise FigmaClientError(
                "Figma API returned 403 Forbidden. Check that FIGMA_TOKEN is valid "
                "and has file_content:read scope."
            )
        if resp.status_code == 404:
            raise FigmaClientError(f"Figma resource not found: {path}")
        if resp.status_code == 429:
            raise FigmaClientError("Figma API rate limit exceeded. Retry later.")
        if resp.status_code != 200:
            raise FigmaClientError(f"Figma API error {resp.status_code}: {resp.text[:200]}")

        try:
            return resp.json()
        except ValueError as e:
            raise FigmaClientError(f"Figma API returned non-JSON body: {path}") from e

    # ------------------------------------------------------------------
    # Core API methods
    # ------------------------------------------------------------------

    async def get_file(self, file_key: str, depth: Optional[int] = None) -> Dict[str, Any]:
        """Fetch a whole document.

        GET /v1/files/:key
        """
        params = {"depth": str(depth)} if depth is not None else None
        data = await self._get(f"/v1/files/{file_key}", params=params)
        logger.info("get_file: file=%s, name=%s", file_key, data.get("name"))
        return data

    async def get_file_nodes(self, file_key: str, node_ids: List[str]) -> Dict[str, Any]:
        """Fetch specific nodes from a Figma file.

        GET /v1/files/:key/nodes?ids=...
        """
        data = await self._get(f"/v1/files/{file_key}/nodes", params={"ids": ",".join(node_ids)})
        logger.info(
            "get_file_nodes: file=%s, requested=%d, returned=%d",
            file_key, len(node_ids), len(data.get("nodes") or {}),
        )
        return data

    async def get_node_images(
        self,
        file_key: str,
        node_ids: List[str],
        fmt: str = "png",
        scale: int = 2,
    ) -> Dict[str, Optional[str]]:
        """Render nodes via Figma's image export API.

        GET /v1/images/:key?ids=...&format=png&scale=2

        Returns node id -> image URL (None where rendering failed).
        """
        data = await self._get(
            f"/v1/images/{file_key}",
            params={"ids": ",".join(node_ids), "format": fmt, "scale": str(scale)},
        )
        if data.get("err"):
            raise FigmaClientError(f"Figma image render error: {data['err']}")

        images = data.get("images") or {}
        logger.info(
            "get_node_images: file=%s, format=%s, scale=%s, rendered=%d",
            file_key, fmt, scale, sum(1 for v in images.values() if v),
        )
        return images

    async def download_image(self, url: str) -> bytes:
        """Download a rendered image from the URL returned by get_node_images."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as dl_client:
                resp = await dl_client.get(url)
        except httpx.HTTPError as e:
            raise FigmaClientError(f"Image download failed: {e}") from e

        if resp.status_code != 200:
            raise FigmaClientError(f"Image download returned {resp.status_code}")
        if not resp.content:
            raise FigmaClientError("Image download returned an empty body")
        return resp.content
