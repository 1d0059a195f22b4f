"""Shared data types for vision service modules."""

import base64
import binascii
from dataclasses import dataclass
from typing import Optional, Tuple


class VisionServiceError(Exception):
    """A vision client cannot be constructed or used (e.g. missing API key)."""


@dataclass
class VisionReply:
    """Raw text returned by a vision provider, or why there is none."""

    ok: bool
    text: str = ""
    provider: str = ""
    status_code: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, provider: str, error: str, status_code: Optional[int] = None) -> "VisionReply":
        return cls(ok=False, provider=provider, status_code=status_code, error=error)


_MAGIC_PREFIXES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def split_image_payload(image: str) -> Tuple[str, str]:
    """
    Split an image payload into (media_type, base64_data).

    Accepts a data URL ("data:image/jpeg;base64,...") or bare base64. The
    encoded bytes are forwarded unchanged; only the media type is inferred.
    """
    if image.startswith("data:"):
        header, _, data = image.partition(",")
        media_type = header[5:].split(";", 1)[0] or "image/png"
        return media_type, data
    return sniff_media_type(image), image


def sniff_media_type(image_b64: str) -> str:
    """Guess the media type from the first decoded bytes. Defaults to png."""
    head = image_b64[:32]
    head = head[: len(head) - len(head) % 4]
    try:
        raw = base64.b64decode(head)
    except (binascii.Error, ValueError):
        return "image/png"
    for prefix, media_type in _MAGIC_PREFIXES:
        if raw.startswith(prefix):
            return media_type
    if raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"
