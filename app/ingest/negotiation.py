from __future__ import annotations

import re
from typing import Iterable, Optional

from app.core.errors import UnsupportedMediaType

THUMBNAIL_CONTENT_TYPES = frozenset({"image/jpeg", "image/png"})
VIDEO_CONTENT_TYPES = frozenset({"video/mp4"})

_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_MEDIA_TYPE_RE = re.compile(rf"^({_TOKEN})/({_TOKEN})$")


def parse_media_type(raw: Optional[str]) -> str:
    """Return the lower-cased ``type/subtype`` of a Content-Type header value.

    Parameters such as ``; charset=utf-8`` are discarded.

    Raises:
        UnsupportedMediaType: If the value is missing or not a valid media type.
    """
    if not raw:
        raise UnsupportedMediaType("content type of file not found")
    essence = raw.split(";", 1)[0].strip()
    match = _MEDIA_TYPE_RE.match(essence)
    if not match:
        raise UnsupportedMediaType(f"malformed content type: {raw!r}")
    return f"{match.group(1)}/{match.group(2)}".lower()


def negotiate(raw: Optional[str], allowed: Iterable[str]) -> str:
    """Validate a declared content type against an allow-list and return it normalised."""
    media_type = parse_media_type(raw)
    allowed_set = frozenset(allowed)
    if media_type not in allowed_set:
        raise UnsupportedMediaType(
            f"invalid file type {media_type}; expected one of {', '.join(sorted(allowed_set))}"
        )
    return media_type


__all__ = ["THUMBNAIL_CONTENT_TYPES", "VIDEO_CONTENT_TYPES", "parse_media_type", "negotiate"]
