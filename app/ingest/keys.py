from __future__ import annotations

import base64
import secrets
from dataclasses import dataclass
from typing import Literal, Optional

from .negotiation import parse_media_type

__all__ = [
    "Orientation",
    "StorageKey",
    "MIN_IDENTIFIER_BYTES",
    "generate_identifier",
    "extension_for",
    "derive_storage_key",
]

Orientation = Literal["landscape", "portrait", "other"]

MIN_IDENTIFIER_BYTES = 32


@dataclass(frozen=True, slots=True)
class StorageKey:
    """The immutable address of an asset inside a durable store."""

    prefix: str
    identifier: str
    extension: str

    @property
    def path(self) -> str:
        filename = f"{self.identifier}.{self.extension}"
        if self.prefix:
            return f"{self.prefix}/{filename}"
        return filename

    def __str__(self) -> str:
        return self.path


def generate_identifier(num_bytes: int = MIN_IDENTIFIER_BYTES) -> str:
    """Return a URL-safe, padding-free identifier built from a CSPRNG.

    Args:
        num_bytes: Amount of entropy; anything under 32 bytes is refused.

    Returns:
        The base64url text of the random bytes, without ``=`` padding.
    """
    if num_bytes < MIN_IDENTIFIER_BYTES:
        raise ValueError(f"identifiers need at least {MIN_IDENTIFIER_BYTES} bytes of entropy")
    raw = secrets.token_bytes(num_bytes)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def extension_for(content_type: str) -> str:
    """``video/mp4`` -> ``mp4``."""
    return parse_media_type(content_type).split("/", 1)[1]


def derive_storage_key(
    content_type: str,
    identifier: str,
    orientation: Optional[Orientation] = None,
) -> StorageKey:
    """Build the storage key for an asset.

    Videos are bucketed by orientation (``landscape/<id>.mp4``); thumbnails
    are stored flat (``<id>.png``).
    """
    return StorageKey(prefix=orientation or "", identifier=identifier, extension=extension_for(content_type))
