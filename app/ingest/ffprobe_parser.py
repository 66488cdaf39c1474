from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.core.errors import ProbeFailed

from .keys import Orientation


@dataclass(frozen=True, slots=True)
class ContainerProfile:
    """Geometry of the first video stream and its orientation bucket."""

    width: int
    height: int
    orientation: Orientation = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "orientation", classify_orientation(self.width, self.height))


def classify_orientation(width: int, height: int) -> Orientation:
    """Classify a frame size as landscape, portrait, or other.

    Only exact 16:9 / 9:16 matches under integer division count; a frame
    that is merely close to 16:9 is ``other``.

    Args:
        width: Frame width in pixels.
        height: Frame height in pixels.

    Returns:
        The orientation bucket.
    """
    if width == 16 * height // 9:
        return "landscape"
    if height == 16 * width // 9:
        return "portrait"
    return "other"


def parse_ffprobe_output(stdout: str) -> ContainerProfile:
    """Parse ``ffprobe -print_format json -show_streams`` output.

    Args:
        stdout: The raw JSON text emitted by ffprobe.

    Returns:
        The container profile of the first video stream.
    """
    try:
        raw = json.loads(stdout)
    except (TypeError, ValueError) as exc:
        raise ProbeFailed(f"ffprobe output is not valid JSON: {exc}") from exc
    return parse_ffprobe_json(raw)


def parse_ffprobe_json(raw: Any) -> ContainerProfile:
    """Extract the first video stream's geometry from decoded ffprobe JSON.

    Args:
        raw: The decoded ffprobe document.

    Returns:
        The container profile.
    """
    if not isinstance(raw, dict):
        raise ProbeFailed("ffprobe output is not a JSON object")
    streams = raw.get("streams")
    if not isinstance(streams, list):
        raise ProbeFailed("ffprobe output has no streams list")

    stream = _select_video_stream([s for s in streams if isinstance(s, dict)])
    if stream is None:
        raise ProbeFailed("no video streams found")

    width = _int_or_none(stream.get("width"))
    height = _int_or_none(stream.get("height"))
    if not width or not height or width < 0 or height < 0:
        raise ProbeFailed("video stream has no usable width/height")
    return ContainerProfile(width=width, height=height)


def _select_video_stream(streams: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Select the first video stream.

    Streams that do not declare a ``codec_type`` are accepted in order when no
    stream is explicitly tagged as video.

    Args:
        streams: The ffprobe streams.

    Returns:
        The selected stream, or None.
    """
    for stream in streams:
        if _normalise_stream_type(stream.get("codec_type")) == "video":
            return stream
    for stream in streams:
        if stream.get("codec_type") is None and "width" in stream and "height" in stream:
            return stream
    return None


def _normalise_stream_type(value: Any) -> str:
    if not isinstance(value, str):
        return "other"
    return value.lower()


def _int_or_none(value: Any) -> Optional[int]:
    """Return an integer or None.

    Args:
        value: The raw value.

    Returns:
        The integer value, or None if it's not a valid integer.
    """
    if value in (None, "N/A", "") or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


__all__ = ["ContainerProfile", "classify_orientation", "parse_ffprobe_output", "parse_ffprobe_json"]
