"""Building blocks of the media ingestion pipeline."""

from .ffprobe_parser import ContainerProfile, classify_orientation, parse_ffprobe_json, parse_ffprobe_output
from .keys import StorageKey, derive_storage_key, extension_for, generate_identifier
from .negotiation import THUMBNAIL_CONTENT_TYPES, VIDEO_CONTENT_TYPES, negotiate, parse_media_type
from .probe import probe_container
from .remux import remux_faststart
from .runner import LocalSubprocessRunner, SubprocessRunner, ToolInvocationError, ToolResult
from .staging import ByteSource, InboundFile, MediaAsset, StagedFile, stage_upload

__all__ = [
    "ContainerProfile",
    "classify_orientation",
    "parse_ffprobe_json",
    "parse_ffprobe_output",
    "StorageKey",
    "derive_storage_key",
    "extension_for",
    "generate_identifier",
    "THUMBNAIL_CONTENT_TYPES",
    "VIDEO_CONTENT_TYPES",
    "negotiate",
    "parse_media_type",
    "probe_container",
    "remux_faststart",
    "LocalSubprocessRunner",
    "SubprocessRunner",
    "ToolInvocationError",
    "ToolResult",
    "ByteSource",
    "InboundFile",
    "MediaAsset",
    "StagedFile",
    "stage_upload",
]
