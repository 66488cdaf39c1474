from __future__ import annotations

from pathlib import Path
from typing import Optional

from app.core.errors import RemuxFailed
from app.core.logging import get_logger

from .runner import SubprocessRunner, ToolInvocationError

PROCESSING_SUFFIX = ".processing"

logger = get_logger(component="faststart_remuxer")


def faststart_output_path(path: Path) -> Path:
    return path.with_name(path.name + PROCESSING_SUFFIX)


def build_remux_command(source: Path, target: Path, *, binary: str = "ffmpeg") -> list[str]:
    # Stream copy only; -movflags faststart moves the moov atom ahead of mdat.
    return [
        binary,
        "-nostdin",
        "-y",
        "-v",
        "error",
        "-i",
        str(source),
        "-c",
        "copy",
        "-movflags",
        "faststart",
        "-f",
        "mp4",
        str(target),
    ]


def remux_faststart(
    path: Path,
    runner: SubprocessRunner,
    *,
    binary: str = "ffmpeg",
    timeout: Optional[float] = None,
) -> Path:
    """Rewrite ``path`` into a sibling fast-start MP4 and return the new path.

    The input is left untouched. The caller owns deletion of both files; a
    partial output is removed here before ``RemuxFailed`` is raised.
    """
    target = faststart_output_path(path)
    command = build_remux_command(path, target, binary=binary)
    try:
        result = runner.run(command, timeout=timeout)
    except ToolInvocationError as exc:
        target.unlink(missing_ok=True)
        raise RemuxFailed(f"error processing video: {exc}") from exc

    if not result.ok:
        target.unlink(missing_ok=True)
        logger.warning("remux_failed", returncode=result.returncode, stderr=result.stderr)
        raise RemuxFailed(result.describe_failure())
    if not target.is_file():
        raise RemuxFailed("ffmpeg reported success but wrote no output")

    logger.info("remux_complete", output=str(target), size_bytes=target.stat().st_size)
    return target


__all__ = ["PROCESSING_SUFFIX", "build_remux_command", "faststart_output_path", "remux_faststart"]
