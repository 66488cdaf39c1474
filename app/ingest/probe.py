from __future__ import annotations

from pathlib import Path
from typing import Optional

from app.core.errors import ProbeFailed
from app.core.logging import get_logger

from .ffprobe_parser import ContainerProfile, parse_ffprobe_output
from .runner import SubprocessRunner, ToolInvocationError

logger = get_logger(component="container_prober")


def build_probe_command(path: Path, *, binary: str = "ffprobe") -> list[str]:
    return [
        binary,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_streams",
        str(path),
    ]


def probe_container(
    path: Path,
    runner: SubprocessRunner,
    *,
    binary: str = "ffprobe",
    timeout: Optional[float] = None,
) -> ContainerProfile:
    """Run ffprobe on a staged file and classify its first video stream."""
    command = build_probe_command(path, binary=binary)
    try:
        result = runner.run(command, timeout=timeout)
    except ToolInvocationError as exc:
        raise ProbeFailed(f"ffprobe error: {exc}") from exc
    if not result.ok:
        logger.warning("ffprobe_failed", returncode=result.returncode, stderr=result.stderr)
        raise ProbeFailed(result.describe_failure())

    profile = parse_ffprobe_output(result.stdout)
    logger.info("container_probed", width=profile.width, height=profile.height, orientation=profile.orientation)
    return profile


__all__ = ["build_probe_command", "probe_container"]
