from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from app.core.logging import get_logger


class ToolInvocationError(Exception):
    """The external tool could not be run to completion (missing binary, timeout)."""


@dataclass(frozen=True, slots=True)
class ToolResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe_failure(self) -> str:
        message = f"{self.args[0]} exited with status {self.returncode}"
        stderr = (self.stderr or "").strip()
        if stderr:
            message = f"{message}: {stderr}"
        return message


class SubprocessRunner(Protocol):
    def run(self, args: Sequence[str], *, timeout: Optional[float] = None) -> ToolResult: ...


class LocalSubprocessRunner:
    """Runs command-line tools with captured output and a hard timeout."""

    def __init__(self) -> None:
        self.logger = get_logger(component="subprocess_runner")

    def run(self, args: Sequence[str], *, timeout: Optional[float] = None) -> ToolResult:
        command = [str(arg) for arg in args]
        self.logger.debug("tool_run", command=command, timeout=timeout)
        try:
            proc = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ToolInvocationError(f"{command[0]} not found on PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise ToolInvocationError(f"{command[0]} timed out after {timeout}s") from exc
        return ToolResult(args=tuple(command), returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


__all__ = ["ToolInvocationError", "ToolResult", "SubprocessRunner", "LocalSubprocessRunner"]
