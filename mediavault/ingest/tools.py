from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from mediavault.core.logging import get_logger
from mediavault.errors import DerivationError

__all__ = ["ToolError", "ToolResult", "ToolRunner", "run_tool", "tool_available"]

logger = get_logger(component="tools")


@dataclass(slots=True)
class ToolResult:
    command: list[str]
    returncode: int
    stdout: str
    stderr: str


class ToolError(DerivationError):
    """An external binary could not be run, failed, or timed out."""

    code = "tool_error"


ToolRunner = Callable[..., ToolResult]


def run_tool(command: Sequence[str], *, timeout: Optional[float] = None) -> ToolResult:
    """Run an external tool and capture its output as text.

    Args:
        command: The argv to execute.
        timeout: Seconds before the process is killed.

    Returns:
        The completed process output.

    Raises:
        ToolError: The binary is missing, exited non-zero, or timed out.
    """
    argv = [str(part) for part in command]
    try:
        proc = subprocess.run(
            argv,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise ToolError(f"{argv[0]} is not installed", tool=argv[0]) from exc
    except subprocess.TimeoutExpired as exc:
        logger.warning("tool_timeout", tool=argv[0], timeout_s=timeout)
        raise ToolError(f"{argv[0]} timed out after {timeout}s", tool=argv[0]) from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise ToolError(
            f"{argv[0]} exited with status {exc.returncode}",
            tool=argv[0],
            returncode=exc.returncode,
            stderr=stderr[-2000:],
        ) from exc
    return ToolResult(command=argv, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)


def tool_available(binary: str) -> bool:
    return shutil.which(binary) is not None
