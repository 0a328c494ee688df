"""Async subprocess helper shared by the shell, git and test-runner tools."""

import asyncio
import locale
import logging
import shlex
from dataclasses import dataclass
from typing import (
    Optional,
    Sequence,
)

from agentdeck.config import settings

logger = logging.getLogger(__name__)


class ToolTimeoutError(RuntimeError):
    """Raised when a subprocess outlives its timeout; the process is killed first."""


@dataclass
class ProcessResult:
    """Captured output of a finished subprocess."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _decode(payload: Optional[bytes]) -> str:
    if not payload:
        return ""
    for encoding in ("utf-8", locale.getpreferredencoding(False)):
        try:
            return payload.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            continue
    return payload.decode("utf-8", errors="replace")


async def run_process(
    args: Sequence[str],
    *,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
) -> ProcessResult:
    """
    Run *args* without a shell and capture its output.

    A missing executable or working directory is reported like a shell would (exit code 127 with
    the reason on stderr) rather than raised, so tools can hand it back to the model.

    Raises
    ------
    ToolTimeoutError
        If the process is still running after *timeout* seconds (default ``TOOL_TIMEOUT``).
    """
    if timeout is None:
        timeout = settings.TOOL_TIMEOUT
    logger.debug("Running %s (cwd=%s, timeout=%s)", shlex.join(args), cwd, timeout)

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, NotADirectoryError, PermissionError) as exc:
        logger.warning("Could not start %s: %s", args[0], exc)
        return ProcessResult(returncode=127, stdout="", stderr=str(exc))

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        raise ToolTimeoutError(
            f"Command '{shlex.join(args)}' timed out after {timeout:.0f}s"
        ) from exc

    result = ProcessResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=_decode(stdout),
        stderr=_decode(stderr),
    )
    logger.debug("%s exited with %d", args[0], result.returncode)
    return result
