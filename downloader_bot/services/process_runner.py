# downloader_bot/services/process_runner.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from ..config import logger
from .errors import excerpt

# Upper bound for draining the pipes once the process is gone.
REAP_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class ToolOutput:
    """Buffered result of one external tool invocation."""

    exit_code: int | None
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def diagnostic(self) -> str:
        """A bounded excerpt of whatever the tool printed last."""
        return excerpt(self.stderr or self.stdout)


async def run_tool(args: list[str], timeout: float) -> ToolOutput:
    """
    Runs an external tool without a shell and waits for it to exit.

    Output streams are buffered in full. If the timeout fires first the
    process is killed and reaped; a process that has already exited is
    reported as completed even if the timeout elapses afterwards.
    """
    tool = args[0]
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.error(f"[PROCESS] '{tool}' is not installed or not in PATH.")
        return ToolOutput(127, "", f"{tool}: command not found")
    except OSError as e:
        logger.error(f"[PROCESS] Failed to start '{tool}': {e}")
        return ToolOutput(126, "", f"{tool}: {e}")

    communicate = asyncio.ensure_future(proc.communicate())
    done, _ = await asyncio.wait({communicate}, timeout=timeout)

    if communicate not in done:
        if proc.returncode is None:
            logger.warning(f"[PROCESS] '{tool}' timed out after {timeout}s. Killing it.")
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            # Reap the process; a grandchild may still hold the pipes open.
            try:
                await asyncio.wait_for(communicate, timeout=REAP_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                pass
            return ToolOutput(
                proc.returncode, "", f"{tool} timed out after {timeout}s", True
            )
        # Already exited when the timer fired: the completion wins.
        try:
            stdout, stderr = await asyncio.wait_for(
                communicate, timeout=REAP_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"[PROCESS] '{tool}' exited with {proc.returncode} but its output "
                f"streams stayed open. Discarding the output."
            )
            return ToolOutput(
                proc.returncode, "", f"{tool} exited but kept its output streams open"
            )
    else:
        stdout, stderr = communicate.result()

    return ToolOutput(
        proc.returncode,
        stdout.decode("utf-8", errors="replace") if stdout else "",
        stderr.decode("utf-8", errors="replace") if stderr else "",
    )
