import asyncio
from unittest.mock import AsyncMock

import pytest

from downloader_bot.services import process_runner
from downloader_bot.services.process_runner import ToolOutput, run_tool


class FakeProcess:
    """Mimics asyncio.subprocess.Process closely enough for run_tool."""

    def __init__(
        self,
        *,
        exit_code: int = 0,
        stdout: bytes = b"",
        stderr: bytes = b"",
        runtime: float = 0.0,
        exited: bool = False,
    ) -> None:
        self._exit_code = exit_code
        self._stdout = stdout
        self._stderr = stderr
        self._runtime = runtime
        self._killed = asyncio.Event()
        # `exited` simulates a process that is gone while its pipes still drain.
        self.returncode = exit_code if exited else None
        self.kill_calls = 0

    async def communicate(self):
        try:
            await asyncio.wait_for(self._killed.wait(), timeout=self._runtime)
        except asyncio.TimeoutError:
            pass
        if self.returncode is None:
            self.returncode = self._exit_code
        return self._stdout, self._stderr

    def kill(self):
        self.kill_calls += 1
        self.returncode = -9
        self._killed.set()


def _spawn(mocker, proc=None, error=None) -> AsyncMock:
    mock = AsyncMock(return_value=proc, side_effect=error)
    mocker.patch.object(process_runner.asyncio, "create_subprocess_exec", mock)
    return mock


@pytest.mark.asyncio
async def test_run_tool_returns_buffered_output(mocker):
    spawn = _spawn(mocker, FakeProcess(stdout=b"hello\n", stderr=b"warn"))

    result = await run_tool(["yt-dlp", "--version"], timeout=5)

    assert result == ToolOutput(0, "hello\n", "warn")
    assert result.ok
    args, kwargs = spawn.call_args
    assert args == ("yt-dlp", "--version")
    assert kwargs["stdout"] == asyncio.subprocess.PIPE
    assert "shell" not in kwargs


@pytest.mark.asyncio
async def test_run_tool_reports_nonzero_exit(mocker):
    _spawn(mocker, FakeProcess(exit_code=1, stderr=b"ERROR: Video unavailable"))

    result = await run_tool(["yt-dlp", "x"], timeout=5)

    assert not result.ok
    assert result.exit_code == 1
    assert result.diagnostic() == "ERROR: Video unavailable"


@pytest.mark.asyncio
async def test_run_tool_kills_process_on_timeout(mocker):
    proc = FakeProcess(runtime=10)
    _spawn(mocker, proc)

    result = await run_tool(["ffmpeg", "-i", "in.mp3"], timeout=0.05)

    assert result.timed_out
    assert not result.ok
    assert proc.kill_calls == 1
    assert "timed out" in result.stderr


@pytest.mark.asyncio
async def test_timeout_after_exit_keeps_the_completed_result(mocker):
    proc = FakeProcess(stdout=b"done", runtime=0.2, exited=True)
    _spawn(mocker, proc)

    result = await run_tool(["ffmpeg", "-version"], timeout=0.01)

    assert proc.kill_calls == 0
    assert not result.timed_out
    assert result.ok
    assert result.stdout == "done"


@pytest.mark.asyncio
async def test_missing_executable_yields_exit_127(mocker):
    _spawn(mocker, error=FileNotFoundError("yt-dlp"))

    result = await run_tool(["yt-dlp", "--version"], timeout=5)

    assert result.exit_code == 127
    assert "not found" in result.stderr


@pytest.mark.asyncio
async def test_undecodable_output_is_replaced(mocker):
    _spawn(mocker, FakeProcess(stdout=b"\xff\xfeok"))

    result = await run_tool(["tool"], timeout=5)

    assert result.stdout.endswith("ok")


@pytest.mark.asyncio
async def test_exited_process_with_open_pipes_does_not_hang(mocker):
    mocker.patch.object(process_runner, "REAP_TIMEOUT_SECONDS", 0.05)
    proc = FakeProcess(stdout=b"never", runtime=10, exited=True)
    _spawn(mocker, proc)

    result = await asyncio.wait_for(run_tool(["yt-dlp", "x"], timeout=0.01), timeout=2)

    assert proc.kill_calls == 0
    assert result.exit_code == 0
    assert not result.timed_out
    assert result.stdout == ""
    assert "output streams open" in result.stderr
