from __future__ import annotations

import asyncio
import os
from pathlib import Path
import sys

import pytest

from docraster.errors import CommandFailed, CommandNotFound, CommandTimeout
from docraster.utils.process import run_command


@pytest.mark.asyncio
async def test_run_command_captures_output() -> None:
    result = await run_command([sys.executable, "-c", "print('hello')"], timeout=30)

    assert result.returncode == 0
    assert result.stdout.strip() == "hello"
    assert result.argv[0] == sys.executable


@pytest.mark.asyncio
async def test_run_command_raises_on_failure() -> None:
    argv = [sys.executable, "-c", "import sys; sys.stderr.write('bad input'); sys.exit(3)"]

    with pytest.raises(CommandFailed) as excinfo:
        await run_command(argv, timeout=30)

    assert excinfo.value.returncode == 3
    assert "bad input" in excinfo.value.stderr

    unchecked = await run_command(argv, timeout=30, check=False)
    assert unchecked.returncode == 3


@pytest.mark.asyncio
async def test_run_command_kills_on_timeout() -> None:
    with pytest.raises(CommandTimeout):
        await run_command([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5)


@pytest.mark.asyncio
async def test_run_command_missing_binary() -> None:
    with pytest.raises(CommandNotFound):
        await run_command(["docraster-binary-that-does-not-exist"], timeout=5)


@pytest.mark.asyncio
async def test_run_command_rejects_empty_argv() -> None:
    with pytest.raises(ValueError):
        await run_command([], timeout=5)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX process semantics")
@pytest.mark.asyncio
async def test_run_command_reaps_child_on_cancel(tmp_path: Path) -> None:
    pid_file = tmp_path / "child.pid"
    script = (
        "import os, pathlib, sys, time; "
        "pathlib.Path(sys.argv[1]).write_text(str(os.getpid())); "
        "time.sleep(30)"
    )
    task = asyncio.create_task(
        run_command([sys.executable, "-c", script, str(pid_file)], timeout=60)
    )
    for _ in range(200):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.05)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # A killed but unreaped child would still answer signal 0 as a zombie.
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
