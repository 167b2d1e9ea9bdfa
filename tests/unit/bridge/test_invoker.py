"""Tests unitaires: lancement et supervision du sous-processus.

Exécutables factices: scripts shell écrits dans tmp_path.
"""

from __future__ import annotations

import asyncio
import os
import time

import pytest

from opencode_mcp.bridge.invoker import KILLED_EXIT_CODE, CommandInvoker
from opencode_mcp.core.exceptions import CommandLaunchError


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_executable_raises_launch_error(tmp_path):
    invoker = CommandInvoker(str(tmp_path / "does-not-exist"))
    with pytest.raises(CommandLaunchError) as exc_info:
        await invoker.start(["run"])
    assert "failed to start" in exc_info.value.message


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_command_collects_output_and_exit_code(make_stub):
    stub = make_stub(
        """
        echo "args: $*"
        echo "boom" >&2
        exit 2
        """
    )
    output = await CommandInvoker(stub).run_command(["session", "list"])

    assert output.stdout == "args: session list\n"
    assert output.stderr == "boom\n"
    assert output.exit_code == 2
    assert output.timed_out is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stdin_and_cwd_are_forwarded(make_stub, tmp_path):
    workdir = tmp_path / "project"
    workdir.mkdir()
    stub = make_stub(
        """
        pwd
        cat
        """
    )
    output = await CommandInvoker(stub).run_command([], stdin="from stdin", cwd=str(workdir))

    assert output.stdout.splitlines() == [os.path.realpath(workdir), "from stdin"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_timeout_kills_process(make_stub):
    stub = make_stub(
        """
        echo started
        sleep 30
        """
    )
    invoker = CommandInvoker(stub, timeout_s=0.5)

    began = time.monotonic()
    output = await invoker.run_command([])
    elapsed = time.monotonic() - began

    assert output.timed_out is True
    assert output.exit_code == KILLED_EXIT_CODE
    assert output.stdout == "started\n"
    assert elapsed < 10


@pytest.mark.unit
@pytest.mark.asyncio
async def test_terminate_is_idempotent_and_marks_cancelled(make_stub):
    stub = make_stub("sleep 30\n")
    running = await CommandInvoker(stub, timeout_s=30).start([])

    first = await running.terminate()
    second = await running.terminate()

    assert first.cancelled is True
    assert first.exit_code == KILLED_EXIT_CODE
    assert second == first
    assert running.done


@pytest.mark.unit
@pytest.mark.asyncio
async def test_wait_survives_caller_cancellation(make_stub):
    stub = make_stub("sleep 0.3\nexit 0\n")
    running = await CommandInvoker(stub).start([])

    waiter = asyncio.create_task(running.wait())
    await asyncio.sleep(0.05)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    completion = await running.wait()
    assert completion.ok
