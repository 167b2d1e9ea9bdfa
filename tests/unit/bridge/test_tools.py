"""Tests unitaires: catalogue d'outils et validation des arguments."""

from __future__ import annotations

import pytest

from opencode_mcp.bridge.tools import TOOL_DEFINITIONS, TOOL_NAMES, build_invocation, validate_cwd
from opencode_mcp.core.exceptions import InvalidToolArguments


async def _fixed_model() -> str:
    return "github-copilot/gpt-4o"


@pytest.mark.unit
def test_catalog_contains_the_five_tools():
    assert TOOL_NAMES == {
        "opencode_exec",
        "opencode_run",
        "opencode_models",
        "opencode_session_list",
        "opencode_agent_list",
    }
    run = next(t for t in TOOL_DEFINITIONS if t["name"] == "opencode_run")
    assert run["inputSchema"]["required"] == ["message"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_argv_with_all_options(tmp_path):
    invocation = await build_invocation(
        "opencode_run",
        {
            "message": "Hi",
            "cwd": str(tmp_path),
            "model": "m1",
            "session": "ses_1",
            "continue": True,
            "files": ["a.py", "b.py"],
        },
    )
    assert invocation.argv == (
        "run", "--format", "json", "--model", "m1",
        "--session", "ses_1", "--continue",
        "--file", "a.py", "--file", "b.py",
        "Hi",
    )
    assert invocation.cwd == str(tmp_path)
    assert invocation.structured is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_resolves_default_model_when_absent():
    invocation = await build_invocation("opencode_run", {"message": "Hi"}, resolve_model=_fixed_model)
    assert invocation.argv == ("run", "--format", "json", "--model", "github-copilot/gpt-4o", "Hi")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fixed_tools_use_raw_path():
    invocation = await build_invocation("opencode_session_list", None)
    assert invocation.argv == ("session", "list")
    assert invocation.structured is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_exec_forwards_args_and_stdin():
    invocation = await build_invocation("opencode_exec", {"args": ["agent", "list"], "stdin": "data"})
    assert invocation.argv == ("agent", "list")
    assert invocation.stdin == "data"


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "name,arguments,message",
    [
        ("nope", {}, "unknown tool: nope"),
        ("opencode_run", {}, "missing message"),
        ("opencode_run", {"message": ""}, "missing message"),
        ("opencode_exec", {"args": []}, "missing args"),
        ("opencode_exec", {}, "missing args"),
        ("opencode_run", "not-a-dict", "invalid arguments"),
    ],
)
async def test_invalid_requests_are_rejected(name, arguments, message):
    with pytest.raises(InvalidToolArguments) as exc_info:
        await build_invocation(name, arguments, resolve_model=_fixed_model)
    assert exc_info.value.message == message


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_cwd_is_rejected_before_model_resolution(tmp_path):
    calls = []

    async def _resolve():
        calls.append(1)
        return "m"

    with pytest.raises(InvalidToolArguments) as exc_info:
        await build_invocation("opencode_run", {"message": "Hi", "cwd": str(tmp_path / "missing")}, resolve_model=_resolve)

    assert exc_info.value.message.startswith("invalid cwd:")
    assert calls == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_level_cwd_is_used_as_fallback(tmp_path):
    invocation = await build_invocation("opencode_models", {}, request_cwd=str(tmp_path))
    assert invocation.cwd == str(tmp_path)


@pytest.mark.unit
def test_validate_cwd_rejects_files(tmp_path):
    target = tmp_path / "file.txt"
    target.write_text("x", encoding="utf-8")
    with pytest.raises(InvalidToolArguments, match="not a directory"):
        validate_cwd(str(target))
    assert validate_cwd("") is None
